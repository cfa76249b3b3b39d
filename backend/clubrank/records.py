"""Plain records shared by the stores, the rating engine and the services.

Status, result and format values are stored as the strings below; the
tuples are the single source of truth for what is accepted anywhere else.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Optional

from .config import DEFAULT_STARTING_RATING

GameFormat = Literal[
    "mens_singles",
    "womens_singles",
    "mens_doubles",
    "womens_doubles",
    "mixed_doubles",
]
MatchResult = Literal["side_a_won", "side_b_won", "draw"]
MatchType = Literal["friendly", "tournament", "league"]
Side = Literal["A", "B"]

SINGLES_FORMATS: tuple[str, ...] = ("mens_singles", "womens_singles")
DOUBLES_FORMATS: tuple[str, ...] = ("mens_doubles", "womens_doubles", "mixed_doubles")
GAME_FORMATS: tuple[str, ...] = SINGLES_FORMATS + DOUBLES_FORMATS

MATCH_TYPES: tuple[str, ...] = ("friendly", "tournament", "league")

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_REJECTED = "rejected"
MATCH_STATUSES: tuple[str, ...] = (
    STATUS_PENDING,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_REJECTED,
)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_REJECTED})

RESULT_SIDE_A_WON = "side_a_won"
RESULT_SIDE_B_WON = "side_b_won"
RESULT_DRAW = "draw"
MATCH_RESULTS: tuple[str, ...] = (RESULT_SIDE_A_WON, RESULT_SIDE_B_WON, RESULT_DRAW)

SIDES: tuple[str, ...] = ("A", "B")

RatingKey = tuple[str, str, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def players_per_side(game_format: str) -> int:
    """Return 1 for singles and 2 for doubles; ``KeyError`` for unknown formats."""

    if game_format in SINGLES_FORMATS:
        return 1
    if game_format in DOUBLES_FORMATS:
        return 2
    raise KeyError(game_format)


def outcome_for_side(result: str, side: str) -> str:
    """Translate a match result into ``win``/``loss``/``draw`` for one side."""

    if result == RESULT_DRAW:
        return "draw"
    winner = "A" if result == RESULT_SIDE_A_WON else "B"
    return "win" if side == winner else "loss"


def percentage(part: int, whole: int) -> float:
    """Percentage rounded half-up to one decimal; ``0.0`` when ``whole`` is 0."""

    if whole <= 0:
        return 0.0
    value = Decimal(part) * 100 / Decimal(whole)
    return float(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


@dataclass
class RatingRecord:
    """Current rating of one user in one club for one game format."""

    user_id: str
    club_id: str
    game_format: str
    rating: int = DEFAULT_STARTING_RATING
    wins: int = 0
    losses: int = 0
    draws: int = 0
    # 0 means the record has never been written.
    version: int = 0
    updated_at: Optional[datetime] = None

    @classmethod
    def virgin(
        cls,
        user_id: str,
        club_id: str,
        game_format: str,
        *,
        rating: int = DEFAULT_STARTING_RATING,
    ) -> "RatingRecord":
        return cls(user_id=user_id, club_id=club_id, game_format=game_format, rating=rating)

    @property
    def key(self) -> RatingKey:
        return (self.user_id, self.club_id, self.game_format)

    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.draws

    @property
    def win_rate(self) -> float:
        return percentage(self.wins, self.games_played)


@dataclass(frozen=True)
class MatchParticipantRef:
    user_id: str
    side: str


@dataclass
class MatchRecord:
    id: str
    club_id: str
    game_format: str
    participants: tuple[MatchParticipantRef, ...]
    status: str = STATUS_PENDING
    # Only ever set together with status == completed.
    result: Optional[str] = None
    reported_result: Optional[str] = None
    side_a_score: Optional[int] = None
    side_b_score: Optional[int] = None
    opponent_club_id: Optional[str] = None
    match_type: str = "friendly"
    location: Optional[str] = None
    notes: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def side_players(self, side: str) -> list[str]:
        return [p.user_id for p in self.participants if p.side == side]

    @property
    def user_ids(self) -> list[str]:
        return [p.user_id for p in self.participants]

    def side_of(self, user_id: str) -> Optional[str]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant.side
        return None

    def partner_of(self, user_id: str) -> Optional[str]:
        side = self.side_of(user_id)
        if side is None:
            return None
        partners = [pid for pid in self.side_players(side) if pid != user_id]
        return partners[0] if partners else None

    def opponents_of(self, user_id: str) -> list[str]:
        side = self.side_of(user_id)
        if side is None:
            return []
        return [p.user_id for p in self.participants if p.side != side]


@dataclass(frozen=True)
class ParticipantDelta:
    """Immutable audit row: one participant's rating change in one match."""

    match_id: str
    user_id: str
    side: str
    rating_before: int
    rating_after: int
    partner_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def delta(self) -> int:
        return self.rating_after - self.rating_before
