"""Read-side views over ratings and completed matches."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import InvalidGameFormat
from ..records import (
    DOUBLES_FORMATS,
    STATUS_COMPLETED,
    MatchRecord,
    RatingRecord,
    outcome_for_side,
    percentage,
)
from ..stores.base import StoreBackend
from .validation import ValidationError, validate_game_format


@dataclass
class RankingEntry:
    rank: int
    record: RatingRecord


@dataclass
class RankingPage:
    club_id: str
    game_format: str
    total: int
    limit: int
    offset: int
    entries: list[RankingEntry] = field(default_factory=list)


@dataclass
class HistoryEntry:
    """One completed match seen from a single participant."""

    match: MatchRecord
    side: str
    outcome: str
    rating_before: Optional[int]
    rating_after: Optional[int]
    partner_id: Optional[str]
    opponent_ids: list[str]

    @property
    def delta(self) -> Optional[int]:
        if self.rating_before is None or self.rating_after is None:
            return None
        return self.rating_after - self.rating_before


@dataclass
class UserStats:
    user_id: str
    club_id: str
    formats: list[RatingRecord]
    wins: int
    losses: int
    draws: int
    total_matches: int
    history: list[HistoryEntry]

    @property
    def win_rate(self) -> float:
        return percentage(self.wins, self.wins + self.losses + self.draws)


@dataclass
class PartnerStats:
    partner_id: str
    wins: int = 0
    losses: int = 0
    draws: int = 0

    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.draws

    @property
    def win_rate(self) -> float:
        return percentage(self.wins, self.games_played)


def _check_format(game_format: str) -> None:
    try:
        validate_game_format(game_format)
    except ValidationError as exc:
        raise InvalidGameFormat(game_format) from exc


class RankingService:
    def __init__(self, backend: StoreBackend) -> None:
        self.backend = backend

    async def club_rankings(
        self,
        club_id: str,
        game_format: str,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> RankingPage:
        """Leaderboard of a club for one format: rating desc, then wins, then user id."""

        _check_format(game_format)
        async with self.backend.transaction() as tx:
            records = await tx.ratings.list_for_club(club_id, game_format)
        window = records[offset : offset + limit]
        return RankingPage(
            club_id=club_id,
            game_format=game_format,
            total=len(records),
            limit=limit,
            offset=offset,
            entries=[
                RankingEntry(rank=offset + i + 1, record=record)
                for i, record in enumerate(window)
            ],
        )

    async def user_rankings(self, club_id: str, user_id: str) -> list[RatingRecord]:
        async with self.backend.transaction() as tx:
            return await tx.ratings.list_for_user(user_id, club_id)

    async def user_stats(
        self, club_id: str, user_id: str, *, history_limit: int = 20
    ) -> UserStats:
        async with self.backend.transaction() as tx:
            formats = await tx.ratings.list_for_user(user_id, club_id)
            matches = await tx.matches.list_for_user(
                user_id, club_id=club_id, status=STATUS_COMPLETED
            )
            deltas = {
                m.id: await tx.matches.list_deltas(m.id) for m in matches[:history_limit]
            }

        counts = {"win": 0, "loss": 0, "draw": 0}
        for match in matches:
            counts[outcome_for_side(match.result, match.side_of(user_id))] += 1

        history = []
        for match in matches[:history_limit]:
            side = match.side_of(user_id)
            own = next((d for d in deltas[match.id] if d.user_id == user_id), None)
            history.append(
                HistoryEntry(
                    match=match,
                    side=side,
                    outcome=outcome_for_side(match.result, side),
                    rating_before=own.rating_before if own else None,
                    rating_after=own.rating_after if own else None,
                    partner_id=match.partner_of(user_id),
                    opponent_ids=match.opponents_of(user_id),
                )
            )

        return UserStats(
            user_id=user_id,
            club_id=club_id,
            formats=formats,
            wins=counts["win"],
            losses=counts["loss"],
            draws=counts["draw"],
            total_matches=len(matches),
            history=history,
        )

    async def partnership_stats(
        self, club_id: str, user_id: str, game_format: Optional[str] = None
    ) -> list[PartnerStats]:
        """Results of a user's completed doubles matches, grouped by partner."""

        if game_format is not None:
            _check_format(game_format)
        async with self.backend.transaction() as tx:
            matches = await tx.matches.list_for_user(
                user_id, club_id=club_id, status=STATUS_COMPLETED
            )

        partners: dict[str, PartnerStats] = {}
        for match in matches:
            if match.game_format not in DOUBLES_FORMATS:
                continue
            if game_format is not None and match.game_format != game_format:
                continue
            partner_id = match.partner_of(user_id)
            if partner_id is None:
                continue
            stats = partners.get(partner_id)
            if stats is None:
                stats = partners[partner_id] = PartnerStats(partner_id=partner_id)
            outcome = outcome_for_side(match.result, match.side_of(user_id))
            if outcome == "win":
                stats.wins += 1
            elif outcome == "loss":
                stats.losses += 1
            else:
                stats.draws += 1

        return sorted(partners.values(), key=lambda s: (-s.games_played, s.partner_id))
