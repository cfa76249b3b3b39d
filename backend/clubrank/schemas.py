from typing import Any, List, Literal, Optional
from collections.abc import Sequence
from datetime import datetime, timezone
from pydantic import BaseModel, Field, model_validator, field_validator, ConfigDict

from .records import MatchResult, MatchType


def _require_utc(value: datetime | None, *, field_name: str) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{field_name} must include a timezone offset")
    return value.astimezone(timezone.utc)


class Participant(BaseModel):
    side: Literal["A", "B"]
    playerIds: List[str]


def _normalize_participants_payload(data: Any) -> Any:
    if not isinstance(data, dict) or "participants" not in data:
        return data

    raw_parts = data["participants"]
    if raw_parts is None:
        return data

    if not isinstance(raw_parts, list):
        raw_parts = list(raw_parts)

    seen_sides: set[str] = set()
    normalized_parts: list[dict[str, Any]] = []

    for part in raw_parts:
        if isinstance(part, BaseModel):
            part_data = part.model_dump()
        elif isinstance(part, dict):
            part_data = dict(part)
        else:
            raise TypeError(
                "participants must be provided as mappings or Pydantic models"
            )

        side = part_data.get("side")
        normalized_side = side.upper() if isinstance(side, str) else side
        side_key = normalized_side if isinstance(normalized_side, str) else str(normalized_side)

        if side_key in seen_sides:
            raise ValueError("participants must have unique sides")
        seen_sides.add(side_key)

        players = part_data.get("playerIds")
        if isinstance(players, list):
            player_list = players
        elif isinstance(players, Sequence) and not isinstance(players, (str, bytes)):
            player_list = list(players)
        elif players is None:
            player_list = []
        else:
            player_list = players  # allow Pydantic to flag incorrect types

        if isinstance(player_list, list):
            player_list = [p.strip() if isinstance(p, str) else p for p in player_list]
        if not player_list:
            raise ValueError("participants must include at least one player")

        part_data["side"] = normalized_side
        part_data["playerIds"] = player_list
        normalized_parts.append(part_data)

    return {**data, "participants": normalized_parts}


class MatchCreate(BaseModel):
    gameFormat: str
    participants: List[Participant]
    matchType: MatchType = "friendly"
    opponentClubId: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=2000)
    scheduledAt: Optional[datetime] = None
    result: Optional[MatchResult] = None
    sideAScore: Optional[int] = Field(default=None, ge=0)
    sideBScore: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("scheduledAt")
    def _normalize_scheduled_at(cls, v: datetime | None) -> datetime | None:
        return _require_utc(v, field_name="scheduledAt")

    @model_validator(mode="before")
    def _validate_participants(cls, data: Any) -> Any:
        return _normalize_participants_payload(data)

    def side_players(self) -> dict[str, list[str]]:
        return {p.side: list(p.playerIds) for p in self.participants}


class MatchResultIn(BaseModel):
    """Outcome reported before completion: a result, a final score, or both."""

    result: Optional[MatchResult] = None
    sideAScore: Optional[int] = Field(default=None, ge=0)
    sideBScore: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _ensure_outcome(self) -> "MatchResultIn":
        if (self.sideAScore is None) != (self.sideBScore is None):
            raise ValueError("sideAScore and sideBScore must be provided together")
        if self.result is None and self.sideAScore is None:
            raise ValueError("a result or a final score is required")
        return self


class MatchCompleteIn(BaseModel):
    result: Optional[MatchResult] = None

    model_config = ConfigDict(extra="forbid")


class ParticipantDeltaOut(BaseModel):
    userId: str
    side: str
    partnerId: Optional[str] = None
    ratingBefore: int
    ratingAfter: int
    delta: int


class MatchOut(BaseModel):
    id: str
    clubId: str
    opponentClubId: Optional[str] = None
    gameFormat: str
    matchType: str
    status: str
    result: Optional[str] = None
    reportedResult: Optional[str] = None
    sideAScore: Optional[int] = None
    sideBScore: Optional[int] = None
    participants: List[Participant]
    location: Optional[str] = None
    notes: Optional[str] = None
    scheduledAt: Optional[datetime] = None
    createdBy: Optional[str] = None
    createdAt: datetime
    completedAt: Optional[datetime] = None
    deltas: List[ParticipantDeltaOut] = Field(default_factory=list)


class MatchCompletionOut(BaseModel):
    """Returned by the complete endpoint, also when the match was already completed."""

    match: MatchOut
    alreadyCompleted: bool = False


class RatingOut(BaseModel):
    userId: str
    clubId: str
    gameFormat: str
    rating: int
    wins: int
    losses: int
    draws: int
    gamesPlayed: int
    winRate: float
    updatedAt: Optional[datetime] = None


class RankingEntryOut(RatingOut):
    rank: int


class RankingsOut(BaseModel):
    clubId: str
    gameFormat: str
    total: int
    limit: int
    offset: int
    rankings: List[RankingEntryOut] = Field(default_factory=list)


class MatchSummary(BaseModel):
    """Aggregate completed-match record for a user in a club."""

    total: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0
    winPct: float = 0.0


class HistoryEntryOut(BaseModel):
    matchId: str
    gameFormat: str
    matchType: str
    side: str
    outcome: Literal["win", "loss", "draw"]
    result: str
    sideAScore: Optional[int] = None
    sideBScore: Optional[int] = None
    partnerId: Optional[str] = None
    opponentIds: List[str] = Field(default_factory=list)
    ratingBefore: Optional[int] = None
    ratingAfter: Optional[int] = None
    delta: Optional[int] = None
    completedAt: Optional[datetime] = None


class UserStatsOut(BaseModel):
    userId: str
    clubId: str
    formats: List[RatingOut] = Field(default_factory=list)
    summary: MatchSummary
    history: List[HistoryEntryOut] = Field(default_factory=list)


class PartnershipOut(BaseModel):
    partnerId: str
    gamesPlayed: int
    wins: int
    losses: int
    draws: int
    winRate: float
