"""Store contracts the match service depends on.

Every operation runs inside a :class:`StoreTransaction`; a backend commits
all writes of a transaction when its context exits cleanly and discards them
when it exits with an exception.
"""

from __future__ import annotations

from typing import AsyncContextManager, Optional, Protocol, Sequence

from ..exceptions import InvalidMatchState, MatchAlreadyCompleted
from ..records import (
    STATUS_COMPLETED,
    STATUS_PENDING,
    MatchRecord,
    ParticipantDelta,
    RatingRecord,
)


class RatingStore(Protocol):
    async def get(self, user_id: str, club_id: str, game_format: str) -> RatingRecord:
        """Return the stored record, or a virgin record when none exists."""

    async def upsert(
        self, record: RatingRecord, *, expected_version: Optional[int] = None
    ) -> RatingRecord:
        """Create or overwrite ``record`` and return it with its new version.

        With ``expected_version`` the write only succeeds if the stored
        version still matches (``0`` = must not exist yet); otherwise
        :class:`~clubrank.exceptions.ConcurrentUpdate` is raised. Without it
        the last write wins.
        """

    async def list_for_club(self, club_id: str, game_format: str) -> list[RatingRecord]:
        """Records of a club for one format, best rating first."""

    async def list_for_user(
        self, user_id: str, club_id: Optional[str] = None
    ) -> list[RatingRecord]:
        ...


class MatchStore(Protocol):
    async def create(self, match: MatchRecord) -> MatchRecord:
        ...

    async def get(self, match_id: str) -> MatchRecord:
        """Return the match or raise :class:`~clubrank.exceptions.MatchNotFound`."""

    async def record_result(
        self,
        match_id: str,
        reported_result: str,
        side_a_score: Optional[int] = None,
        side_b_score: Optional[int] = None,
    ) -> MatchRecord:
        """Store the caller-reported outcome on a pending match."""

    async def set_status(self, match_id: str, status: str) -> MatchRecord:
        """Move a pending match to ``cancelled`` or ``rejected``."""

    async def mark_completed(
        self,
        match_id: str,
        result: str,
        deltas: Sequence[ParticipantDelta],
    ) -> MatchRecord:
        """Compare-and-set ``pending -> completed`` and write the audit rows."""

    async def list_deltas(self, match_id: str) -> list[ParticipantDelta]:
        ...

    async def list_for_user(
        self,
        user_id: str,
        club_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[MatchRecord]:
        ...


class StoreTransaction(Protocol):
    ratings: RatingStore
    matches: MatchStore


class StoreBackend(Protocol):
    def transaction(self) -> AsyncContextManager[StoreTransaction]:
        ...

    async def dispose(self) -> None:
        ...


def ensure_pending(match: MatchRecord, action: str) -> None:
    """Raise unless ``match`` is still pending.

    A completed match raises :class:`MatchAlreadyCompleted` (the idempotency
    signal); cancelled and rejected matches raise :class:`InvalidMatchState`.
    """

    if match.status == STATUS_PENDING:
        return
    if match.status == STATUS_COMPLETED:
        raise MatchAlreadyCompleted(match.id)
    raise InvalidMatchState(match.id, match.status, action)
