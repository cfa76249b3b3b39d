"""Keyed in-memory store backend.

Writes made inside a transaction are staged on the transaction object and
copied into the backend's dicts in one synchronous step when the transaction
exits cleanly. Commit re-checks what the transaction read (rating versions
and match statuses), so a transaction that lost a race commits nothing.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import AsyncIterator, Iterable, Optional, Sequence

from ..config import DEFAULT_STARTING_RATING
from ..exceptions import ConcurrentUpdate, MatchAlreadyCompleted, MatchNotFound
from ..records import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    MatchRecord,
    ParticipantDelta,
    RatingKey,
    RatingRecord,
    utcnow,
)
from .base import ensure_pending

logger = logging.getLogger(__name__)

_ABSENT = object()
_STATUS_ACTIONS = {STATUS_CANCELLED: "cancel", STATUS_REJECTED: "reject"}


def _rating_sort_key(record: RatingRecord) -> tuple[int, int, str]:
    return (-record.rating, -record.wins, record.user_id)


class MemoryStoreBackend:
    """Store backend holding every record in process memory."""

    def __init__(self, *, starting_rating: int = DEFAULT_STARTING_RATING) -> None:
        self.starting_rating = starting_rating
        self._ratings: dict[RatingKey, RatingRecord] = {}
        self._matches: dict[str, MatchRecord] = {}
        self._deltas: dict[str, tuple[ParticipantDelta, ...]] = {}

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryTransaction"]:
        tx = MemoryTransaction(self)
        yield tx
        tx.commit()

    async def dispose(self) -> None:
        self._ratings.clear()
        self._matches.clear()
        self._deltas.clear()


class MemoryTransaction:
    def __init__(self, backend: MemoryStoreBackend) -> None:
        self._backend = backend
        self._staged_ratings: dict[RatingKey, RatingRecord] = {}
        # key -> base version that must still be current at commit (None = unchecked)
        self._rating_checks: dict[RatingKey, Optional[int]] = {}
        self._staged_matches: dict[str, MatchRecord] = {}
        # match id -> base status that must still be current at commit (_ABSENT = new)
        self._match_checks: dict[str, object] = {}
        self._staged_deltas: dict[str, tuple[ParticipantDelta, ...]] = {}
        self.ratings = MemoryRatingStore(self)
        self.matches = MemoryMatchStore(self)

    # -- views -----------------------------------------------------------------

    def rating_view(self, key: RatingKey) -> Optional[RatingRecord]:
        if key in self._staged_ratings:
            return self._staged_ratings[key]
        return self._backend._ratings.get(key)

    def all_ratings(self) -> Iterable[RatingRecord]:
        merged = {**self._backend._ratings, **self._staged_ratings}
        return merged.values()

    def match_view(self, match_id: str) -> Optional[MatchRecord]:
        if match_id in self._staged_matches:
            return self._staged_matches[match_id]
        return self._backend._matches.get(match_id)

    def all_matches(self) -> Iterable[MatchRecord]:
        merged = {**self._backend._matches, **self._staged_matches}
        return merged.values()

    def deltas_view(self, match_id: str) -> tuple[ParticipantDelta, ...]:
        if match_id in self._staged_deltas:
            return self._staged_deltas[match_id]
        return self._backend._deltas.get(match_id, ())

    # -- staging ---------------------------------------------------------------

    def stage_rating(self, record: RatingRecord, checked: bool) -> None:
        key = record.key
        if key not in self._rating_checks:
            base = self._backend._ratings.get(key)
            self._rating_checks[key] = (base.version if base else 0) if checked else None
        elif checked and self._rating_checks[key] is None:
            base = self._backend._ratings.get(key)
            self._rating_checks[key] = base.version if base else 0
        self._staged_ratings[key] = record

    def stage_match(self, match: MatchRecord, *, new: bool = False) -> None:
        if match.id not in self._match_checks:
            self._match_checks[match.id] = _ABSENT if new else STATUS_PENDING
        self._staged_matches[match.id] = match

    def stage_deltas(self, match_id: str, deltas: Sequence[ParticipantDelta]) -> None:
        self._staged_deltas[match_id] = tuple(deltas)

    def commit(self) -> None:
        backend = self._backend

        for key, base_version in self._rating_checks.items():
            if base_version is None:
                continue
            current = backend._ratings.get(key)
            if (current.version if current else 0) != base_version:
                logger.warning("Discarding transaction: rating %s changed", key)
                raise ConcurrentUpdate(f"rating {key} changed during the transaction")

        for match_id, expected in self._match_checks.items():
            current = backend._matches.get(match_id)
            if expected is _ABSENT:
                if current is not None:
                    raise ValueError(f"match '{match_id}' already exists")
                continue
            if current is None:
                raise MatchNotFound(match_id)
            ensure_pending(current, "update")

        backend._ratings.update(self._staged_ratings)
        backend._matches.update(self._staged_matches)
        backend._deltas.update(self._staged_deltas)


class MemoryRatingStore:
    def __init__(self, tx: MemoryTransaction) -> None:
        self._tx = tx

    async def get(self, user_id: str, club_id: str, game_format: str) -> RatingRecord:
        record = self._tx.rating_view((user_id, club_id, game_format))
        if record is None:
            return RatingRecord.virgin(
                user_id,
                club_id,
                game_format,
                rating=self._tx._backend.starting_rating,
            )
        return replace(record)

    async def upsert(
        self, record: RatingRecord, *, expected_version: Optional[int] = None
    ) -> RatingRecord:
        current = self._tx.rating_view(record.key)
        current_version = current.version if current else 0
        if expected_version is not None and expected_version != current_version:
            raise ConcurrentUpdate(
                f"rating {record.key} is at version {current_version}, expected {expected_version}"
            )
        stored = replace(record, version=current_version + 1, updated_at=utcnow())
        self._tx.stage_rating(stored, checked=expected_version is not None)
        return replace(stored)

    async def list_for_club(self, club_id: str, game_format: str) -> list[RatingRecord]:
        rows = [
            replace(r)
            for r in self._tx.all_ratings()
            if r.club_id == club_id and r.game_format == game_format
        ]
        return sorted(rows, key=_rating_sort_key)

    async def list_for_user(
        self, user_id: str, club_id: Optional[str] = None
    ) -> list[RatingRecord]:
        rows = [
            replace(r)
            for r in self._tx.all_ratings()
            if r.user_id == user_id and (club_id is None or r.club_id == club_id)
        ]
        return sorted(rows, key=lambda r: (r.club_id, r.game_format))


class MemoryMatchStore:
    def __init__(self, tx: MemoryTransaction) -> None:
        self._tx = tx

    def _current(self, match_id: str) -> MatchRecord:
        match = self._tx.match_view(match_id)
        if match is None:
            raise MatchNotFound(match_id)
        return match

    async def create(self, match: MatchRecord) -> MatchRecord:
        if self._tx.match_view(match.id) is not None:
            raise ValueError(f"match '{match.id}' already exists")
        stored = replace(match, status=STATUS_PENDING, result=None, completed_at=None)
        self._tx.stage_match(stored, new=True)
        return replace(stored)

    async def get(self, match_id: str) -> MatchRecord:
        return replace(self._current(match_id))

    async def record_result(
        self,
        match_id: str,
        reported_result: str,
        side_a_score: Optional[int] = None,
        side_b_score: Optional[int] = None,
    ) -> MatchRecord:
        current = self._current(match_id)
        ensure_pending(current, "record a result for")
        updated = replace(
            current,
            reported_result=reported_result,
            side_a_score=side_a_score,
            side_b_score=side_b_score,
        )
        self._tx.stage_match(updated)
        return replace(updated)

    async def set_status(self, match_id: str, status: str) -> MatchRecord:
        action = _STATUS_ACTIONS.get(status)
        if action is None:
            raise ValueError(f"status '{status}' cannot be set directly")
        current = self._current(match_id)
        ensure_pending(current, action)
        updated = replace(current, status=status)
        self._tx.stage_match(updated)
        return replace(updated)

    async def mark_completed(
        self,
        match_id: str,
        result: str,
        deltas: Sequence[ParticipantDelta],
    ) -> MatchRecord:
        current = self._current(match_id)
        ensure_pending(current, "complete")
        if self._tx.deltas_view(match_id):
            raise MatchAlreadyCompleted(match_id)
        updated = replace(
            current,
            status=STATUS_COMPLETED,
            result=result,
            completed_at=utcnow(),
        )
        self._tx.stage_match(updated)
        self._tx.stage_deltas(match_id, deltas)
        return replace(updated)

    async def list_deltas(self, match_id: str) -> list[ParticipantDelta]:
        return sorted(self._tx.deltas_view(match_id), key=lambda d: (d.side, d.user_id))

    async def list_for_user(
        self,
        user_id: str,
        club_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[MatchRecord]:
        rows = [
            replace(m)
            for m in self._tx.all_matches()
            if user_id in m.user_ids
            and (club_id is None or m.club_id == club_id)
            and (status is None or m.status == status)
        ]
        return sorted(rows, key=lambda m: (m.created_at, m.id), reverse=True)
