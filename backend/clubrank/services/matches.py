"""Match lifecycle: creation, result reporting and rating completion."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Mapping, Optional, Sequence

from ..config import DEFAULT_K_FACTOR
from ..exceptions import (
    ConcurrentUpdate,
    InvalidGameFormat,
    InvalidParticipants,
    InvalidResult,
    MatchAlreadyCompleted,
    MissingResult,
)
from ..locks import KeyedLocks
from ..records import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_REJECTED,
    MatchParticipantRef,
    MatchRecord,
    ParticipantDelta,
    RatingRecord,
    SIDES,
    utcnow,
)
from ..stores.base import StoreBackend, StoreTransaction, ensure_pending
from .rating import compute_match_ratings
from .validation import (
    ValidationError,
    resolve_reported_result,
    validate_game_format,
    validate_participants_for_format,
    validate_result,
)

logger = logging.getLogger(__name__)


@dataclass
class MatchState:
    """A match together with the rating deltas written when it completed."""

    match: MatchRecord
    deltas: list[ParticipantDelta] = field(default_factory=list)


def _match_lock(match_id: str) -> str:
    return f"match:{match_id}"


def _rating_lock(user_id: str, club_id: str, game_format: str) -> str:
    return f"rating:{club_id}:{game_format}:{user_id}"


class MatchService:
    """Coordinates the match store, the rating store and the rating engine.

    Work on one match is serialized in-process by a per-match lock and the
    rating read-modify-write by per-rating locks taken in sorted order. The
    stores add their own compare-and-set checks, so the guarantees hold across
    processes sharing a database as well.
    """

    def __init__(
        self,
        backend: StoreBackend,
        *,
        k_factor: int = DEFAULT_K_FACTOR,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        if k_factor <= 0:
            raise ValueError("k_factor must be positive")
        self.backend = backend
        self.k_factor = k_factor
        self.locks = locks or KeyedLocks()

    async def create_match(
        self,
        club_id: str,
        game_format: str,
        participants: Mapping[str, Sequence[str]],
        *,
        created_by: Optional[str] = None,
        match_type: str = "friendly",
        opponent_club_id: Optional[str] = None,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
        result: Optional[str] = None,
        side_a_score: Optional[int] = None,
        side_b_score: Optional[int] = None,
    ) -> MatchRecord:
        try:
            validate_game_format(game_format)
        except ValidationError as exc:
            raise InvalidGameFormat(game_format) from exc
        try:
            validate_participants_for_format(game_format, participants)
        except ValidationError as exc:
            raise InvalidParticipants(exc.detail) from exc

        refs = tuple(
            MatchParticipantRef(user_id=user_id, side=side)
            for side in SIDES
            for user_id in participants[side]
        )
        if created_by is not None and created_by not in {r.user_id for r in refs}:
            raise InvalidParticipants("the creator of a match must take part in it")

        reported: Optional[str] = None
        if result is not None or side_a_score is not None or side_b_score is not None:
            try:
                reported = resolve_reported_result(result, side_a_score, side_b_score)
            except ValidationError as exc:
                raise InvalidResult(exc.detail) from exc

        match = MatchRecord(
            id=uuid.uuid4().hex,
            club_id=club_id,
            game_format=game_format,
            participants=refs,
            reported_result=reported,
            side_a_score=side_a_score,
            side_b_score=side_b_score,
            opponent_club_id=opponent_club_id,
            match_type=match_type,
            location=location,
            notes=notes,
            scheduled_at=scheduled_at,
            created_by=created_by,
        )
        async with self.backend.transaction() as tx:
            created = await tx.matches.create(match)
        logger.info(
            "Created %s match %s in club %s", game_format, created.id, club_id
        )
        return created

    async def get_match(self, match_id: str) -> MatchState:
        async with self.backend.transaction() as tx:
            match = await tx.matches.get(match_id)
            deltas = await tx.matches.list_deltas(match_id)
        return MatchState(match=match, deltas=deltas)

    async def record_result(
        self,
        match_id: str,
        *,
        result: Optional[str] = None,
        side_a_score: Optional[int] = None,
        side_b_score: Optional[int] = None,
    ) -> MatchRecord:
        """Store the outcome reported for a pending match without rating it."""

        try:
            reported = resolve_reported_result(result, side_a_score, side_b_score)
        except ValidationError as exc:
            raise InvalidResult(exc.detail) from exc

        async with self.locks.hold(_match_lock(match_id)):
            async with self.backend.transaction() as tx:
                match = await tx.matches.record_result(
                    match_id, reported, side_a_score, side_b_score
                )
        logger.info("Recorded result %s for match %s", reported, match_id)
        return match

    async def cancel_match(self, match_id: str) -> MatchRecord:
        return await self._close(match_id, STATUS_CANCELLED)

    async def reject_match(self, match_id: str) -> MatchRecord:
        return await self._close(match_id, STATUS_REJECTED)

    async def _close(self, match_id: str, status: str) -> MatchRecord:
        async with self.locks.hold(_match_lock(match_id)):
            async with self.backend.transaction() as tx:
                match = await tx.matches.set_status(match_id, status)
        logger.info("Match %s %s", match_id, status)
        return match

    async def complete_match(
        self, match_id: str, result: Optional[str] = None
    ) -> MatchState:
        """Apply the match outcome to every participant's rating.

        ``result`` overrides the reported result; without either the call
        fails with :class:`MissingResult`. A match that is already completed
        raises :class:`MatchAlreadyCompleted` carrying the settled state, and
        no rating is touched a second time. Rating updates, audit rows and
        the status change are committed together or not at all.
        """

        if result is not None:
            try:
                validate_result(result)
            except ValidationError as exc:
                raise InvalidResult(exc.detail) from exc

        try:
            async with self.locks.hold(_match_lock(match_id)):
                async with self.backend.transaction() as tx:
                    match = await self._load_pending(tx, match_id)

                # Rating locks stay held until the write transaction has committed.
                names = [
                    _rating_lock(uid, match.club_id, match.game_format)
                    for uid in match.user_ids
                ]
                async with self.locks.hold(*names):
                    async with self.backend.transaction() as tx:
                        match = await self._load_pending(tx, match_id)
                        outcome = self._resolve_outcome(match, result)
                        state = await self._apply(tx, match, outcome)
        except MatchAlreadyCompleted as exc:
            if exc.match is None:
                # Lost the compare-and-set to another process; report its result.
                exc = await self._already_completed(match_id)
            logger.info("Match %s was already completed", match_id)
            raise exc
        except ConcurrentUpdate:
            logger.warning("Completion of match %s rolled back on a conflict", match_id)
            raise

        logger.info(
            "Completed match %s as %s (%s)",
            match_id,
            state.match.result,
            ", ".join(f"{d.user_id} {d.delta:+d}" for d in state.deltas),
        )
        return state

    async def _load_pending(self, tx: StoreTransaction, match_id: str) -> MatchRecord:
        match = await tx.matches.get(match_id)
        if match.status == STATUS_COMPLETED:
            deltas = await tx.matches.list_deltas(match_id)
            raise MatchAlreadyCompleted(match_id, match=match, deltas=deltas)
        ensure_pending(match, "complete")
        return match

    @staticmethod
    def _resolve_outcome(match: MatchRecord, result: Optional[str]) -> str:
        if result is None:
            if match.reported_result is None:
                raise MissingResult(match.id)
            return match.reported_result
        if match.side_a_score is None or match.side_b_score is None:
            return result
        try:
            return resolve_reported_result(result, match.side_a_score, match.side_b_score)
        except ValidationError as exc:
            raise InvalidResult(exc.detail) from exc

    async def _apply(
        self, tx: StoreTransaction, match: MatchRecord, outcome: str
    ) -> MatchState:
        club_id, game_format = match.club_id, match.game_format
        side_a = [
            await tx.ratings.get(uid, club_id, game_format) for uid in match.side_players("A")
        ]
        side_b = [
            await tx.ratings.get(uid, club_id, game_format) for uid in match.side_players("B")
        ]
        try:
            changes = compute_match_ratings(side_a, side_b, outcome, k=self.k_factor)
        except ValidationError as exc:
            raise InvalidParticipants(exc.detail) from exc

        current: dict[str, RatingRecord] = {r.user_id: r for r in side_a + side_b}
        now = utcnow()
        deltas: list[ParticipantDelta] = []
        for user_id, change in changes.items():
            record = current[user_id]
            await tx.ratings.upsert(
                replace(
                    record,
                    rating=change.rating_after,
                    wins=change.wins,
                    losses=change.losses,
                    draws=change.draws,
                ),
                expected_version=record.version,
            )
            deltas.append(
                ParticipantDelta(
                    match_id=match.id,
                    user_id=user_id,
                    side=change.side,
                    rating_before=change.rating_before,
                    rating_after=change.rating_after,
                    partner_id=match.partner_of(user_id),
                    created_at=now,
                )
            )
        deltas.sort(key=lambda d: (d.side, d.user_id))

        completed = await tx.matches.mark_completed(match.id, outcome, deltas)
        return MatchState(match=completed, deltas=deltas)

    async def _already_completed(self, match_id: str) -> MatchAlreadyCompleted:
        state = await self.get_match(match_id)
        return MatchAlreadyCompleted(match_id, match=state.match, deltas=state.deltas)
