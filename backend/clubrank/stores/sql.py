"""SQLAlchemy-backed stores.

A transaction is one ``AsyncSession`` inside ``session.begin()``. Match
transitions are compare-and-set ``UPDATE ... WHERE status = 'pending'``
statements and rating rows carry a version column, so two writers racing on
the same match or rating cannot both succeed.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ..config import DEFAULT_STARTING_RATING
from ..db import Base, create_engine_for_url, create_session_factory
from ..exceptions import ConcurrentUpdate, MatchNotFound
from ..models import ClubMatch, MatchParticipant, MatchRatingDelta, UserRating
from ..records import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_REJECTED,
    MatchParticipantRef,
    MatchRecord,
    ParticipantDelta,
    RatingRecord,
    utcnow,
)
from .base import ensure_pending

logger = logging.getLogger(__name__)

_STATUS_ACTIONS = {STATUS_CANCELLED: "cancel", STATUS_REJECTED: "reject"}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _rating_record(row: UserRating) -> RatingRecord:
    return RatingRecord(
        user_id=row.user_id,
        club_id=row.club_id,
        game_format=row.game_format,
        rating=row.rating,
        wins=row.wins,
        losses=row.losses,
        draws=row.draws,
        version=row.version,
        updated_at=_aware(row.updated_at),
    )


def _match_record(row: ClubMatch) -> MatchRecord:
    return MatchRecord(
        id=row.id,
        club_id=row.club_id,
        game_format=row.game_format,
        participants=tuple(
            MatchParticipantRef(user_id=p.user_id, side=p.side) for p in row.participants
        ),
        status=row.status,
        result=row.result,
        reported_result=row.reported_result,
        side_a_score=row.side_a_score,
        side_b_score=row.side_b_score,
        opponent_club_id=row.opponent_club_id,
        match_type=row.match_type,
        location=row.location,
        notes=row.notes,
        scheduled_at=_aware(row.scheduled_at),
        created_by=row.created_by,
        created_at=_aware(row.created_at),
        completed_at=_aware(row.completed_at),
    )


def _delta_record(row: MatchRatingDelta) -> ParticipantDelta:
    return ParticipantDelta(
        match_id=row.match_id,
        user_id=row.user_id,
        side=row.side,
        rating_before=row.rating_before,
        rating_after=row.rating_after,
        partner_id=row.partner_id,
        created_at=_aware(row.created_at),
    )


class SqlStoreBackend:
    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        engine: Optional[AsyncEngine] = None,
        starting_rating: int = DEFAULT_STARTING_RATING,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self.starting_rating = starting_rating

    @classmethod
    def from_url(
        cls, database_url: str, *, starting_rating: int = DEFAULT_STARTING_RATING
    ) -> "SqlStoreBackend":
        engine = create_engine_for_url(database_url)
        return cls(
            create_session_factory(engine),
            engine=engine,
            starting_rating=starting_rating,
        )

    async def create_schema(self) -> None:
        """Create missing tables; deployments run the Alembic migrations instead."""

        if self._engine is None:
            raise RuntimeError("create_schema needs an engine")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SqlTransaction"]:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield SqlTransaction(session, starting_rating=self.starting_rating)
            except StaleDataError as exc:
                logger.warning("Rolled back transaction on stale rating row: %s", exc)
                raise ConcurrentUpdate("rating was changed by another writer") from exc

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


class SqlTransaction:
    def __init__(self, session: AsyncSession, *, starting_rating: int) -> None:
        self.session = session
        self.ratings = SqlRatingStore(session, starting_rating=starting_rating)
        self.matches = SqlMatchStore(session)


class SqlRatingStore:
    def __init__(self, session: AsyncSession, *, starting_rating: int) -> None:
        self._session = session
        self._starting_rating = starting_rating

    async def _load(self, user_id: str, club_id: str, game_format: str) -> Optional[UserRating]:
        return (
            await self._session.execute(
                select(UserRating).where(
                    UserRating.user_id == user_id,
                    UserRating.club_id == club_id,
                    UserRating.game_format == game_format,
                )
            )
        ).scalar_one_or_none()

    async def get(self, user_id: str, club_id: str, game_format: str) -> RatingRecord:
        row = await self._load(user_id, club_id, game_format)
        if row is None:
            return RatingRecord.virgin(
                user_id, club_id, game_format, rating=self._starting_rating
            )
        return _rating_record(row)

    async def upsert(
        self, record: RatingRecord, *, expected_version: Optional[int] = None
    ) -> RatingRecord:
        row = await self._load(*record.key)
        current_version = row.version if row is not None else 0
        if expected_version is not None and expected_version != current_version:
            raise ConcurrentUpdate(
                f"rating {record.key} is at version {current_version}, expected {expected_version}"
            )
        if row is None:
            row = UserRating(
                id=uuid.uuid4().hex,
                user_id=record.user_id,
                club_id=record.club_id,
                game_format=record.game_format,
            )
            self._session.add(row)
        row.rating = record.rating
        row.wins = record.wins
        row.losses = record.losses
        row.draws = record.draws
        row.updated_at = utcnow()
        try:
            await self._session.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdate(f"rating {record.key} changed concurrently") from exc
        except IntegrityError as exc:
            # Another writer inserted the same (user, club, format) first.
            raise ConcurrentUpdate(f"rating {record.key} created concurrently") from exc
        return _rating_record(row)

    async def list_for_club(self, club_id: str, game_format: str) -> list[RatingRecord]:
        rows = (
            await self._session.execute(
                select(UserRating)
                .where(UserRating.club_id == club_id, UserRating.game_format == game_format)
                .order_by(
                    UserRating.rating.desc(),
                    UserRating.wins.desc(),
                    UserRating.user_id.asc(),
                )
            )
        ).scalars().all()
        return [_rating_record(row) for row in rows]

    async def list_for_user(
        self, user_id: str, club_id: Optional[str] = None
    ) -> list[RatingRecord]:
        stmt = select(UserRating).where(UserRating.user_id == user_id)
        if club_id is not None:
            stmt = stmt.where(UserRating.club_id == club_id)
        stmt = stmt.order_by(UserRating.club_id, UserRating.game_format)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_rating_record(row) for row in rows]


class SqlMatchStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _load(self, match_id: str) -> ClubMatch:
        row = (
            await self._session.execute(
                select(ClubMatch)
                .where(ClubMatch.id == match_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if row is None:
            raise MatchNotFound(match_id)
        return row

    async def _transition(self, match_id: str, action: str, **values) -> MatchRecord:
        result = await self._session.execute(
            update(ClubMatch)
            .where(ClubMatch.id == match_id, ClubMatch.status == STATUS_PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = _match_record(await self._load(match_id))
            ensure_pending(current, action)
            raise ConcurrentUpdate(f"match '{match_id}' changed concurrently")
        return _match_record(await self._load(match_id))

    async def create(self, match: MatchRecord) -> MatchRecord:
        row = ClubMatch(
            id=match.id,
            club_id=match.club_id,
            opponent_club_id=match.opponent_club_id,
            game_format=match.game_format,
            match_type=match.match_type,
            status=STATUS_PENDING,
            reported_result=match.reported_result,
            side_a_score=match.side_a_score,
            side_b_score=match.side_b_score,
            location=match.location,
            notes=match.notes,
            scheduled_at=match.scheduled_at,
            created_by=match.created_by,
            created_at=match.created_at,
            participants=[
                MatchParticipant(
                    id=uuid.uuid4().hex,
                    side=participant.side,
                    user_id=participant.user_id,
                    position=position,
                )
                for position, participant in enumerate(match.participants)
            ],
        )
        self._session.add(row)
        await self._session.flush()
        return _match_record(row)

    async def get(self, match_id: str) -> MatchRecord:
        return _match_record(await self._load(match_id))

    async def record_result(
        self,
        match_id: str,
        reported_result: str,
        side_a_score: Optional[int] = None,
        side_b_score: Optional[int] = None,
    ) -> MatchRecord:
        return await self._transition(
            match_id,
            "record a result for",
            reported_result=reported_result,
            side_a_score=side_a_score,
            side_b_score=side_b_score,
        )

    async def set_status(self, match_id: str, status: str) -> MatchRecord:
        action = _STATUS_ACTIONS.get(status)
        if action is None:
            raise ValueError(f"status '{status}' cannot be set directly")
        return await self._transition(match_id, action, status=status)

    async def mark_completed(
        self,
        match_id: str,
        result: str,
        deltas: Sequence[ParticipantDelta],
    ) -> MatchRecord:
        completed = await self._transition(
            match_id,
            "complete",
            status=STATUS_COMPLETED,
            result=result,
            completed_at=utcnow(),
        )
        self._session.add_all(
            MatchRatingDelta(
                id=uuid.uuid4().hex,
                match_id=match_id,
                user_id=delta.user_id,
                side=delta.side,
                partner_id=delta.partner_id,
                rating_before=delta.rating_before,
                rating_after=delta.rating_after,
                delta=delta.delta,
                created_at=delta.created_at,
            )
            for delta in deltas
        )
        await self._session.flush()
        return completed

    async def list_deltas(self, match_id: str) -> list[ParticipantDelta]:
        rows = (
            await self._session.execute(
                select(MatchRatingDelta)
                .where(MatchRatingDelta.match_id == match_id)
                .order_by(MatchRatingDelta.side, MatchRatingDelta.user_id)
            )
        ).scalars().all()
        return [_delta_record(row) for row in rows]

    async def list_for_user(
        self,
        user_id: str,
        club_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[MatchRecord]:
        stmt = (
            select(ClubMatch)
            .join(MatchParticipant, MatchParticipant.match_id == ClubMatch.id)
            .where(MatchParticipant.user_id == user_id)
        )
        if club_id is not None:
            stmt = stmt.where(ClubMatch.club_id == club_id)
        if status is not None:
            stmt = stmt.where(ClubMatch.status == status)
        stmt = stmt.order_by(ClubMatch.created_at.desc(), ClubMatch.id.desc())
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_match_record(row) for row in rows]
