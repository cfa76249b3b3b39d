import asyncio
import uuid

import pytest

from clubrank.exceptions import (
    ConcurrentUpdate,
    InvalidMatchState,
    MatchAlreadyCompleted,
    MatchNotFound,
)
from clubrank.records import (
    MatchParticipantRef,
    MatchRecord,
    ParticipantDelta,
    RatingRecord,
)
from clubrank.stores import MemoryStoreBackend


def _match(club_id: str = "c1") -> MatchRecord:
    return MatchRecord(
        id=uuid.uuid4().hex,
        club_id=club_id,
        game_format="mens_singles",
        participants=(
            MatchParticipantRef(user_id="u1", side="A"),
            MatchParticipantRef(user_id="u2", side="B"),
        ),
    )


def _deltas(match_id: str) -> list[ParticipantDelta]:
    return [
        ParticipantDelta(match_id, "u1", "A", 1200, 1216),
        ParticipantDelta(match_id, "u2", "B", 1200, 1184),
    ]


def test_unknown_rating_key_returns_starting_record(backend, loop):
    async def run():
        async with backend.transaction() as tx:
            return await tx.ratings.get("u1", "c1", "mens_singles")

    record = loop.run_until_complete(run())

    assert record.rating == 1200
    assert (record.wins, record.losses, record.draws) == (0, 0, 0)
    assert record.version == 0


def test_upsert_overwrites_and_bumps_version(backend, loop):
    async def run():
        async with backend.transaction() as tx:
            first = await tx.ratings.upsert(
                RatingRecord("u1", "c1", "mens_singles", rating=1216, wins=1)
            )
        async with backend.transaction() as tx:
            second = await tx.ratings.upsert(
                RatingRecord("u1", "c1", "mens_singles", rating=1200, wins=1, losses=1),
                expected_version=first.version,
            )
        async with backend.transaction() as tx:
            stored = await tx.ratings.get("u1", "c1", "mens_singles")
            other_format = await tx.ratings.get("u1", "c1", "mens_doubles")
        return first, second, stored, other_format

    first, second, stored, other_format = loop.run_until_complete(run())

    assert first.version == 1
    assert second.version == 2
    assert (stored.rating, stored.wins, stored.losses) == (1200, 1, 1)
    assert stored.version == 2
    assert other_format.version == 0


def test_upsert_with_stale_version_is_refused(backend, loop):
    async def run():
        async with backend.transaction() as tx:
            await tx.ratings.upsert(RatingRecord("u1", "c1", "mens_singles", rating=1216))
        with pytest.raises(ConcurrentUpdate):
            async with backend.transaction() as tx:
                await tx.ratings.upsert(
                    RatingRecord("u1", "c1", "mens_singles", rating=1300),
                    expected_version=0,
                )
        async with backend.transaction() as tx:
            return await tx.ratings.get("u1", "c1", "mens_singles")

    assert loop.run_until_complete(run()).rating == 1216


def test_failed_transaction_discards_every_write(backend, loop):
    async def run():
        match = _match()
        with pytest.raises(RuntimeError):
            async with backend.transaction() as tx:
                await tx.ratings.upsert(RatingRecord("u1", "c1", "mens_singles", rating=1300))
                await tx.matches.create(match)
                raise RuntimeError("boom")
        async with backend.transaction() as tx:
            rating = await tx.ratings.get("u1", "c1", "mens_singles")
            with pytest.raises(MatchNotFound):
                await tx.matches.get(match.id)
        return rating

    assert loop.run_until_complete(run()).version == 0


def test_club_listing_is_ordered_by_rating_then_wins(backend, loop):
    async def run():
        async with backend.transaction() as tx:
            await tx.ratings.upsert(RatingRecord("low", "c1", "mens_singles", rating=1100))
            await tx.ratings.upsert(RatingRecord("top", "c1", "mens_singles", rating=1300))
            await tx.ratings.upsert(RatingRecord("tie-b", "c1", "mens_singles", rating=1200, wins=3))
            await tx.ratings.upsert(RatingRecord("tie-a", "c1", "mens_singles", rating=1200, wins=3))
            await tx.ratings.upsert(RatingRecord("few", "c1", "mens_singles", rating=1200, wins=1))
            await tx.ratings.upsert(RatingRecord("other", "c2", "mens_singles", rating=1500))
            await tx.ratings.upsert(RatingRecord("top", "c1", "mens_doubles", rating=900))
        async with backend.transaction() as tx:
            return (
                await tx.ratings.list_for_club("c1", "mens_singles"),
                await tx.ratings.list_for_user("top", "c1"),
            )

    club, user = loop.run_until_complete(run())

    assert [r.user_id for r in club] == ["top", "tie-a", "tie-b", "few", "low"]
    assert [r.game_format for r in user] == ["mens_doubles", "mens_singles"]


def test_match_lifecycle(backend, loop):
    async def run():
        match = _match()
        async with backend.transaction() as tx:
            created = await tx.matches.create(match)
        async with backend.transaction() as tx:
            reported = await tx.matches.record_result(match.id, "side_a_won", 6, 2)
        async with backend.transaction() as tx:
            completed = await tx.matches.mark_completed(
                match.id, "side_a_won", _deltas(match.id)
            )
        async with backend.transaction() as tx:
            deltas = await tx.matches.list_deltas(match.id)
            history = await tx.matches.list_for_user("u2", club_id="c1", status="completed")
        return created, reported, completed, deltas, history

    created, reported, completed, deltas, history = loop.run_until_complete(run())

    assert created.status == "pending" and created.result is None
    assert [p.user_id for p in created.participants] == ["u1", "u2"]
    assert reported.reported_result == "side_a_won"
    assert (reported.side_a_score, reported.side_b_score) == (6, 2)
    assert reported.result is None
    assert completed.status == "completed"
    assert completed.result == "side_a_won"
    assert completed.completed_at is not None
    assert [(d.user_id, d.delta) for d in deltas] == [("u1", 16), ("u2", -16)]
    assert [m.id for m in history] == [completed.id]


def test_mark_completed_twice_signals_already_completed(backend, loop):
    async def run():
        match = _match()
        async with backend.transaction() as tx:
            await tx.matches.create(match)
        async with backend.transaction() as tx:
            await tx.matches.mark_completed(match.id, "draw", [])
        with pytest.raises(MatchAlreadyCompleted):
            async with backend.transaction() as tx:
                await tx.matches.mark_completed(match.id, "side_a_won", [])
        async with backend.transaction() as tx:
            return await tx.matches.get(match.id)

    assert loop.run_until_complete(run()).result == "draw"


@pytest.mark.parametrize("status", ["cancelled", "rejected"])
def test_closed_match_cannot_change(backend, loop, status):
    async def run():
        match = _match()
        async with backend.transaction() as tx:
            await tx.matches.create(match)
            await tx.matches.set_status(match.id, status)
        for attempt in (
            lambda tx: tx.matches.mark_completed(match.id, "draw", []),
            lambda tx: tx.matches.record_result(match.id, "draw"),
            lambda tx: tx.matches.set_status(match.id, "cancelled"),
        ):
            with pytest.raises(InvalidMatchState):
                async with backend.transaction() as tx:
                    await attempt(tx)

    loop.run_until_complete(run())


def test_missing_match_raises_not_found(backend, loop):
    async def run():
        async with backend.transaction() as tx:
            with pytest.raises(MatchNotFound):
                await tx.matches.get("nope")
            with pytest.raises(MatchNotFound):
                await tx.matches.mark_completed("nope", "draw", [])

    loop.run_until_complete(run())


def test_memory_commit_rechecks_rating_versions():
    backend = MemoryStoreBackend()

    async def run():
        first = backend.transaction()
        tx1 = await first.__aenter__()
        current = await tx1.ratings.get("u1", "c1", "mens_singles")
        await tx1.ratings.upsert(
            RatingRecord("u1", "c1", "mens_singles", rating=1216),
            expected_version=current.version,
        )

        async with backend.transaction() as tx2:
            await tx2.ratings.upsert(RatingRecord("u1", "c1", "mens_singles", rating=1184))

        with pytest.raises(ConcurrentUpdate):
            await first.__aexit__(None, None, None)

        async with backend.transaction() as tx:
            return await tx.ratings.get("u1", "c1", "mens_singles")

    stored = asyncio.run(run())
    assert stored.rating == 1184
    assert stored.version == 1


def test_memory_commit_rechecks_match_status():
    backend = MemoryStoreBackend()
    match = _match()

    async def run():
        async with backend.transaction() as tx:
            await tx.matches.create(match)

        first = backend.transaction()
        tx1 = await first.__aenter__()
        await tx1.ratings.upsert(RatingRecord("u1", "c1", "mens_singles", rating=1216))
        await tx1.matches.mark_completed(match.id, "side_a_won", _deltas(match.id))

        async with backend.transaction() as tx2:
            await tx2.matches.mark_completed(match.id, "draw", [])

        with pytest.raises(MatchAlreadyCompleted):
            await first.__aexit__(None, None, None)

        async with backend.transaction() as tx:
            return (
                await tx.matches.get(match.id),
                await tx.ratings.get("u1", "c1", "mens_singles"),
            )

    stored, rating = asyncio.run(run())
    assert stored.result == "draw"
    assert rating.version == 0
