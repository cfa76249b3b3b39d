import pytest

from clubrank.exceptions import InvalidGameFormat
from clubrank.services import MatchService, RankingService


async def _play(service, game_format, sides, result, club_id="c1"):
    match = await service.create_match(club_id, game_format, sides)
    return await service.complete_match(match.id, result)


@pytest.fixture
def services(backend):
    return MatchService(backend), RankingService(backend)


def test_club_rankings_are_sorted_and_paginated(services, loop):
    matches, rankings = services

    async def run():
        await _play(matches, "mens_singles", {"A": ["ann"], "B": ["bob"]}, "side_a_won")
        await _play(matches, "mens_singles", {"A": ["ann"], "B": ["cid"]}, "side_a_won")
        await _play(matches, "mens_singles", {"A": ["dan"], "B": ["eve"]}, "draw")
        # other club, other format: must not leak into the page
        await _play(matches, "mens_singles", {"A": ["zed"], "B": ["bob"]}, "side_a_won", club_id="c2")
        await _play(matches, "mens_doubles", {"A": ["ann", "bob"], "B": ["cid", "dan"]}, "side_b_won")
        return (
            await rankings.club_rankings("c1", "mens_singles"),
            await rankings.club_rankings("c1", "mens_singles", limit=2, offset=2),
        )

    full, page = loop.run_until_complete(run())

    assert full.total == 5
    assert [e.record.user_id for e in full.entries] == ["ann", "dan", "eve", "cid", "bob"]
    assert [e.rank for e in full.entries] == [1, 2, 3, 4, 5]
    assert full.entries[0].record.wins == 2
    assert full.entries[0].record.win_rate == 100.0
    assert page.total == 5
    assert [(e.rank, e.record.user_id) for e in page.entries] == [(3, "eve"), (4, "cid")]


def test_unknown_format_is_rejected(services, loop):
    _, rankings = services

    async def run():
        with pytest.raises(InvalidGameFormat):
            await rankings.club_rankings("c1", "mens_triples")
        with pytest.raises(InvalidGameFormat):
            await rankings.partnership_stats("c1", "ann", "mens_triples")

    loop.run_until_complete(run())


def test_user_rankings_lists_each_format(services, loop):
    matches, rankings = services

    async def run():
        await _play(matches, "mens_singles", {"A": ["ann"], "B": ["bob"]}, "side_a_won")
        await _play(matches, "mens_doubles", {"A": ["ann", "bob"], "B": ["cid", "dan"]}, "draw")
        return await rankings.user_rankings("c1", "ann"), await rankings.user_rankings("c1", "nobody")

    ann, nobody = loop.run_until_complete(run())

    assert [(r.game_format, r.rating) for r in ann] == [("mens_doubles", 1200), ("mens_singles", 1216)]
    assert nobody == []


def test_user_stats_summarises_completed_matches(services, loop):
    matches, rankings = services

    async def run():
        await _play(matches, "mens_singles", {"A": ["ann"], "B": ["bob"]}, "side_a_won")
        await _play(matches, "mens_singles", {"A": ["bob"], "B": ["ann"]}, "side_a_won")
        await _play(matches, "mens_singles", {"A": ["ann"], "B": ["cid"]}, "draw")
        pending = await matches.create_match("c1", "mens_singles", {"A": ["ann"], "B": ["dan"]})
        return pending, await rankings.user_stats("c1", "ann")

    pending, stats = loop.run_until_complete(run())

    assert stats.total_matches == 3
    assert (stats.wins, stats.losses, stats.draws) == (1, 1, 1)
    assert stats.win_rate == 33.3
    assert pending.id not in {h.match.id for h in stats.history}
    assert sorted(h.outcome for h in stats.history) == ["draw", "loss", "win"]
    win = next(h for h in stats.history if h.outcome == "win")
    assert win.side == "A"
    assert win.delta == 16
    assert win.opponent_ids == ["bob"]
    assert win.partner_id is None
    assert [f.game_format for f in stats.formats] == ["mens_singles"]


def test_partnership_stats_group_doubles_by_partner(services, loop):
    matches, rankings = services

    async def run():
        await _play(matches, "mens_doubles", {"A": ["ann", "bob"], "B": ["cid", "dan"]}, "side_a_won")
        await _play(matches, "mens_doubles", {"A": ["cid", "dan"], "B": ["bob", "ann"]}, "draw")
        await _play(matches, "mixed_doubles", {"A": ["ann", "eve"], "B": ["bob", "fay"]}, "side_b_won")
        await _play(matches, "mens_singles", {"A": ["ann"], "B": ["bob"]}, "side_a_won")
        return (
            await rankings.partnership_stats("c1", "ann"),
            await rankings.partnership_stats("c1", "ann", "mixed_doubles"),
        )

    everything, mixed = loop.run_until_complete(run())

    assert [(p.partner_id, p.games_played) for p in everything] == [("bob", 2), ("eve", 1)]
    bob = everything[0]
    assert (bob.wins, bob.losses, bob.draws) == (1, 0, 1)
    assert bob.win_rate == 50.0
    assert [(p.partner_id, p.losses) for p in mixed] == [("eve", 1)]
