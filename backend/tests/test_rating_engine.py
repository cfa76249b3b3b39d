import pytest

from clubrank.records import RatingRecord
from clubrank.services.rating import (
    compute_match_ratings,
    expected_score,
    round_half_up,
    side_delta,
    team_rating,
)
from clubrank.services.validation import ValidationError


def _rec(user_id: str, rating: int = 1200, **counters) -> RatingRecord:
    return RatingRecord(
        user_id=user_id,
        club_id="7",
        game_format="mens_singles",
        rating=rating,
        **counters,
    )


def test_equal_ratings_win_moves_sixteen_points():
    changes = compute_match_ratings([_rec("a")], [_rec("b")], "side_a_won")

    assert changes["a"].rating_after == 1216
    assert changes["a"].delta == 16
    assert (changes["a"].wins, changes["a"].losses, changes["a"].draws) == (1, 0, 0)
    assert changes["b"].rating_after == 1184
    assert changes["b"].delta == -16
    assert (changes["b"].wins, changes["b"].losses, changes["b"].draws) == (0, 1, 0)


def test_draw_between_equals_changes_nothing_but_counts_draws():
    changes = compute_match_ratings(
        [_rec("a", wins=2)], [_rec("b", losses=1)], "draw"
    )

    assert changes["a"].delta == 0
    assert changes["b"].delta == 0
    assert changes["a"].draws == 1 and changes["a"].wins == 2
    assert changes["b"].draws == 1 and changes["b"].losses == 1


def test_upset_win_pays_more_than_expected_win():
    upset = compute_match_ratings([_rec("a", 1000)], [_rec("b", 1400)], "side_a_won")
    expected = compute_match_ratings([_rec("a", 1400)], [_rec("b", 1000)], "side_a_won")

    # E = 1 / (1 + 10) for the underdog
    assert upset["a"].delta == 29
    assert upset["b"].delta == -29
    assert expected["a"].delta == 3
    assert expected["b"].delta == -3


@pytest.mark.parametrize("result", ["side_a_won", "side_b_won", "draw"])
@pytest.mark.parametrize(
    "rating_a, rating_b",
    [(1200, 1200), (1000, 1400), (1537, 1211), (800, 2400), (1201, 1200)],
)
def test_side_changes_cancel_out(rating_a, rating_b, result):
    changes = compute_match_ratings([_rec("a", rating_a)], [_rec("b", rating_b)], result)

    assert changes["a"].delta + changes["b"].delta == 0


def test_doubles_partners_share_the_team_average_delta():
    side_a = [_rec("a1", 1000), _rec("a2", 1400)]
    side_b = [_rec("b1", 1200), _rec("b2", 1200)]

    changes = compute_match_ratings(side_a, side_b, "side_a_won")

    assert changes["a1"].delta == changes["a2"].delta == 16
    assert changes["a1"].rating_after == 1016
    assert changes["a2"].rating_after == 1416
    assert changes["b1"].delta == changes["b2"].delta == -16


def test_rating_is_floored_at_zero():
    changes = compute_match_ratings([_rec("a", 5)], [_rec("b", 5)], "side_b_won", k=40)

    assert side_delta(5, 5, "side_b_won", k=40) == -20
    assert changes["a"].rating_after == 0
    assert changes["a"].delta == -5
    assert changes["b"].rating_after == 25


def test_team_rating_rounds_half_up():
    assert team_rating([1000, 1001]) == 1001
    assert team_rating([1000, 1002]) == 1001
    assert team_rating([1500]) == 1500


def test_round_half_up_is_symmetric_around_zero():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -3
    assert round_half_up(2.49) == 2
    assert round_half_up(-0.4) == 0


def test_expected_score():
    assert expected_score(1200, 1200) == pytest.approx(0.5)
    assert expected_score(1600, 1200) == pytest.approx(0.9091, abs=1e-4)
    assert expected_score(1200, 1600) + expected_score(1600, 1200) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "side_a, side_b, message",
    [
        ([], [_rec("b")], "both sides"),
        ([_rec("a"), _rec("c")], [_rec("b")], "same number"),
        ([_rec("a")], [_rec("a")], "twice"),
    ],
)
def test_invalid_sides_are_rejected(side_a, side_b, message):
    with pytest.raises(ValidationError) as exc:
        compute_match_ratings(side_a, side_b, "side_a_won")
    assert message in exc.value.detail


def test_unknown_result_is_rejected():
    with pytest.raises(ValidationError):
        compute_match_ratings([_rec("a")], [_rec("b")], "requesting_won")
