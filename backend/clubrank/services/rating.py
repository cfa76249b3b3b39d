"""Elo rating engine for club matches.

Pure functions, no I/O. A side's strength is its single player's rating in
singles and the half-up rounded mean of both partners in doubles:

  Expected score: E_A = 1 / (1 + 10^((R_B - R_A) / 400))
  Side change:    dR_A = round_half_up(K * (S_A - E_A)),  dR_B = -dR_A

Every player on a side receives the side's change and ratings are floored
at zero. Because side B's change is the negation of side A's, a match is
exactly zero-sum before the floor is applied.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from ..config import DEFAULT_K_FACTOR
from ..records import (
    RESULT_DRAW,
    RESULT_SIDE_A_WON,
    RatingRecord,
)
from .validation import ValidationError, validate_result

K_FACTOR = DEFAULT_K_FACTOR
RATING_SCALE = 400
RATING_FLOOR = 0


@dataclass(frozen=True)
class RatingChange:
    """New rating state for one participant after a match."""

    user_id: str
    side: str
    rating_before: int
    rating_after: int
    wins: int
    losses: int
    draws: int

    @property
    def delta(self) -> int:
        return self.rating_after - self.rating_before


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""

    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def team_rating(ratings: Sequence[int]) -> int:
    """Return a side's rating: the half-up rounded mean of its players."""

    if not ratings:
        raise ValidationError("a side needs at least one player")
    return round_half_up(Decimal(sum(ratings)) / Decimal(len(ratings)))


def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that a side rated ``rating_a`` beats one rated ``rating_b``."""

    try:
        return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / RATING_SCALE))
    except OverflowError:
        return 0.0 if rating_b > rating_a else 1.0


def actual_score(result: str) -> float:
    """Side A's actual score for ``result``."""

    validate_result(result)
    if result == RESULT_DRAW:
        return 0.5
    return 1.0 if result == RESULT_SIDE_A_WON else 0.0


def side_delta(rating_a: int, rating_b: int, result: str, *, k: int = K_FACTOR) -> int:
    """Side A's rating change; side B's change is always the negation."""

    exp_a = expected_score(rating_a, rating_b)
    return round_half_up(k * (actual_score(result) - exp_a))


def _apply(record: RatingRecord, side: str, change: int, result: str) -> RatingChange:
    wins, losses, draws = record.wins, record.losses, record.draws
    if result == RESULT_DRAW:
        draws += 1
    elif (result == RESULT_SIDE_A_WON) == (side == "A"):
        wins += 1
    else:
        losses += 1

    return RatingChange(
        user_id=record.user_id,
        side=side,
        rating_before=record.rating,
        rating_after=max(RATING_FLOOR, record.rating + change),
        wins=wins,
        losses=losses,
        draws=draws,
    )


def compute_match_ratings(
    side_a: Sequence[RatingRecord],
    side_b: Sequence[RatingRecord],
    result: str,
    *,
    k: int = K_FACTOR,
) -> dict[str, RatingChange]:
    """Compute every participant's new rating for a finished match.

    Args:
        side_a: Current rating records of side A's players (1 or 2).
        side_b: Current rating records of side B's players (1 or 2).
        result: ``side_a_won``, ``side_b_won`` or ``draw``.
        k: K-factor; the largest possible change for a side.

    Returns:
        Mapping of user id to :class:`RatingChange`.

    Raises:
        ValidationError: if a side is empty, the sides differ in size, a
            player appears twice or the result is unknown.
    """

    validate_result(result)
    if not side_a or not side_b:
        raise ValidationError("both sides need at least one player")
    if len(side_a) != len(side_b):
        raise ValidationError("both sides must field the same number of players")
    if k <= 0:
        raise ValidationError("k must be positive")

    user_ids = [r.user_id for r in side_a] + [r.user_id for r in side_b]
    if len(set(user_ids)) != len(user_ids):
        raise ValidationError("a player cannot appear twice in one match")

    rating_a = team_rating([r.rating for r in side_a])
    rating_b = team_rating([r.rating for r in side_b])
    change_a = side_delta(rating_a, rating_b, result, k=k)
    change_b = -change_a

    changes: dict[str, RatingChange] = {}
    for record in side_a:
        changes[record.user_id] = _apply(record, "A", change_a, result)
    for record in side_b:
        changes[record.user_id] = _apply(record, "B", change_b, result)
    return changes
