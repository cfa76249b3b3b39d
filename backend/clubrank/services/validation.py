from typing import Mapping, Optional, Sequence

from ..records import (
    GAME_FORMATS,
    MATCH_RESULTS,
    RESULT_DRAW,
    RESULT_SIDE_A_WON,
    RESULT_SIDE_B_WON,
    SIDES,
    players_per_side,
)


class ValidationError(Exception):
    """Raised when a match payload is inconsistent."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


def validate_game_format(game_format: str) -> str:
    if game_format not in GAME_FORMATS:
        raise ValidationError(
            f"unknown game format '{game_format}'; expected one of {', '.join(GAME_FORMATS)}"
        )
    return game_format


def validate_participants_for_format(
    game_format: str, side_players: Mapping[str, Sequence[str]]
) -> None:
    """Check that ``side_players`` fits ``game_format``.

    Rules:
    - Exactly the sides ``A`` and ``B`` are present
    - Singles formats have one player per side, doubles formats two
    - Player ids are non-empty and nobody appears twice in the match
    """

    validate_game_format(game_format)

    sides = set(side_players)
    if sides != set(SIDES):
        raise ValidationError("a match needs exactly the sides A and B")

    expected = players_per_side(game_format)
    seen: set[str] = set()
    for side in SIDES:
        players = list(side_players[side])
        if len(players) != expected:
            raise ValidationError(
                f"{game_format} requires {expected} player(s) on side {side}, got {len(players)}"
            )
        for pid in players:
            if not isinstance(pid, str) or not pid.strip():
                raise ValidationError("player ids must be non-empty strings")
            if pid in seen:
                raise ValidationError(f"player '{pid}' appears more than once")
            seen.add(pid)


def validate_result(result: str) -> str:
    if result not in MATCH_RESULTS:
        raise ValidationError(
            f"unknown result '{result}'; expected one of {', '.join(MATCH_RESULTS)}"
        )
    return result


def _validate_score(value: object, side: str) -> int:
    # bool is a subclass of int
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"side {side} score must be an integer")
    if value < 0:
        raise ValidationError(f"side {side} score must be >= 0")
    return value


def result_from_scores(side_a_score: int, side_b_score: int) -> str:
    if side_a_score == side_b_score:
        return RESULT_DRAW
    return RESULT_SIDE_A_WON if side_a_score > side_b_score else RESULT_SIDE_B_WON


def resolve_reported_result(
    result: Optional[str],
    side_a_score: Optional[int],
    side_b_score: Optional[int],
) -> str:
    """Return the outcome implied by an explicit result and/or a final score.

    Scores must be given as a pair. When both a result and scores are given
    they have to agree; when only scores are given the higher score wins and
    equal scores are a draw.
    """

    if (side_a_score is None) != (side_b_score is None):
        raise ValidationError("both side scores are required when reporting a score")

    derived: Optional[str] = None
    if side_a_score is not None and side_b_score is not None:
        derived = result_from_scores(
            _validate_score(side_a_score, "A"), _validate_score(side_b_score, "B")
        )

    if result is None:
        if derived is None:
            raise ValidationError("a result or a final score is required")
        return derived

    validate_result(result)
    if derived is not None and derived != result:
        raise ValidationError(
            f"result '{result}' contradicts the score {side_a_score}-{side_b_score}"
        )
    return result
