import pytest
from pydantic import ValidationError

from clubrank.schemas import MatchCompleteIn, MatchCreate, MatchResultIn


def test_match_create_normalizes_sides():
    body = MatchCreate(
        gameFormat="mens_doubles",
        participants=[
            {"side": "a", "playerIds": [" u1 ", "u2"]},
            {"side": "B", "playerIds": ("u3", "u4")},
        ],
    )

    assert body.side_players() == {"A": ["u1", "u2"], "B": ["u3", "u4"]}
    assert body.matchType == "friendly"


@pytest.mark.parametrize(
    "participants",
    [
        [{"side": "A", "playerIds": ["u1"]}, {"side": "a", "playerIds": ["u2"]}],
        [{"side": "A", "playerIds": []}, {"side": "B", "playerIds": ["u2"]}],
        [{"side": "C", "playerIds": ["u1"]}, {"side": "B", "playerIds": ["u2"]}],
    ],
)
def test_match_create_rejects_bad_participants(participants):
    with pytest.raises(ValidationError):
        MatchCreate(gameFormat="mens_singles", participants=participants)


def test_scheduled_at_requires_timezone():
    with pytest.raises(ValidationError):
        MatchCreate(
            gameFormat="mens_singles",
            participants=[
                {"side": "A", "playerIds": ["u1"]},
                {"side": "B", "playerIds": ["u2"]},
            ],
            scheduledAt="2024-05-01T10:00:00",
        )


def test_result_in_requires_an_outcome():
    assert MatchResultIn(sideAScore=1, sideBScore=0).result is None
    assert MatchResultIn(result="draw").result == "draw"
    with pytest.raises(ValidationError):
        MatchResultIn()
    with pytest.raises(ValidationError):
        MatchResultIn(sideAScore=3)
    with pytest.raises(ValidationError):
        MatchResultIn(result="requesting_won")


def test_complete_in_is_optional_but_strict():
    assert MatchCompleteIn().result is None
    with pytest.raises(ValidationError):
        MatchCompleteIn(result="draw", extra=True)
