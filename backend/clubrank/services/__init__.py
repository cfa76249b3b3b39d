"""Internal application services."""

from .validation import ValidationError, validate_participants_for_format
from .rating import compute_match_ratings, expected_score
from .matches import MatchService, MatchState
from .rankings import RankingService

__all__ = [
    "ValidationError",
    "validate_participants_for_format",
    "compute_match_ratings",
    "expected_score",
    "MatchService",
    "MatchState",
    "RankingService",
]
