from __future__ import annotations

import math
from typing import Sequence, Tuple

from .exceptions import InvalidResult
from .models import RatingChange

K_FACTOR = 32
# Elo scale: a 400 point gap means 10:1 expected odds
RATING_SCALE = 400.0

# Scores used when only the winning team is reported
DEFAULT_WINNING_SCORE = 21
DEFAULT_LOSING_SCORE = 0


def validate_scores(score_a, score_b) -> None:
    """Ensure scores are non-negative, unequal integers."""
    for score in (score_a, score_b):
        if isinstance(score, bool) or not isinstance(score, int):
            raise InvalidResult("Invalid score")
        if score < 0:
            raise InvalidResult("Invalid score")
    if score_a == score_b:
        raise InvalidResult("A match cannot end in a tie")


def scores_from_winner(winning_team: int) -> Tuple[int, int]:
    """Return default scores for a result reported as a winner only."""
    if winning_team == 1:
        return DEFAULT_WINNING_SCORE, DEFAULT_LOSING_SCORE
    if winning_team == 2:
        return DEFAULT_LOSING_SCORE, DEFAULT_WINNING_SCORE
    raise InvalidResult(f"Winning team must be 1 or 2, got {winning_team!r}")


def team_rating(rating_1: float, rating_2: float) -> float:
    """A team plays at the average of its two players."""
    return (rating_1 + rating_2) / 2


def expected_score(rating_a: float, rating_b: float) -> float:
    """Return the expected win probability of ``rating_a`` against ``rating_b``."""
    return 1 / (1 + 10 ** ((rating_b - rating_a) / RATING_SCALE))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def record_result(
    team1_ratings: Sequence[float],
    team2_ratings: Sequence[float],
    team1_score: int,
    team2_score: int,
    *,
    k_factor: float = K_FACTOR,
) -> RatingChange:
    """Compute new ratings for the four players of a finished doubles match.

    The change is worked out on the team averages and rounded half up to a
    whole point, so it differs from the plain ``K * (S1 - E1)`` by less than
    half a point; club levels are kept as whole numbers. Every winner gains
    the rounded change and every loser loses it, so the four changes always
    sum to zero.
    """
    if len(team1_ratings) != 2 or len(team2_ratings) != 2:
        raise InvalidResult("Each team must have exactly 2 players")
    validate_scores(team1_score, team2_score)

    r1 = team_rating(*team1_ratings)
    r2 = team_rating(*team2_ratings)
    e1 = expected_score(r1, r2)
    s1 = 1 if team1_score > team2_score else 0

    delta = _round_half_up(k_factor * (s1 - e1))

    return RatingChange(
        team1_new_ratings=tuple(r + delta for r in team1_ratings),
        team2_new_ratings=tuple(r - delta for r in team2_ratings),
        team1_change=delta,
        team2_change=-delta,
        winning_team=1 if s1 else 2,
    )
