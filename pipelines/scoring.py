"""
pipelines/scoring.py

Points for one phase (tests or diagnosis) of a case.

Each phase starts at MAX_POINTS and loses PENALTY_PER_WRONG_ATTEMPT for
every attempt at an option other than the correct one, clamped at zero.
The two phases are scored independently and summed for a score out of 10.
"""

from __future__ import annotations

from typing import Iterable, Mapping

MAX_POINTS: int = 5
PENALTY_PER_WRONG_ATTEMPT: int = 2


def score(
    attempts: Mapping[str, int],
    correct_option_names: Iterable[str],
    max_points: int = MAX_POINTS,
    penalty: int = PENALTY_PER_WRONG_ATTEMPT,
) -> int:
    """
    Score one phase from its attempt map.

    Args:
        attempts:             Option name -> number of times it was chosen.
        correct_option_names: Names of the correct options of the phase.
        max_points:           Points for a phase with no wrong attempts.
        penalty:              Points removed per wrong attempt.

    Returns:
        An integer in ``[0, max_points]``; 0 when no option is correct.
    """
    correct = set(correct_option_names)
    if not correct:
        return 0

    wrong_attempts = sum(count for name, count in attempts.items() if name not in correct)
    return max(0, max_points - wrong_attempts * penalty)


def max_total(phases: int = 2, max_points: int = MAX_POINTS) -> int:
    return phases * max_points
