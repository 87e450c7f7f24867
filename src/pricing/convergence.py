"""
Convergence check between consecutive price sets.
"""

import math
from typing import Mapping

from .types import ConvergenceCheck

DEFAULT_TOLERANCE = 0.001


def check_convergence(
    previous: Mapping[str, float],
    new: Mapping[str, float],
    tolerance: float = DEFAULT_TOLERANCE,
) -> ConvergenceCheck:
    """
    Average the relative price change over tokens present in both sets.

    Tokens with a non-positive previous price or a non-finite new price
    are skipped. Tokens only in the new set are not compared. With nothing
    to compare the check never converges.

    Args:
        previous: token_id -> USD price before the iteration
        new: token_id -> USD price after the iteration
        tolerance: Maximum average relative change (0.001 = 0.1%)

    Returns:
        ConvergenceCheck
    """
    total_change = 0.0
    compared = 0

    for token_id, new_price in new.items():
        old_price = previous.get(token_id)
        if old_price is None or old_price <= 0 or not math.isfinite(new_price):
            continue
        total_change += abs(new_price - old_price) / old_price
        compared += 1

    if compared == 0:
        return ConvergenceCheck(converged=False, average_relative_change=0.0, compared_tokens=0)

    average = total_change / compared
    return ConvergenceCheck(
        converged=average <= tolerance,
        average_relative_change=average,
        compared_tokens=compared,
    )


class ConvergenceJudge:
    """Applies a fixed tolerance to consecutive price sets."""

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        if tolerance <= 0:
            raise ValueError(f"Tolerance must be positive, got: {tolerance}")
        self.tolerance = tolerance

    def judge(self, previous: Mapping[str, float], new: Mapping[str, float]) -> ConvergenceCheck:
        return check_convergence(previous, new, self.tolerance)
