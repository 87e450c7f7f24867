"""
Test suite for the convergence judge.
"""

import pytest

from src.pricing.convergence import ConvergenceJudge, check_convergence


class TestCheckConvergence:
    """Test the average relative change criterion."""

    def test_unchanged_prices_converge(self):
        check = check_convergence({"A": 100.0, "B": 2.0}, {"A": 100.0, "B": 2.0}, 0.001)
        assert check.converged
        assert check.average_relative_change == 0.0
        assert check.compared_tokens == 2

    def test_average_over_common_tokens(self):
        check = check_convergence({"A": 100.0, "B": 2.0}, {"A": 100.0, "B": 3.0}, 0.001)
        assert check.average_relative_change == pytest.approx(0.25)
        assert check.percent == pytest.approx(25.0)
        assert not check.converged

    def test_small_change_within_tolerance(self):
        check = check_convergence({"B": 2.0}, {"B": 2.001}, 0.001)
        assert check.average_relative_change == pytest.approx(0.0005)
        assert check.converged

    def test_new_tokens_are_not_compared(self):
        check = check_convergence({"A": 100.0}, {"A": 100.0, "B": 2.0}, 0.001)
        assert check.compared_tokens == 1
        assert check.converged

    def test_non_positive_previous_price_skipped(self):
        check = check_convergence({"A": 100.0, "B": 0.0}, {"A": 100.0, "B": 5.0}, 0.001)
        assert check.compared_tokens == 1
        assert check.converged

    def test_non_finite_new_price_skipped(self):
        check = check_convergence({"A": 100.0, "B": 2.0}, {"A": 100.0, "B": float("nan")}, 0.001)
        assert check.compared_tokens == 1
        assert check.average_relative_change == 0.0

    def test_nothing_to_compare_does_not_converge(self):
        check = check_convergence({}, {"B": 2.0}, 0.001)
        assert not check.converged
        assert check.compared_tokens == 0


class TestConvergenceJudge:

    def test_uses_configured_tolerance(self):
        judge = ConvergenceJudge(tolerance=0.5)
        assert judge.judge({"B": 2.0}, {"B": 2.5}).converged
        assert not ConvergenceJudge(tolerance=0.1).judge({"B": 2.0}, {"B": 2.5}).converged

    @pytest.mark.parametrize("tolerance", [0, -0.01])
    def test_rejects_non_positive_tolerance(self, tolerance):
        with pytest.raises(ValueError):
            ConvergenceJudge(tolerance=tolerance)
