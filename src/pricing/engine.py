"""
Iterative TVL-weighted price discovery.

Only the anchor token has an external USD price. Every other price is
inferred from constant-product pool reserves, one hop per iteration:

1. Seed the price set with the anchor (plus prior prices, if any)
2. Derive candidate prices from pools with exactly one priced leg
3. Collapse candidates into TVL-weighted prices per token
4. Merge into the price set, carrying every other price forward
5. Stop when no new token was priced and the average relative change is
   within tolerance, or when the iteration cap is reached
"""

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Dict, List, Mapping, Optional

from .aggregator import aggregate_contributions
from .convergence import DEFAULT_TOLERANCE, ConvergenceJudge
from .tvl_calculator import calculate_contributions
from .types import (
    STATUS_CONVERGED,
    STATUS_EMPTY,
    STATUS_EXHAUSTED,
    ConvergenceCheck,
    PoolContribution,
    PoolGraph,
    PriceRunResult,
    PriceSet,
    RunDiagnostics,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


@dataclass
class IterationOutcome:
    """Everything one iteration produced."""

    contributions: List[PoolContribution]
    aggregated: Dict[str, float]
    price_set: PriceSet


@dataclass
class ConvergenceState:
    """Run-scoped loop state, discarded once diagnostics are built."""

    iteration_count: int
    previous_price_set: PriceSet
    average_relative_change: float
    token_count: int
    new_tokens: int = 0


class PriceIterationEngine:
    """Drive the calculate -> aggregate -> merge -> judge loop over one snapshot."""

    def __init__(
        self,
        pool_graph: PoolGraph,
        anchor_token_id: str,
        tolerance: float = DEFAULT_TOLERANCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        """
        Initialize the engine.

        Args:
            pool_graph: Immutable pool snapshot for this run
            anchor_token_id: Token whose USD price is supplied externally
            tolerance: Average relative change that counts as converged
            max_iterations: Hard cap on iterations
        """
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got: {max_iterations}")
        self.pool_graph = pool_graph
        self.anchor_token_id = anchor_token_id
        self.max_iterations = max_iterations
        self.judge = ConvergenceJudge(tolerance)

    @property
    def tolerance(self) -> float:
        return self.judge.tolerance

    def seed(
        self,
        anchor_usd_price: float,
        prior_prices: Optional[Mapping[str, float]] = None,
    ) -> PriceSet:
        """
        Build the iteration 0 price set.

        Prior prices for tokens absent from the pool snapshot are dropped.

        Raises:
            MissingAnchorPriceError: If the anchor price is missing or invalid
        """
        pool_tokens = self.pool_graph.tokens()
        carried = {
            token_id: usd_price
            for token_id, usd_price in (prior_prices or {}).items()
            if token_id in pool_tokens
        }
        return PriceSet.seed(self.anchor_token_id, anchor_usd_price, carried)

    def step(self, price_set: PriceSet) -> IterationOutcome:
        """Run a single iteration against price_set."""
        contributions = calculate_contributions(
            self.pool_graph, price_set.known_prices(), self.anchor_token_id
        )
        aggregated = aggregate_contributions(contributions)
        return IterationOutcome(
            contributions=contributions,
            aggregated=aggregated,
            price_set=price_set.merge(aggregated),
        )

    def run(
        self,
        anchor_usd_price: float,
        prior_prices: Optional[Mapping[str, float]] = None,
    ) -> PriceRunResult:
        """
        Iterate to a fixed point and return the finalized prices.

        Args:
            anchor_usd_price: External USD price of the anchor token
            prior_prices: Previously persisted token_id -> USD prices

        Returns:
            PriceRunResult with valid prices and run diagnostics

        Raises:
            MissingAnchorPriceError: If the anchor price is missing or invalid
        """
        started = time.monotonic()
        price_set = self.seed(anchor_usd_price, prior_prices)

        if not self.pool_graph:
            logger.info("Empty pool snapshot, nothing to infer")
            anchor_only = PriceSet(self.anchor_token_id, price_set.anchor_usd_price)
            diagnostics = RunDiagnostics(
                iterations_to_converge=0,
                final_convergence_percent=0.0,
                converged=True,
                status=STATUS_EMPTY,
            )
            return self._build_result(anchor_only, diagnostics, started)

        logger.info(
            f"Starting price discovery: {len(self.pool_graph)} pools, "
            f"{len(price_set)} seed prices, tolerance {self.tolerance:.4%}, "
            f"max {self.max_iterations} iterations"
        )

        seed_count = price_set.resolved_count
        state = ConvergenceState(
            iteration_count=0,
            previous_price_set=price_set,
            average_relative_change=0.0,
            token_count=seed_count,
        )
        converged = False

        while state.iteration_count < self.max_iterations:
            outcome = self.step(state.previous_price_set)
            check = self.judge.judge(
                state.previous_price_set.usd_prices(), outcome.price_set.usd_prices()
            )
            token_count = outcome.price_set.resolved_count

            state.iteration_count += 1
            state.new_tokens = token_count - state.token_count
            state.token_count = token_count
            state.average_relative_change = check.average_relative_change
            state.previous_price_set = outcome.price_set

            self._log_iteration(state, outcome, check)

            if state.new_tokens == 0 and check.converged:
                converged = True
                logger.info(f"Converged after {state.iteration_count} iterations")
                break

        if not converged:
            logger.warning(
                f"Price discovery did not converge within {self.max_iterations} iterations "
                f"(last average change {state.average_relative_change:.4%}, "
                f"{state.new_tokens} tokens discovered in the final iteration)"
            )

        diagnostics = RunDiagnostics(
            iterations_to_converge=state.iteration_count if converged else self.max_iterations,
            final_convergence_percent=state.average_relative_change * 100,
            converged=converged,
            status=STATUS_CONVERGED if converged else STATUS_EXHAUSTED,
            tokens_discovered=state.token_count - seed_count,
            new_tokens_last_iteration=state.new_tokens,
            pool_count=len(self.pool_graph),
        )
        return self._build_result(state.previous_price_set, diagnostics, started)

    def _log_iteration(
        self,
        state: ConvergenceState,
        outcome: IterationOutcome,
        check: ConvergenceCheck,
    ) -> None:
        logger.info(
            f"Iteration {state.iteration_count}: {len(outcome.contributions)} contributions, "
            f"{len(outcome.aggregated)} tokens priced, {state.new_tokens} new, "
            f"average change {check.percent:.4f}% over {check.compared_tokens} tokens"
        )

    def _build_result(
        self,
        price_set: PriceSet,
        diagnostics: RunDiagnostics,
        started: float,
    ) -> PriceRunResult:
        prices, dropped = price_set.finalize()
        if dropped:
            logger.warning(f"Dropping {len(dropped)} tokens with invalid final prices")
            logger.debug(f"Dropped tokens: {dropped}")
        diagnostics.dropped_tokens = dropped
        return PriceRunResult(
            prices=prices,
            diagnostics=diagnostics,
            calculated_at=datetime.now(UTC),
            duration_seconds=time.monotonic() - started,
        )
