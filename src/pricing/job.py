"""
Price calculation batch job.

Pipeline stages:
1. Load the constant-product pool snapshot from storage
2. Fetch the anchor USD price (fatal if unavailable)
3. Load prior prices to carry forward (optional, non-fatal)
4. Run the iteration engine
5. Append the final price set to the result sink
"""

import logging
from typing import Optional

from src.config import ConfigManager
from src.core.storage.base import PriceStorageInterface, StorageError
from src.fetchers.base import BasePriceFetcher

from .engine import PriceIterationEngine
from .types import PriceRunResult

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5


class PriceCalculationJob:
    """Run one end-to-end price calculation against a storage backend."""

    def __init__(
        self,
        storage: PriceStorageInterface,
        anchor_fetcher: BasePriceFetcher,
        config: ConfigManager,
        use_history: Optional[bool] = None,
    ):
        """
        Initialize the job.

        Args:
            storage: Pool snapshot source and price result sink
            anchor_fetcher: Source of the anchor USD price
            config: Configuration manager
            use_history: Seed with prior prices (default: SEED_FROM_HISTORY)
        """
        self.storage = storage
        self.anchor_fetcher = anchor_fetcher
        self.config = config
        self.use_history = (
            config.pricing.SEED_FROM_HISTORY if use_history is None else use_history
        )

    async def _load_prior_prices(self) -> dict:
        if not self.use_history:
            return {}
        pricing = self.config.pricing
        try:
            return await self.storage.load_prior_prices(
                exclude_token=pricing.ANCHOR_TOKEN_ID,
                max_usd_price=pricing.MAX_PRIOR_PRICE_USD,
            )
        except StorageError as e:
            logger.warning(f"No prior prices available, continuing with anchor only: {e}")
            return {}

    async def run(
        self,
        dry_run: bool = False,
        tolerance: Optional[float] = None,
        max_iterations: Optional[int] = None,
    ) -> PriceRunResult:
        """
        Calculate and persist token prices.

        Args:
            dry_run: Skip persistence
            tolerance: Override CONVERGENCE_TOLERANCE
            max_iterations: Override MAX_ITERATIONS

        Returns:
            PriceRunResult

        Raises:
            AnchorPriceError, MissingAnchorPriceError, StorageError
        """
        pricing = self.config.pricing
        logger.info("Starting iterative token price calculation")

        pool_graph = await self.storage.load_pool_snapshot(pricing.POOL_TYPE)
        anchor_price = await self.anchor_fetcher.fetch_price()
        prior_prices = await self._load_prior_prices()

        logger.info(
            f"Seeding with anchor {pricing.ANCHOR_TOKEN_ID} at ${anchor_price:,.2f} "
            f"and {len(prior_prices)} prior prices"
        )

        engine_kwargs = pricing.get_engine_kwargs()
        if tolerance is not None:
            engine_kwargs["tolerance"] = tolerance
        if max_iterations is not None:
            engine_kwargs["max_iterations"] = max_iterations

        engine = PriceIterationEngine(pool_graph, **engine_kwargs)
        result = engine.run(anchor_price, prior_prices)

        self._log_result(result)

        if dry_run:
            logger.info("Dry run: prices not stored")
        else:
            await self.storage.save_price_set(result)

        return result

    def _log_result(self, result: PriceRunResult) -> None:
        diagnostics = result.diagnostics
        logger.info(
            f"Calculated prices for {len(result.prices)} tokens in "
            f"{result.duration_seconds * 1000:.0f}ms "
            f"(status={diagnostics.status}, iterations={diagnostics.iterations_to_converge}, "
            f"final change={diagnostics.final_convergence_percent:.4f}%)"
        )
        for price in result.prices[:SAMPLE_SIZE]:
            logger.info(
                f"  {price.token_id}: ${price.usd_price:.6f} "
                f"({price.anchor_relative_price:.8f} anchor, {price.price_source})"
            )
