"""
Price discovery configuration for tvlPricing.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .base import BaseConfig, ConfigError

SBTC_TOKEN_ID = "SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token"

STORAGE_BACKENDS = ("postgres", "json")


@dataclass
class PricingConfig(BaseConfig):
    """Anchor, iteration and storage settings for the price calculation job."""

    # Anchor token and its external price source
    ANCHOR_TOKEN_ID: str = BaseConfig.get_env("ANCHOR_TOKEN_ID", SBTC_TOKEN_ID)
    ANCHOR_EXCHANGE: str = BaseConfig.get_env("ANCHOR_EXCHANGE", "kraken")
    ANCHOR_SYMBOL: str = BaseConfig.get_env("ANCHOR_SYMBOL", "BTC/USD")

    # Iteration
    CONVERGENCE_TOLERANCE: float = BaseConfig.get_env_float("CONVERGENCE_TOLERANCE", 0.001)
    MAX_ITERATIONS: int = BaseConfig.get_env_int("MAX_ITERATIONS", 10)

    # Seeding
    SEED_FROM_HISTORY: bool = BaseConfig.get_env_bool("SEED_FROM_HISTORY", True)
    MAX_PRIOR_PRICE_USD: float = BaseConfig.get_env_float("MAX_PRIOR_PRICE_USD", 1_000_000.0)

    # Pool snapshot
    POOL_TYPE: str = BaseConfig.get_env("POOL_TYPE", "constant_product")
    DEFAULT_TOKEN_DECIMALS: int = BaseConfig.get_env_int("DEFAULT_TOKEN_DECIMALS", 6)

    STORAGE_BACKEND: str = BaseConfig.get_env("STORAGE_BACKEND", "postgres")

    def _validate_config(self):
        super()._validate_config()
        if not self.ANCHOR_TOKEN_ID:
            raise ConfigError("ANCHOR_TOKEN_ID must not be empty")
        if self.CONVERGENCE_TOLERANCE <= 0:
            raise ConfigError(
                f"CONVERGENCE_TOLERANCE must be positive, got: {self.CONVERGENCE_TOLERANCE}"
            )
        if self.MAX_ITERATIONS < 1:
            raise ConfigError(f"MAX_ITERATIONS must be at least 1, got: {self.MAX_ITERATIONS}")
        if self.DEFAULT_TOKEN_DECIMALS < 0:
            raise ConfigError(
                f"DEFAULT_TOKEN_DECIMALS must be non-negative, got: {self.DEFAULT_TOKEN_DECIMALS}"
            )
        if self.MAX_PRIOR_PRICE_USD <= 0:
            raise ConfigError(
                f"MAX_PRIOR_PRICE_USD must be positive, got: {self.MAX_PRIOR_PRICE_USD}"
            )
        if self.STORAGE_BACKEND not in STORAGE_BACKENDS:
            raise ConfigError(
                f"Invalid storage backend: {self.STORAGE_BACKEND} "
                f"(expected one of {', '.join(STORAGE_BACKENDS)})"
            )

    def get_engine_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for PriceIterationEngine."""
        return {
            "anchor_token_id": self.ANCHOR_TOKEN_ID,
            "tolerance": self.CONVERGENCE_TOLERANCE,
            "max_iterations": self.MAX_ITERATIONS,
        }
