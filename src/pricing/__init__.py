"""TVL-weighted token price discovery."""

from src.pricing.engine import PriceIterationEngine
from src.pricing.errors import MissingAnchorPriceError, PricingError
from src.pricing.types import (
    Pool,
    PoolContribution,
    PoolGraph,
    PoolLeg,
    PriceRunResult,
    PriceSet,
    RunDiagnostics,
    TokenPrice,
)

__all__ = [
    "MissingAnchorPriceError",
    "Pool",
    "PoolContribution",
    "PoolGraph",
    "PoolLeg",
    "PriceIterationEngine",
    "PriceRunResult",
    "PriceSet",
    "PricingError",
    "RunDiagnostics",
    "TokenPrice",
]
