"""
External price fetchers.

KISS: each fetcher returns one validated USD price or raises.
"""

from .base import AnchorPriceError, BasePriceFetcher, FetchError
from .exchange_fetchers import AnchorPriceFetcher, BaseExchangeFetcher

__all__ = [
    'AnchorPriceError',
    'AnchorPriceFetcher',
    'BaseExchangeFetcher',
    'BasePriceFetcher',
    'FetchError',
]
