"""
Base classes for external price fetchers.
"""

from abc import ABC, abstractmethod
import logging

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Base exception for fetch-related errors."""
    pass


class AnchorPriceError(FetchError):
    """Raised when the anchor USD price cannot be fetched or is invalid."""
    pass


class BasePriceFetcher(ABC):
    """
    Abstract base class for single-asset USD price sources.

    Each fetcher returns one number or raises.
    """

    def __init__(self, source: str):
        """
        Initialize fetcher.

        Args:
            source: Name of the upstream price source (e.g., 'kraken')
        """
        self.source = source
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")

    @abstractmethod
    async def fetch_price(self) -> float:
        """
        Fetch the current USD price.

        Returns:
            float: Positive, finite USD price

        Raises:
            AnchorPriceError: If no valid price is available
        """
        pass

    def get_identifier(self) -> str:
        """Get unique identifier for this fetcher."""
        return f"{self.source}_price_fetcher"
