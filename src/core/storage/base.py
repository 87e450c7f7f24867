"""
Base classes and interfaces for storage implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from src.pricing.types import PoolGraph, PriceRunResult

logger = logging.getLogger(__name__)

HISTORY_INTERVALS = ("hour", "day", "week")
MAX_CURRENT_PRICES_LIMIT = 1000
MAX_HISTORY_LIMIT = 10000
DEFAULT_HISTORY_DAYS = 30


class StorageError(Exception):
    """Base exception for storage-related errors."""
    pass


class ConnectionError(StorageError):
    """Raised when connection to storage backend fails."""
    pass


class DataError(StorageError):
    """Raised when data operations fail."""
    pass


class StorageBase(ABC):
    """
    Abstract base class for storage implementations.
    All storage backends must implement these methods.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize storage backend with configuration.

        Args:
            config: Configuration dictionary for the storage backend
        """
        self.config = config
        self.is_connected = False

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the storage backend."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the storage backend."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the storage backend is healthy and accessible.

        Returns:
            bool: True if healthy, False otherwise
        """
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()


class PriceStorageInterface(ABC):
    """Interface for the pool snapshot source and the price result sink."""

    @abstractmethod
    async def load_pool_snapshot(self, pool_type: str = "constant_product") -> PoolGraph:
        """Load every eligible pool as one immutable snapshot."""
        pass

    @abstractmethod
    async def load_prior_prices(
        self,
        exclude_token: Optional[str] = None,
        max_usd_price: Optional[float] = None,
    ) -> Dict[str, float]:
        """
        Load the most recently persisted USD price of every token.

        Args:
            exclude_token: Token to leave out (the anchor)
            max_usd_price: Prices at or above this are treated as corrupt

        Returns:
            Dict of token_id -> USD price
        """
        pass

    @abstractmethod
    async def save_price_set(self, result: PriceRunResult) -> int:
        """
        Append one run's prices as a new timestamped snapshot.

        Returns:
            Number of rows written
        """
        pass

    @abstractmethod
    async def get_current_prices(
        self,
        token_id: Optional[str] = None,
        min_price: float = 0.0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Latest price row per token, highest price first."""
        pass

    @abstractmethod
    async def get_price_summary(self, min_price: float = 0.0) -> Dict[str, Any]:
        """Count, min, max and average of current prices, plus last update time."""
        pass

    @abstractmethod
    async def get_price_history(
        self,
        token_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        interval: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        """
        Price rows for one token, newest first, optionally one per interval bucket.

        Naive start and end datetimes are treated as UTC.
        """
        pass


def validate_current_prices_query(min_price: float, limit: int) -> None:
    """
    Validate current price query parameters.

    Raises:
        ValueError: If a parameter is out of range
    """
    if limit < 1 or limit > MAX_CURRENT_PRICES_LIMIT:
        raise ValueError(f"Limit must be between 1 and {MAX_CURRENT_PRICES_LIMIT}")
    if min_price < 0:
        raise ValueError("min_price must be >= 0")


def validate_history_query(token_id: str, interval: Optional[str], limit: int) -> None:
    """
    Validate price history query parameters.

    Raises:
        ValueError: If a parameter is missing or out of range
    """
    if not token_id:
        raise ValueError("token_id is required")
    if limit < 1 or limit > MAX_HISTORY_LIMIT:
        raise ValueError(f"Limit must be between 1 and {MAX_HISTORY_LIMIT}")
    if interval is not None and interval not in HISTORY_INTERVALS:
        raise ValueError(
            f"Invalid interval. Must be one of: {', '.join(HISTORY_INTERVALS)}"
        )
