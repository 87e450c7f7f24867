"""
Exchange price fetchers using CCXT for centralized exchange data.

The anchor token's USD price comes from a CEX ticker (BTC/USD on Kraken by
default). There is no fallback value: a failed fetch aborts the run.
"""

import asyncio
import logging
import math
from typing import Any, Dict, Optional

import ccxt

from ..config.manager import ConfigManager
from .base import AnchorPriceError, BasePriceFetcher, FetchError

logger = logging.getLogger(__name__)


class BaseExchangeFetcher(BasePriceFetcher):
    """
    Base class for exchange price fetchers using CCXT.
    """

    def __init__(self, exchange_id: str):
        """
        Initialize exchange fetcher.

        Args:
            exchange_id: CCXT exchange identifier (e.g., 'kraken')
        """
        super().__init__(exchange_id)
        self.exchange_id = exchange_id

        # Initialize CCXT exchange
        self.ccxt_exchange = self._create_exchange()

    def _create_exchange(self) -> ccxt.Exchange:
        """Create CCXT exchange instance with configuration."""
        try:
            exchange_class = getattr(ccxt, self.exchange_id)
        except AttributeError:
            raise FetchError(f"Unsupported exchange: {self.exchange_id}")

        try:
            return exchange_class({
                "enableRateLimit": True,
                "timeout": 30000,  # 30 seconds
            })
        except Exception as e:
            self.logger.error(f"Failed to create {self.exchange_id} exchange: {e}")
            raise FetchError(f"Exchange creation failed: {e}")

    async def fetch_ticker(self, symbol: str) -> Dict[str, Any]:
        """
        Fetch a ticker in an executor to avoid blocking the event loop.

        Raises:
            FetchError: If the exchange call fails
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.ccxt_exchange.fetch_ticker, symbol)
        except ccxt.BaseError as e:
            error_msg = f"Failed to fetch {symbol} ticker from {self.exchange_id}: {e}"
            self.logger.error(error_msg)
            raise FetchError(error_msg)

    @staticmethod
    def _ticker_price(ticker: Optional[Dict[str, Any]]) -> Optional[float]:
        """Last traded price, falling back to the close."""
        if not ticker:
            return None
        for key in ("last", "close"):
            value = ticker.get(key)
            if value is None:
                continue
            try:
                return float(value)
            except (TypeError, ValueError):
                continue
        return None


class AnchorPriceFetcher(BaseExchangeFetcher):
    """
    Fetch the USD price of the anchor token from an exchange ticker.

    The anchor (sBTC) is pegged 1:1 to BTC, so the BTC/USD last trade is
    used directly.
    """

    def __init__(self, exchange_id: str = "kraken", symbol: str = "BTC/USD"):
        """
        Initialize anchor price fetcher.

        Args:
            exchange_id: CCXT exchange identifier
            symbol: Unified market symbol quoted in USD
        """
        super().__init__(exchange_id)
        self.symbol = symbol

    @classmethod
    def from_config(cls, config: Optional[ConfigManager] = None) -> "AnchorPriceFetcher":
        """Build the fetcher from PricingConfig settings."""
        config = config or ConfigManager()
        return cls(
            exchange_id=config.pricing.ANCHOR_EXCHANGE,
            symbol=config.pricing.ANCHOR_SYMBOL,
        )

    async def fetch_price(self) -> float:
        """
        Fetch the anchor USD price.

        Raises:
            AnchorPriceError: On exchange failure or a missing, non-finite
                or non-positive price
        """
        self.logger.info(f"Fetching {self.symbol} price from {self.exchange_id}...")

        try:
            ticker = await self.fetch_ticker(self.symbol)
        except FetchError as e:
            raise AnchorPriceError(str(e)) from e

        price = self._ticker_price(ticker)
        if price is None or not math.isfinite(price) or price <= 0:
            raise AnchorPriceError(
                f"Invalid {self.symbol} price received from {self.exchange_id}: {price!r}"
            )

        self.logger.info(f"{self.symbol} price from {self.exchange_id}: ${price:,.2f}")
        return price
