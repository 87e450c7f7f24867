"""
Unit tests for exchange price fetchers.

Tests use mocks and don't make real API calls.
"""

import pytest
from unittest.mock import Mock, patch

import ccxt

from src.fetchers.base import AnchorPriceError, FetchError
from src.fetchers.exchange_fetchers import AnchorPriceFetcher, BaseExchangeFetcher


class TestBaseExchangeFetcher:
    """Test base exchange fetcher functionality."""

    def test_init_with_valid_exchange(self):
        """Test fetcher initialization with valid exchange."""
        with patch('ccxt.kraken') as mock_exchange:
            mock_exchange.return_value = Mock()

            fetcher = BaseExchangeFetcher('kraken')

            assert fetcher.exchange_id == 'kraken'
            assert fetcher.ccxt_exchange is not None
            assert fetcher.get_identifier() == 'kraken_price_fetcher'
            mock_exchange.assert_called_once_with({"enableRateLimit": True, "timeout": 30000})

    def test_init_with_invalid_exchange(self):
        """Test fetcher initialization with invalid exchange."""
        with pytest.raises(FetchError, match="Unsupported exchange"):
            BaseExchangeFetcher('nonexistent_exchange')

    def test_ticker_price_prefers_last(self):
        assert BaseExchangeFetcher._ticker_price({'last': 2.0, 'close': 1.0}) == 2.0
        assert BaseExchangeFetcher._ticker_price({'last': None, 'close': 1.0}) == 1.0
        assert BaseExchangeFetcher._ticker_price({'last': 'n/a'}) is None
        assert BaseExchangeFetcher._ticker_price({'last': 'n/a', 'close': '1.5'}) == 1.5
        assert BaseExchangeFetcher._ticker_price(None) is None

    @pytest.mark.asyncio
    async def test_fetch_ticker_wraps_ccxt_errors(self):
        with patch('ccxt.kraken') as mock_exchange_class:
            mock_exchange = Mock()
            mock_exchange.fetch_ticker.side_effect = ccxt.NetworkError("timeout")
            mock_exchange_class.return_value = mock_exchange

            fetcher = BaseExchangeFetcher('kraken')
            with pytest.raises(FetchError, match="Failed to fetch BTC/USD ticker"):
                await fetcher.fetch_ticker('BTC/USD')


class TestAnchorPriceFetcher:
    """Test the anchor BTC/USD fetcher."""

    @pytest.mark.asyncio
    async def test_fetch_price(self, sample_ticker):
        with patch('ccxt.kraken') as mock_exchange_class:
            mock_exchange = Mock()
            mock_exchange.fetch_ticker.return_value = sample_ticker
            mock_exchange_class.return_value = mock_exchange

            fetcher = AnchorPriceFetcher()
            price = await fetcher.fetch_price()

            assert price == 97250.5
            mock_exchange.fetch_ticker.assert_called_once_with('BTC/USD')

    def test_from_config(self, mock_config):
        mock_config.pricing.ANCHOR_EXCHANGE = "coinbase"
        mock_config.pricing.ANCHOR_SYMBOL = "BTC/USD"
        with patch('ccxt.coinbase') as mock_exchange_class:
            mock_exchange_class.return_value = Mock()
            fetcher = AnchorPriceFetcher.from_config(mock_config)

        assert fetcher.exchange_id == "coinbase"
        assert fetcher.symbol == "BTC/USD"

    @pytest.mark.asyncio
    async def test_non_numeric_last_uses_close(self):
        with patch('ccxt.kraken') as mock_exchange_class:
            mock_exchange = Mock()
            mock_exchange.fetch_ticker.return_value = {'last': 'n/a', 'close': 96000.0}
            mock_exchange_class.return_value = mock_exchange

            fetcher = AnchorPriceFetcher()
            assert await fetcher.fetch_price() == 96000.0

    @pytest.mark.asyncio
    async def test_exchange_failure_has_no_fallback(self):
        with patch('ccxt.kraken') as mock_exchange_class:
            mock_exchange = Mock()
            mock_exchange.fetch_ticker.side_effect = ccxt.ExchangeNotAvailable("maintenance")
            mock_exchange_class.return_value = mock_exchange

            fetcher = AnchorPriceFetcher()
            with pytest.raises(AnchorPriceError):
                await fetcher.fetch_price()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ticker", [
        {'last': None, 'close': None},
        {'last': 0},
        {'last': -5.0},
        {'last': float('nan')},
        {'last': float('inf')},
        {},
    ])
    async def test_invalid_price_is_rejected(self, ticker):
        with patch('ccxt.kraken') as mock_exchange_class:
            mock_exchange = Mock()
            mock_exchange.fetch_ticker.return_value = ticker
            mock_exchange_class.return_value = mock_exchange

            fetcher = AnchorPriceFetcher()
            with pytest.raises(AnchorPriceError, match="Invalid BTC/USD price"):
                await fetcher.fetch_price()
