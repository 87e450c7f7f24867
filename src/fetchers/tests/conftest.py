"""Test configuration for fetchers."""
import pytest
from unittest.mock import Mock


@pytest.fixture
def mock_config():
    """Mock configuration with pricing settings."""
    config = Mock()
    config.pricing.ANCHOR_EXCHANGE = "kraken"
    config.pricing.ANCHOR_SYMBOL = "BTC/USD"
    return config


@pytest.fixture
def sample_ticker():
    """Sample ccxt ticker response."""
    return {
        "symbol": "BTC/USD",
        "last": 97250.5,
        "close": 97250.5,
        "bid": 97250.4,
        "ask": 97250.6,
        "timestamp": 1700000000000,
    }
