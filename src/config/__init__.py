"""
Configuration management for tvlPricing.

This module provides centralized configuration management for the price
calculation job. Use get_config() to access all configuration settings.

Example:
    from src.config import get_config

    config = get_config()

    # Access database settings
    postgres_url = config.database.postgres_url

    # Access pricing settings
    anchor = config.pricing.ANCHOR_TOKEN_ID
    engine_kwargs = config.pricing.get_engine_kwargs()
"""

from .base import BaseConfig, ConfigError
from .database import DatabaseConfig
from .manager import ConfigManager, get_config, reload_config
from .pricing import PricingConfig

__all__ = [
    "BaseConfig",
    "ConfigError",
    "DatabaseConfig",
    "PricingConfig",
    "ConfigManager",
    "get_config",
    "reload_config",
]
