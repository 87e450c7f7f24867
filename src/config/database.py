"""
Database configuration for tvlPricing.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .base import BaseConfig


@dataclass
class DatabaseConfig(BaseConfig):
    """Database connection and settings configuration."""

    # PostgreSQL Configuration
    POSTGRES_HOST: str = BaseConfig.get_env("POSTGRES_HOST", "localhost")
    POSTGRES_PORT: int = BaseConfig.get_env_int("POSTGRES_PORT", 5432)
    POSTGRES_USER: str = BaseConfig.get_env("POSTGRES_USER", "postgres")
    POSTGRES_PASSWORD: Optional[str] = BaseConfig.get_env("POSTGRES_PASSWORD") or None
    POSTGRES_DB: str = BaseConfig.get_env("POSTGRES_DB", "crypto_data")

    # Pool settings
    POOL_SIZE: int = BaseConfig.get_env_int("POSTGRES_POOL_SIZE", 10)
    CONNECTION_TIMEOUT: int = BaseConfig.get_env_int("CONNECTION_TIMEOUT", 30)

    # Table Naming
    SCHEMA: str = BaseConfig.get_env("POSTGRES_SCHEMA", "crypto_data")
    POOLS_TABLE: str = "liquidity_pools"
    RESERVES_TABLE: str = "current_pool_reserves"
    TOKENS_TABLE: str = "tokens"
    PRICES_TABLE: str = "token_prices"
    CURRENT_PRICES_VIEW: str = "current_token_prices"

    @property
    def postgres_url(self) -> str:
        """Build PostgreSQL connection URL."""
        credentials = self.POSTGRES_USER
        if self.POSTGRES_PASSWORD:
            credentials = f"{credentials}:{self.POSTGRES_PASSWORD}"
        return (
            f"postgresql://{credentials}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def table(self, name: str) -> str:
        """Schema-qualified table or view name."""
        return f"{self.SCHEMA}.{name}"

    def get_storage_config(self, default_decimals: int = 6) -> Dict[str, Any]:
        """Get the configuration dictionary PostgresStorage expects."""
        return {
            "dsn": self.postgres_url,
            "pool_size": self.POOL_SIZE,
            "pool_timeout": self.CONNECTION_TIMEOUT,
            "default_decimals": default_decimals,
            "tables": {
                "pools": self.table(self.POOLS_TABLE),
                "reserves": self.table(self.RESERVES_TABLE),
                "tokens": self.table(self.TOKENS_TABLE),
                "prices": self.table(self.PRICES_TABLE),
                "current_prices": self.table(self.CURRENT_PRICES_VIEW),
            },
        }
