"""
Configuration manager for tvlPricing.

This module provides a centralized way to access all configuration settings
across the application. It combines all configuration classes into a single
easy-to-use interface.
"""

import logging
from typing import Any, Dict, Optional

from .base import BaseConfig, ConfigError
from .database import DatabaseConfig
from .pricing import PricingConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """
    Centralized configuration manager that combines all configuration classes.

    This class provides easy access to all configuration settings and ensures
    that configurations are properly initialized and validated.
    """

    def __init__(self, environment: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            environment: Override the environment (local, dev, staging, production)
        """
        self._environment = environment
        self._base_config = None
        self._database_config = None
        self._pricing_config = None
        self._initialize_configs()

    def _initialize_configs(self):
        """Initialize all configuration objects."""
        try:
            overrides = {"ENVIRONMENT": self._environment} if self._environment else {}

            self._base_config = BaseConfig(**overrides)
            self._database_config = DatabaseConfig(**overrides)
            self._pricing_config = PricingConfig(**overrides)

            logger.info(f"Configuration initialized for environment: {self.environment}")

        except ConfigError:
            raise
        except Exception as e:
            logger.error(f"Failed to initialize configuration: {e}")
            raise ConfigError(f"Configuration initialization failed: {e}")

    @property
    def environment(self) -> str:
        """Get current environment."""
        return self._base_config.ENVIRONMENT

    @property
    def base(self) -> BaseConfig:
        """Get base configuration."""
        return self._base_config

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration."""
        return self._database_config

    @property
    def pricing(self) -> PricingConfig:
        """Get price discovery configuration."""
        return self._pricing_config

    def get_storage_config(
        self,
        backend: Optional[str] = None,
        data_dir: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Get the storage configuration for a backend.

        Args:
            backend: postgres or json (default: STORAGE_BACKEND)
            data_dir: Base directory for the json backend (default: DATA_DIR)

        Returns:
            Configuration dictionary for PostgresStorage or JsonStorage

        Raises:
            ConfigError: For an unknown backend, or data_dir with postgres
        """
        backend = backend or self.pricing.STORAGE_BACKEND
        decimals = self.pricing.DEFAULT_TOKEN_DECIMALS

        if backend == "json":
            return {
                "base_path": str(data_dir or self.base.DATA_DIR),
                "default_decimals": decimals,
            }
        if backend != "postgres":
            raise ConfigError(f"Invalid storage backend: {backend}")
        if data_dir:
            raise ConfigError("A data directory only applies to the json backend")
        return self.database.get_storage_config(default_decimals=decimals)

    def validate_configuration(self) -> bool:
        """
        Validate cross-config settings.

        Returns:
            True if all configurations are valid

        Raises:
            ConfigError: If any configuration is invalid
        """
        if self.pricing.STORAGE_BACKEND == "postgres" and not self.database.POSTGRES_HOST:
            raise ConfigError("PostgreSQL host not configured")

        logger.debug("Configuration validation successful")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert all configurations to dictionary format."""
        return {
            "environment": self.environment,
            "base": self.base.to_dict() if self.base else {},
            "database": self.database.to_dict() if self.database else {},
            "pricing": self.pricing.to_dict() if self.pricing else {},
        }

    def __repr__(self) -> str:
        """String representation of the configuration manager."""
        return f"ConfigManager(environment={self.environment})"


# Global configuration manager instance
_config_manager = None


def get_config(environment: Optional[str] = None, force_reload: bool = False) -> ConfigManager:
    """
    Get the global configuration manager instance.

    Args:
        environment: Override environment
        force_reload: Force reload of configuration

    Returns:
        ConfigManager instance
    """
    global _config_manager

    if _config_manager is None or force_reload:
        _config_manager = ConfigManager(environment=environment)
        _config_manager.validate_configuration()

    return _config_manager


def reload_config(environment: Optional[str] = None) -> ConfigManager:
    """
    Reload the global configuration manager.

    Args:
        environment: Override environment

    Returns:
        Fresh ConfigManager instance
    """
    return get_config(environment=environment, force_reload=True)
