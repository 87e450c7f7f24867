"""
Base configuration management for tvlPricing.

Settings are dataclass fields whose defaults are read from the environment
(and a .env file) when the config module is imported.
"""

import os
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from dataclasses import asdict, dataclass
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("local", "dev", "staging", "production")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TRUE_VALUES = ("true", "1", "yes", "on")


class ConfigError(Exception):
    """Exception raised for configuration-related errors."""
    pass


def _parse_env(key: str, default: Any, cast: Callable[[str], Any], kind: str) -> Any:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"Environment variable '{key}' must be {kind}, got: {raw}")


@dataclass
class BaseConfig:
    """Runtime environment, log level and data directory shared by every config."""

    PROJECT_ROOT: Path = Path(__file__).parent.parent.parent
    DATA_DIR: Path = Path(os.getenv("DATA_DIR") or PROJECT_ROOT / "data")

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "local")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def __post_init__(self):
        self._setup_logging()
        self._validate_config()
        self.DATA_DIR.mkdir(parents=True, exist_ok=True)

    def _setup_logging(self):
        level = logging.getLevelName(self.LOG_LEVEL.upper())
        if not isinstance(level, int):
            raise ConfigError(f"Invalid log level: {self.LOG_LEVEL}")
        logging.basicConfig(level=level, format=LOG_FORMAT)

    def _validate_config(self):
        """Validate configuration values. Subclasses extend this."""
        if self.ENVIRONMENT not in ENVIRONMENTS:
            raise ConfigError(
                f"Invalid environment: {self.ENVIRONMENT} (expected one of {', '.join(ENVIRONMENTS)})"
            )

    @staticmethod
    def get_env(key: str, default: Optional[str] = None) -> Optional[str]:
        """Raw environment value, or default when unset."""
        return os.getenv(key, default)

    @staticmethod
    def get_env_int(key: str, default: int) -> int:
        return _parse_env(key, default, int, "an integer")

    @staticmethod
    def get_env_float(key: str, default: float) -> float:
        return _parse_env(key, default, float, "a number")

    @staticmethod
    def get_env_bool(key: str, default: bool = False) -> bool:
        return _parse_env(key, default, lambda raw: raw.strip().lower() in TRUE_VALUES, "a boolean")

    def to_dict(self) -> Dict[str, Any]:
        """Settings as plain values, paths rendered as strings."""
        return {
            key: str(value) if isinstance(value, Path) else value
            for key, value in asdict(self).items()
        }
