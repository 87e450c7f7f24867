"""
Storage abstraction layer for the price calculation job.

This module provides storage backends for the pool snapshot source and
the price result sink:
- PostgreSQL for the warehouse tables (pools, reserves, token prices)
- JSON files for offline runs and exports

Usage:
    from src.core.storage import PostgresStorage

    async with PostgresStorage(config) as storage:
        pool_graph = await storage.load_pool_snapshot()
        await storage.save_price_set(result)
"""

from typing import Any, Dict

from .base import (
    ConnectionError,
    DataError,
    PriceStorageInterface,
    StorageBase,
    StorageError,
)
from .json_storage import JsonStorage
from .postgres import PostgresStorage

STORAGE_BACKENDS = {
    "postgres": PostgresStorage,
    "json": JsonStorage,
}


def create_storage(backend: str, config: Dict[str, Any]) -> StorageBase:
    """Instantiate the storage backend registered under backend."""
    try:
        storage_class = STORAGE_BACKENDS[backend]
    except KeyError:
        raise StorageError(f"Unknown storage backend: {backend}")
    return storage_class(config)


__all__ = [
    "StorageBase",
    "StorageError",
    "ConnectionError",
    "DataError",
    "PriceStorageInterface",
    "PostgresStorage",
    "JsonStorage",
    "create_storage",
]
