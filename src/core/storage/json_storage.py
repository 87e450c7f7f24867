"""
JSON file storage implementation for offline runs and exports.

Layout under base_path:
- pools.json: list of pool graph rows (or {"pools": [...]})
- prices/prices_<timestamp>.json: one file per run, never overwritten
"""

import gzip
import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.pricing.types import PoolGraph, PriceRunResult

from .base import (
    DEFAULT_HISTORY_DAYS,
    DataError,
    PriceStorageInterface,
    StorageBase,
    validate_current_prices_query,
    validate_history_query,
)

logger = logging.getLogger(__name__)

POOLS_FILE = "pools.json"
PRICES_DIR = "prices"
PRICES_PREFIX = "prices_"


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _truncate(timestamp: datetime, interval: str) -> datetime:
    """Start of the hour, day or ISO week containing timestamp."""
    if interval == "hour":
        return timestamp.replace(minute=0, second=0, microsecond=0)
    day = timestamp.replace(hour=0, minute=0, second=0, microsecond=0)
    if interval == "day":
        return day
    return day - timedelta(days=day.weekday())


class JsonStorage(StorageBase, PriceStorageInterface):
    """
    JSON file storage implementation for price runs.

    Features:
    - Pool snapshot loaded from a JSON file
    - One timestamped file per run (append-only history)
    - Atomic writes
    - Compression support
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize JSON storage.

        Args:
            config: Configuration with keys:
                - base_path: Base directory for JSON storage
                - compress: Whether to gzip price files (default: False)
                - pretty: Whether to pretty-print JSON (default: True)
                - default_decimals: Decimals for pool rows without them (default: 6)
        """
        super().__init__(config)
        self.base_path = Path(config.get('base_path', './data'))
        self.compress = config.get('compress', False)
        self.pretty = config.get('pretty', True)
        self.default_decimals = config.get('default_decimals', 6)

    async def connect(self) -> None:
        """Ensure base directory exists."""
        (self.base_path / PRICES_DIR).mkdir(parents=True, exist_ok=True)
        self.is_connected = True
        logger.info(f"JSON storage initialized at {self.base_path}")

    async def disconnect(self) -> None:
        """No-op for JSON storage."""
        self.is_connected = False

    async def health_check(self) -> bool:
        """Check if base directory is accessible."""
        return self.base_path.exists() and self.base_path.is_dir()

    def _get_full_path(self, filename: str) -> Path:
        """
        Get full path for a file.

        Args:
            filename: Relative filename

        Returns:
            Full path object
        """
        if not filename.endswith('.json') and not filename.endswith('.json.gz'):
            filename = f"{filename}.json"

        if self.compress and not filename.endswith('.gz'):
            filename = f"{filename}.gz"

        return self.base_path / filename

    def save(self, filename: str, data: Any) -> Path:
        """
        Save data to a JSON file atomically.

        Args:
            filename: File name (relative to base_path)
            data: Data to save

        Returns:
            Path of the written file
        """
        filepath = self._get_full_path(filename)
        temp_path = filepath.with_name(filepath.name + '.tmp')
        indent = 2 if self.pretty else None

        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)

            if filepath.suffix == '.gz':
                with gzip.open(temp_path, 'wt', encoding='utf-8') as f:
                    json.dump(data, f, indent=indent, default=str)
            else:
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=indent, default=str)

            temp_path.replace(filepath)

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save JSON file {filename}: {e}")
            temp_path.unlink(missing_ok=True)
            raise DataError(f"JSON save failed: {e}")

        logger.info(f"Saved data to {filepath}")
        return filepath

    def load(self, filename: str) -> Optional[Any]:
        """
        Load data from a JSON or gzipped JSON file.

        Args:
            filename: File name (relative to base_path)

        Returns:
            Loaded data or None if file doesn't exist
        """
        filepath = self.base_path / filename
        if not filepath.exists():
            gz_path = filepath.with_name(filepath.name + '.gz')
            if not gz_path.exists():
                return None
            filepath = gz_path

        try:
            if filepath.suffix == '.gz':
                with gzip.open(filepath, 'rt', encoding='utf-8') as f:
                    return json.load(f)
            with open(filepath, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load JSON file {filename}: {e}")
            raise DataError(f"JSON load failed: {e}")

    # Pool snapshot

    def save_pool_snapshot(self, pool_graph: PoolGraph) -> Path:
        """Write a pool graph in the format load_pool_snapshot reads."""
        rows = [pool.to_row() for pool in pool_graph]
        filepath = self.base_path / POOLS_FILE
        filepath.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump({'pools': rows}, f, indent=2)
        except OSError as e:
            raise DataError(f"JSON save failed: {e}")
        return filepath

    async def load_pool_snapshot(self, pool_type: str = "constant_product") -> PoolGraph:
        """
        Load pools from pools.json.

        Rows carrying a pool_type other than pool_type are skipped.
        """
        data = self.load(POOLS_FILE)
        if data is None:
            raise DataError(f"Pool snapshot not found: {self.base_path / POOLS_FILE}")

        rows = data.get('pools', []) if isinstance(data, dict) else data
        eligible = [row for row in rows if row.get('pool_type', pool_type) == pool_type]

        try:
            graph = PoolGraph.from_rows(eligible, self.default_decimals)
        except (KeyError, TypeError, ValueError) as e:
            raise DataError(f"Invalid pool row: {e}")

        logger.info(f"Loaded {len(graph)} {pool_type} pools from {POOLS_FILE}")
        return graph

    # Prices

    def _price_files(self) -> List[Path]:
        """Price run files, oldest first."""
        prices_dir = self.base_path / PRICES_DIR
        if not prices_dir.exists():
            return []
        return sorted(
            path for path in prices_dir.iterdir()
            if path.name.startswith(PRICES_PREFIX) and not path.name.endswith('.tmp')
        )

    def _price_rows(self) -> List[Dict[str, Any]]:
        """Every persisted price row, oldest run first."""
        rows = []
        for path in self._price_files():
            data = self.load(str(path.relative_to(self.base_path)))
            for row in data.get('prices', []):
                row = dict(row)
                row['calculated_at'] = _as_utc(datetime.fromisoformat(row['calculated_at']))
                rows.append(row)
        return rows

    def _current_rows(self) -> List[Dict[str, Any]]:
        latest: Dict[str, Dict[str, Any]] = {}
        for row in self._price_rows():
            current = latest.get(row['token_id'])
            if current is None or row['calculated_at'] >= current['calculated_at']:
                latest[row['token_id']] = row
        return list(latest.values())

    async def load_prior_prices(
        self,
        exclude_token: Optional[str] = None,
        max_usd_price: Optional[float] = None,
    ) -> Dict[str, float]:
        """Latest persisted price per token across all run files."""
        prices = {}
        for row in self._current_rows():
            usd_price = float(row['usd_price'])
            if row['token_id'] == exclude_token or usd_price <= 0:
                continue
            if max_usd_price is not None and usd_price >= max_usd_price:
                continue
            prices[row['token_id']] = usd_price
        logger.info(f"Loaded {len(prices)} prior prices")
        return prices

    async def save_price_set(self, result: PriceRunResult) -> int:
        """Write the run to a new prices_<timestamp>.json file."""
        rows = result.to_rows()
        for row in rows:
            row['calculated_at'] = result.calculated_at.isoformat()

        stamp = result.calculated_at.strftime('%Y%m%dT%H%M%S%f')
        filename = f"{PRICES_DIR}/{PRICES_PREFIX}{stamp}.json"
        if self._get_full_path(filename).exists():
            raise DataError(f"Price snapshot already exists: {filename}")

        diagnostics = result.diagnostics
        self.save(filename, {
            'calculated_at': result.calculated_at.isoformat(),
            'iterations_to_converge': diagnostics.iterations_to_converge,
            'final_convergence_percent': diagnostics.final_convergence_percent,
            'converged': diagnostics.converged,
            'status': diagnostics.status,
            'count': len(rows),
            'prices': rows,
        })
        return len(rows)

    async def get_current_prices(
        self,
        token_id: Optional[str] = None,
        min_price: float = 0.0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        validate_current_prices_query(min_price, limit)
        rows = [
            row for row in self._current_rows()
            if float(row['usd_price']) >= min_price
            and (token_id is None or row['token_id'] == token_id)
        ]
        rows.sort(key=lambda row: float(row['usd_price']), reverse=True)
        return [
            {**row, 'calculated_at': row['calculated_at'].isoformat()}
            for row in rows[:limit]
        ]

    async def get_price_summary(self, min_price: float = 0.0) -> Dict[str, Any]:
        validate_current_prices_query(min_price, 1)
        rows = [row for row in self._current_rows() if float(row['usd_price']) >= min_price]
        if not rows:
            return {
                "total_tokens": 0,
                "min_price": 0.0,
                "max_price": 0.0,
                "avg_price": 0.0,
                "last_updated": None,
            }
        prices = [float(row['usd_price']) for row in rows]
        return {
            "total_tokens": len(rows),
            "min_price": min(prices),
            "max_price": max(prices),
            "avg_price": sum(prices) / len(prices),
            "last_updated": max(row['calculated_at'] for row in rows).isoformat(),
        }

    async def get_price_history(
        self,
        token_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        interval: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        validate_history_query(token_id, interval, limit)

        start, end = _as_utc(start), _as_utc(end)
        if start is None and end is None:
            start = datetime.now(UTC) - timedelta(days=DEFAULT_HISTORY_DAYS)

        rows = [
            row for row in self._price_rows()
            if row['token_id'] == token_id
            and (start is None or row['calculated_at'] >= start)
            and (end is None or row['calculated_at'] <= end)
        ]
        rows.sort(key=lambda row: row['calculated_at'], reverse=True)

        history = []
        seen_buckets = set()
        for row in rows:
            timestamp = row['calculated_at']
            if interval:
                timestamp = _truncate(timestamp, interval)
                if timestamp in seen_buckets:
                    continue
                seen_buckets.add(timestamp)
            history.append({
                "timestamp": timestamp.isoformat(),
                "usd_price": float(row['usd_price']),
                "anchor_relative_price": float(row['anchor_relative_price']),
            })
            if len(history) >= limit:
                break
        return history
