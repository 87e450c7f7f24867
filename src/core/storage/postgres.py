"""
PostgreSQL storage implementation for the price calculation job.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, List, Optional

import asyncpg
from asyncpg.pool import Pool as ConnectionPool

from src.pricing.types import PoolGraph, PriceRunResult

from .base import (
    DEFAULT_HISTORY_DAYS,
    ConnectionError,
    DataError,
    PriceStorageInterface,
    StorageBase,
    validate_current_prices_query,
    validate_history_query,
)

logger = logging.getLogger(__name__)

DEFAULT_TABLES = {
    "pools": "crypto_data.liquidity_pools",
    "reserves": "crypto_data.current_pool_reserves",
    "tokens": "crypto_data.tokens",
    "prices": "crypto_data.token_prices",
    "current_prices": "crypto_data.current_token_prices",
}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class PostgresStorage(StorageBase, PriceStorageInterface):
    """
    PostgreSQL storage implementation supporting async operations.

    Works with the warehouse schema:
    - liquidity_pools / current_pool_reserves / tokens for the pool snapshot
    - token_prices (append-only) and the current_token_prices view for results
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize PostgreSQL storage.

        Args:
            config: Configuration with keys:
                - dsn: postgresql:// connection URL (DatabaseConfig.postgres_url)
                - pool_size: Connection pool size (default: 10)
                - pool_timeout: Pool timeout in seconds (default: 10)
                - default_decimals: Decimals for tokens without metadata (default: 6)
                - tables: Schema-qualified table names (see DEFAULT_TABLES)
        """
        super().__init__(config)
        self.pool: Optional[ConnectionPool] = None
        self.pool_size = config.get("pool_size", 10)
        self.pool_timeout = config.get("pool_timeout", 10)
        self.default_decimals = config.get("default_decimals", 6)
        self.tables = {**DEFAULT_TABLES, **config.get("tables", {})}

    async def connect(self) -> None:
        """Establish connection pool to PostgreSQL."""
        dsn = self.config.get("dsn")
        if not dsn:
            raise ConnectionError("PostgreSQL dsn not configured")

        try:
            self.pool = await asyncpg.create_pool(
                dsn,
                min_size=1,
                max_size=self.pool_size,
                timeout=self.pool_timeout,
                command_timeout=60,
            )
            self.is_connected = True
            logger.info("PostgreSQL connection pool established")

        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise ConnectionError(f"PostgreSQL connection failed: {e}")

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.is_connected = False
            logger.info("PostgreSQL connection pool closed")

    async def health_check(self) -> bool:
        """Check PostgreSQL connection health."""
        if not self.pool:
            return False

        try:
            async with self.pool.acquire() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error(f"PostgreSQL health check failed: {e}")
            return False

    def _require_pool(self) -> ConnectionPool:
        if not self.pool:
            raise ConnectionError("Not connected to PostgreSQL")
        return self.pool

    async def _fetch(self, query: str, *args) -> List[asyncpg.Record]:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            logger.error(f"PostgreSQL query failed: {e}")
            raise DataError(f"PostgreSQL query failed: {e}")
        except OSError as e:
            logger.error(f"PostgreSQL connection lost: {e}")
            raise ConnectionError(f"PostgreSQL connection lost: {e}")

    # Schema

    async def setup_price_tables(self) -> None:
        """Create the append-only prices table and the current prices view."""
        prices = self.tables["prices"]
        current = self.tables["current_prices"]
        index_name = prices.split(".")[-1] + "_token_calculated_idx"
        schema_sql = ""
        if "." in prices:
            schema_sql = f"CREATE SCHEMA IF NOT EXISTS {prices.split('.')[0]};"

        ddl = f"""
            {schema_sql}

            CREATE TABLE IF NOT EXISTS {prices} (
                id BIGSERIAL PRIMARY KEY,
                token_id TEXT NOT NULL,
                usd_price DOUBLE PRECISION NOT NULL CHECK (usd_price > 0),
                anchor_relative_price DOUBLE PRECISION NOT NULL CHECK (anchor_relative_price > 0),
                price_source TEXT NOT NULL DEFAULT 'tvl_weighted_iteration',
                iterations_to_converge INTEGER,
                final_convergence_percent DOUBLE PRECISION,
                calculated_at TIMESTAMPTZ NOT NULL
            );

            CREATE INDEX IF NOT EXISTS {index_name}
                ON {prices} (token_id, calculated_at DESC);

            CREATE OR REPLACE VIEW {current} AS
            SELECT DISTINCT ON (token_id)
                token_id,
                usd_price,
                anchor_relative_price,
                price_source,
                iterations_to_converge,
                final_convergence_percent,
                calculated_at
            FROM {prices}
            ORDER BY token_id, calculated_at DESC;
        """

        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(ddl)
            logger.info(f"Price tables ready: {prices}, {current}")
        except asyncpg.PostgresError as e:
            logger.error(f"Failed to create price tables: {e}")
            raise DataError(f"Price table setup failed: {e}")

    # Pool snapshot

    async def load_pool_snapshot(self, pool_type: str = "constant_product") -> PoolGraph:
        """
        Load every pool of pool_type with its current reserves and token decimals.

        Pools are ordered by id so repeated runs see the same snapshot order.
        """
        query = f"""
            SELECT
                lp.contract_id AS pool_id,
                lp.token_a_contract_id AS leg_a_token_id,
                r.reserves_a AS leg_a_raw_reserve,
                ta.decimals AS leg_a_decimals,
                lp.token_b_contract_id AS leg_b_token_id,
                r.reserves_b AS leg_b_raw_reserve,
                tb.decimals AS leg_b_decimals
            FROM {self.tables['reserves']} r
            JOIN {self.tables['pools']} lp ON lp.contract_id = r.pool_contract_id
            LEFT JOIN {self.tables['tokens']} ta ON ta.contract_id = lp.token_a_contract_id
            LEFT JOIN {self.tables['tokens']} tb ON tb.contract_id = lp.token_b_contract_id
            WHERE lp.pool_type = $1
            ORDER BY lp.contract_id
        """

        rows = await self._fetch(query, pool_type)

        try:
            graph = PoolGraph.from_rows((dict(row) for row in rows), self.default_decimals)
        except (KeyError, TypeError, ValueError) as e:
            raise DataError(f"Invalid pool row: {e}")

        logger.info(f"Loaded {len(graph)} {pool_type} pools into memory")
        return graph

    # Prices

    async def load_prior_prices(
        self,
        exclude_token: Optional[str] = None,
        max_usd_price: Optional[float] = None,
    ) -> Dict[str, float]:
        """Load the latest persisted price of every token from the current view."""
        query = f"""
            SELECT token_id, usd_price
            FROM {self.tables['current_prices']}
            WHERE usd_price > 0
              AND anchor_relative_price > 0
              AND ($1::text IS NULL OR token_id <> $1)
              AND ($2::double precision IS NULL OR usd_price < $2)
        """

        rows = await self._fetch(query, exclude_token, max_usd_price)
        prices = {row["token_id"]: float(row["usd_price"]) for row in rows}
        logger.info(f"Loaded {len(prices)} prior prices")
        return prices

    async def save_price_set(self, result: PriceRunResult) -> int:
        """
        Insert one row per token in a single transaction.

        Either every row of the run is written or none is.
        """
        rows = result.to_rows()
        if not rows:
            return 0

        query = f"""
            INSERT INTO {self.tables['prices']} (
                token_id,
                usd_price,
                anchor_relative_price,
                price_source,
                iterations_to_converge,
                final_convergence_percent,
                calculated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
        """
        records = [
            (
                row["token_id"],
                row["usd_price"],
                row["anchor_relative_price"],
                row["price_source"],
                row["iterations_to_converge"],
                row["final_convergence_percent"],
                row["calculated_at"],
            )
            for row in rows
        ]

        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.executemany(query, records)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            logger.error(f"Failed to store token prices: {e}")
            raise DataError(f"Price storage failed: {e}")
        except OSError as e:
            logger.error(f"PostgreSQL connection lost while storing prices: {e}")
            raise ConnectionError(f"PostgreSQL connection lost: {e}")

        logger.info(f"Stored {len(records)} token prices with convergence metadata")
        return len(records)

    async def get_current_prices(
        self,
        token_id: Optional[str] = None,
        min_price: float = 0.0,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Latest price row per token, highest price first."""
        validate_current_prices_query(min_price, limit)

        query = f"""
            SELECT
                token_id,
                usd_price,
                anchor_relative_price,
                price_source,
                iterations_to_converge,
                final_convergence_percent,
                calculated_at
            FROM {self.tables['current_prices']}
            WHERE usd_price >= $1
              AND ($2::text IS NULL OR token_id = $2)
            ORDER BY usd_price DESC
            LIMIT $3
        """

        rows = await self._fetch(query, min_price, token_id, limit)
        return [
            {
                "token_id": row["token_id"],
                "usd_price": float(row["usd_price"]),
                "anchor_relative_price": float(row["anchor_relative_price"]),
                "price_source": row["price_source"],
                "iterations_to_converge": row["iterations_to_converge"],
                "final_convergence_percent": (
                    float(row["final_convergence_percent"])
                    if row["final_convergence_percent"] is not None
                    else None
                ),
                "calculated_at": _iso(row["calculated_at"]),
            }
            for row in rows
        ]

    async def get_price_summary(self, min_price: float = 0.0) -> Dict[str, Any]:
        """Aggregate statistics over the current price view."""
        validate_current_prices_query(min_price, 1)

        query = f"""
            SELECT
                COUNT(*) AS total_tokens,
                MIN(usd_price) AS min_price,
                MAX(usd_price) AS max_price,
                AVG(usd_price) AS avg_price,
                MAX(calculated_at) AS last_updated
            FROM {self.tables['current_prices']}
            WHERE usd_price >= $1
        """

        rows = await self._fetch(query, min_price)
        row = rows[0] if rows else None
        if row is None or not row["total_tokens"]:
            return {
                "total_tokens": 0,
                "min_price": 0.0,
                "max_price": 0.0,
                "avg_price": 0.0,
                "last_updated": None,
            }
        return {
            "total_tokens": int(row["total_tokens"]),
            "min_price": float(row["min_price"]),
            "max_price": float(row["max_price"]),
            "avg_price": float(row["avg_price"]),
            "last_updated": _iso(row["last_updated"]),
        }

    async def get_price_history(
        self,
        token_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        interval: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict[str, Any]]:
        """
        Price history for one token, newest first.

        With an interval (hour, day, week) only the last price of each
        bucket is returned. Without start and end the last 30 days are used.
        """
        validate_history_query(token_id, interval, limit)

        if start is None and end is None:
            start = datetime.now(UTC) - timedelta(days=DEFAULT_HISTORY_DAYS)

        if interval:
            query = f"""
                SELECT DISTINCT ON (bucket)
                    date_trunc($5, calculated_at) AS bucket,
                    usd_price,
                    anchor_relative_price,
                    calculated_at
                FROM {self.tables['prices']}
                WHERE token_id = $1
                  AND ($2::timestamptz IS NULL OR calculated_at >= $2)
                  AND ($3::timestamptz IS NULL OR calculated_at <= $3)
                ORDER BY bucket DESC, calculated_at DESC
                LIMIT $4
            """
            rows = await self._fetch(query, token_id, start, end, limit, interval)
        else:
            query = f"""
                SELECT usd_price, anchor_relative_price, calculated_at
                FROM {self.tables['prices']}
                WHERE token_id = $1
                  AND ($2::timestamptz IS NULL OR calculated_at >= $2)
                  AND ($3::timestamptz IS NULL OR calculated_at <= $3)
                ORDER BY calculated_at DESC
                LIMIT $4
            """
            rows = await self._fetch(query, token_id, start, end, limit)

        return [
            {
                "timestamp": _iso(row["bucket"] if interval else row["calculated_at"]),
                "usd_price": float(row["usd_price"]),
                "anchor_relative_price": float(row["anchor_relative_price"]),
            }
            for row in rows
        ]
