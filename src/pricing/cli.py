#!/usr/bin/env python3
"""
Command-line interface for the token price calculation job.

Usage:
    uv run python -m src.pricing.cli
    uv run python -m src.pricing.cli --dry-run --no-history
    uv run python -m src.pricing.cli --backend json --data-dir ./data
    uv run python -m src.pricing.cli --setup-tables
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from src.config import ConfigError, get_config
from src.core.storage import PostgresStorage, StorageError, create_storage
from src.fetchers import AnchorPriceFetcher, FetchError
from src.pricing.errors import PricingError
from src.pricing.job import PriceCalculationJob
from src.pricing.types import PriceRunResult

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Iterative TVL-weighted token price discovery",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scheduled run against the warehouse
  uv run python -m src.pricing.cli

  # Inspect results without writing them
  uv run python -m src.pricing.cli --dry-run

  # Offline run from data/pools.json
  uv run python -m src.pricing.cli --backend json --data-dir ./data
        """,
    )
    parser.add_argument(
        "--backend",
        choices=["postgres", "json"],
        help="Storage backend (default: STORAGE_BACKEND)",
    )
    parser.add_argument("--data-dir", help="Base directory for the json backend")
    parser.add_argument("--max-iterations", type=int, help="Override MAX_ITERATIONS")
    parser.add_argument("--tolerance", type=float, help="Override CONVERGENCE_TOLERANCE")
    parser.add_argument(
        "--no-history",
        action="store_true",
        help="Seed with the anchor price only",
    )
    parser.add_argument("--dry-run", action="store_true", help="Do not store results")
    parser.add_argument(
        "--setup-tables",
        action="store_true",
        help="Create the token_prices table and view, then exit (postgres only)",
    )
    return parser


def format_run_result(result: PriceRunResult) -> None:
    """Format and display run results."""
    diagnostics = result.diagnostics
    logger.info("=" * 60)
    if diagnostics.converged:
        logger.info(f"Converged after {diagnostics.iterations_to_converge} iterations")
    else:
        logger.warning(
            f"Stopped at the iteration cap ({diagnostics.iterations_to_converge}) "
            f"without converging, {diagnostics.new_tokens_last_iteration} tokens "
            f"were still being discovered"
        )
    logger.info(f"Final convergence: {diagnostics.final_convergence_percent:.4f}%")
    logger.info(f"Tokens priced: {len(result.prices)} ({diagnostics.tokens_discovered} discovered)")
    if diagnostics.dropped_tokens:
        logger.warning(f"Tokens dropped as invalid: {len(diagnostics.dropped_tokens)}")
    logger.info("=" * 60)


async def run(args: argparse.Namespace) -> PriceRunResult:
    """Run the job with the configured storage backend."""
    config = get_config()
    backend = args.backend or config.pricing.STORAGE_BACKEND
    storage_config = config.get_storage_config(backend, data_dir=args.data_dir)

    anchor_fetcher = AnchorPriceFetcher.from_config(config)

    async with create_storage(backend, storage_config) as storage:
        job = PriceCalculationJob(
            storage=storage,
            anchor_fetcher=anchor_fetcher,
            config=config,
            use_history=False if args.no_history else None,
        )
        return await job.run(
            dry_run=args.dry_run,
            tolerance=args.tolerance,
            max_iterations=args.max_iterations,
        )


async def setup_tables() -> None:
    config = get_config()
    async with PostgresStorage(config.database.get_storage_config()) as storage:
        await storage.setup_price_tables()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI function. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        if args.setup_tables:
            asyncio.run(setup_tables())
            return 0
        result = asyncio.run(run(args))
    except (ConfigError, FetchError, PricingError, StorageError, ValueError) as e:
        logger.error(f"Token price calculation failed: {e}")
        return 1

    format_run_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
