"""
Pool TVL and candidate price calculation.

For each pool, values the reserves at the current known prices and, when
exactly one leg is priced, derives a candidate price for the other leg:

    candidate = (normalized_known / normalized_unknown) * price_known

Pools whose legs are both priced are skipped. Re-deriving a known leg from
its counterpart every iteration makes prices oscillate.
"""

import logging
import math
from typing import List, Mapping, Optional, Tuple

from .types import Pool, PoolContribution, PoolGraph

logger = logging.getLogger(__name__)


def calculate_pool_tvl(pool: Pool, known_prices: Mapping[str, float]) -> float:
    """USD value of the pool's reserves, counting unpriced legs as zero."""
    price_a = known_prices.get(pool.leg_a.token_id) or 0.0
    price_b = known_prices.get(pool.leg_b.token_id) or 0.0
    return pool.leg_a.normalized_reserve * price_a + pool.leg_b.normalized_reserve * price_b


def calculate_pool_contribution(
    pool: Pool,
    known_prices: Mapping[str, float],
    anchor_token_id: str,
) -> Tuple[Optional[PoolContribution], float]:
    """
    Derive at most one new price from a single pool.

    Args:
        pool: Pool snapshot
        known_prices: token_id -> USD price for tokens whose price is known
        anchor_token_id: Token that must never receive a derived price

    Returns:
        (contribution or None, pool TVL in USD)
    """
    normalized_a = pool.leg_a.normalized_reserve
    normalized_b = pool.leg_b.normalized_reserve
    price_a = known_prices.get(pool.leg_a.token_id)
    price_b = known_prices.get(pool.leg_b.token_id)

    tvl = calculate_pool_tvl(pool, known_prices)

    if price_a is None and price_b is None:
        return None, tvl
    if price_a is not None and price_b is not None:
        return None, tvl

    if price_a is not None:
        known_reserve, known_price = normalized_a, price_a
        unknown_leg, unknown_reserve = pool.leg_b, normalized_b
    else:
        known_reserve, known_price = normalized_b, price_b
        unknown_leg, unknown_reserve = pool.leg_a, normalized_a

    if unknown_leg.token_id == anchor_token_id:
        return None, tvl
    if unknown_reserve <= 0:
        logger.debug(f"Skipping pool {pool.pool_id}: zero reserve for {unknown_leg.token_id}")
        return None, tvl
    if tvl <= 0:
        logger.debug(f"Skipping pool {pool.pool_id}: no priced liquidity")
        return None, tvl

    candidate_price = (known_reserve / unknown_reserve) * known_price
    if not math.isfinite(candidate_price) or candidate_price <= 0:
        logger.debug(f"Skipping pool {pool.pool_id}: degenerate price {candidate_price}")
        return None, tvl

    return (
        PoolContribution(
            token_id=unknown_leg.token_id,
            candidate_price=candidate_price,
            weight=tvl,
            pool_id=pool.pool_id,
        ),
        tvl,
    )


def calculate_contributions(
    pool_graph: PoolGraph,
    known_prices: Mapping[str, float],
    anchor_token_id: str,
) -> List[PoolContribution]:
    """Run the calculator over every pool in snapshot order."""
    contributions = []
    for pool in pool_graph:
        contribution, _ = calculate_pool_contribution(pool, known_prices, anchor_token_id)
        if contribution is not None:
            contributions.append(contribution)
    return contributions
