"""
Pytest configuration for pricing tests.
"""

import pytest

from src.pricing.types import Pool, PoolGraph, PoolLeg

ANCHOR = "SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token"
ANCHOR_PRICE = 100_000.0


@pytest.fixture
def anchor():
    return ANCHOR


@pytest.fixture
def anchor_price():
    return ANCHOR_PRICE


@pytest.fixture
def make_pool():
    """Build a pool from (token, raw reserve, decimals) legs."""

    def _make_pool(pool_id, token_a, reserve_a, token_b, reserve_b, decimals_a=0, decimals_b=0):
        return Pool(
            pool_id=pool_id,
            leg_a=PoolLeg(token_id=token_a, raw_reserve=reserve_a, decimals=decimals_a),
            leg_b=PoolLeg(token_id=token_b, raw_reserve=reserve_b, decimals=decimals_b),
        )

    return _make_pool


@pytest.fixture
def chain_graph(make_pool, anchor):
    """anchor -> B -> C -> D, one hop per pool."""
    return PoolGraph((
        make_pool("pool-ab", anchor, 1, "B", 50_000),
        make_pool("pool-bc", "B", 100, "C", 400),
        make_pool("pool-cd", "C", 1_000, "D", 10),
    ))
