"""
Test suite for the price iteration engine.
"""

import math

import pytest

from src.pricing.engine import PriceIterationEngine
from src.pricing.errors import MissingAnchorPriceError
from src.pricing.types import (
    PRICE_SOURCE_ANCHOR,
    PRICE_SOURCE_CARRIED,
    PRICE_SOURCE_TVL,
    STATUS_CONVERGED,
    STATUS_EMPTY,
    STATUS_EXHAUSTED,
    PoolGraph,
    PriceSet,
)


@pytest.fixture
def single_pool_graph(make_pool, anchor):
    return PoolGraph((make_pool("pool-ab", anchor, 1, "B", 50_000),))


@pytest.fixture
def two_hop_graph(make_pool, anchor):
    return PoolGraph((
        make_pool("pool-ab", anchor, 1, "B", 50_000),
        make_pool("pool-bc", "B", 100, "C", 400),
    ))


class TestStep:
    """Test single iterations."""

    def test_one_hop_per_step(self, two_hop_graph, anchor, anchor_price):
        engine = PriceIterationEngine(two_hop_graph, anchor)
        seed = engine.seed(anchor_price)

        first = engine.step(seed)
        assert first.aggregated == {"B": pytest.approx(2.0)}
        assert "C" not in first.price_set

        second = engine.step(first.price_set)
        assert "C" in second.price_set
        assert second.price_set.get("C").usd_price == pytest.approx(0.5)
        assert second.price_set.get("B").usd_price == pytest.approx(2.0)

    def test_step_does_not_mutate_input(self, single_pool_graph, anchor, anchor_price):
        engine = PriceIterationEngine(single_pool_graph, anchor)
        seed = engine.seed(anchor_price)
        engine.step(seed)
        assert "B" not in seed
        assert len(seed) == 1

    def test_fixed_point_produces_no_contributions(self, chain_graph, anchor, anchor_price):
        engine = PriceIterationEngine(chain_graph, anchor)
        result = engine.run(anchor_price)
        final = PriceSet(anchor, anchor_price)
        for token_id, usd_price in result.price_map().items():
            final = final.merge({token_id: usd_price})

        outcome = engine.step(final)
        assert outcome.contributions == []
        assert outcome.price_set.usd_prices() == final.usd_prices()

    def test_discovery_is_monotonic(self, chain_graph, anchor, anchor_price):
        engine = PriceIterationEngine(chain_graph, anchor)
        price_set = engine.seed(anchor_price)
        sizes = [len(price_set)]
        for _ in range(5):
            previous_tokens = set(price_set.usd_prices())
            price_set = engine.step(price_set).price_set
            assert previous_tokens <= set(price_set.usd_prices())
            sizes.append(len(price_set))
        assert sizes == sorted(sizes)
        assert sizes[-1] == 4


class TestRun:
    """Test full runs and their diagnostics."""

    def test_single_pool_converges_at_second_iteration(
        self, single_pool_graph, anchor, anchor_price
    ):
        result = PriceIterationEngine(single_pool_graph, anchor).run(anchor_price)

        prices = result.price_map()
        assert prices[anchor] == anchor_price
        assert prices["B"] == pytest.approx(2.0)
        assert result.diagnostics.iterations_to_converge == 2
        assert result.diagnostics.converged
        assert result.diagnostics.status == STATUS_CONVERGED
        assert result.diagnostics.final_convergence_percent == 0.0
        assert result.diagnostics.tokens_discovered == 1

    def test_chain_needs_one_iteration_per_hop(self, chain_graph, anchor, anchor_price):
        result = PriceIterationEngine(chain_graph, anchor).run(anchor_price)

        prices = result.price_map()
        assert result.diagnostics.iterations_to_converge == 4
        assert prices["B"] == pytest.approx(2.0)
        assert prices["C"] == pytest.approx(0.5)
        assert prices["D"] == pytest.approx(50.0)
        assert result.diagnostics.tokens_discovered == 3

    def test_isolated_token_never_priced(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((
            make_pool("pool-ab", anchor, 1, "B", 50_000),
            make_pool("pool-xy", "X", 1_000, "Y", 1_000),
        ))
        result = PriceIterationEngine(graph, anchor).run(anchor_price)
        assert "X" not in result.price_map()
        assert "Y" not in result.price_map()
        assert result.diagnostics.converged

    def test_zero_reserve_pool_contributes_nothing(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((make_pool("pool-ab", anchor, 0, "B", 50_000),))
        result = PriceIterationEngine(graph, anchor).run(anchor_price)
        assert set(result.price_map()) == {anchor}
        assert result.diagnostics.iterations_to_converge == 1

    def test_weighted_across_pools(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((
            make_pool("pool-1", anchor, 1, "B", 50_000),
            make_pool("pool-2", anchor, 2, "B", 50_000),
        ))
        result = PriceIterationEngine(graph, anchor).run(anchor_price)
        assert result.price_map()["B"] == pytest.approx(10.0 / 3.0)

    def test_anchor_is_invariant(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((
            make_pool("pool-ab", anchor, 1, "B", 50_000),
            make_pool("pool-ba", "B", 1, anchor, 1),
        ))
        result = PriceIterationEngine(graph, anchor).run(
            anchor_price, prior_prices={anchor: 1.0, "B": 3.0}
        )
        anchor_record = next(p for p in result.prices if p.token_id == anchor)
        assert anchor_record.usd_price == anchor_price
        assert anchor_record.anchor_relative_price == 1.0
        assert anchor_record.price_source == PRICE_SOURCE_ANCHOR

    def test_prices_are_positive_and_finite(self, chain_graph, anchor, anchor_price):
        result = PriceIterationEngine(chain_graph, anchor).run(anchor_price)
        for price in result.prices:
            assert math.isfinite(price.usd_price) and price.usd_price > 0
            assert math.isfinite(price.anchor_relative_price) and price.anchor_relative_price > 0
            assert price.anchor_relative_price == pytest.approx(price.usd_price / anchor_price)

    def test_runs_are_deterministic(self, chain_graph, anchor, anchor_price):
        engine = PriceIterationEngine(chain_graph, anchor)
        first = engine.run(anchor_price)
        second = engine.run(anchor_price)
        assert first.price_map() == second.price_map()
        assert first.diagnostics.iterations_to_converge == second.diagnostics.iterations_to_converge
        assert [p.token_id for p in first.prices] == [p.token_id for p in second.prices]

    def test_exhausted_run_reports_cap(self, chain_graph, anchor, anchor_price):
        result = PriceIterationEngine(chain_graph, anchor, max_iterations=2).run(anchor_price)

        diagnostics = result.diagnostics
        assert not diagnostics.converged
        assert diagnostics.status == STATUS_EXHAUSTED
        assert diagnostics.iterations_to_converge == 2
        assert diagnostics.new_tokens_last_iteration == 1
        assert diagnostics.final_convergence_percent == 0.0
        assert "C" in result.price_map()
        assert "D" not in result.price_map()

    def test_empty_graph_returns_anchor_only(self, anchor, anchor_price):
        result = PriceIterationEngine(PoolGraph(), anchor).run(
            anchor_price, prior_prices={"B": 2.0}
        )
        assert result.price_map() == {anchor: anchor_price}
        assert result.diagnostics.iterations_to_converge == 0
        assert result.diagnostics.status == STATUS_EMPTY
        assert result.diagnostics.converged

    @pytest.mark.parametrize("bad_price", [None, 0, -1.0, float("nan"), float("inf"), "abc"])
    def test_invalid_anchor_price_raises(self, single_pool_graph, anchor, bad_price):
        engine = PriceIterationEngine(single_pool_graph, anchor)
        with pytest.raises(MissingAnchorPriceError):
            engine.run(bad_price)

    def test_rejects_zero_iteration_cap(self, single_pool_graph, anchor):
        with pytest.raises(ValueError):
            PriceIterationEngine(single_pool_graph, anchor, max_iterations=0)

    def test_rows_carry_run_diagnostics(self, single_pool_graph, anchor, anchor_price):
        result = PriceIterationEngine(single_pool_graph, anchor).run(anchor_price)
        rows = result.to_rows()
        assert len(rows) == 2
        for row in rows:
            assert row["iterations_to_converge"] == 2
            assert row["calculated_at"] == result.calculated_at
        sources = {row["token_id"]: row["price_source"] for row in rows}
        assert sources == {anchor: PRICE_SOURCE_ANCHOR, "B": PRICE_SOURCE_TVL}


class TestPriorPrices:
    """Test seeding from previously persisted prices."""

    def test_prior_price_is_rederived(self, single_pool_graph, anchor, anchor_price):
        result = PriceIterationEngine(single_pool_graph, anchor).run(
            anchor_price, prior_prices={"B": 1.5}
        )
        record = next(p for p in result.prices if p.token_id == "B")
        assert record.usd_price == pytest.approx(2.0)
        assert record.price_source == PRICE_SOURCE_TVL
        assert result.diagnostics.iterations_to_converge == 2

    def test_prior_price_without_pool_is_dropped(self, single_pool_graph, anchor, anchor_price):
        result = PriceIterationEngine(single_pool_graph, anchor).run(
            anchor_price, prior_prices={"Z": 7.0}
        )
        assert "Z" not in result.price_map()
        assert set(result.price_map()) == {anchor, "B"}

    def test_unreachable_pool_token_is_carried_forward(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((
            make_pool("pool-ab", anchor, 1, "B", 50_000),
            make_pool("pool-zy", "Z", 10, "Y", 10),
        ))
        result = PriceIterationEngine(graph, anchor).run(anchor_price, prior_prices={"Z": 7.0})

        record = next(p for p in result.prices if p.token_id == "Z")
        assert record.usd_price == 7.0
        assert record.price_source == PRICE_SOURCE_CARRIED
        assert result.diagnostics.tokens_discovered == 1

    def test_seed_keeps_only_pool_tokens(self, single_pool_graph, anchor, anchor_price):
        price_set = PriceIterationEngine(single_pool_graph, anchor).seed(
            anchor_price, prior_prices={"B": 1.5, "Z": 7.0}
        )
        assert "B" in price_set
        assert "Z" not in price_set

    def test_carried_price_is_not_a_known_leg(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((
            make_pool("pool-ab", anchor, 1, "B", 50_000),
            make_pool("pool-zy", "Z", 10, "Y", 10),
        ))
        result = PriceIterationEngine(graph, anchor).run(anchor_price, prior_prices={"Z": 7.0})
        assert "Y" not in result.price_map()

    def test_invalid_prior_prices_ignored(self, make_pool, anchor, anchor_price):
        graph = PoolGraph((
            make_pool("pool-ab", anchor, 1, "B", 50_000),
            make_pool("pool-zw", "Z", 10, "W", 10),
        ))
        result = PriceIterationEngine(graph, anchor).run(
            anchor_price, prior_prices={"Z": 0.0, "W": float("nan")}
        )
        assert set(result.price_map()) == {anchor, "B"}


class TestFinalize:

    def test_invalid_records_dropped(self, anchor, anchor_price):
        price_set = PriceSet(anchor, anchor_price).merge({"B": 2.0, "X": float("nan")})
        valid, dropped = price_set.finalize()
        assert [p.token_id for p in valid] == [anchor, "B"]
        assert dropped == ["X"]
