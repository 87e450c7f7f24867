"""
Core types for TVL-weighted price discovery.

Domain models shared by the calculator, aggregator, engine and storage
backends for representing pools, prices and run diagnostics.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from .errors import MissingAnchorPriceError

PRICE_SOURCE_ANCHOR = "anchor"
PRICE_SOURCE_TVL = "tvl_weighted_iteration"
PRICE_SOURCE_CARRIED = "carried_forward"

STATUS_CONVERGED = "converged"
STATUS_EXHAUSTED = "exhausted"
STATUS_EMPTY = "empty"


def is_valid_price(value: Optional[float]) -> bool:
    """True for finite, strictly positive prices."""
    return value is not None and math.isfinite(value) and value > 0


@dataclass(frozen=True)
class PoolLeg:
    """
    One side of a constant-product pool.

    Attributes:
        token_id: Token contract identifier
        raw_reserve: Reserve in atomic units
        decimals: Token decimals used to normalize the reserve
    """

    token_id: str
    raw_reserve: int
    decimals: int

    def __post_init__(self):
        if not self.token_id:
            raise ValueError("Pool leg token_id must not be empty")
        if self.raw_reserve < 0:
            raise ValueError(f"Negative reserve for {self.token_id}: {self.raw_reserve}")
        if self.decimals < 0:
            raise ValueError(f"Negative decimals for {self.token_id}: {self.decimals}")

    @property
    def normalized_reserve(self) -> float:
        """Reserve in whole token units, inf when too large for a float."""
        try:
            return self.raw_reserve / (10 ** self.decimals)
        except OverflowError:
            return math.inf


@dataclass(frozen=True)
class Pool:
    """
    Constant-product liquidity pool snapshot.

    Attributes:
        pool_id: Pool contract identifier
        leg_a: First token leg
        leg_b: Second token leg
    """

    pool_id: str
    leg_a: PoolLeg
    leg_b: PoolLeg

    @property
    def token_ids(self) -> Tuple[str, str]:
        return self.leg_a.token_id, self.leg_b.token_id

    @classmethod
    def from_row(cls, row: Mapping[str, Any], default_decimals: int = 6) -> "Pool":
        """
        Build a pool from a pool graph source row.

        Missing decimals fall back to default_decimals.
        """

        def decimals(key: str) -> int:
            value = row.get(key)
            return default_decimals if value is None else int(value)

        return cls(
            pool_id=str(row["pool_id"]),
            leg_a=PoolLeg(
                token_id=row["leg_a_token_id"],
                raw_reserve=int(row["leg_a_raw_reserve"]),
                decimals=decimals("leg_a_decimals"),
            ),
            leg_b=PoolLeg(
                token_id=row["leg_b_token_id"],
                raw_reserve=int(row["leg_b_raw_reserve"]),
                decimals=decimals("leg_b_decimals"),
            ),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "pool_id": self.pool_id,
            "leg_a_token_id": self.leg_a.token_id,
            "leg_a_raw_reserve": self.leg_a.raw_reserve,
            "leg_a_decimals": self.leg_a.decimals,
            "leg_b_token_id": self.leg_b.token_id,
            "leg_b_raw_reserve": self.leg_b.raw_reserve,
            "leg_b_decimals": self.leg_b.decimals,
        }


@dataclass(frozen=True)
class PoolGraph:
    """Immutable point-in-time snapshot of every eligible pool."""

    pools: Tuple[Pool, ...] = ()

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]], default_decimals: int = 6) -> "PoolGraph":
        return cls(tuple(Pool.from_row(row, default_decimals) for row in rows))

    def tokens(self) -> Set[str]:
        """All token ids referenced by any pool."""
        return {token_id for pool in self.pools for token_id in pool.token_ids}

    def __len__(self) -> int:
        return len(self.pools)

    def __iter__(self) -> Iterator[Pool]:
        return iter(self.pools)


@dataclass(frozen=True)
class TokenPrice:
    """
    A token's inferred value at a point in the run.

    Attributes:
        token_id: Token contract identifier
        usd_price: Price in USD
        anchor_relative_price: usd_price divided by the anchor's USD price
        price_source: anchor, tvl_weighted_iteration or carried_forward
    """

    token_id: str
    usd_price: float
    anchor_relative_price: float
    price_source: str = PRICE_SOURCE_TVL

    @property
    def is_valid(self) -> bool:
        return is_valid_price(self.usd_price) and is_valid_price(self.anchor_relative_price)


@dataclass(frozen=True)
class PoolContribution:
    """Candidate price for one token from one pool, weighted by the pool's TVL."""

    token_id: str
    candidate_price: float
    weight: float
    pool_id: str = ""


class PriceSet:
    """
    Working price table for one run.

    The anchor price is fixed at construction. Tokens derived during the
    run are "resolved" and may be used as known legs; prices carried over
    from a previous run are kept but are not resolved until re-derived.
    Records are never removed.
    """

    def __init__(
        self,
        anchor_token_id: str,
        anchor_usd_price: float,
        records: Optional[Dict[str, TokenPrice]] = None,
    ):
        if not anchor_token_id:
            raise ValueError("anchor_token_id must not be empty")
        if anchor_usd_price is None:
            raise MissingAnchorPriceError(anchor_token_id)
        try:
            anchor_usd_price = float(anchor_usd_price)
        except (TypeError, ValueError):
            raise MissingAnchorPriceError(anchor_token_id, anchor_usd_price)
        if not is_valid_price(anchor_usd_price):
            raise MissingAnchorPriceError(anchor_token_id, anchor_usd_price)

        self.anchor_token_id = anchor_token_id
        self.anchor_usd_price = anchor_usd_price
        self._records: Dict[str, TokenPrice] = {
            anchor_token_id: TokenPrice(
                token_id=anchor_token_id,
                usd_price=anchor_usd_price,
                anchor_relative_price=1.0,
                price_source=PRICE_SOURCE_ANCHOR,
            )
        }
        for token_id, record in (records or {}).items():
            if token_id != anchor_token_id:
                self._records[token_id] = record

    @classmethod
    def seed(
        cls,
        anchor_token_id: str,
        anchor_usd_price: float,
        prior_prices: Optional[Mapping[str, float]] = None,
    ) -> "PriceSet":
        """
        Build the iteration 0 price set.

        Prior prices that are not valid, or that name the anchor, are ignored.
        """
        price_set = cls(anchor_token_id, anchor_usd_price)
        for token_id, usd_price in (prior_prices or {}).items():
            if token_id == anchor_token_id or not is_valid_price(usd_price):
                continue
            price_set._records[token_id] = price_set._make_record(
                token_id, float(usd_price), PRICE_SOURCE_CARRIED
            )
        return price_set

    def _make_record(self, token_id: str, usd_price: float, source: str) -> TokenPrice:
        return TokenPrice(
            token_id=token_id,
            usd_price=usd_price,
            anchor_relative_price=usd_price / self.anchor_usd_price,
            price_source=source,
        )

    def merge(self, aggregated: Mapping[str, float]) -> "PriceSet":
        """
        Return a new price set with aggregated prices applied.

        Aggregated tokens are overwritten, every other record is carried
        forward unchanged, and the anchor is never touched.
        """
        merged = PriceSet(self.anchor_token_id, self.anchor_usd_price, self._records)
        for token_id, usd_price in aggregated.items():
            if token_id == self.anchor_token_id:
                continue
            merged._records[token_id] = merged._make_record(token_id, usd_price, PRICE_SOURCE_TVL)
        return merged

    def get(self, token_id: str) -> Optional[TokenPrice]:
        return self._records.get(token_id)

    def known_price(self, token_id: str) -> Optional[float]:
        """USD price of a resolved token, or None."""
        record = self._records.get(token_id)
        if record is None or record.price_source == PRICE_SOURCE_CARRIED:
            return None
        return record.usd_price

    def known_prices(self) -> Dict[str, float]:
        """USD prices of the anchor and every token derived this run."""
        return {
            token_id: record.usd_price
            for token_id, record in self._records.items()
            if record.price_source != PRICE_SOURCE_CARRIED
        }

    def usd_prices(self) -> Dict[str, float]:
        return {token_id: record.usd_price for token_id, record in self._records.items()}

    @property
    def resolved_count(self) -> int:
        return sum(
            1 for record in self._records.values() if record.price_source != PRICE_SOURCE_CARRIED
        )

    def records(self) -> List[TokenPrice]:
        return list(self._records.values())

    def finalize(self) -> Tuple[List[TokenPrice], List[str]]:
        """
        Split records into valid prices and dropped token ids.

        Tokens whose usd or anchor-relative price is non-finite or
        non-positive are dropped.
        """
        valid, dropped = [], []
        for record in self._records.values():
            if record.is_valid:
                valid.append(record)
            else:
                dropped.append(record.token_id)
        return valid, dropped

    def __contains__(self, token_id: object) -> bool:
        return token_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"PriceSet(anchor={self.anchor_token_id}, tokens={len(self)}, "
            f"resolved={self.resolved_count})"
        )


@dataclass(frozen=True)
class ConvergenceCheck:
    """Outcome of comparing two consecutive price sets."""

    converged: bool
    average_relative_change: float
    compared_tokens: int = 0

    @property
    def percent(self) -> float:
        return self.average_relative_change * 100


@dataclass
class RunDiagnostics:
    """
    Diagnostics recorded with every persisted price.

    Attributes:
        iterations_to_converge: Iteration that converged, the cap when
            exhausted, 0 for an empty pool graph
        final_convergence_percent: Last measured average relative change, in percent
        converged: Whether the tolerance criterion was met
        status: converged, exhausted or empty
        tokens_discovered: Tokens resolved by the run, excluding the anchor
        new_tokens_last_iteration: Tokens first resolved in the final iteration
        pool_count: Pools in the snapshot
        dropped_tokens: Tokens removed by final validation
    """

    iterations_to_converge: int
    final_convergence_percent: float
    converged: bool
    status: str
    tokens_discovered: int = 0
    new_tokens_last_iteration: int = 0
    pool_count: int = 0
    dropped_tokens: List[str] = field(default_factory=list)


@dataclass
class PriceRunResult:
    """Final price set and diagnostics for one run."""

    prices: List[TokenPrice]
    diagnostics: RunDiagnostics
    calculated_at: datetime
    duration_seconds: float = 0.0

    def price_map(self) -> Dict[str, float]:
        return {price.token_id: price.usd_price for price in self.prices}

    def to_rows(self) -> List[Dict[str, Any]]:
        """Rows for the append-only result sink, one per token."""
        return [
            {
                "token_id": price.token_id,
                "usd_price": price.usd_price,
                "anchor_relative_price": price.anchor_relative_price,
                "price_source": price.price_source,
                "iterations_to_converge": self.diagnostics.iterations_to_converge,
                "final_convergence_percent": self.diagnostics.final_convergence_percent,
                "calculated_at": self.calculated_at,
            }
            for price in self.prices
        ]
