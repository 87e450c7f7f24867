"""
TVL-weighted aggregation of per-pool candidate prices.
"""

from typing import Dict, Iterable

from .types import PoolContribution


def aggregate_contributions(contributions: Iterable[PoolContribution]) -> Dict[str, float]:
    """
    Collapse candidate prices into one liquidity-weighted price per token.

        usd_price = sum(candidate_price * weight) / sum(weight)

    Tokens whose total weight is not positive are dropped.

    Args:
        contributions: Pool contributions for one iteration

    Returns:
        Dict of token_id -> weighted USD price, in first-seen order
    """
    weighted_sums: Dict[str, float] = {}
    total_weights: Dict[str, float] = {}

    for contribution in contributions:
        token_id = contribution.token_id
        weighted_sums[token_id] = (
            weighted_sums.get(token_id, 0.0) + contribution.candidate_price * contribution.weight
        )
        total_weights[token_id] = total_weights.get(token_id, 0.0) + contribution.weight

    return {
        token_id: weighted_sums[token_id] / total_weight
        for token_id, total_weight in total_weights.items()
        if total_weight > 0
    }
