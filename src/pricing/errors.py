"""
Exceptions raised by the price discovery engine.
"""


class PricingError(Exception):
    """Base exception for price discovery errors."""
    pass


class MissingAnchorPriceError(PricingError):
    """Raised when the anchor token has no usable USD price."""

    def __init__(self, anchor_token_id: str, value=None):
        self.anchor_token_id = anchor_token_id
        self.value = value
        if value is None:
            message = f"No anchor price available for {anchor_token_id}"
        else:
            message = f"Invalid anchor price for {anchor_token_id}: {value!r}"
        super().__init__(message)
