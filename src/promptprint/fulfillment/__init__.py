"""Manufacturing quotes and checkout through Craftcloud.

Re-exports the public API so consumers can write::

    from promptprint.fulfillment import CraftcloudClient, QuoteSelection
"""

from __future__ import annotations

from promptprint.fulfillment.base import (
    CheckoutLink,
    FulfillmentError,
    Option,
    PriceComputation,
    PriceTimeoutError,
    Quote,
    QuoteRetriesExhaustedError,
    QuoteSelection,
    Shipping,
    UploadError,
    upper_bound_days,
)
from promptprint.fulfillment.craftcloud import CraftcloudClient
from promptprint.fulfillment.selection import iter_options, select_options

__all__ = [
    "CheckoutLink",
    "CraftcloudClient",
    "FulfillmentError",
    "Option",
    "PriceComputation",
    "PriceTimeoutError",
    "Quote",
    "QuoteRetriesExhaustedError",
    "QuoteSelection",
    "Shipping",
    "UploadError",
    "iter_options",
    "select_options",
    "upper_bound_days",
]
