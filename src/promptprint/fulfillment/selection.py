"""Pair quotes with shippings and pick the cheapest and fastest option.

For every quote and every shipping of the same vendor::

    production_price = max(quote.price, minimum_production_price[vendor] or 0)
    total_cost       = production_price + shipping.price
    total_time       = quote.production_time_slow + upper bound of shipping.delivery_time

Pairs are generated quotes-outer, shippings-inner.  Both minimums use a
strict comparison, so on a tie the first pair generated wins.
"""

from __future__ import annotations

from typing import Iterator

from promptprint.fulfillment.base import (
    FulfillmentError,
    Option,
    PriceComputation,
    QuoteSelection,
)


def iter_options(computation: PriceComputation) -> Iterator[Option]:
    """Yield every vendor-consistent option in pair-generation order.

    Shippings whose delivery time has no parseable upper bound are skipped.
    """
    for quote in computation.quotes:
        minimum = computation.minimum_production_price.get(quote.vendor_id) or 0
        production_price = max(quote.price, minimum)
        for shipping in computation.shippings:
            if shipping.vendor_id != quote.vendor_id:
                continue
            max_days = shipping.max_delivery_days
            if max_days is None:
                continue
            yield Option(
                quote=quote,
                shipping=shipping,
                total_cost=production_price + shipping.price,
                total_time=quote.production_time_slow + max_days,
            )


def select_options(computation: PriceComputation, *, currency: str = "") -> QuoteSelection:
    """Return the cheapest and fastest option of a completed computation.

    Raises:
        FulfillmentError: If the computation is not complete yet.
    """
    if not computation.all_complete:
        raise FulfillmentError(
            f"Price computation {computation.price_id} is not complete yet.",
            code="PRICE_INCOMPLETE",
        )

    cheapest: Option | None = None
    fastest: Option | None = None
    for option in iter_options(computation):
        if cheapest is None or option.total_cost < cheapest.total_cost:
            cheapest = option
        if fastest is None or option.total_time < fastest.total_time:
            fastest = option

    return QuoteSelection(
        cheapest_option=cheapest,
        fastest_option=fastest,
        price_id=computation.price_id,
        currency=currency,
    )
