"""Data types and exceptions for the Craftcloud quote pipeline.

A price computation returns quotes (what a vendor charges to produce the
part) and shippings (how that vendor can deliver it) as two flat lists.
The two are joined on ``vendorId`` into :class:`Option` records, from
which the cheapest and fastest are picked.

Workflow::

    1. upload_model(mesh bytes)      -> modelId
    2. create_price_request(modelId) -> priceId
    3. get_price(priceId)            -> PriceComputation (poll until all_complete)
    4. select_options(computation)   -> QuoteSelection (cheapest, fastest)
    5. create_cart_and_offer(option) -> CheckoutLink
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

_LEADING_DIGITS = re.compile(r"\s*(\d+)")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class FulfillmentError(Exception):
    """Base exception for quote and checkout errors.

    ``retryable`` marks failures worth repeating the whole quote pipeline
    for (network trouble, timeouts); requests the service rejected are not.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class UploadError(FulfillmentError):
    """Raised when the mesh cannot be fetched or uploaded."""


class PriceTimeoutError(FulfillmentError):
    """Raised when a price computation is still incomplete after the last poll."""

    def __init__(self, message: str = "Price calculation timed out", *, code: str | None = "PRICE_POLL_TIMEOUT") -> None:
        super().__init__(message, code=code, retryable=True)


class QuoteRetriesExhaustedError(FulfillmentError):
    """Raised when every pipeline attempt ended in a retryable failure."""

    def __init__(self, message: str, *, attempts: int, errors: list[str]) -> None:
        super().__init__(message, code="RETRIES_EXHAUSTED", retryable=False)
        self.attempts = attempts
        self.errors = errors


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _to_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> int | None:
    number = _to_float(value)
    return int(number) if number is not None else None


def _gross_price(data: dict[str, Any]) -> float | None:
    """Tax-inclusive price, falling back to the plain price field."""
    price = _to_float(data.get("priceInclVat"))
    if price is None:
        price = _to_float(data.get("price"))
    return price


def upper_bound_days(delivery_time: Any) -> int | None:
    """Return the upper end of a ``"min-max"`` day range (``"3-7"`` -> 7).

    A single number (``"4"``) is its own upper bound and trailing text is
    ignored (``"3-7 days"`` -> 7).  Anything without a parseable upper end
    returns ``None``.
    """
    if isinstance(delivery_time, (int, float)) and not isinstance(delivery_time, bool):
        return int(delivery_time)
    if not isinstance(delivery_time, str) or not delivery_time.strip():
        return None
    match = _LEADING_DIGITS.match(delivery_time.split("-")[-1])
    return int(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class Quote:
    """A vendor's price to produce the model."""

    quote_id: str
    vendor_id: str
    price: float
    production_time_slow: int
    production_time_fast: int | None = None
    model_id: str = ""
    material_config_id: str = ""
    quantity: int = 1
    scale: float = 1.0
    currency: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Quote | None":
        """Build from a ``quotes[]`` entry; ``None`` if price or time is missing."""
        price = _gross_price(data)
        slow = _to_int(data.get("productionTimeSlow"))
        vendor_id = data.get("vendorId")
        if price is None or slow is None or not vendor_id:
            return None
        return cls(
            quote_id=str(data.get("quoteId", "")),
            vendor_id=str(vendor_id),
            price=price,
            production_time_slow=slow,
            production_time_fast=_to_int(data.get("productionTimeFast")),
            model_id=str(data.get("modelId", "")),
            material_config_id=str(data.get("materialConfigId", "")),
            quantity=_to_int(data.get("quantity")) or 1,
            scale=_to_float(data.get("scale")) or 1.0,
            currency=str(data.get("currency", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class Shipping:
    """A vendor's shipping method."""

    shipping_id: str
    vendor_id: str
    price: float
    delivery_time: str
    name: str = ""
    currency: str = ""
    type: str = ""
    carrier: str = ""

    @property
    def max_delivery_days(self) -> int | None:
        return upper_bound_days(self.delivery_time)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Shipping | None":
        """Build from a ``shippings[]`` entry; ``None`` if the price is missing."""
        price = _gross_price(data)
        vendor_id = data.get("vendorId")
        if price is None or not vendor_id:
            return None
        return cls(
            shipping_id=str(data.get("shippingId", "")),
            vendor_id=str(vendor_id),
            price=price,
            delivery_time=str(data.get("deliveryTime", "")),
            name=str(data.get("name", "")),
            currency=str(data.get("currency", "")),
            type=str(data.get("type", "")),
            carrier=str(data.get("carrier", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["max_delivery_days"] = self.max_delivery_days
        return data


@dataclass
class PriceComputation:
    """A price computation as returned by ``GET /price/{priceId}``."""

    price_id: str
    all_complete: bool
    quotes: list[Quote] = field(default_factory=list)
    shippings: list[Shipping] = field(default_factory=list)
    minimum_production_price: dict[str, float] = field(default_factory=dict)
    vendor_complete: dict[str, bool] = field(default_factory=dict)
    expires_at: float | None = None

    @classmethod
    def from_api(cls, price_id: str, data: dict[str, Any]) -> "PriceComputation":
        quotes: list[Quote] = []
        for raw in data.get("quotes") or []:
            quote = Quote.from_api(raw) if isinstance(raw, dict) else None
            if quote is None:
                logger.debug("Skipping unusable quote entry in %s: %r", price_id, raw)
                continue
            quotes.append(quote)

        shippings: list[Shipping] = []
        for raw in data.get("shippings") or []:
            shipping = Shipping.from_api(raw) if isinstance(raw, dict) else None
            if shipping is None:
                logger.debug("Skipping unusable shipping entry in %s: %r", price_id, raw)
                continue
            shippings.append(shipping)

        minimums: dict[str, float] = {}
        raw_minimums = data.get("minimumProductionPrice")
        if isinstance(raw_minimums, dict):
            for vendor_id, entry in raw_minimums.items():
                value = _gross_price(entry) if isinstance(entry, dict) else _to_float(entry)
                if value is not None:
                    minimums[str(vendor_id)] = value

        vendor_complete: dict[str, bool] = {}
        raw_complete = data.get("printingServiceComplete")
        if isinstance(raw_complete, dict):
            vendor_complete = {str(k): bool(v) for k, v in raw_complete.items()}

        expires_at = _to_float(data.get("expiresAt"))
        # Craftcloud sends milliseconds; convert to seconds.
        if expires_at and expires_at > 1e12:
            expires_at = expires_at / 1000.0

        return cls(
            price_id=price_id,
            all_complete=bool(data.get("allComplete", False)),
            quotes=quotes,
            shippings=shippings,
            minimum_production_price=minimums,
            vendor_complete=vendor_complete,
            expires_at=expires_at,
        )


@dataclass
class Option:
    """A quote and a shipping method from the same vendor."""

    quote: Quote
    shipping: Shipping
    total_cost: float
    total_time: int

    @property
    def vendor_id(self) -> str:
        return self.quote.vendor_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "total_cost": self.total_cost,
            "total_time": self.total_time,
            "quote": self.quote.to_dict(),
            "shipping": self.shipping.to_dict(),
        }


@dataclass
class QuoteSelection:
    """Cheapest and fastest options of one price computation."""

    cheapest_option: Option | None
    fastest_option: Option | None
    price_id: str = ""
    currency: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "price_id": self.price_id,
            "currency": self.currency,
            "cheapest_option": self.cheapest_option.to_dict() if self.cheapest_option else None,
            "fastest_option": self.fastest_option.to_dict() if self.fastest_option else None,
        }


@dataclass
class CheckoutLink:
    """A Craftcloud cart with a shareable offer."""

    cart_id: str
    offer_id: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
