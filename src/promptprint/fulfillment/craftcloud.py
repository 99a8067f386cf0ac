"""Craftcloud by All3DP quote client.

Uses the `Craftcloud v5 API <https://api.craftcloud3d.com/docs>`_, a 3D
printing price comparison service that aggregates quotes from many print
vendors.  :meth:`CraftcloudClient.get_quote` runs the whole flow:

1. Fetch the mesh and upload it → ``POST /v5/model``
2. Request prices → ``POST /v5/price`` (async)
3. Poll prices → ``GET /v5/price/{priceId}`` until ``allComplete`` is true
4. Pair quotes with shippings per vendor and pick cheapest and fastest

Steps 1-3 run again from scratch (fresh upload, fresh price request) when
any of them fails with a retryable error.  Each price poll is raced
against ``price_poll_timeout``; a poll that loses the race uses up one
attempt and the next poll starts right away.

Checkout creates a cart (``POST /v5/cart``) and a shareable offer
(``POST /v5/offer``) for a chosen option; payment happens on
craftcloud3d.com.

Environment variables
---------------------
``PROMPTPRINT_CRAFTCLOUD_API_KEY``
    Optional partner API key, sent as ``X-API-Key``.
``PROMPTPRINT_CRAFTCLOUD_BASE_URL``
    Base URL of the v5 API (read by :func:`promptprint.config.load_settings`).
"""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable
from urllib.parse import quote as url_quote

from promptprint.config import SUPPORTED_CURRENCIES, CraftcloudSettings
from promptprint.fulfillment.base import (
    CheckoutLink,
    FulfillmentError,
    Option,
    PriceComputation,
    PriceTimeoutError,
    QuoteRetriesExhaustedError,
    QuoteSelection,
    UploadError,
)
from promptprint.fulfillment.selection import select_options
from promptprint.transport import AttemptTimeout, HttpTransport, TransportError, call_with_timeout

logger = logging.getLogger(__name__)


class CraftcloudClient:
    """Quote and checkout client for the Craftcloud v5 API.

    Args:
        api_key: Optional Craftcloud API key.  Falls back to
            ``settings.api_key`` and then ``PROMPTPRINT_CRAFTCLOUD_API_KEY``.
        settings: Endpoints, defaults and the poll/retry budget.
        transport: HTTP transport; a fresh :class:`HttpTransport` by default.
        sleep: Called with the delay between polls and between retries.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        settings: CraftcloudSettings | None = None,
        transport: Any | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or CraftcloudSettings()
        self._api_key = (
            api_key
            or self._settings.api_key
            or os.environ.get("PROMPTPRINT_CRAFTCLOUD_API_KEY", "")
        ).strip()
        self._base_url = self._settings.base_url.rstrip("/")
        self._transport = transport or HttpTransport(timeout=self._settings.request_timeout)
        self._sleep = sleep

        self._headers = {"Accept": "application/json"}
        if self._api_key:
            self._headers["X-API-Key"] = self._api_key

    @property
    def name(self) -> str:
        return "craftcloud"

    @property
    def display_name(self) -> str:
        return "Craftcloud by All3DP"

    # -- HTTP layer ----------------------------------------------------------

    def _call(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        timeout: float | None = None,
    ) -> Any:
        """JSON request against the v5 API with errors mapped to :class:`FulfillmentError`."""
        try:
            return self._transport.request_json(
                method,
                f"{self._base_url}{path}",
                json=json,
                headers=self._headers,
                timeout=timeout,
            )
        except TransportError as exc:
            raise FulfillmentError(
                f"Craftcloud {method} {path} failed: {exc}",
                code=exc.code,
                retryable=exc.retryable,
            ) from exc

    # -- v5 upload -----------------------------------------------------------

    def upload_model(
        self,
        content: bytes,
        *,
        filename: str | None = None,
        unit: str | None = None,
        refresh: bool = False,
    ) -> str:
        """Upload mesh bytes and return the first ``modelId``.

        Raises:
            UploadError: If the upload fails or the response has no model ID.
        """
        filename = filename or self._settings.upload_filename
        try:
            result = self._transport.upload(
                f"{self._base_url}/model",
                files={"file": (filename, content, "application/octet-stream")},
                data={
                    "unit": unit or self._settings.upload_unit,
                    "refresh": "true" if refresh else "false",
                },
                headers=self._headers,
            )
        except TransportError as exc:
            raise UploadError(
                f"Craftcloud model upload failed: {exc}",
                code=exc.code or "UPLOAD_ERROR",
                retryable=exc.retryable,
            ) from exc

        # Response is an array of model objects.
        models = result if isinstance(result, list) else None
        if not models or not isinstance(models[0], dict):
            raise UploadError(
                "Craftcloud model upload returned no models.",
                code="UPLOAD_ERROR",
                retryable=True,
            )

        model_id = models[0].get("modelId")
        if not model_id:
            raise UploadError(
                f"Craftcloud model upload response missing modelId. Keys: {list(models[0].keys())}",
                code="UPLOAD_ERROR",
                retryable=True,
            )
        return str(model_id)

    def upload_model_from_url(self, model_url: str) -> str:
        """Download the mesh at *model_url* and upload it as a file."""
        try:
            content = self._transport.fetch_bytes(model_url)
        except TransportError as exc:
            raise UploadError(
                f"Could not fetch model from {model_url}: {exc}",
                code=exc.code or "FETCH_ERROR",
                retryable=exc.retryable,
            ) from exc
        if not content:
            raise UploadError(
                f"Model download from {model_url} was empty.",
                code="EMPTY_MODEL",
                retryable=True,
            )
        logger.debug("Fetched %d bytes from %s", len(content), model_url)
        return self.upload_model(content)

    # -- v5 pricing ----------------------------------------------------------

    def create_price_request(
        self,
        model_id: str,
        *,
        country_code: str,
        currency: str,
        material_config_ids: list[str],
        quantity: int = 1,
        scale: float = 1,
    ) -> str:
        """Start a price computation and return its ``priceId``."""
        payload: dict[str, Any] = {
            "currency": currency,
            "countryCode": country_code,
            "models": [
                {
                    "modelId": model_id,
                    "quantity": quantity,
                    "scale": scale,
                },
            ],
            "materialConfigIds": material_config_ids,
        }
        response = self._call("POST", "/price", json=payload)
        price_id = response.get("priceId") if isinstance(response, dict) else None
        if not price_id:
            raise FulfillmentError(
                f"Craftcloud price request did not return a priceId. Response: {response}",
                code="PRICE_REQUEST_ERROR",
                retryable=True,
            )
        return str(price_id)

    def get_price(self, price_id: str, *, timeout: float | None = None) -> PriceComputation:
        """Read the current state of a price computation.

        *timeout* caps the socket timeout of this one request.
        """
        data = self._call("GET", f"/price/{url_quote(str(price_id), safe='')}", timeout=timeout)
        if not isinstance(data, dict):
            raise FulfillmentError(
                f"Unexpected price poll response type: {type(data).__name__}",
                code="INVALID_RESPONSE",
                retryable=True,
            )
        return PriceComputation.from_api(price_id, data)

    def poll_price(self, price_id: str) -> PriceComputation:
        """Poll until the computation is complete or the attempt budget runs out.

        Each poll is a request whose socket timeout matches the race
        deadline, so a poll that loses the race ends on its own shortly after.

        Raises:
            FulfillmentError: If ``max_price_poll_attempts`` is below 1.
            PriceTimeoutError: If no poll saw ``allComplete`` within
                ``max_price_poll_attempts`` attempts.
        """
        max_attempts = self._settings.max_price_poll_attempts
        if max_attempts < 1:
            raise FulfillmentError(
                f"max_price_poll_attempts must be at least 1, got {max_attempts}.",
                code="INVALID_REQUEST",
            )
        timeout = self._settings.price_poll_timeout
        socket_timeout = min(timeout, self._settings.request_timeout)
        # One worker per attempt so an abandoned poll never delays the next.
        executor = ThreadPoolExecutor(max_workers=max_attempts, thread_name_prefix="price-poll")
        try:
            for attempt in range(max_attempts):
                try:
                    computation = call_with_timeout(
                        lambda: self.get_price(price_id, timeout=socket_timeout),
                        timeout,
                        executor,
                    )
                except (AttemptTimeout, FulfillmentError) as exc:
                    if isinstance(exc, FulfillmentError) and exc.code != "TIMEOUT":
                        raise
                    logger.warning(
                        "Price poll for %s timed out after %gs (attempt %d/%d)",
                        price_id,
                        timeout,
                        attempt + 1,
                        max_attempts,
                    )
                    continue

                if computation.all_complete:
                    return computation

                logger.debug(
                    "Prices not complete for %s (attempt %d/%d)",
                    price_id,
                    attempt + 1,
                    max_attempts,
                )
                if attempt + 1 < max_attempts:
                    self._sleep(self._settings.price_poll_interval)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        raise PriceTimeoutError()

    # -- quote pipeline ------------------------------------------------------

    def get_quote(
        self,
        model_url: str,
        country_code: str,
        *,
        material_config_ids: list[str] | None = None,
        scale: float = 1,
        quantity: int = 1,
        currency: str | None = None,
    ) -> QuoteSelection:
        """Upload, price and pick the cheapest and fastest option for a mesh.

        Raises:
            FulfillmentError: On invalid input or a request the service
                rejected.  Not retried.
            QuoteRetriesExhaustedError: If every attempt failed with a
                retryable error.
        """
        currency = (currency or self._settings.default_currency).upper()
        country_code = (country_code or "").strip().upper()
        materials = list(material_config_ids or self._settings.default_material_config_ids)
        self._validate_quote_input(model_url, country_code, currency, scale, quantity)

        max_attempts = self._settings.max_quote_attempts
        if max_attempts < 1:
            raise FulfillmentError(
                f"max_quote_attempts must be at least 1, got {max_attempts}.",
                code="INVALID_REQUEST",
            )
        errors: list[str] = []

        for attempt in range(1, max_attempts + 1):
            try:
                model_id = self.upload_model_from_url(model_url)
                price_id = self.create_price_request(
                    model_id,
                    country_code=country_code,
                    currency=currency,
                    material_config_ids=materials,
                    quantity=quantity,
                    scale=scale,
                )
                logger.info("Price request %s started for model %s", price_id, model_id)
                computation = self.poll_price(price_id)
            except FulfillmentError as exc:
                if not exc.retryable:
                    logger.error("Quote failed on attempt %d: %s", attempt, exc)
                    raise
                errors.append(str(exc))
                logger.warning("Quote attempt %d/%d failed: %s", attempt, max_attempts, exc)
                if attempt < max_attempts:
                    self._sleep(self._settings.retry_delay)
                continue

            selection = select_options(computation, currency=currency)
            logger.info(
                "Quote %s complete: %d quotes, %d shippings",
                price_id,
                len(computation.quotes),
                len(computation.shippings),
            )
            return selection

        message = f"{errors[-1]} (failed after {max_attempts} attempts)"
        logger.error("Giving up on quote: %s", message)
        raise QuoteRetriesExhaustedError(message, attempts=max_attempts, errors=errors)

    @staticmethod
    def _validate_quote_input(
        model_url: str,
        country_code: str,
        currency: str,
        scale: float,
        quantity: int,
    ) -> None:
        if not model_url or not isinstance(model_url, str):
            raise FulfillmentError("A model URL is required.", code="INVALID_REQUEST")
        if len(country_code) != 2 or not country_code.isalpha():
            raise FulfillmentError(
                f"Country code must be a two-letter ISO code, got {country_code!r}.",
                code="INVALID_COUNTRY",
            )
        if currency not in SUPPORTED_CURRENCIES:
            raise FulfillmentError(
                f"Currency must be one of {', '.join(SUPPORTED_CURRENCIES)}, got {currency!r}.",
                code="INVALID_CURRENCY",
            )
        if scale <= 0:
            raise FulfillmentError(f"Scale must be positive, got {scale}.", code="INVALID_REQUEST")
        if quantity < 1:
            raise FulfillmentError(f"Quantity must be at least 1, got {quantity}.", code="INVALID_REQUEST")

    # -- v5 cart + offer -----------------------------------------------------

    def create_cart(self, option: Option, currency: str) -> str:
        """Create a cart holding the option's quote and shipping method."""
        payload: dict[str, Any] = {
            "quotes": [{"id": option.quote.quote_id}],
            "shippingIds": [option.shipping.shipping_id],
            "currency": currency,
        }
        result = self._call("POST", "/cart", json=payload)
        cart_id = result.get("cartId") if isinstance(result, dict) else None
        if not cart_id:
            raise FulfillmentError(
                "Craftcloud cart response missing cartId.",
                code="CART_ERROR",
            )
        return str(cart_id)

    def create_offer(self, cart_id: str, *, expires: bool = True) -> str:
        """Create a shareable offer for *cart_id* and return its ``offerId``."""
        result = self._call("POST", "/offer", json={"cartId": cart_id, "expires": expires})
        offer_id = result.get("offerId") if isinstance(result, dict) else None
        if not offer_id:
            raise FulfillmentError(
                "Craftcloud offer response missing offerId.",
                code="OFFER_ERROR",
            )
        return str(offer_id)

    def create_cart_and_offer(self, option: Option, currency: str) -> CheckoutLink:
        """Create a cart and offer for *option* and return the checkout link."""
        cart_id = self.create_cart(option, currency)
        offer_id = self.create_offer(cart_id)
        url = f"{self._settings.checkout_url}?cartId={url_quote(cart_id, safe='')}"
        logger.info("Created cart %s (offer %s) for vendor %s", cart_id, offer_id, option.vendor_id)
        return CheckoutLink(cart_id=cart_id, offer_id=offer_id, url=url)

    def __repr__(self) -> str:
        return f"<CraftcloudClient base_url={self._base_url!r}>"
