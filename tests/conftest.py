"""Shared fixtures for the promptprint test suite.

Provides zero-delay settings for both clients, sample Meshy and Craftcloud
payloads, and an autouse fixture that isolates tests from the developer's
environment variables and config file.
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest

from promptprint.config import CraftcloudSettings, MeshySettings

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MESHY_API_KEY = "msy_TESTKEY123"


@pytest.fixture(autouse=True)
def env_clean(monkeypatch, tmp_path):
    """Strip PROMPTPRINT_* variables and point the config at an empty path."""
    import os

    for key in list(os.environ):
        if key.startswith("PROMPTPRINT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PROMPTPRINT_CONFIG", str(tmp_path / "missing" / "config.yaml"))


@pytest.fixture()
def sleeps() -> List[float]:
    """Collects every delay a client asks for; pass ``sleeps.append`` as ``sleep``."""
    return []


@pytest.fixture()
def meshy_settings() -> MeshySettings:
    return MeshySettings(api_key=MESHY_API_KEY, poll_interval=5.0, max_poll_attempts=30)


@pytest.fixture()
def craftcloud_settings() -> CraftcloudSettings:
    return CraftcloudSettings(
        price_poll_interval=1.0,
        price_poll_timeout=2.0,
        max_price_poll_attempts=5,
        retry_delay=2.0,
        max_quote_attempts=3,
    )


# ---------------------------------------------------------------------------
# Craftcloud payloads
# ---------------------------------------------------------------------------


def _quote_payload(vendor: str, price: float, slow: int, **extra: Any) -> Dict[str, Any]:
    data = {
        "quoteId": f"q-{vendor}-{price}",
        "vendorId": vendor,
        "modelId": "m1",
        "materialConfigId": "8c77dbf9-21a8-5342-87c1-fd685ec5fdd8",
        "quantity": 1,
        "price": price,
        "priceInclVat": price,
        "currency": "EUR",
        "productionTimeFast": max(slow - 2, 1),
        "productionTimeSlow": slow,
        "scale": 1,
    }
    data.update(extra)
    return data


def _shipping_payload(vendor: str, price: float, delivery: str, **extra: Any) -> Dict[str, Any]:
    data = {
        "shippingId": f"s-{vendor}-{delivery}",
        "vendorId": vendor,
        "name": "Standard",
        "deliveryTime": delivery,
        "price": price,
        "priceInclVat": price,
        "currency": "EUR",
        "type": "standard",
    }
    data.update(extra)
    return data


@pytest.fixture()
def quote_payload():
    """Builder for a ``quotes[]`` entry: ``quote_payload(vendor, price, slow, **extra)``."""
    return _quote_payload


@pytest.fixture()
def shipping_payload():
    """Builder for a ``shippings[]`` entry: ``shipping_payload(vendor, price, delivery, **extra)``."""
    return _shipping_payload


@pytest.fixture()
def price_complete() -> Dict[str, Any]:
    """Two vendors, one quote and one shipping each (V2 is cheaper)."""
    return {
        "expiresAt": 1658972807453,
        "allComplete": True,
        "printingServiceComplete": {"V1": True, "V2": True},
        "quotes": [_quote_payload("V1", 100, 5), _quote_payload("V2", 80, 8)],
        "shippings": [_shipping_payload("V1", 20, "3-7"), _shipping_payload("V2", 10, "1-4")],
        "minimumProductionPrice": {},
    }


@pytest.fixture()
def price_incomplete() -> Dict[str, Any]:
    return {
        "expiresAt": 1658972807453,
        "allComplete": False,
        "printingServiceComplete": {"V1": True, "V2": False},
        "quotes": [_quote_payload("V1", 100, 5)],
        "shippings": [],
        "minimumProductionPrice": {},
    }
