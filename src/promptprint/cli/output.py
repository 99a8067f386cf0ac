"""Output formatting for the promptprint CLI.

Every public function accepts a ``json_mode`` flag:
    - ``True``  → JSON envelope ``{status, data, error}`` for scripts
    - ``False`` → Rich-rendered text for humans
"""

from __future__ import annotations

import json
from io import StringIO
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


def _render(renderable: Any) -> str:
    """Render a Rich object to a string."""
    buf = StringIO()
    console = Console(file=buf, force_terminal=False, width=120)
    console.print(renderable)
    return buf.getvalue().rstrip("\n")


def format_money(amount: Optional[float], currency: str = "") -> str:
    if amount is None:
        return "N/A"
    return f"{amount:,.2f} {currency}".strip()


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def format_response(
    status: str,
    data: Optional[Dict[str, Any]] = None,
    error: Optional[Dict[str, Any]] = None,
    *,
    json_mode: bool = False,
) -> str:
    """Build a standard ``{status, data, error}`` response."""
    if json_mode:
        envelope: Dict[str, Any] = {"status": status}
        if data is not None:
            envelope["data"] = data
        if error is not None:
            envelope["error"] = error
        return json.dumps(envelope, indent=2, sort_keys=False)

    if status == "error" and error:
        t = Text()
        t.append("Error", style="bold red")
        t.append(f" [{error.get('code', 'UNKNOWN')}]: ", style="red")
        t.append(error.get("message", "An unknown error occurred."))
        return _render(Panel(t, title="Error", border_style="red"))

    if data:
        lines = [f"[bold]{k}:[/bold] {v}" for k, v in data.items()]
        return _render(Panel("\n".join(lines), border_style="green"))

    return f"Status: {status}"


def format_error(
    message: str,
    code: str = "ERROR",
    *,
    json_mode: bool = False,
) -> str:
    """Shortcut for a standard error response."""
    return format_response(
        "error",
        error={"code": code, "message": message},
        json_mode=json_mode,
    )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def format_generated(model: Dict[str, Any], *, json_mode: bool = False) -> str:
    if json_mode:
        return format_response("success", data={"model": model}, json_mode=True)
    return "\n".join(
        [
            f"Generated model for: {model.get('prompt', '')}",
            f"  Job:  {model.get('job_id', '')}",
            f"  GLB:  {model.get('glb_url', '')}",
            f"  OBJ:  {model.get('obj_url', '')}",
        ]
    )


def progress_line(progress: int, width: int = 30) -> str:
    """Single-line ``[#####.....]  42%`` progress indicator."""
    filled = int(width * progress / 100)
    return f"[{'#' * filled}{'.' * (width - filled)}] {progress:3d}%"


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


def format_selection(selection: Dict[str, Any], *, json_mode: bool = False) -> str:
    """Format a quote selection (cheapest + fastest option)."""
    if json_mode:
        return format_response("success", data={"quote": selection}, json_mode=True)

    currency = selection.get("currency", "")
    cheapest = selection.get("cheapest_option")
    fastest = selection.get("fastest_option")
    if not cheapest and not fastest:
        return "No vendor offered a quote with matching shipping for this model."

    table = Table(title=f"Quote {selection.get('price_id', '')}")
    table.add_column("Pick", style="bold")
    table.add_column("Vendor")
    table.add_column("Production")
    table.add_column("Shipping")
    table.add_column("Total", justify="right")
    table.add_column("Days", justify="right")
    for label, option in (("cheapest", cheapest), ("fastest", fastest)):
        if not option:
            table.add_row(label, "-", "-", "-", "-", "-")
            continue
        shipping = option["shipping"]
        table.add_row(
            label,
            option["vendor_id"],
            format_money(option["quote"]["price"], currency),
            f"{shipping.get('name') or shipping.get('shipping_id')} ({shipping['delivery_time']} d)",
            format_money(option["total_cost"], currency),
            str(option["total_time"]),
        )
    return _render(table)


def format_checkout(link: Dict[str, Any], *, json_mode: bool = False) -> str:
    if json_mode:
        return format_response("success", data={"checkout": link}, json_mode=True)
    return "\n".join(
        [
            f"Cart {link.get('cart_id', '')} created (offer {link.get('offer_id', '')}).",
            f"Complete your order at: {link.get('url', '')}",
        ]
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def format_settings(settings: Dict[str, Any], *, json_mode: bool = False) -> str:
    if json_mode:
        return format_response("success", data={"settings": settings}, json_mode=True)

    table = Table(title="promptprint settings")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for section, values in settings.items():
        for key, value in values.items():
            table.add_row(f"{section}.{key}", str(value))
    return _render(table)
