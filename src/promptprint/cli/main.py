"""promptprint CLI - prompt to printable model to manufacturing quote.

Every subcommand supports ``--json`` for machine-parseable output.

\b
    promptprint generate "a chess queen"
    promptprint quote https://.../model.obj --country DE
    promptprint order "a chess queen" --country US --currency USD
    promptprint checkout https://.../model.obj --country DE --pick fastest
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Callable

import click

from promptprint import __version__
from promptprint.config import ConfigError, Settings, init_config, load_settings
from promptprint.fulfillment import CraftcloudClient, FulfillmentError, QuoteSelection
from promptprint.generation import GenerationAuthError, GenerationError, MeshyClient
from promptprint.log_config import configure_logging
from promptprint.cli.output import (
    format_checkout,
    format_error,
    format_generated,
    format_selection,
    format_settings,
    progress_line,
)

logger = logging.getLogger(__name__)


def _settings(ctx: click.Context) -> Settings:
    try:
        return load_settings(ctx.obj.get("config_path"))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _fail(message: str, code: str, json_mode: bool) -> None:
    click.echo(format_error(message, code=code, json_mode=json_mode))
    sys.exit(1)


def _quote_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that requests a quote."""
    fn = click.option("--json", "json_mode", is_flag=True, help="Output JSON.")(fn)
    fn = click.option(
        "--currency",
        type=click.Choice(["EUR", "USD"], case_sensitive=False),
        default=None,
        help="Quote currency (default from config, EUR).",
    )(fn)
    fn = click.option("--quantity", "-q", default=1, type=click.IntRange(min=1), help="Number of copies.")(fn)
    fn = click.option("--scale", default=1.0, type=float, help="Scale multiplier for the model.")(fn)
    fn = click.option(
        "--material",
        "-m",
        "materials",
        multiple=True,
        help="Material config ID (repeatable; default is the resin preset).",
    )(fn)
    fn = click.option("--country", "-c", required=True, help="Two-letter shipping country code.")(fn)
    return fn


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    envvar="PROMPTPRINT_CONFIG",
    type=click.Path(dir_okay=False),
    help="Config file (default ~/.promptprint/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr and the log file.")
@click.version_option(version=__version__, prog_name="promptprint")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """promptprint - turn a text prompt into a 3D-printed part."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if verbose:
        log_path = configure_logging(level="DEBUG", stderr=True)
        logger.debug("Logging to %s", log_path)


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


def _run_generation(settings: Settings, prompt: str, json_mode: bool) -> Any:
    client = MeshyClient(settings=settings.meshy)
    if not json_mode:
        client.on_progress(lambda p: click.echo(f"\r  {progress_line(p)}", nl=False, err=True))
    model = client.generate_model(prompt)
    if not json_mode:
        click.echo("", err=True)
    return model


@cli.command()
@click.argument("prompt")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def generate(ctx: click.Context, prompt: str, json_mode: bool) -> None:
    """Generate a 3D model from a text description."""
    settings = _settings(ctx)
    try:
        model = _run_generation(settings, prompt, json_mode)
        click.echo(format_generated(model.to_dict(), json_mode=json_mode))
    except GenerationAuthError as exc:
        _fail(str(exc), "AUTH_ERROR", json_mode)
    except GenerationError as exc:
        _fail(str(exc), exc.code or "GENERATION_ERROR", json_mode)
    except KeyboardInterrupt:
        if not json_mode:
            click.echo("\nInterrupted.")
        sys.exit(130)


# ---------------------------------------------------------------------------
# quote / order / checkout
# ---------------------------------------------------------------------------


def _run_quote(
    settings: Settings,
    model_url: str,
    country: str,
    materials: tuple[str, ...],
    scale: float,
    quantity: int,
    currency: str | None,
) -> QuoteSelection:
    client = CraftcloudClient(settings=settings.craftcloud)
    return client.get_quote(
        model_url,
        country,
        material_config_ids=list(materials) or None,
        scale=scale,
        quantity=quantity,
        currency=currency,
    )


@cli.command()
@click.argument("model_url")
@_quote_options
@click.pass_context
def quote(
    ctx: click.Context,
    model_url: str,
    country: str,
    materials: tuple[str, ...],
    scale: float,
    quantity: int,
    currency: str | None,
    json_mode: bool,
) -> None:
    """Get the cheapest and fastest manufacturing offer for a model URL."""
    settings = _settings(ctx)
    try:
        selection = _run_quote(settings, model_url, country, materials, scale, quantity, currency)
        click.echo(format_selection(selection.to_dict(), json_mode=json_mode))
    except FulfillmentError as exc:
        _fail(f"Quote request failed: {exc}", exc.code or "QUOTE_ERROR", json_mode)


@cli.command()
@click.argument("prompt")
@_quote_options
@click.pass_context
def order(
    ctx: click.Context,
    prompt: str,
    country: str,
    materials: tuple[str, ...],
    scale: float,
    quantity: int,
    currency: str | None,
    json_mode: bool,
) -> None:
    """Generate a model from PROMPT and quote it in one go."""
    settings = _settings(ctx)
    try:
        model = _run_generation(settings, prompt, json_mode)
        if not json_mode:
            click.echo(format_generated(model.to_dict()))
            click.echo("Requesting quotes...")
        selection = _run_quote(settings, model.obj_url, country, materials, scale, quantity, currency)
    except GenerationAuthError as exc:
        _fail(str(exc), "AUTH_ERROR", json_mode)
    except GenerationError as exc:
        _fail(str(exc), exc.code or "GENERATION_ERROR", json_mode)
    except FulfillmentError as exc:
        _fail(f"Quote request failed: {exc}", exc.code or "QUOTE_ERROR", json_mode)
    else:
        if json_mode:
            click.echo(
                format_selection(
                    {**selection.to_dict(), "model": model.to_dict()},
                    json_mode=True,
                )
            )
        else:
            click.echo(format_selection(selection.to_dict()))


@cli.command()
@click.argument("model_url")
@_quote_options
@click.option(
    "--pick",
    type=click.Choice(["cheapest", "fastest"]),
    default="cheapest",
    help="Which option to put in the cart.",
)
@click.pass_context
def checkout(
    ctx: click.Context,
    model_url: str,
    country: str,
    materials: tuple[str, ...],
    scale: float,
    quantity: int,
    currency: str | None,
    json_mode: bool,
    pick: str,
) -> None:
    """Quote a model and create a Craftcloud cart for the chosen option."""
    settings = _settings(ctx)
    try:
        selection = _run_quote(settings, model_url, country, materials, scale, quantity, currency)
        option = selection.cheapest_option if pick == "cheapest" else selection.fastest_option
        if option is None:
            _fail("No vendor offered a quote with matching shipping for this model.", "NO_OPTIONS", json_mode)
            return
        client = CraftcloudClient(settings=settings.craftcloud)
        link = client.create_cart_and_offer(option, selection.currency)
        click.echo(format_checkout(link.to_dict(), json_mode=json_mode))
    except FulfillmentError as exc:
        _fail(f"Checkout failed: {exc}", exc.code or "CHECKOUT_ERROR", json_mode)


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.group("config")
def config_group() -> None:
    """Inspect or create the config file."""


@config_group.command("show")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def config_show(ctx: click.Context, json_mode: bool) -> None:
    """Show resolved settings (API keys masked)."""
    settings = _settings(ctx)
    click.echo(format_settings(settings.to_dict(), json_mode=json_mode))


@config_group.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing config file.")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Write a default config file."""
    try:
        path = init_config(ctx.obj.get("config_path"), overwrite=force)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Wrote {path}")


if __name__ == "__main__":
    cli()
