"""Tests for promptprint.cli.main -- CLI commands using Click's CliRunner."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from promptprint import __version__
from promptprint.cli.main import cli
from promptprint.cli.output import format_money, progress_line
from promptprint.fulfillment import (
    CheckoutLink,
    FulfillmentError,
    Option,
    Quote,
    QuoteRetriesExhaustedError,
    QuoteSelection,
    Shipping,
)
from promptprint.generation import (
    GeneratedModel,
    GenerationAuthError,
    GenerationTimeoutError,
)

MODEL_URL = "https://assets.meshy.ai/tasks/J1/model.obj"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def model():
    return GeneratedModel(
        job_id="J1",
        glb_url="https://assets.meshy.ai/tasks/J1/model.glb",
        obj_url=MODEL_URL,
        prompt="a chess queen",
    )


@pytest.fixture
def selection():
    cheap = Option(
        quote=Quote(quote_id="q2", vendor_id="V2", price=80.0, production_time_slow=8),
        shipping=Shipping(shipping_id="s2", vendor_id="V2", price=10.0, delivery_time="1-4", name="Standard"),
        total_cost=90.0,
        total_time=12,
    )
    fast = Option(
        quote=Quote(quote_id="q1", vendor_id="V1", price=100.0, production_time_slow=5),
        shipping=Shipping(shipping_id="s1", vendor_id="V1", price=20.0, delivery_time="3-7", name="Express"),
        total_cost=120.0,
        total_time=12,
    )
    return QuoteSelection(cheapest_option=cheap, fastest_option=fast, price_id="p1", currency="EUR")


@pytest.fixture
def mock_meshy(model):
    with patch("promptprint.cli.main.MeshyClient") as cls:
        client = MagicMock()
        client.generate_model.return_value = model
        cls.return_value = client
        yield cls


@pytest.fixture
def mock_craftcloud(selection):
    with patch("promptprint.cli.main.CraftcloudClient") as cls:
        client = MagicMock()
        client.get_quote.return_value = selection
        client.create_cart_and_offer.return_value = CheckoutLink(
            cart_id="c1", offer_id="o1", url="https://craftcloud3d.com/cart?cartId=c1"
        )
        cls.return_value = client
        yield cls


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class TestGroup:
    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for name in ("generate", "quote", "order", "checkout", "config"):
            assert name in result.output

    def test_bad_config_file(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- not a mapping\n")
        result = runner.invoke(cli, ["--config", str(path), "config", "show"])
        assert result.exit_code == 1
        assert "mapping" in result.output


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    def test_json_output(self, runner, mock_meshy, model):
        result = runner.invoke(cli, ["generate", "a chess queen", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["status"] == "success"
        assert data["data"]["model"] == model.to_dict()
        mock_meshy.return_value.generate_model.assert_called_once_with("a chess queen")
        mock_meshy.return_value.on_progress.assert_not_called()

    def test_text_output_reports_progress(self, runner, mock_meshy):
        result = runner.invoke(cli, ["generate", "a chess queen"])
        assert result.exit_code == 0
        assert "OBJ:" in result.output
        assert MODEL_URL in result.output
        mock_meshy.return_value.on_progress.assert_called_once()

    def test_auth_error(self, runner, mock_meshy):
        mock_meshy.side_effect = GenerationAuthError("Valid Meshy API key is required.", code="AUTH_REQUIRED")
        result = runner.invoke(cli, ["generate", "a cube", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["status"] == "error"
        assert data["error"]["code"] == "AUTH_ERROR"

    def test_timeout_error_code(self, runner, mock_meshy):
        mock_meshy.return_value.generate_model.side_effect = GenerationTimeoutError(
            "Preview generation timed out", code="TIMEOUT"
        )
        result = runner.invoke(cli, ["generate", "a cube", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["error"] == {"code": "TIMEOUT", "message": "Preview generation timed out"}

    def test_api_key_from_config_file(self, runner, mock_meshy, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({"meshy": {"api_key": "msy_cfg"}}))
        result = runner.invoke(cli, ["--config", str(path), "generate", "a cube", "--json"])
        assert result.exit_code == 0
        settings = mock_meshy.call_args.kwargs["settings"]
        assert settings.api_key == "msy_cfg"


# ---------------------------------------------------------------------------
# quote / order / checkout
# ---------------------------------------------------------------------------


class TestQuote:
    def test_json_output(self, runner, mock_craftcloud, selection):
        result = runner.invoke(cli, ["quote", MODEL_URL, "--country", "DE", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["data"]["quote"] == selection.to_dict()
        mock_craftcloud.return_value.get_quote.assert_called_once_with(
            MODEL_URL,
            "DE",
            material_config_ids=None,
            scale=1.0,
            quantity=1,
            currency=None,
        )

    def test_options_passed_through(self, runner, mock_craftcloud):
        result = runner.invoke(
            cli,
            ["quote", MODEL_URL, "-c", "us", "-m", "mat-a", "-m", "mat-b", "--scale", "2", "-q", "3", "--currency", "usd"],
        )
        assert result.exit_code == 0, result.output
        kwargs = mock_craftcloud.return_value.get_quote.call_args.kwargs
        assert kwargs["material_config_ids"] == ["mat-a", "mat-b"]
        assert kwargs["scale"] == 2.0
        assert kwargs["quantity"] == 3
        assert kwargs["currency"] == "USD"

    def test_text_table(self, runner, mock_craftcloud):
        result = runner.invoke(cli, ["quote", MODEL_URL, "--country", "DE"])
        assert result.exit_code == 0
        assert "cheapest" in result.output
        assert "fastest" in result.output
        assert "90.00 EUR" in result.output

    def test_country_required(self, runner, mock_craftcloud):
        result = runner.invoke(cli, ["quote", MODEL_URL])
        assert result.exit_code == 2

    def test_retries_exhausted(self, runner, mock_craftcloud):
        mock_craftcloud.return_value.get_quote.side_effect = QuoteRetriesExhaustedError(
            "HTTP 503 (failed after 3 attempts)", attempts=3, errors=["HTTP 503"] * 3
        )
        result = runner.invoke(cli, ["quote", MODEL_URL, "-c", "DE", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["error"]["code"] == "RETRIES_EXHAUSTED"
        assert "failed after 3 attempts" in data["error"]["message"]

    def test_no_options_text(self, runner, mock_craftcloud):
        mock_craftcloud.return_value.get_quote.return_value = QuoteSelection(None, None, price_id="p1")
        result = runner.invoke(cli, ["quote", MODEL_URL, "-c", "DE"])
        assert result.exit_code == 0
        assert "No vendor offered" in result.output


class TestOrder:
    def test_generates_then_quotes_obj(self, runner, mock_meshy, mock_craftcloud, model):
        result = runner.invoke(cli, ["order", "a chess queen", "-c", "DE", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["data"]["quote"]["model"] == model.to_dict()
        assert data["data"]["quote"]["cheapest_option"]["vendor_id"] == "V2"
        assert mock_craftcloud.return_value.get_quote.call_args.args == (model.obj_url, "DE")

    def test_generation_failure_skips_quote(self, runner, mock_meshy, mock_craftcloud):
        mock_meshy.return_value.generate_model.side_effect = GenerationTimeoutError("timed out", code="TIMEOUT")
        result = runner.invoke(cli, ["order", "a cube", "-c", "DE", "--json"])
        assert result.exit_code == 1
        mock_craftcloud.return_value.get_quote.assert_not_called()


class TestCheckout:
    def test_cheapest_by_default(self, runner, mock_craftcloud, selection):
        result = runner.invoke(cli, ["checkout", MODEL_URL, "-c", "DE", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["data"]["checkout"]["url"] == "https://craftcloud3d.com/cart?cartId=c1"
        mock_craftcloud.return_value.create_cart_and_offer.assert_called_once_with(selection.cheapest_option, "EUR")

    def test_pick_fastest(self, runner, mock_craftcloud, selection):
        result = runner.invoke(cli, ["checkout", MODEL_URL, "-c", "DE", "--pick", "fastest"])
        assert result.exit_code == 0
        assert "Complete your order at" in result.output
        mock_craftcloud.return_value.create_cart_and_offer.assert_called_once_with(selection.fastest_option, "EUR")

    def test_no_options(self, runner, mock_craftcloud):
        mock_craftcloud.return_value.get_quote.return_value = QuoteSelection(None, None)
        result = runner.invoke(cli, ["checkout", MODEL_URL, "-c", "DE", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "NO_OPTIONS"
        mock_craftcloud.return_value.create_cart_and_offer.assert_not_called()

    def test_cart_failure(self, runner, mock_craftcloud):
        mock_craftcloud.return_value.create_cart_and_offer.side_effect = FulfillmentError(
            "Craftcloud cart response missing cartId.", code="CART_ERROR"
        )
        result = runner.invoke(cli, ["checkout", MODEL_URL, "-c", "DE", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["error"]["code"] == "CART_ERROR"


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_init_then_show(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        result = runner.invoke(cli, ["--config", str(path), "config", "init"])
        assert result.exit_code == 0
        assert path.is_file()

        result = runner.invoke(cli, ["--config", str(path), "config", "show", "--json"])
        data = json.loads(result.output)
        assert data["data"]["settings"]["craftcloud"]["default_currency"] == "EUR"

    def test_init_refuses_existing(self, runner, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("meshy: {}\n")
        result = runner.invoke(cli, ["--config", str(path), "config", "init"])
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_show_masks_keys(self, runner, monkeypatch):
        monkeypatch.setenv("PROMPTPRINT_MESHY_API_KEY", "msy_supersecret9876")
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "supersecret" not in result.output
        assert "9876" in result.output


class TestOutputHelpers:
    def test_format_money(self):
        assert format_money(1234.5, "EUR") == "1,234.50 EUR"
        assert format_money(None) == "N/A"

    def test_progress_line(self):
        assert progress_line(0, width=10) == "[..........]   0%"
        assert progress_line(50, width=10) == "[#####.....]  50%"
        assert progress_line(100, width=10) == "[##########] 100%"
