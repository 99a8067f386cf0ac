"""Configuration for the Meshy and Craftcloud clients.

Settings live in ``~/.promptprint/config.yaml`` under two sections::

    meshy:
      api_key: msy_...
      poll_interval: 5
    craftcloud:
      default_currency: USD
      max_quote_attempts: 3

Precedence (highest first):
    1. Explicit keyword arguments (e.g. from CLI flags)
    2. Environment variables (``PROMPTPRINT_MESHY_API_KEY``, etc.)
    3. Config file (``~/.promptprint/config.yaml`` or ``PROMPTPRINT_CONFIG``)
    4. Built-in defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from promptprint import parse_float_env

logger = logging.getLogger(__name__)

RESIN_MATERIAL_CONFIG_ID = "8c77dbf9-21a8-5342-87c1-fd685ec5fdd8"
SUPPORTED_CURRENCIES: tuple[str, ...] = ("EUR", "USD")

_SECRET_KEYS = {"api_key", "proxy_api_key"}


class ConfigError(Exception):
    """Raised when the config file cannot be read or holds invalid values."""


@dataclass
class MeshySettings:
    """Text-to-3D generation settings."""

    api_key: str = ""
    base_url: str = "https://api.meshy.ai/openapi/v2"
    proxy_url: str = ""
    proxy_api_key: str = ""
    mode: str = "preview"
    negative_prompt: str = "low quality, low resolution, low poly, ugly"
    art_style: str = "realistic"
    should_remesh: bool = True
    poll_interval: float = 5.0
    max_poll_attempts: int = 30
    request_timeout: float = 30.0


@dataclass
class CraftcloudSettings:
    """Quote pipeline settings.  Times are in seconds."""

    api_key: str = ""
    base_url: str = "https://api.craftcloud3d.com/v5"
    checkout_url: str = "https://craftcloud3d.com/cart"
    default_material_config_ids: list[str] = field(default_factory=lambda: [RESIN_MATERIAL_CONFIG_ID])
    default_currency: str = "EUR"
    upload_filename: str = "model.obj"
    upload_unit: str = "mm"
    price_poll_interval: float = 1.0
    price_poll_timeout: float = 5.0
    max_price_poll_attempts: int = 5
    retry_delay: float = 2.0
    max_quote_attempts: int = 3
    request_timeout: float = 60.0


@dataclass
class Settings:
    """Resolved configuration for both services."""

    meshy: MeshySettings = field(default_factory=MeshySettings)
    craftcloud: CraftcloudSettings = field(default_factory=CraftcloudSettings)

    def to_dict(self, *, mask_secrets: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if mask_secrets:
            for section in data.values():
                for key in _SECRET_KEYS & section.keys():
                    if section[key]:
                        section[key] = _mask(section[key])
        return data


def get_config_path() -> Path:
    """Return the config file path (``PROMPTPRINT_CONFIG`` or ``~/.promptprint/config.yaml``)."""
    override = os.environ.get("PROMPTPRINT_CONFIG", "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".promptprint" / "config.yaml"


def _mask(secret: str) -> str:
    if len(secret) <= 4:
        return "****"
    return f"{'*' * (len(secret) - 4)}{secret[-4:]}"


def _load_config_file(config_path: Path) -> dict[str, Any]:
    """Read and parse the YAML config file.  A missing file yields ``{}``."""
    if not config_path.is_file():
        return {}
    try:
        with config_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (yaml.YAMLError, OSError) as exc:
        raise ConfigError(f"Could not read config file {config_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping at the top level.")
    return data


def _coerce(section: str, key: str, value: Any, default: Any) -> Any:
    """Convert a YAML value to the type of the field's default."""
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
        if isinstance(default, list):
            if isinstance(value, str):
                return [value]
            if not isinstance(value, list):
                raise TypeError(f"expected a list, got {type(value).__name__}")
            return [str(v) for v in value]
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {section}.{key}: {value!r} ({exc})") from exc


def _apply_section(target: Any, section: str, values: Any) -> Any:
    if values is None:
        return target
    if not isinstance(values, dict):
        raise ConfigError(f"Config section '{section}' must be a mapping.")
    known = {f.name for f in fields(target)}
    updates: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known:
            logger.warning("Ignoring unknown config key %s.%s", section, key)
            continue
        if value is None:
            continue
        updates[key] = _coerce(section, key, value, getattr(target, key))
    return replace(target, **updates)


def load_settings(
    config_path: str | Path | None = None,
    *,
    meshy_api_key: str | None = None,
    craftcloud_api_key: str | None = None,
    currency: str | None = None,
) -> Settings:
    """Resolve :class:`Settings` from defaults, file, environment and arguments.

    Raises:
        ConfigError: If the config file is malformed or a value is invalid.
    """
    path = Path(config_path).expanduser() if config_path else get_config_path()
    file_values = _load_config_file(path)

    for key in file_values:
        if key not in ("meshy", "craftcloud"):
            logger.warning("Ignoring unknown config section %r in %s", key, path)

    meshy = _apply_section(MeshySettings(), "meshy", file_values.get("meshy"))
    craftcloud = _apply_section(CraftcloudSettings(), "craftcloud", file_values.get("craftcloud"))

    # Environment variables override file values.
    env_meshy = {
        "api_key": os.environ.get("PROMPTPRINT_MESHY_API_KEY"),
        "base_url": os.environ.get("PROMPTPRINT_MESHY_BASE_URL"),
        "proxy_url": os.environ.get("PROMPTPRINT_MESHY_PROXY_URL"),
        "proxy_api_key": os.environ.get("PROMPTPRINT_PROXY_API_KEY"),
    }
    meshy = replace(meshy, **{k: v for k, v in env_meshy.items() if v})
    meshy = replace(meshy, poll_interval=parse_float_env("PROMPTPRINT_MESHY_POLL_INTERVAL", meshy.poll_interval))

    env_craftcloud = {
        "api_key": os.environ.get("PROMPTPRINT_CRAFTCLOUD_API_KEY"),
        "base_url": os.environ.get("PROMPTPRINT_CRAFTCLOUD_BASE_URL"),
        "default_currency": os.environ.get("PROMPTPRINT_CURRENCY"),
    }
    craftcloud = replace(craftcloud, **{k: v for k, v in env_craftcloud.items() if v})
    craftcloud = replace(
        craftcloud,
        price_poll_interval=parse_float_env("PROMPTPRINT_PRICE_POLL_INTERVAL", craftcloud.price_poll_interval),
    )

    # Explicit arguments take top priority.
    if meshy_api_key is not None:
        meshy = replace(meshy, api_key=meshy_api_key)
    if craftcloud_api_key is not None:
        craftcloud = replace(craftcloud, api_key=craftcloud_api_key)
    if currency is not None:
        craftcloud = replace(craftcloud, default_currency=currency)

    meshy = replace(
        meshy,
        base_url=meshy.base_url.rstrip("/"),
        proxy_url=meshy.proxy_url.rstrip("/"),
    )
    craftcloud = replace(
        craftcloud,
        base_url=craftcloud.base_url.rstrip("/"),
        default_currency=craftcloud.default_currency.upper(),
    )

    settings = Settings(meshy=meshy, craftcloud=craftcloud)
    errors = validate_settings(settings)
    if errors:
        raise ConfigError("; ".join(errors))
    return settings


def validate_settings(settings: Settings) -> list[str]:
    """Return a list of problems with *settings* (empty when valid).

    Missing API keys are not reported here; each client checks for its
    own key when it is constructed.
    """
    errors: list[str] = []
    if settings.craftcloud.default_currency not in SUPPORTED_CURRENCIES:
        errors.append(
            f"craftcloud.default_currency must be one of {', '.join(SUPPORTED_CURRENCIES)}, "
            f"got {settings.craftcloud.default_currency!r}"
        )
    if settings.meshy.max_poll_attempts < 1:
        errors.append("meshy.max_poll_attempts must be at least 1")
    for name in ("max_price_poll_attempts", "max_quote_attempts"):
        if getattr(settings.craftcloud, name) < 1:
            errors.append(f"craftcloud.{name} must be at least 1")
    for section, obj in (("meshy", settings.meshy), ("craftcloud", settings.craftcloud)):
        for f in fields(obj):
            value = getattr(obj, f.name)
            if isinstance(value, float) and value < 0:
                errors.append(f"{section}.{f.name} must not be negative")
    return errors


def init_config(config_path: str | Path | None = None, *, overwrite: bool = False) -> Path:
    """Write a default config file and return its path.

    Raises:
        ConfigError: If the file exists and *overwrite* is false.
    """
    path = Path(config_path).expanduser() if config_path else get_config_path()
    if path.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)

    data = Settings().to_dict(mask_secrets=False)
    with path.open("w", encoding="utf-8") as fh:
        fh.write("# promptprint configuration. Environment variables override these values.\n")
        yaml.safe_dump(data, fh, default_flow_style=False, sort_keys=False)

    # API keys end up in this file; keep it private.
    os.chmod(path, 0o600)
    return path
