"""Load gateway configuration from a TOML file or a single DSN."""

import logging
import tomllib
from pathlib import Path
from typing import Optional, Union

from pydantic import ValidationError

from common.sanitization.text import redact_sensitive_info
from sql_gateway.config.models import ConfigError, GatewayConfig

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_ID = "default"


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return redact_sensitive_info("; ".join(parts))


def load_config(path: Union[str, Path]) -> GatewayConfig:
    """Parse and validate a TOML configuration file."""
    path = Path(path).expanduser()
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    try:
        config = GatewayConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {_validation_message(exc)}") from exc
    logger.info(
        "event=config_loaded path=%s sources=%d tools=%d",
        path,
        len(config.sources),
        len(config.tools),
    )
    return config


def config_from_dsn(dsn: str, source_id: str = DEFAULT_SOURCE_ID) -> GatewayConfig:
    """Build a single-source configuration; the engine comes from the DSN scheme."""
    try:
        return GatewayConfig.model_validate({"sources": [{"id": source_id, "dsn": dsn}]})
    except ValidationError as exc:
        raise ConfigError(f"Invalid DSN: {_validation_message(exc)}") from exc


def resolve_config(config_path: Optional[str] = None, dsn: Optional[str] = None) -> GatewayConfig:
    """Pick the configuration source given CLI/env inputs.

    Exactly one of ``config_path`` and ``dsn`` must be provided.
    """
    if config_path and dsn:
        raise ConfigError("Provide either a configuration file or a DSN, not both.")
    if config_path:
        return load_config(config_path)
    if dsn:
        return config_from_dsn(dsn)
    raise ConfigError("No database configured. Pass --config or --dsn (or set GATEWAY_CONFIG/DSN).")
