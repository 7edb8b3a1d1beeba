"""Tests for entrypoint settings and wiring."""

from pathlib import Path

import pytest

from sql_gateway.config.models import ConfigError
from sql_gateway.main import (
    DEFAULT_PORT,
    GatewaySettings,
    build_gateway,
    create_app,
    main,
    parse_settings,
)
from sql_gateway.services.staging.stager import DEFAULT_STAGING_DIR


def test_defaults():
    settings = parse_settings([])
    assert settings == GatewaySettings(
        config_path=None,
        dsn=None,
        allow_destructive=False,
        transport="stdio",
        host="127.0.0.1",
        port=DEFAULT_PORT,
        staging_dir=DEFAULT_STAGING_DIR,
        write_metadata=True,
        pool_size=10,
    )


def test_environment_fallbacks(monkeypatch, tmp_path):
    monkeypatch.setenv("DSN", "sqlite://env.db")
    monkeypatch.setenv("ALLOW_DESTRUCTIVE", "true")
    monkeypatch.setenv("TRANSPORT", "http")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("SAFE_SQL_RESULTS_DIR", str(tmp_path))
    monkeypatch.setenv("SAFE_SQL_RESULTS_METADATA", "false")

    settings = parse_settings([])

    assert settings.dsn == "sqlite://env.db"
    assert settings.allow_destructive is True
    assert settings.transport == "http"
    assert settings.port == 9000
    assert settings.staging_dir == tmp_path
    assert settings.write_metadata is False


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("DSN", "sqlite://env.db")
    monkeypatch.setenv("TRANSPORT", "http")

    settings = parse_settings(
        ["--dsn", "sqlite://flag.db", "--transport", "sse", "--destructive", "--staging-dir", "out"]
    )

    assert settings.dsn == "sqlite://flag.db"
    assert settings.transport == "sse"
    assert settings.allow_destructive is True
    assert settings.staging_dir == Path("out")


def test_invalid_transport_from_environment(monkeypatch):
    monkeypatch.setenv("TRANSPORT", "carrier-pigeon")
    with pytest.raises(ConfigError, match="Unsupported transport"):
        parse_settings([])


def test_build_gateway_from_dsn(tmp_path):
    gateway = build_gateway(
        GatewaySettings(dsn=f"sqlite://{tmp_path / 'app.db'}", staging_dir=tmp_path / "out")
    )
    assert gateway.manager.source_ids == ["default"]
    assert sorted(gateway.registry.names()) == ["execute_sql", "search_objects"]
    assert gateway.registry.get("execute_sql").policy.readonly is True


def test_build_gateway_rejects_config_and_dsn(tmp_path):
    with pytest.raises(ConfigError, match="not both"):
        build_gateway(GatewaySettings(config_path="gateway.toml", dsn="sqlite://x.db"))


def test_create_app_registers_tools(tmp_path):
    pytest.importorskip("fastmcp")
    gateway = build_gateway(GatewaySettings(dsn=f"sqlite://{tmp_path / 'app.db'}"))
    mcp = create_app(gateway)
    assert mcp.name == "sql-gateway"


def test_main_returns_error_code_without_configuration(monkeypatch):
    monkeypatch.setattr("sql_gateway.main.load_dotenv", lambda: None)
    assert main([]) == 2
