"""SQL gateway entrypoint.

Builds the configured sources, the tool registry and the FastMCP server, then
serves over stdio, streamable HTTP or SSE.
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from common.config.env import get_env_bool, get_env_int, get_env_path, get_env_str
from dal.factory import create_connector
from dal.manager import ConnectorManager
from sql_gateway.config.loader import resolve_config
from sql_gateway.config.models import ConfigError, GatewayConfig
from sql_gateway.services.execution.coordinator import ExecutionCoordinator
from sql_gateway.services.staging.stager import DEFAULT_STAGING_DIR, ResultStager
from sql_gateway.tools.registry import ToolRegistry, initialize_tool_registry, register_all

logger = logging.getLogger(__name__)

TRANSPORTS = ("stdio", "http", "sse")
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


@dataclass(frozen=True)
class GatewaySettings:
    """Process-level settings resolved from CLI flags and environment."""

    config_path: Optional[str] = None
    dsn: Optional[str] = None
    allow_destructive: bool = False
    transport: str = "stdio"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    staging_dir: Path = DEFAULT_STAGING_DIR
    write_metadata: bool = True
    pool_size: int = 10


@dataclass
class Gateway:
    """Wired components of one gateway instance."""

    config: GatewayConfig
    registry: ToolRegistry
    manager: ConnectorManager
    coordinator: ExecutionCoordinator


def build_parser() -> argparse.ArgumentParser:
    """CLI definition; every flag falls back to an environment variable."""
    parser = argparse.ArgumentParser(
        prog="sql-gateway",
        description="MCP server that executes SQL without returning result rows to the caller.",
    )
    parser.add_argument("--config", help="Path to a TOML configuration file (GATEWAY_CONFIG).")
    parser.add_argument("--dsn", help="Single-source database DSN (DSN).")
    parser.add_argument(
        "--destructive",
        action="store_true",
        default=None,
        help="Allow write statements on sources without an explicit readonly setting "
        "(ALLOW_DESTRUCTIVE).",
    )
    parser.add_argument("--transport", choices=TRANSPORTS, help="Server transport (TRANSPORT).")
    parser.add_argument("--host", help="Bind host for http/sse transports (HOST).")
    parser.add_argument("--port", type=int, help="Bind port for http/sse transports (PORT).")
    parser.add_argument(
        "--staging-dir", help="Directory for staged results (SAFE_SQL_RESULTS_DIR)."
    )
    return parser


def parse_settings(argv: Optional[List[str]] = None) -> GatewaySettings:
    """Resolve settings; CLI flags take precedence over the environment."""
    args = build_parser().parse_args(argv)

    transport = (args.transport or get_env_str("TRANSPORT", "stdio") or "stdio").lower()
    if transport not in TRANSPORTS:
        raise ConfigError(
            f"Unsupported transport '{transport}'. Expected one of: {', '.join(TRANSPORTS)}."
        )

    allow_destructive = (
        args.destructive
        if args.destructive is not None
        else bool(get_env_bool("ALLOW_DESTRUCTIVE", False))
    )
    staging_dir = (
        Path(args.staging_dir).expanduser()
        if args.staging_dir
        else get_env_path("SAFE_SQL_RESULTS_DIR", DEFAULT_STAGING_DIR)
    )

    return GatewaySettings(
        config_path=args.config or get_env_str("GATEWAY_CONFIG"),
        dsn=args.dsn or get_env_str("DSN"),
        allow_destructive=allow_destructive,
        transport=transport,
        host=args.host or get_env_str("HOST", DEFAULT_HOST),
        port=args.port if args.port is not None else get_env_int("PORT", DEFAULT_PORT),
        staging_dir=staging_dir,
        write_metadata=bool(get_env_bool("SAFE_SQL_RESULTS_METADATA", True)),
        pool_size=get_env_int("DB_POOL_SIZE", 10),
    )


def setup_telemetry() -> None:
    """Initialize the OTEL SDK; spans are exported only when an endpoint is set."""
    service_name = get_env_str("OTEL_SERVICE_NAME", "sql-gateway")
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    trace.set_tracer_provider(provider)

    endpoint = get_env_str("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint or get_env_bool("OTEL_DISABLE_EXPORTER", False):
        logger.info("OTEL initialized without exporter")
        return

    try:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
        logger.info("OTEL initialized for %s (endpoint=%s)", service_name, endpoint)
    except Exception as exc:
        logger.exception("Failed to initialize OTEL exporter; continuing degraded: %s", exc)


def build_gateway(settings: GatewaySettings) -> Gateway:
    """Load configuration and wire connectors, registry and coordinator.

    Raises:
        ConfigError: configuration is missing, ambiguous or invalid.
    """
    config = resolve_config(settings.config_path, settings.dsn)
    registry = initialize_tool_registry(config, allow_destructive=settings.allow_destructive)
    manager = ConnectorManager(
        create_connector(source.id, source.type, source.dsn, pool_size=settings.pool_size)
        for source in config.sources
    )
    stager = ResultStager(settings.staging_dir, write_metadata=settings.write_metadata)
    coordinator = ExecutionCoordinator(stager)
    return Gateway(config=config, registry=registry, manager=manager, coordinator=coordinator)


def create_app(gateway: Gateway):
    """Create the FastMCP server with lifespan-managed connectors."""
    from fastmcp import FastMCP

    @asynccontextmanager
    async def lifespan(app):
        """Connect sources on startup; unreachable ones are retried on first use."""
        status = await gateway.manager.connect_all()
        logger.info(
            "event=gateway_started sources=%d connected=%d",
            len(status),
            sum(1 for ok in status.values() if ok),
        )
        try:
            yield
        finally:
            await gateway.manager.disconnect_all()
            logger.info("event=gateway_stopped")

    mcp = FastMCP("sql-gateway", lifespan=lifespan)
    register_all(mcp, gateway.registry, gateway.manager, gateway.coordinator)
    return mcp


def main(argv: Optional[List[str]] = None) -> int:
    """Run the gateway until the transport exits."""
    load_dotenv()
    logging.basicConfig(
        level=get_env_str("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        # stdout carries the stdio transport
        stream=sys.stderr,
    )

    try:
        settings = parse_settings(argv)
        gateway = build_gateway(settings)
    except ConfigError as exc:
        logger.error("event=config_invalid error=%s", exc)
        return 2

    setup_telemetry()
    mcp = create_app(gateway)

    if settings.transport == "stdio":
        logger.info("Starting MCP server on stdio")
        mcp.run(transport="stdio")
    else:
        logger.info(
            "Starting MCP server on %s://%s:%d", settings.transport, settings.host, settings.port
        )
        mcp.run(transport=settings.transport, host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
