"""Tool registry: resolves configured bindings and registers them with FastMCP.

The registry is built once at startup from validated configuration and is
immutable afterwards. Each binding carries its effective execution policy.
"""

from __future__ import annotations

import functools
import json
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional

from dal.engines import EngineType
from dal.util.timeouts import DEFAULT_TIMEOUT_SECONDS
from sql_gateway.config.models import ConfigError, GatewayConfig, SourceConfig, ToolConfig
from sql_gateway.services.execution.models import ExecutionPolicy

if TYPE_CHECKING:
    from fastmcp import FastMCP

    from dal.manager import ConnectorManager
    from sql_gateway.services.execution.coordinator import ExecutionCoordinator
    from sql_gateway.utils.response_formatter import ToolResponse

logger = logging.getLogger(__name__)

# Canonical tool kinds; exposed names add a source suffix for non-default sources.
CANONICAL_TOOLS = ("execute_sql", "search_objects")


@dataclass(frozen=True)
class ToolBinding:
    """A tool exposed to clients, bound to one source with its effective policy."""

    name: str
    kind: str
    source_id: str
    engine: EngineType
    policy: ExecutionPolicy
    implicit: bool = False


def exposed_tool_name(kind: str, source_id: str, is_default_source: bool) -> str:
    """Return the client-visible tool name for a binding."""
    return kind if is_default_source else f"{kind}_{source_id}"


def resolve_timeout(tool_timeout: Optional[float], source_timeout: Optional[float]) -> float:
    """Smaller of the configured timeouts; the default when neither is set."""
    configured = [value for value in (tool_timeout, source_timeout) if value]
    return min(configured) if configured else DEFAULT_TIMEOUT_SECONDS


def resolve_policy(
    source: SourceConfig, tool: ToolConfig, *, allow_destructive: bool = False
) -> ExecutionPolicy:
    """Combine source, tool and global settings into the effective policy.

    A source's explicit ``readonly`` wins over the global flag; a tool can make
    its binding read-only but never lift a read-only source.
    """
    source_readonly = source.readonly if source.readonly is not None else not allow_destructive
    return ExecutionPolicy(
        readonly=source_readonly or tool.readonly is True,
        timeout_seconds=resolve_timeout(tool.timeout, source.timeout),
        max_rows=tool.max_rows if tool.max_rows is not None else source.max_rows,
        report_truncation=tool.report_truncation,
    )


class ToolRegistry:
    """Immutable set of tool bindings keyed by exposed name."""

    def __init__(self, bindings: List[ToolBinding]) -> None:
        """Index bindings; exposed names must be unique."""
        indexed: Dict[str, ToolBinding] = {}
        for binding in bindings:
            if binding.name in indexed:
                raise ConfigError(f"Tool name '{binding.name}' is defined more than once.")
            indexed[binding.name] = binding
        self._bindings: Mapping[str, ToolBinding] = MappingProxyType(indexed)

    @property
    def bindings(self) -> Mapping[str, ToolBinding]:
        return self._bindings

    def get(self, name: str) -> ToolBinding:
        """Return the binding for an exposed tool name."""
        try:
            return self._bindings[name]
        except KeyError:
            raise KeyError(f"Unknown tool '{name}'.") from None

    def names(self) -> List[str]:
        return list(self._bindings)

    def __iter__(self) -> Iterator[ToolBinding]:
        return iter(self._bindings.values())

    def __len__(self) -> int:
        return len(self._bindings)


def initialize_tool_registry(
    config: GatewayConfig, *, allow_destructive: bool = False
) -> ToolRegistry:
    """Build the registry from validated configuration.

    Every source gets an ``execute_sql`` and a ``search_objects`` binding;
    explicit ``[[tools]]`` entries replace the implicit ones for their source.
    """
    default_id = config.default_source.id
    explicit = {(tool.name, tool.source): tool for tool in config.tools}

    bindings: List[ToolBinding] = []
    for source in config.sources:
        for kind in CANONICAL_TOOLS:
            tool = explicit.get((kind, source.id))
            implicit = tool is None
            if tool is None:
                tool = ToolConfig(name=kind, source=source.id)
            bindings.append(
                ToolBinding(
                    name=exposed_tool_name(kind, source.id, source.id == default_id),
                    kind=kind,
                    source_id=source.id,
                    engine=source.type,
                    policy=resolve_policy(source, tool, allow_destructive=allow_destructive),
                    implicit=implicit,
                )
            )

    registry = ToolRegistry(bindings)
    for binding in registry:
        logger.info(
            "event=tool_bound tool=%s source=%s readonly=%s timeout_s=%g max_rows=%s",
            binding.name,
            binding.source_id,
            binding.policy.readonly,
            binding.policy.timeout_seconds,
            binding.policy.max_rows,
        )
    return registry


def to_mcp_result(func: Callable[..., Awaitable["ToolResponse"]]) -> Callable[..., Awaitable[Any]]:
    """Adapt a handler returning ``ToolResponse`` to FastMCP's result conventions.

    Success becomes a single ``TextContent``; error responses are raised as
    ``ToolError`` so the client receives ``isError: true`` with the JSON payload.
    """
    from fastmcp.exceptions import ToolError
    from mcp.types import TextContent

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        response = await func(*args, **kwargs)
        item = response.content[0]
        if response.is_error:
            raise ToolError(item.text)
        return TextContent(type="text", text=item.text, mimeType=item.mimeType)

    return wrapper


def register_all(
    mcp: "FastMCP",
    registry: ToolRegistry,
    manager: "ConnectorManager",
    coordinator: "ExecutionCoordinator",
) -> None:
    """Register every binding with the MCP server."""
    from sql_gateway.tools import execute_sql, search_objects
    from sql_gateway.utils.tracing import trace_tool

    for binding in registry:
        if binding.kind == "execute_sql":
            handler = execute_sql.create_execute_sql_tool_handler(binding, manager, coordinator)
            description = execute_sql.describe(binding)
        else:
            handler = search_objects.create_search_objects_tool_handler(binding, manager)
            description = search_objects.describe(binding)

        traced = trace_tool(binding.name, binding.source_id)(handler)
        mcp.tool(name=binding.name, description=description)(to_mcp_result(traced))

    logger.info(
        "Registered %d tools with MCP server: %s", len(registry), json.dumps(registry.names())
    )
