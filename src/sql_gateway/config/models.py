"""Typed configuration models for sources and tool bindings."""

import re
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from dal.dsn import engine_from_dsn
from dal.engines import EngineType, parse_engine

SOURCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

ToolName = Literal["execute_sql", "search_objects"]

# Engines served by the same driver may share a DSN scheme.
_COMPATIBLE_SCHEMES = {
    EngineType.MYSQL: {EngineType.MYSQL, EngineType.MARIADB},
    EngineType.MARIADB: {EngineType.MYSQL, EngineType.MARIADB},
}


class ConfigError(ValueError):
    """Raised at startup when configuration is missing or invalid."""


class SourceConfig(BaseModel):
    """One database source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1, description="Unique source identifier")
    type: EngineType = Field(..., description="Database engine")
    dsn: str = Field(..., min_length=1, repr=False, description="Connection string")
    readonly: Optional[bool] = Field(None, description="Reject destructive statements")
    timeout: Optional[float] = Field(None, gt=0, description="Statement timeout in seconds")
    max_rows: Optional[int] = Field(None, gt=0, description="Row cap for staged results")

    @model_validator(mode="before")
    @classmethod
    def infer_type_from_dsn(cls, data: Any) -> Any:
        """Default ``type`` to the engine named by the DSN scheme."""
        if isinstance(data, dict) and not data.get("type") and data.get("dsn"):
            data = dict(data)
            data["type"] = engine_from_dsn(data["dsn"])
        return data

    @field_validator("id")
    @classmethod
    def validate_id(cls, value: str) -> str:
        if not SOURCE_ID_PATTERN.match(value):
            raise ValueError("source id may only contain letters, digits and underscores")
        return value

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> EngineType:
        if isinstance(value, EngineType):
            return value
        return parse_engine(str(value))

    @model_validator(mode="after")
    def check_dsn_scheme(self) -> "SourceConfig":
        dsn_engine = engine_from_dsn(self.dsn)
        if dsn_engine not in _COMPATIBLE_SCHEMES.get(self.type, {self.type}):
            raise ValueError(
                f"source '{self.id}' has type '{self.type.value}' "
                f"but its DSN is for '{dsn_engine.value}'"
            )
        return self


class ToolConfig(BaseModel):
    """An explicit tool binding; policy fields may only tighten the source."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: ToolName
    source: str = Field(..., min_length=1)
    readonly: Optional[bool] = None
    max_rows: Optional[int] = Field(None, gt=0)
    timeout: Optional[float] = Field(None, gt=0)
    report_truncation: bool = False


class GatewayConfig(BaseModel):
    """Complete gateway configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    sources: List[SourceConfig] = Field(..., min_length=1)
    tools: List[ToolConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_references(self) -> "GatewayConfig":
        seen: set[str] = set()
        for source in self.sources:
            if source.id in seen:
                raise ValueError(f"duplicate source id '{source.id}'")
            seen.add(source.id)

        bindings: set[tuple[str, str]] = set()
        for tool in self.tools:
            if tool.source not in seen:
                raise ValueError(f"tool '{tool.name}' references unknown source '{tool.source}'")
            key = (tool.name, tool.source)
            if key in bindings:
                raise ValueError(f"tool '{tool.name}' is bound to source '{tool.source}' twice")
            bindings.add(key)
        return self

    @property
    def default_source(self) -> SourceConfig:
        return self.sources[0]

    def get_source(self, source_id: str) -> SourceConfig:
        for source in self.sources:
            if source.id == source_id:
                return source
        raise KeyError(source_id)
