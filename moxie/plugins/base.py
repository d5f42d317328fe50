"""Plugin contract - the interface every plugin implements, and the records it exchanges."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from moxie.plugins.manifest import PluginManifest


def default_parameter_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


@dataclass(frozen=True)
class ToolDefinition:
    """A tool a plugin exposes.

    ``plugin_id`` is filled in by the loader when the tool list is captured,
    so plugins may leave it empty.
    """

    name: str
    description: str = ""
    parameters: Dict[str, Any] = field(default_factory=default_parameter_schema)
    requires_confirmation: bool = False
    plugin_id: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.plugin_id}.{self.name}"

    def to_dict(self) -> dict:
        return {
            "name": self.qualified_name,
            "tool": self.name,
            "plugin_id": self.plugin_id,
            "description": self.description,
            "parameters": self.parameters,
            "requires_confirmation": self.requires_confirmation,
        }


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call. Build with ``ok()`` or ``fail()``."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    duration_ms: int = 0

    @classmethod
    def ok(cls, data: Any = None, duration_ms: int = 0) -> "ToolResult":
        return cls(success=True, data=data, duration_ms=duration_ms)

    @classmethod
    def fail(cls, message: str, duration_ms: int = 0) -> "ToolResult":
        return cls(success=False, error=str(message), duration_ms=duration_ms)

    def with_duration(self, duration_ms: int) -> "ToolResult":
        if self.success:
            return ToolResult.ok(self.data, duration_ms)
        return ToolResult.fail(self.error or "", duration_ms)

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "data": self.data, "duration_ms": self.duration_ms}
        return {"success": False, "error": self.error, "duration_ms": self.duration_ms}


@dataclass(frozen=True)
class PluginContext:
    """What a plugin receives on initialization."""

    plugin_id: str
    config: Dict[str, Any]
    data_dir: Path
    debug: bool = False

    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"plugin.{self.plugin_id}")


class Plugin(ABC):
    """Base class for plugins.

    Subclasses provide a manifest and ``execute``; every lifecycle hook
    defaults to a no-op.
    """

    @property
    @abstractmethod
    def manifest(self) -> PluginManifest:
        ...

    def tools(self) -> List[ToolDefinition]:
        """Tools this plugin exposes. Read once at registration."""
        return []

    @abstractmethod
    async def execute(self, tool: str, params: Dict[str, Any], ctx: PluginContext) -> Any:
        """Run a tool.

        Args:
            tool: Unqualified tool name
            params: Parameters, already validated against the tool schema
            ctx: Context of the current initialization

        Returns:
            A ToolResult, or any JSON-serializable value wrapped as success data
        """
        ...

    async def on_init(self, ctx: PluginContext) -> None:
        pass

    async def on_enable(self) -> None:
        pass

    async def on_disable(self) -> None:
        pass

    async def on_shutdown(self) -> None:
        pass

    async def before_execute(self, tool: str, params: Dict[str, Any]) -> None:
        pass

    async def after_execute(self, tool: str, result: ToolResult) -> None:
        pass


@runtime_checkable
class ConfigurablePlugin(Protocol):
    """Plugins that check their own config beyond the manifest's field types."""

    def validate_config(self, config: Dict[str, Any]) -> None:
        """Raise ConfigError if the config is unusable."""
        ...
