"""Tool executor - resolves qualified tool names and dispatches calls to plugins."""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from moxie.plugins.base import ToolDefinition, ToolResult
from moxie.plugins.errors import PluginDisabled, PluginError, ToolNotFound
from moxie.plugins.loader import PluginLoader
from moxie.plugins.registry import PluginInstance, PluginState
from moxie.plugins.schema import validate_params

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _exclusive(instance: PluginInstance):
    if instance.exclusive_lock is None:
        yield
    else:
        async with instance.exclusive_lock:
            yield


class ToolExecutor:
    """Dispatches tool calls to the plugins that own them.

    The tool table only holds tools of ``active`` plugins and is rebuilt
    whenever the loader reports a lifecycle change.
    """

    def __init__(self, loader: PluginLoader):
        self.loader = loader
        self._tools: Dict[str, Tuple[ToolDefinition, PluginInstance]] = {}
        loader.add_listener(self._on_lifecycle_change)
        self.refresh()

    def _on_lifecycle_change(self, instance: PluginInstance, previous: PluginState) -> None:
        self.refresh()

    def refresh(self) -> None:
        table = {}
        for instance in self.loader.active_plugins():
            for tool in instance.tools:
                table[tool.qualified_name] = (tool, instance)
        self._tools = table
        logger.debug(f"Tool table rebuilt: {len(table)} tool(s)")

    def list_tools(self) -> List[ToolDefinition]:
        return [self._tools[name][0] for name in sorted(self._tools)]

    def get_tool(self, qualified_name: str) -> Optional[ToolDefinition]:
        entry = self._tools.get(qualified_name)
        return entry[0] if entry else None

    async def execute(self, qualified_name: str, params: Any = None) -> ToolResult:
        """Execute a tool by qualified name.

        Failures inside the plugin (hooks or tool body) are returned as a
        failed ToolResult. Calls are never retried.

        Raises:
            ToolNotFound: No active plugin exposes the tool
            InvalidParameters: ``params`` do not match the tool's schema; the plugin is not called
            PluginDisabled: The owning plugin left ``active`` before dispatch
        """
        entry = self._tools.get(qualified_name)
        if entry is None:
            raise ToolNotFound(qualified_name)
        tool, instance = entry

        params = validate_params(tool.parameters, {} if params is None else params)

        if instance.state != PluginState.ACTIVE:
            raise PluginDisabled(instance.id)

        instance.begin_call()
        try:
            async with _exclusive(instance):
                return await self._invoke(tool, instance, params)
        finally:
            instance.end_call()

    async def _invoke(self, tool: ToolDefinition, instance: PluginInstance, params: Dict[str, Any]) -> ToolResult:
        plugin = instance.plugin
        duration_ms = 0
        try:
            await plugin.before_execute(tool.name, params)

            started = time.perf_counter()
            try:
                value = await plugin.execute(tool.name, params, instance.context)
            finally:
                duration_ms = int((time.perf_counter() - started) * 1000)

            if isinstance(value, ToolResult):
                result = value.with_duration(duration_ms)
            else:
                result = ToolResult.ok(value, duration_ms)

            await plugin.after_execute(tool.name, result)
        except Exception as e:
            logger.warning(f"Tool {tool.qualified_name} failed: {e}")
            return ToolResult.fail(str(e), duration_ms)

        logger.info(
            f"Tool {tool.qualified_name} finished: success={result.success}, {result.duration_ms}ms"
        )
        return result

    async def execute_safe(self, qualified_name: str, params: Any = None) -> ToolResult:
        """Like ``execute`` but resolution and validation errors become failed results."""
        try:
            return await self.execute(qualified_name, params)
        except PluginError as e:
            return ToolResult.fail(str(e))
