"""Shared fixtures: a configurable in-memory plugin and a loader over tmp dirs."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from moxie.plugins.base import Plugin, PluginContext, ToolDefinition, ToolResult
from moxie.plugins.executor import ToolExecutor
from moxie.plugins.loader import PluginLoader
from moxie.plugins.manifest import PluginManifest


def make_manifest(plugin_id: str = "com.example.echo", **kwargs) -> PluginManifest:
    data = {"id": plugin_id, "name": plugin_id.split(".")[-1].title(), "description": "Test plugin"}
    data.update(kwargs)
    return PluginManifest(**data)


class FakePlugin(Plugin):
    """Echo-style plugin that records every hook call."""

    def __init__(
        self,
        manifest: Optional[PluginManifest] = None,
        fail_on: Optional[str] = None,
        gate: Optional[asyncio.Event] = None,
        tools: Optional[List[ToolDefinition]] = None,
    ):
        self._manifest = manifest or make_manifest()
        self.fail_on = fail_on  # name of a hook that raises
        self.gate = gate        # when set, tool bodies wait for it
        self._tools = tools
        self.events: List[str] = []
        self.calls: List[tuple] = []
        self.context: Optional[PluginContext] = None
        self.running = 0
        self.max_running = 0

    @property
    def manifest(self) -> PluginManifest:
        return self._manifest

    def tools(self) -> List[ToolDefinition]:
        if self._tools is not None:
            return self._tools
        return [
            ToolDefinition(
                name="echo",
                description="Echo the input",
                parameters={
                    "type": "object",
                    "properties": {"input": {"type": "string"}},
                    "required": ["input"],
                },
            ),
            ToolDefinition(
                name="count",
                description="Count to n",
                parameters={
                    "type": "object",
                    "properties": {"count": {"type": "integer"}},
                    "required": ["count"],
                    "additionalProperties": False,
                },
            ),
            ToolDefinition(name="boom", description="Always raises"),
            ToolDefinition(name="soft_fail", description="Returns a failed result"),
        ]

    def _hook(self, name: str) -> None:
        self.events.append(name)
        if self.fail_on == name:
            raise RuntimeError(f"{name} exploded")

    async def on_init(self, ctx: PluginContext) -> None:
        self.context = ctx
        self._hook("on_init")

    async def on_enable(self) -> None:
        self._hook("on_enable")

    async def on_disable(self) -> None:
        self._hook("on_disable")

    async def on_shutdown(self) -> None:
        self._hook("on_shutdown")

    async def before_execute(self, tool: str, params: Dict[str, Any]) -> None:
        self._hook("before_execute")

    async def after_execute(self, tool: str, result: ToolResult) -> None:
        self._hook("after_execute")

    async def execute(self, tool: str, params: Dict[str, Any], ctx: PluginContext) -> Any:
        self.calls.append((tool, params))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if tool == "echo":
                return {"result": params["input"]}
            if tool == "count":
                return list(range(params["count"]))
            if tool == "boom":
                raise RuntimeError("tool exploded")
            if tool == "soft_fail":
                return ToolResult.fail("nothing to do", duration_ms=999)
            raise ValueError(f"Unknown tool: {tool}")
        finally:
            self.running -= 1


@pytest.fixture
def loader(tmp_path):
    return PluginLoader(tmp_path / "plugin-data", drain_timeout=0.5)


@pytest.fixture
def executor(loader):
    return ToolExecutor(loader)


@pytest.fixture
def fake_plugin():
    return FakePlugin()


@pytest.fixture
def plugin_factory():
    """The FakePlugin class, for tests that need several or customized plugins."""
    return FakePlugin


@pytest.fixture
def manifest_factory():
    return make_manifest
