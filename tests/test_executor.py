"""Tests for tool dispatch."""

import asyncio

import pytest

from moxie.plugins.errors import InvalidParameters, PluginDisabled, ToolNotFound
from moxie.plugins.registry import PluginState


def start(loader, *plugins):
    for plugin in plugins:
        loader.register(plugin)
    asyncio.run(loader.init_all())


class TestToolTable:
    """Tests for the executor's tool table."""

    def test_lists_tools_of_active_plugins(self, loader, executor, fake_plugin):
        loader.register(fake_plugin)
        assert executor.list_tools() == []

        asyncio.run(loader.init_all())
        names = [t.qualified_name for t in executor.list_tools()]
        assert names == sorted(names)
        assert "com.example.echo.echo" in names
        assert executor.get_tool("com.example.echo.echo").plugin_id == "com.example.echo"

    def test_disable_removes_tools(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        asyncio.run(loader.disable("com.example.echo"))

        assert executor.list_tools() == []
        with pytest.raises(ToolNotFound):
            asyncio.run(executor.execute("com.example.echo.echo", {"input": "hi"}))

        asyncio.run(loader.enable("com.example.echo"))
        assert executor.get_tool("com.example.echo.echo") is not None

    def test_failed_plugin_exposes_no_tools(self, loader, executor, plugin_factory):
        start(loader, plugin_factory(fail_on="on_init"))
        assert executor.list_tools() == []

    def test_same_tool_name_in_two_plugins(self, loader, executor, plugin_factory, manifest_factory):
        start(loader, plugin_factory(manifest_factory("a.one")), plugin_factory(manifest_factory("b.two")))
        assert executor.get_tool("a.one.echo") is not None
        assert executor.get_tool("b.two.echo") is not None


class TestExecute:
    """Tests for ToolExecutor.execute."""

    def test_echo(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        result = asyncio.run(executor.execute("com.example.echo.echo", {"input": "hi"}))

        assert result.success
        assert result.data == {"result": "hi"}
        assert result.duration_ms >= 0
        assert result.to_dict() == {"success": True, "data": {"result": "hi"}, "duration_ms": result.duration_ms}
        assert fake_plugin.events == ["on_init", "before_execute", "after_execute"]

    def test_unknown_tool(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        with pytest.raises(ToolNotFound) as exc_info:
            asyncio.run(executor.execute("com.example.echo.missing", {}))
        assert str(exc_info.value) == "ToolNotFound(com.example.echo.missing)"

    def test_invalid_parameters_never_reach_the_plugin(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        with pytest.raises(InvalidParameters) as exc_info:
            asyncio.run(executor.execute("com.example.echo.echo", {"input": 42}))

        assert "parameter 'input' expected string, got integer" in str(exc_info.value)
        assert fake_plugin.calls == []
        assert "before_execute" not in fake_plugin.events

    def test_missing_parameters(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        with pytest.raises(InvalidParameters):
            asyncio.run(executor.execute("com.example.echo.count"))

    def test_unexpected_parameter_on_closed_schema(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        with pytest.raises(InvalidParameters) as exc_info:
            asyncio.run(executor.execute("com.example.echo.count", {"count": 2, "step": 1}))
        assert "unexpected parameter 'step'" in str(exc_info.value)

    def test_raising_tool_becomes_failed_result(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        result = asyncio.run(executor.execute("com.example.echo.boom"))

        assert not result.success
        assert result.error == "tool exploded"
        assert result.to_dict()["error"] == "tool exploded"
        assert "after_execute" not in fake_plugin.events

    def test_returned_result_gets_measured_duration(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        result = asyncio.run(executor.execute("com.example.echo.soft_fail"))

        assert not result.success
        assert result.error == "nothing to do"
        assert result.duration_ms != 999

    def test_failing_before_hook_becomes_failed_result(self, loader, executor, plugin_factory):
        plugin = plugin_factory(fail_on="before_execute")
        start(loader, plugin)
        result = asyncio.run(executor.execute("com.example.echo.echo", {"input": "hi"}))

        assert not result.success
        assert "before_execute exploded" in result.error
        assert plugin.calls == []

    def test_in_flight_is_released(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        asyncio.run(executor.execute("com.example.echo.boom"))
        assert loader.get("com.example.echo").in_flight == 0

    def test_plugin_disabled_before_dispatch(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        # State changed without a listener notification, so the table is stale
        instance = loader.get("com.example.echo")
        instance.state = PluginState.DISABLED
        with pytest.raises(PluginDisabled):
            asyncio.run(executor.execute("com.example.echo.echo", {"input": "hi"}))


class TestConcurrency:
    """Tests for concurrent dispatch."""

    def test_calls_run_concurrently_by_default(self, loader, executor, plugin_factory):
        async def run():
            gate = asyncio.Event()
            plugin = plugin_factory(gate=gate)
            loader.register(plugin)
            await loader.init_all()

            calls = [
                asyncio.create_task(executor.execute("com.example.echo.echo", {"input": str(i)}))
                for i in range(3)
            ]
            await asyncio.sleep(0.01)
            gate.set()
            return plugin, await asyncio.gather(*calls)

        plugin, results = asyncio.run(run())
        assert plugin.max_running == 3
        assert [r.data["result"] for r in results] == ["0", "1", "2"]

    def test_exclusive_execution_serializes_calls(self, loader, executor, plugin_factory, manifest_factory):
        async def run():
            gate = asyncio.Event()
            plugin = plugin_factory(manifest_factory(exclusive_execution=True), gate=gate)
            loader.register(plugin)
            await loader.init_all()

            calls = [
                asyncio.create_task(executor.execute("com.example.echo.echo", {"input": str(i)}))
                for i in range(3)
            ]
            await asyncio.sleep(0.01)
            in_flight = loader.get("com.example.echo").in_flight
            gate.set()
            return plugin, in_flight, await asyncio.gather(*calls)

        plugin, in_flight, results = asyncio.run(run())
        assert in_flight == 3
        assert plugin.max_running == 1
        assert all(r.success for r in results)


class TestExecuteSafe:
    """Tests for ToolExecutor.execute_safe."""

    def test_errors_become_failed_results(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        result = asyncio.run(executor.execute_safe("com.example.echo.missing"))
        assert not result.success
        assert result.error == "ToolNotFound(com.example.echo.missing)"

    def test_success_passes_through(self, loader, executor, fake_plugin):
        start(loader, fake_plugin)
        result = asyncio.run(executor.execute_safe("com.example.echo.count", {"count": 3}))
        assert result.data == [0, 1, 2]
