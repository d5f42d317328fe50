"""Tests for plugin registration and lifecycle transitions."""

import asyncio

import pytest

from moxie.plugins.base import ToolDefinition
from moxie.plugins.errors import (
    ConfigError,
    DuplicateIdError,
    ExecutionFailed,
    InvalidStateTransition,
    PluginNotFound,
)
from moxie.plugins.lifecycle import ShutdownTimeout
from moxie.plugins.registry import PluginState


class TestRegistration:
    """Tests for PluginLoader.register."""

    def test_register_starts_registered(self, loader, fake_plugin):
        instance = loader.register(fake_plugin)
        assert instance.state == PluginState.REGISTERED
        assert instance.load_order == 0
        assert [t.qualified_name for t in instance.tools] == [
            "com.example.echo.echo",
            "com.example.echo.count",
            "com.example.echo.boom",
            "com.example.echo.soft_fail",
        ]

    def test_duplicate_id_keeps_first(self, loader, plugin_factory):
        first = plugin_factory()
        loader.register(first)
        with pytest.raises(DuplicateIdError):
            loader.register(plugin_factory())
        assert loader.get("com.example.echo").plugin is first
        assert loader.registry.count() == 1

    def test_load_order_follows_registration(self, loader, plugin_factory, manifest_factory):
        loader.register(plugin_factory(manifest_factory("a.one")))
        loader.register(plugin_factory(manifest_factory("b.two")))
        assert [p.load_order for p in loader.registry.get_all()] == [0, 1]

    def test_missing_dependency(self, loader, plugin_factory, manifest_factory):
        plugin = plugin_factory(manifest_factory("b.two", dependencies={"a.one": "1.0.0"}))
        with pytest.raises(ConfigError) as exc_info:
            loader.register(plugin)
        assert "missing dependency 'a.one'" in str(exc_info.value)
        assert not loader.registry.has("b.two")

    def test_incompatible_dependency(self, loader, plugin_factory, manifest_factory):
        loader.register(plugin_factory(manifest_factory("a.one", version="1.0.0")))
        plugin = plugin_factory(manifest_factory("b.two", dependencies={"a.one": "2.0.0"}))
        with pytest.raises(ConfigError) as exc_info:
            loader.register(plugin)
        assert "not compatible" in str(exc_info.value)

    def test_compatible_dependency(self, loader, plugin_factory, manifest_factory):
        loader.register(plugin_factory(manifest_factory("a.one", version="1.4.2")))
        plugin = plugin_factory(manifest_factory("b.two", dependencies={"a.one": "1.2.0"}))
        assert loader.register(plugin).state == PluginState.REGISTERED

    def test_required_config(self, loader, plugin_factory, manifest_factory):
        manifest = manifest_factory(
            config_fields=[{"key": "allowed_paths", "type": "path_array", "required": True}]
        )
        with pytest.raises(ConfigError):
            loader.register(plugin_factory(manifest))

        instance = loader.register(plugin_factory(manifest), {"allowed_paths": ["/tmp"]})
        assert instance.config == {"allowed_paths": ["/tmp"]}

    def test_duplicate_tool_names(self, loader, plugin_factory):
        tools = [ToolDefinition(name="echo"), ToolDefinition(name="echo")]
        with pytest.raises(ConfigError) as exc_info:
            loader.register(plugin_factory(tools=tools))
        assert "duplicate tool name 'echo'" in str(exc_info.value)

    def test_invalid_tool_definition(self, loader, plugin_factory):
        with pytest.raises(ConfigError):
            loader.register(plugin_factory(tools=[{"name": "echo"}]))

    def test_tool_plugin_id_is_bound_by_loader(self, loader, plugin_factory, manifest_factory):
        plugin = plugin_factory(manifest_factory("x.y"), tools=[ToolDefinition(name="t", plugin_id="spoofed")])
        instance = loader.register(plugin)
        assert instance.tools[0].qualified_name == "x.y.t"

    def test_require_unknown(self, loader):
        with pytest.raises(PluginNotFound):
            loader.require("nope")
        assert loader.get("nope") is None


class TestInitialization:
    """Tests for init_all and init_plugin."""

    def test_init_all_activates_and_builds_context(self, loader, fake_plugin, tmp_path):
        loader.register(fake_plugin, {"greeting": "hi"})
        states = asyncio.run(loader.init_all())

        assert states == {"com.example.echo": PluginState.ACTIVE}
        assert fake_plugin.events == ["on_init"]
        ctx = fake_plugin.context
        assert ctx.plugin_id == "com.example.echo"
        assert ctx.config == {"greeting": "hi"}
        assert ctx.data_dir == tmp_path / "plugin-data" / "com.example.echo"
        assert ctx.data_dir.is_dir()
        assert loader.list_active() == ["com.example.echo"]

    def test_init_failure_is_isolated(self, loader, plugin_factory, manifest_factory):
        loader.register(plugin_factory(manifest_factory("a.good")))
        loader.register(plugin_factory(manifest_factory("b.bad"), fail_on="on_init"))
        loader.register(plugin_factory(manifest_factory("c.good")))

        states = asyncio.run(loader.init_all())

        assert states["b.bad"] == PluginState.FAILED
        assert loader.list_active() == ["a.good", "c.good"]
        error = loader.get("b.bad").error
        assert error.startswith("InitFailed(b.bad: ")
        assert "on_init exploded" in error

    def test_init_twice_is_rejected(self, loader, fake_plugin):
        loader.register(fake_plugin)
        asyncio.run(loader.init_plugin("com.example.echo"))
        with pytest.raises(InvalidStateTransition):
            asyncio.run(loader.init_plugin("com.example.echo"))

    def test_init_all_skips_non_registered(self, loader, fake_plugin):
        loader.register(fake_plugin)
        asyncio.run(loader.init_all())
        assert asyncio.run(loader.init_all()) == {}
        assert fake_plugin.events == ["on_init"]

    def test_dependents_of_failed_plugin_fail(self, loader, plugin_factory, manifest_factory):
        base = plugin_factory(manifest_factory("a.base", version="1.0.0"), fail_on="on_init")
        child = plugin_factory(manifest_factory("b.child", dependencies={"a.base": "1.0.0"}))
        grandchild = plugin_factory(manifest_factory("c.grandchild", dependencies={"b.child": "0.1.0"}))
        other = plugin_factory(manifest_factory("d.other"))
        for plugin in (base, child, grandchild, other):
            loader.register(plugin)

        states = asyncio.run(loader.init_all())

        assert states == {
            "a.base": PluginState.FAILED,
            "b.child": PluginState.FAILED,
            "c.grandchild": PluginState.FAILED,
            "d.other": PluginState.ACTIVE,
        }
        assert child.events == []
        assert grandchild.events == []
        assert loader.get("b.child").error == "InitFailed(b.child: dependency 'a.base' is failed)"

    def test_dependency_initializes_first(self, loader, plugin_factory, manifest_factory):
        order = []
        base = plugin_factory(manifest_factory("a.base", version="1.0.0"))
        child = plugin_factory(manifest_factory("b.child", dependencies={"a.base": "1.0.0"}))
        loader.add_listener(lambda instance, previous: order.append((instance.id, instance.state.value)))
        loader.register(base)
        loader.register(child)

        asyncio.run(loader.init_all())

        active = [pid for pid, state in order if state == "active"]
        assert active == ["a.base", "b.child"]


class TestEnableDisable:
    """Tests for enable/disable transitions."""

    def test_disable_then_enable(self, loader, fake_plugin):
        loader.register(fake_plugin)

        async def run():
            await loader.init_all()
            await loader.disable("com.example.echo")
            disabled = loader.get_state("com.example.echo")
            await loader.enable("com.example.echo")
            return disabled

        assert asyncio.run(run()) == PluginState.DISABLED
        assert loader.get_state("com.example.echo") == PluginState.ACTIVE
        assert fake_plugin.events == ["on_init", "on_disable", "on_enable"]

    def test_enable_active_plugin_is_invalid(self, loader, fake_plugin):
        loader.register(fake_plugin)
        asyncio.run(loader.init_all())
        with pytest.raises(InvalidStateTransition) as exc_info:
            asyncio.run(loader.enable("com.example.echo"))
        assert str(exc_info.value) == "InvalidStateTransition(com.example.echo: active -> active)"
        assert "on_enable" not in fake_plugin.events

    def test_disable_registered_plugin_is_invalid(self, loader, fake_plugin):
        loader.register(fake_plugin)
        with pytest.raises(InvalidStateTransition):
            asyncio.run(loader.disable("com.example.echo"))
        assert loader.get_state("com.example.echo") == PluginState.REGISTERED

    def test_hook_failure_leaves_state_unchanged(self, loader, plugin_factory):
        loader.register(plugin_factory(fail_on="on_disable"))
        asyncio.run(loader.init_all())

        with pytest.raises(ExecutionFailed) as exc_info:
            asyncio.run(loader.disable("com.example.echo"))

        assert "on_disable exploded" in str(exc_info.value)
        assert loader.get_state("com.example.echo") == PluginState.ACTIVE

    def test_unknown_plugin(self, loader):
        with pytest.raises(PluginNotFound):
            asyncio.run(loader.enable("nope"))


class TestShutdown:
    """Tests for shutdown_all."""

    def test_reverse_registration_order(self, loader, plugin_factory, manifest_factory):
        order = []
        for plugin_id in ("a.one", "b.two", "c.three"):
            loader.register(plugin_factory(manifest_factory(plugin_id)))
        loader.add_listener(
            lambda instance, previous: order.append(instance.id)
            if instance.state == PluginState.TERMINATED else None
        )

        async def run():
            await loader.init_all()
            return await loader.shutdown_all()

        assert asyncio.run(run()) == []
        assert order == ["c.three", "b.two", "a.one"]
        assert all(p.state == PluginState.TERMINATED for p in loader.registry.get_all())

    def test_registered_goes_straight_to_terminated(self, loader, fake_plugin):
        loader.register(fake_plugin)
        asyncio.run(loader.shutdown_all())
        assert loader.get_state("com.example.echo") == PluginState.TERMINATED
        assert fake_plugin.events == []

    def test_failed_stays_failed(self, loader, plugin_factory):
        plugin = plugin_factory(fail_on="on_init")
        loader.register(plugin)

        async def run():
            await loader.init_all()
            await loader.shutdown_all()

        asyncio.run(run())
        assert loader.get_state("com.example.echo") == PluginState.FAILED
        assert "on_shutdown" not in plugin.events

    def test_disabled_plugin_is_shut_down(self, loader, fake_plugin):
        loader.register(fake_plugin)

        async def run():
            await loader.init_all()
            await loader.disable("com.example.echo")
            await loader.shutdown_all()

        asyncio.run(run())
        assert loader.get_state("com.example.echo") == PluginState.TERMINATED
        assert fake_plugin.events[-1] == "on_shutdown"

    def test_on_shutdown_failure_still_terminates(self, loader, plugin_factory):
        loader.register(plugin_factory(fail_on="on_shutdown"))

        async def run():
            await loader.init_all()
            await loader.shutdown_all()

        asyncio.run(run())
        instance = loader.get("com.example.echo")
        assert instance.state == PluginState.TERMINATED
        assert "on_shutdown exploded" in instance.error

    def test_shutdown_waits_for_in_flight_calls(self, loader, executor, plugin_factory):
        async def run():
            gate = asyncio.Event()
            plugin = plugin_factory(gate=gate)
            loader.register(plugin)
            await loader.init_all()

            call = asyncio.create_task(executor.execute("com.example.echo.echo", {"input": "hi"}))
            await asyncio.sleep(0)
            assert loader.get("com.example.echo").in_flight == 1

            asyncio.get_running_loop().call_later(0.05, gate.set)
            warnings = await loader.shutdown_all(drain_timeout=2)
            return warnings, await call, plugin

        warnings, result, plugin = asyncio.run(run())
        assert warnings == []
        assert result.success
        # on_shutdown ran only after the call finished
        assert plugin.events.index("after_execute") < plugin.events.index("on_shutdown")

    def test_drain_timeout_produces_warning(self, loader, executor, plugin_factory):
        async def run():
            gate = asyncio.Event()
            plugin = plugin_factory(gate=gate)
            loader.register(plugin)
            await loader.init_all()

            call = asyncio.create_task(executor.execute("com.example.echo.echo", {"input": "hi"}))
            await asyncio.sleep(0)

            warnings = await loader.shutdown_all(drain_timeout=0.05)
            state = loader.get_state("com.example.echo")
            gate.set()
            await call
            return warnings, state

        warnings, state = asyncio.run(run())
        assert state == PluginState.TERMINATED
        assert len(warnings) == 1
        warning = warnings[0]
        assert isinstance(warning, ShutdownTimeout)
        assert warning.plugin_id == "com.example.echo"
        assert warning.in_flight == 1
        assert str(warning).startswith("ShutdownTimeout(com.example.echo: 1 call(s)")


class TestListeners:
    """Tests for lifecycle listeners."""

    def test_listener_sees_every_transition(self, loader, fake_plugin):
        seen = []
        loader.add_listener(lambda instance, previous: seen.append((previous.value, instance.state.value)))
        loader.register(fake_plugin)

        async def run():
            await loader.init_all()
            await loader.shutdown_all()

        asyncio.run(run())
        assert seen == [
            ("registered", "registered"),
            ("registered", "initializing"),
            ("initializing", "active"),
            ("active", "shutting_down"),
            ("shutting_down", "terminated"),
        ]

    def test_failing_listener_does_not_break_lifecycle(self, loader, fake_plugin):
        def broken(instance, previous):
            raise RuntimeError("listener bug")

        loader.add_listener(broken)
        loader.register(fake_plugin)
        asyncio.run(loader.init_all())
        assert loader.get_state("com.example.echo") == PluginState.ACTIVE

    def test_list_plugins(self, loader, plugin_factory, manifest_factory):
        manifest = manifest_factory(config_fields=[{"key": "token", "type": "secret"}])
        loader.register(plugin_factory(manifest), {"token": "hunter2"})
        listed = loader.list_plugins()[0]
        assert listed["state"] == "registered"
        assert listed["config"] == {"token": "********"}
        assert "com.example.echo.echo" in listed["tools"]
