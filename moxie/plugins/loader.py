"""Plugin loader - owns the plugin registry and drives lifecycle transitions."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from moxie.constants import DEBUG, PLUGIN_DRAIN_TIMEOUT, PLUGINS_DATA_DIR
from moxie.plugins.base import ConfigurablePlugin, Plugin, ToolDefinition
from moxie.plugins.errors import ConfigError, DuplicateIdError, PluginError, PluginNotFound
from moxie.plugins.lifecycle import PluginLifecycle, ShutdownTimeout
from moxie.plugins.manifest import PluginManifest
from moxie.plugins.registry import PluginInstance, PluginRegistry, PluginState

logger = logging.getLogger(__name__)

Listener = Callable[[PluginInstance, PluginState], None]


class PluginLoader:
    """Registers plugins and moves them through their lifecycle.

    Tool execution is not handled here; the ToolExecutor subscribes with
    ``add_listener`` and reads active plugins from the loader.
    """

    def __init__(
        self,
        data_root: Optional[Path] = None,
        debug: bool = DEBUG,
        drain_timeout: float = PLUGIN_DRAIN_TIMEOUT,
    ):
        self.registry = PluginRegistry()
        self.drain_timeout = drain_timeout
        self.lifecycle = PluginLifecycle(
            data_root or PLUGINS_DATA_DIR,
            debug=debug,
            on_change=self._notify,
        )
        self._listeners: List[Listener] = []

    # ---- listeners ----

    def add_listener(self, listener: Listener) -> None:
        """Subscribe to lifecycle changes: ``listener(instance, previous_state)``."""
        self._listeners.append(listener)

    def _notify(self, instance: PluginInstance, previous: PluginState) -> None:
        for listener in list(self._listeners):
            try:
                listener(instance, previous)
            except Exception:
                logger.exception(f"Plugin listener failed for {instance.id}")

    # ---- registration ----

    def register(
        self,
        plugin: Plugin,
        config: Optional[Dict[str, Any]] = None,
        *,
        source: str = "builtin",
        path: Optional[Path] = None,
    ) -> PluginInstance:
        """Register a plugin in state ``registered``.

        Args:
            plugin: Plugin object
            config: Plugin config table; validated against the manifest's config fields
            source: Where the plugin came from ("builtin", "bundled", ...)
            path: Plugin directory, for discovered plugins

        Returns:
            The new PluginInstance

        Raises:
            DuplicateIdError: The id is already registered; the first registration is kept
            ConfigError: Invalid manifest, unmet dependency, bad config or bad tool list
        """
        manifest = plugin.manifest
        if not isinstance(manifest, PluginManifest):
            raise ConfigError(f"{type(plugin).__name__}.manifest is not a PluginManifest")
        if self.registry.has(manifest.id):
            raise DuplicateIdError(manifest.id)

        self._check_dependencies(manifest)
        resolved = manifest.apply_config(config)
        if isinstance(plugin, ConfigurablePlugin):
            try:
                plugin.validate_config(resolved)
            except PluginError:
                raise
            except Exception as e:
                raise ConfigError(f"{manifest.id}: {e}") from e

        instance = PluginInstance(
            plugin=plugin,
            manifest=manifest,
            tools=self._snapshot_tools(manifest.id, plugin),
            config=resolved,
            source=source,
            path=path,
        )
        self.registry.add(instance)
        logger.debug(f"Plugin {manifest.id} config: {manifest.masked_config(resolved)}")
        self._notify(instance, PluginState.REGISTERED)
        return instance

    def _check_dependencies(self, manifest: PluginManifest) -> None:
        for dep_id, required in manifest.dependencies.items():
            dep = self.registry.get(dep_id)
            if dep is None:
                raise ConfigError(f"{manifest.id}: missing dependency '{dep_id}'")
            if not dep.manifest.version.is_compatible_with(required):
                raise ConfigError(
                    f"{manifest.id}: dependency '{dep_id}' {dep.manifest.version} "
                    f"is not compatible with required {required}"
                )

    @staticmethod
    def _snapshot_tools(plugin_id: str, plugin: Plugin) -> Tuple[ToolDefinition, ...]:
        try:
            declared = list(plugin.tools())
        except Exception as e:
            raise ConfigError(f"{plugin_id}: tools() failed: {e}") from e

        tools = []
        seen = set()
        for tool in declared:
            if not isinstance(tool, ToolDefinition) or not tool.name:
                raise ConfigError(f"{plugin_id}: invalid tool definition {tool!r}")
            if tool.name in seen:
                raise ConfigError(f"{plugin_id}: duplicate tool name '{tool.name}'")
            seen.add(tool.name)
            tools.append(ToolDefinition(
                name=tool.name,
                description=tool.description,
                parameters=tool.parameters,
                requires_confirmation=tool.requires_confirmation,
                plugin_id=plugin_id,
            ))
        return tuple(tools)

    # ---- lifecycle ----

    async def init_all(self) -> Dict[str, PluginState]:
        """Initialize every ``registered`` plugin, dependencies first.

        Plugins whose dependencies are settled are initialized concurrently,
        wave by wave. A failing plugin ends ``failed``, and so does every
        plugin depending on it; the others are not affected.

        Returns:
            Resulting state per initialized plugin id
        """
        pending = {p.id: p for p in self.registry.get_in_state(PluginState.REGISTERED)}
        result: Dict[str, PluginState] = {}
        while pending:
            wave = [
                p for p in pending.values()
                if not any(dep in pending for dep in p.manifest.dependencies)
            ]
            if not wave:
                logger.warning(f"Dependency cycle among plugins: {sorted(pending)}")
                wave = list(pending.values())
            states = await asyncio.gather(
                *(self.lifecycle.initialize(p, self._blocked_by(p)) for p in wave)
            )
            for instance, state in zip(wave, states):
                result[instance.id] = state
                del pending[instance.id]

        active = sum(1 for s in result.values() if s == PluginState.ACTIVE)
        logger.info(f"Plugin system initialized, {active}/{len(result)} plugins active")
        return result

    async def init_plugin(self, plugin_id: str) -> PluginState:
        instance = self.require(plugin_id)
        return await self.lifecycle.initialize(instance, self._blocked_by(instance))

    def _blocked_by(self, instance: PluginInstance) -> Optional[str]:
        """Reason a plugin cannot start because of a dependency, or None."""
        for dep_id in instance.manifest.dependencies:
            dep = self.registry.get(dep_id)
            if dep is None:
                return f"dependency '{dep_id}' is not registered"
            if dep.state in (PluginState.FAILED, PluginState.TERMINATED, PluginState.SHUTTING_DOWN):
                return f"dependency '{dep_id}' is {dep.state.value}"
        return None

    async def enable(self, plugin_id: str) -> PluginInstance:
        instance = self.require(plugin_id)
        await self.lifecycle.enable(instance)
        return instance

    async def disable(self, plugin_id: str) -> PluginInstance:
        instance = self.require(plugin_id)
        await self.lifecycle.disable(instance)
        return instance

    async def shutdown_all(self, drain_timeout: Optional[float] = None) -> List[ShutdownTimeout]:
        """Shut down every plugin in reverse registration order.

        Returns:
            Warning records for plugins whose in-flight calls did not drain in time
        """
        timeout = self.drain_timeout if drain_timeout is None else drain_timeout
        warnings = []
        for instance in reversed(self.registry.get_all()):
            warning = await self.lifecycle.shutdown(instance, timeout)
            if warning:
                warnings.append(warning)
        logger.info("All plugins stopped")
        return warnings

    # ---- read API ----

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        return self.registry.get(plugin_id)

    def require(self, plugin_id: str) -> PluginInstance:
        """Get a plugin or raise PluginNotFound."""
        instance = self.registry.get(plugin_id)
        if instance is None:
            raise PluginNotFound(plugin_id)
        return instance

    def get_state(self, plugin_id: str) -> PluginState:
        return self.require(plugin_id).state

    def list_manifests(self) -> List[PluginManifest]:
        return [p.manifest for p in self.registry.get_all()]

    def list_active(self) -> List[str]:
        """Ids of active plugins, in registration order."""
        return [p.id for p in self.active_plugins()]

    def active_plugins(self) -> List[PluginInstance]:
        return self.registry.get_in_state(PluginState.ACTIVE)

    def list_plugins(self) -> List[dict]:
        """List all plugins as dicts."""
        return [p.to_dict() for p in self.registry.get_all()]
