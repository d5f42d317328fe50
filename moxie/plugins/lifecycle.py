"""Plugin lifecycle management - runs hooks and drives state transitions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from moxie.plugins.base import PluginContext
from moxie.plugins.errors import ExecutionFailed, InitFailed
from moxie.plugins.registry import PluginInstance, PluginState

logger = logging.getLogger(__name__)

StateListener = Callable[[PluginInstance, PluginState], None]


@dataclass(frozen=True)
class ShutdownTimeout:
    """Warning record: a plugin still had calls in flight when draining gave up."""

    plugin_id: str
    in_flight: int
    timeout_s: float

    def __str__(self) -> str:
        return (
            f"ShutdownTimeout({self.plugin_id}: {self.in_flight} call(s) "
            f"still running after {self.timeout_s}s)"
        )


class PluginLifecycle:
    """Manages plugin state transitions: init → enable/disable → shutdown.

    Every transition of one plugin happens under that plugin's lock, so at
    most one is in flight per plugin. ``on_change`` is called after each
    committed transition with the instance and its previous state.
    """

    def __init__(
        self,
        data_root: Path,
        debug: bool = False,
        on_change: Optional[StateListener] = None,
    ):
        self.data_root = data_root
        self.debug = debug
        self.on_change = on_change

    def _move(self, instance: PluginInstance, target: PluginState) -> None:
        previous = instance.transition(target)
        if self.on_change:
            self.on_change(instance, previous)

    def build_context(self, instance: PluginInstance) -> PluginContext:
        data_dir = self.data_root / instance.id
        data_dir.mkdir(parents=True, exist_ok=True)
        return PluginContext(
            plugin_id=instance.id,
            config=dict(instance.config),
            data_dir=data_dir,
            debug=self.debug,
        )

    async def initialize(self, instance: PluginInstance, blocked_by: Optional[str] = None) -> PluginState:
        """Run ``on_init``; the plugin ends ``active`` or ``failed``.

        Init failures are recorded on the instance and logged, never raised.
        With ``blocked_by`` set, ``on_init`` is skipped and the plugin fails
        with that reason.

        Raises:
            InvalidStateTransition: The plugin is not ``registered``
        """
        async with instance.lock:
            self._move(instance, PluginState.INITIALIZING)
            if blocked_by:
                return self._fail_init(instance, blocked_by)
            try:
                ctx = self.build_context(instance)
                await instance.plugin.on_init(ctx)
            except Exception as e:
                return self._fail_init(instance, str(e))

            instance.context = ctx
            instance.error = None
            self._move(instance, PluginState.ACTIVE)
            return instance.state

    def _fail_init(self, instance: PluginInstance, reason: str) -> PluginState:
        error = InitFailed(f"{instance.id}: {reason}")
        instance.error = str(error)
        logger.error(f"Failed to initialize plugin {instance.id}: {error}")
        self._move(instance, PluginState.FAILED)
        return instance.state

    async def enable(self, instance: PluginInstance) -> None:
        """Re-activate a disabled plugin.

        Raises:
            InvalidStateTransition: The plugin is not ``disabled``
            ExecutionFailed: ``on_enable`` raised; the state is unchanged
        """
        async with instance.lock:
            instance.check_transition(PluginState.ACTIVE)
            await self._run_hook(instance, "on_enable")
            self._move(instance, PluginState.ACTIVE)

    async def disable(self, instance: PluginInstance) -> None:
        """Take an active plugin out of tool dispatch.

        Raises:
            InvalidStateTransition: The plugin is not ``active``
            ExecutionFailed: ``on_disable`` raised; the state is unchanged
        """
        async with instance.lock:
            instance.check_transition(PluginState.DISABLED)
            await self._run_hook(instance, "on_disable")
            self._move(instance, PluginState.DISABLED)

    async def shutdown(self, instance: PluginInstance, drain_timeout: float) -> Optional[ShutdownTimeout]:
        """Drain in-flight calls, run ``on_shutdown`` and terminate.

        Returns:
            ShutdownTimeout if draining gave up, otherwise None
        """
        async with instance.lock:
            if instance.state in (PluginState.TERMINATED, PluginState.FAILED):
                return None
            if instance.state == PluginState.REGISTERED:
                self._move(instance, PluginState.TERMINATED)
                return None

            self._move(instance, PluginState.SHUTTING_DOWN)

            warning = None
            if not await instance.wait_idle(drain_timeout):
                warning = ShutdownTimeout(instance.id, instance.in_flight, drain_timeout)
                logger.warning(f"Plugin {instance.id} did not drain: {warning}")

            try:
                await instance.plugin.on_shutdown()
            except Exception as e:
                instance.error = f"on_shutdown failed: {e}"
                logger.error(f"Error shutting down plugin {instance.id}: {e}")

            self._move(instance, PluginState.TERMINATED)
            return warning

    async def _run_hook(self, instance: PluginInstance, hook: str) -> None:
        try:
            await getattr(instance.plugin, hook)()
        except Exception as e:
            logger.error(f"Plugin {instance.id} {hook} failed: {e}")
            raise ExecutionFailed(f"{instance.id}: {hook} failed: {e}") from e
