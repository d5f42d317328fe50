"""Plugin registry - tracks registered plugins and their lifecycle state."""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from moxie.plugins.base import Plugin, PluginContext, ToolDefinition
from moxie.plugins.errors import DuplicateIdError, InvalidStateTransition
from moxie.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Plugin lifecycle states."""

    REGISTERED = "registered"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    DISABLED = "disabled"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"
    FAILED = "failed"


TRANSITIONS: Dict[PluginState, Tuple[PluginState, ...]] = {
    PluginState.REGISTERED: (PluginState.INITIALIZING, PluginState.TERMINATED),
    PluginState.INITIALIZING: (PluginState.ACTIVE, PluginState.FAILED),
    PluginState.ACTIVE: (PluginState.DISABLED, PluginState.SHUTTING_DOWN),
    PluginState.DISABLED: (PluginState.ACTIVE, PluginState.SHUTTING_DOWN),
    PluginState.SHUTTING_DOWN: (PluginState.TERMINATED,),
    PluginState.TERMINATED: (),
    PluginState.FAILED: (),
}


def _idle_event() -> asyncio.Event:
    event = asyncio.Event()
    event.set()
    return event


@dataclass
class PluginInstance:
    """A registered plugin together with its runtime bookkeeping."""

    plugin: Plugin = field(repr=False)
    manifest: PluginManifest = field(repr=False)
    tools: Tuple[ToolDefinition, ...] = field(default=(), repr=False)
    config: Dict[str, Any] = field(default_factory=dict, repr=False)
    load_order: int = 0
    source: str = "builtin"  # "builtin" | "bundled" | "installed" | "external"
    path: Optional[Path] = None
    state: PluginState = PluginState.REGISTERED
    error: Optional[str] = None
    context: Optional[PluginContext] = field(default=None, repr=False)

    in_flight: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    exclusive_lock: Optional[asyncio.Lock] = field(default=None, repr=False)
    _idle: asyncio.Event = field(default_factory=_idle_event, repr=False)

    def __post_init__(self):
        if self.manifest.exclusive_execution and self.exclusive_lock is None:
            self.exclusive_lock = asyncio.Lock()

    @property
    def id(self) -> str:
        return self.manifest.id

    def check_transition(self, target: PluginState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidStateTransition(
                f"{self.id}: {self.state.value} -> {target.value}"
            )

    def transition(self, target: PluginState) -> PluginState:
        """Move to ``target``; returns the previous state.

        Raises:
            InvalidStateTransition: ``target`` is not reachable from the current state
        """
        self.check_transition(target)
        previous = self.state
        self.state = target
        logger.info(f"Plugin {self.id}: {previous.value} -> {target.value}")
        return previous

    def begin_call(self) -> None:
        self.in_flight += 1
        self._idle.clear()

    def end_call(self) -> None:
        self.in_flight = max(0, self.in_flight - 1)
        if self.in_flight == 0:
            self._idle.set()

    async def wait_idle(self, timeout: Optional[float]) -> bool:
        """Wait until no call is in flight. Returns False on timeout."""
        if self.in_flight == 0:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def to_dict(self) -> dict:
        """Serialize plugin instance to dict for API responses."""
        return {
            "id": self.id,
            "name": self.manifest.name,
            "version": str(self.manifest.version),
            "description": self.manifest.description,
            "category": self.manifest.category.value,
            "source": self.source,
            "state": self.state.value,
            "error": self.error,
            "load_order": self.load_order,
            "in_flight": self.in_flight,
            "exclusive_execution": self.manifest.exclusive_execution,
            "tools": [t.qualified_name for t in self.tools],
            "config": self.manifest.masked_config(self.config),
            "config_fields": [f.model_dump(mode="json") for f in self.manifest.config_fields],
        }


class PluginRegistry:
    """Central registry for all plugins, in registration order."""

    def __init__(self):
        self._plugins: "OrderedDict[str, PluginInstance]" = OrderedDict()
        self._next_order = 0

    def add(self, instance: PluginInstance) -> None:
        """Add a plugin instance; its ``load_order`` is assigned here.

        Raises:
            DuplicateIdError: A plugin with the same id is already registered
        """
        if instance.id in self._plugins:
            raise DuplicateIdError(instance.id)
        instance.load_order = self._next_order
        self._next_order += 1
        self._plugins[instance.id] = instance
        logger.info(f"Registered plugin: {instance.id} ({instance.source})")

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        """Get a plugin by ID."""
        return self._plugins.get(plugin_id)

    def get_all(self) -> List[PluginInstance]:
        """Get all registered plugins."""
        return list(self._plugins.values())

    def get_in_state(self, *states: PluginState) -> List[PluginInstance]:
        return [p for p in self._plugins.values() if p.state in states]

    def has(self, plugin_id: str) -> bool:
        """Check if a plugin is registered."""
        return plugin_id in self._plugins

    def count(self) -> int:
        """Get total number of registered plugins."""
        return len(self._plugins)
