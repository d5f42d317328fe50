"""Process runtime - builds and owns the services of one Moxie process."""

import logging
import os
from pathlib import Path
from typing import List, Optional, Tuple

from moxie.constants import (
    BUNDLED_PLUGINS_DIR,
    CONVERSATION_DB,
    CONVERSATION_TIMEOUT,
    DEBUG,
    PLUGIN_CONFIG_FILE,
    PLUGIN_DRAIN_TIMEOUT,
    PLUGINS_DATA_DIR,
    PLUGINS_DIR,
)
from moxie.conversation.memory import MemoryStore
from moxie.conversation.store import ConversationStore
from moxie.plugins.config import PluginConfigService
from moxie.plugins.discovery import DiscoveredPlugin, PluginDiscovery
from moxie.plugins.errors import PluginError
from moxie.plugins.executor import ToolExecutor
from moxie.plugins.lifecycle import ShutdownTimeout
from moxie.plugins.loader import PluginLoader
from moxie.providers.factory import ProviderPool
from moxie.services.chat_service import ChatService
from moxie.services.config_service import ConfigService

logger = logging.getLogger(__name__)


def plugin_search_paths(extra: Optional[str] = None) -> List[Tuple[Path, str]]:
    """Bundled and installed plugin dirs, then PLUGIN_PATHS entries (':'-separated)."""
    paths = [
        (BUNDLED_PLUGINS_DIR, "bundled"),
        (PLUGINS_DIR / "installed", "installed"),
    ]
    extra = os.getenv("PLUGIN_PATHS", "") if extra is None else extra
    for p in extra.split(":"):
        if p.strip():
            paths.append((Path(p.strip()), "external"))
    return paths


class MoxieRuntime:
    """Settings, plugin loader, tool executor, conversations and chat service.

    Built once at startup and kept on ``app.state``; nothing here is a
    module-level singleton.
    """

    def __init__(
        self,
        config_service: ConfigService,
        loader: PluginLoader,
        plugin_config: PluginConfigService,
        discovery: PluginDiscovery,
        store: Optional[ConversationStore] = None,
    ):
        self.config_service = config_service
        self.loader = loader
        self.plugin_config = plugin_config
        self.discovery = discovery
        self.executor = ToolExecutor(loader)
        self.store = store or ConversationStore(timeout_seconds=CONVERSATION_TIMEOUT or None)
        self.providers = ProviderPool(config_service)
        self.chat_service = ChatService(
            providers=self.providers,
            executor=self.executor,
            store=self.store,
            config_service=config_service,
        )

    @classmethod
    def build(
        cls,
        config_file: Path = PLUGIN_CONFIG_FILE,
        search_paths: Optional[List[Tuple[Path, str]]] = None,
        data_root: Path = PLUGINS_DATA_DIR,
        config_service: Optional[ConfigService] = None,
        conversation_db: Optional[Path] = CONVERSATION_DB,
    ) -> "MoxieRuntime":
        """
        Args:
            conversation_db: SQLite file for conversation history; None keeps
                conversations in memory only
        """
        memory = MemoryStore(conversation_db) if conversation_db is not None else None
        return cls(
            config_service=config_service or ConfigService(),
            loader=PluginLoader(data_root, debug=DEBUG, drain_timeout=PLUGIN_DRAIN_TIMEOUT),
            plugin_config=PluginConfigService(config_file),
            discovery=PluginDiscovery(search_paths if search_paths is not None else plugin_search_paths()),
            store=ConversationStore(timeout_seconds=CONVERSATION_TIMEOUT or None, memory=memory),
        )

    async def startup(self) -> None:
        """Open conversation memory and start every enabled plugin found on disk."""
        if self.store.memory is not None:
            await self.store.memory.open()

        enabled = set(self.plugin_config.get_enabled_list())
        pending = []
        for discovered in self.discovery.discover_all():
            if discovered.id in enabled:
                pending.append(discovered)
            else:
                logger.info(f"Plugin '{discovered.id}' is disabled, skipping")

        # Dependencies must be registered first; retry until no progress
        while pending:
            deferred = []
            for discovered in pending:
                if any(not self.loader.registry.has(d) for d in discovered.manifest.dependencies):
                    deferred.append(discovered)
                    continue
                self._register_discovered(discovered)
            if len(deferred) == len(pending):
                for discovered in deferred:
                    self._register_discovered(discovered)
                break
            pending = deferred

        await self.loader.init_all()

        current = self.config_service.get_current_config()
        logger.info(f"Default provider: {current.name} ({current.base_url}, model {current.model})")

    def _register_discovered(self, discovered: DiscoveredPlugin) -> None:
        try:
            plugin = self.discovery.load(discovered)
            self.loader.register(
                plugin,
                self.plugin_config.get_plugin_config(discovered.id),
                source=discovered.source,
                path=discovered.path,
            )
        except PluginError as e:
            logger.error(f"Failed to register plugin {discovered.id}: {e}")

    async def shutdown(self) -> List[ShutdownTimeout]:
        warnings = await self.loader.shutdown_all()
        await self.providers.close()
        if self.store.memory is not None:
            await self.store.memory.close()
        return warnings
