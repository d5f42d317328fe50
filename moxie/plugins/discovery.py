"""Plugin discovery - scans directories for plugin.json manifests and loads entry points."""

import importlib.util
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from pydantic import ValidationError

from moxie.plugins.base import Plugin
from moxie.plugins.errors import ConfigError, IoError, JsonError, PluginError
from moxie.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT = "plugin:register"


@dataclass
class DiscoveredPlugin:
    """A plugin directory whose manifest parsed, not yet loaded."""

    manifest: PluginManifest
    path: Path
    source: str  # "bundled" | "installed" | "external"
    entry_point: str = DEFAULT_ENTRY_POINT

    @property
    def id(self) -> str:
        return self.manifest.id


class PluginDiscovery:
    """Discovers plugins by scanning directories for plugin.json manifests."""

    MANIFEST_FILE = "plugin.json"

    def __init__(self, search_paths: List[Tuple[Path, str]]):
        """Initialize discovery with search paths.

        Args:
            search_paths: (path, source_label) tuples, searched in order
        """
        self.search_paths = search_paths

    def discover_all(self) -> List[DiscoveredPlugin]:
        """Discover all plugins from configured search paths.

        Invalid manifests are logged and skipped; on duplicate ids the first
        one found wins.
        """
        discovered = []
        seen_ids = set()

        for search_path, source in self.search_paths:
            if not search_path.exists():
                logger.debug(f"Plugin search path does not exist: {search_path}")
                continue

            for item in sorted(search_path.iterdir()):
                manifest_file = item / self.MANIFEST_FILE
                if not item.is_dir() or not manifest_file.exists():
                    continue
                try:
                    plugin = self.read_manifest(manifest_file, source)
                except PluginError as e:
                    logger.error(f"Skipping plugin at {item}: {e}")
                    continue

                if plugin.id in seen_ids:
                    logger.warning(
                        f"Duplicate plugin ID '{plugin.id}' found at {plugin.path}, "
                        f"skipping (first-found wins)"
                    )
                    continue
                seen_ids.add(plugin.id)
                discovered.append(plugin)

        logger.info(f"Discovered {len(discovered)} plugin(s)")
        return discovered

    def discover_single(self, plugin_path: Path, source: str = "external") -> DiscoveredPlugin:
        """Read the manifest of one plugin directory.

        Raises:
            IoError, JsonError, ConfigError: Missing, unparsable or invalid manifest
        """
        return self.read_manifest(plugin_path / self.MANIFEST_FILE, source)

    def read_manifest(self, manifest_file: Path, source: str) -> DiscoveredPlugin:
        try:
            with open(manifest_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise JsonError(f"{manifest_file}: {e}") from e
        except OSError as e:
            raise IoError(f"{manifest_file}: {e}") from e

        if not isinstance(data, dict):
            raise JsonError(f"{manifest_file}: expected a JSON object")

        entry_point = data.pop("entry_point", DEFAULT_ENTRY_POINT)
        try:
            manifest = PluginManifest(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid manifest in {manifest_file}: {e}") from e

        logger.debug(f"Discovered plugin: {manifest.id} at {manifest_file.parent}")
        return DiscoveredPlugin(
            manifest=manifest,
            path=manifest_file.parent,
            source=source,
            entry_point=entry_point,
        )

    def load(self, discovered: DiscoveredPlugin) -> Plugin:
        """Import the entry point module and build the plugin object.

        The entry point function receives the parsed manifest and must return
        a Plugin with the same id.

        Raises:
            ConfigError: Bad entry point, import failure, or the returned plugin does not match
        """
        try:
            module_name, func_name = discovered.entry_point.split(":")
        except ValueError:
            raise ConfigError(
                f"{discovered.id}: entry_point must look like 'module:function', "
                f"got '{discovered.entry_point}'"
            )

        module_file = discovered.path / f"{module_name}.py"
        plugin_dir = str(discovered.path)
        # Sibling modules of the entry point stay importable while it executes
        inserted = plugin_dir not in sys.path
        if inserted:
            sys.path.insert(0, plugin_dir)
        try:
            spec = importlib.util.spec_from_file_location(
                f"plugin_{discovered.id}_{module_name}", module_file
            )
            if spec is None or spec.loader is None or not module_file.exists():
                raise ConfigError(f"{discovered.id}: cannot find module {module_name}.py in {discovered.path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except PluginError:
            raise
        except Exception as e:
            raise ConfigError(f"{discovered.id}: failed to import {module_file.name}: {e}") from e
        finally:
            if inserted and plugin_dir in sys.path:
                sys.path.remove(plugin_dir)

        factory = getattr(module, func_name, None)
        if factory is None or not callable(factory):
            raise ConfigError(f"{discovered.id}: module {module_name} has no callable '{func_name}'")

        try:
            plugin = factory(discovered.manifest)
        except Exception as e:
            raise ConfigError(f"{discovered.id}: {func_name}() failed: {e}") from e
        if not isinstance(plugin, Plugin):
            raise ConfigError(f"{discovered.id}: {func_name}() did not return a Plugin")
        if plugin.manifest.id != discovered.id:
            raise ConfigError(
                f"{discovered.id}: {func_name}() returned plugin '{plugin.manifest.id}'"
            )

        logger.info(f"Loaded plugin: {discovered.id}")
        return plugin
