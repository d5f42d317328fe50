"""Plugin configuration service - manages plugins/config.json."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from moxie.plugins.errors import ConfigError, IoError
from moxie.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)


class PluginConfigService:
    """Manages the plugin configuration file.

    Config format:
    {
        "enabled": ["moxie.filesystem", "com.example.echo"],
        "plugins": {
            "moxie.filesystem": {
                "allowed_paths": ["~/Documents"],
                "allow_write": false
            }
        }
    }

    Only plugins listed in ``enabled`` are registered at startup. Every change
    is written to disk at once; the file is replaced atomically, so a crash
    mid-write leaves the previous version in place.
    """

    def __init__(self, config_file: Path):
        self.config_file = Path(config_file)
        self._config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load config from file, falling back to an empty config."""
        data: Any = {}
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Error loading plugin config: {e}")
                data = {}
        if not isinstance(data, dict):
            logger.error(f"Plugin config {self.config_file} is not a JSON object, ignoring")
            data = {}

        enabled = data.get("enabled", [])
        if not isinstance(enabled, list):
            logger.error(f"'enabled' in {self.config_file} is not a list, ignoring")
            enabled = []
        plugins = data.get("plugins", {})
        if not isinstance(plugins, dict):
            logger.error(f"'plugins' in {self.config_file} is not an object, ignoring")
            plugins = {}

        return {
            "enabled": [p for p in enabled if isinstance(p, str)],
            "plugins": {k: v for k, v in plugins.items() if isinstance(v, dict)},
        }

    def _save(self) -> None:
        """Write to a temp file next to the config, then swap it in."""
        tmp_path = None
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.config_file.name}.", suffix=".tmp", dir=self.config_file.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._config, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_path, self.config_file)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise IoError(f"{self.config_file}: {e}") from e
        logger.debug(f"Saved plugin config to {self.config_file}")

    def is_enabled(self, plugin_id: str) -> bool:
        return plugin_id in self._config["enabled"]

    def get_plugin_config(self, plugin_id: str) -> Dict[str, Any]:
        """Get configuration for a specific plugin (a copy)."""
        return dict(self._config["plugins"].get(plugin_id, {}))

    def get_enabled_list(self) -> List[str]:
        return list(self._config["enabled"])

    def enable(self, plugin_id: str) -> None:
        if plugin_id not in self._config["enabled"]:
            self._config["enabled"].append(plugin_id)
            self._save()
            logger.info(f"Enabled plugin: {plugin_id}")

    def disable(self, plugin_id: str) -> None:
        if plugin_id in self._config["enabled"]:
            self._config["enabled"].remove(plugin_id)
            self._save()
            logger.info(f"Disabled plugin: {plugin_id}")

    def update_plugin_config(
        self,
        plugin_id: str,
        config: Dict[str, Any],
        manifest: Optional[PluginManifest] = None,
    ) -> None:
        """Replace the config table of one plugin.

        Args:
            manifest: When given, the table must satisfy its config fields

        Raises:
            ConfigError: The table is not an object or does not fit the manifest;
                nothing is written
            IoError: The file could not be written
        """
        if not isinstance(config, dict):
            raise ConfigError(f"{plugin_id}: config must be an object")
        if manifest is not None:
            if manifest.id != plugin_id:
                raise ConfigError(f"{plugin_id}: manifest belongs to '{manifest.id}'")
            manifest.apply_config(config)

        previous = self._config["plugins"].get(plugin_id)
        self._config["plugins"][plugin_id] = dict(config)
        try:
            self._save()
        except IoError:
            if previous is None:
                self._config["plugins"].pop(plugin_id, None)
            else:
                self._config["plugins"][plugin_id] = previous
            raise
        if manifest is not None:
            logger.info(f"Updated config for plugin {plugin_id}: {manifest.masked_config(config)}")
        else:
            logger.info(f"Updated config for plugin: {plugin_id}")

    def reload(self) -> None:
        """Reload config from disk."""
        self._config = self._load()
