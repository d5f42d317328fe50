"""Filesystem plugin - read, write and list files inside configured directories.

Config (plugins/config.json):

    "moxie.filesystem": {
        "allowed_paths": ["~/Documents", "/srv/reports"],
        "allow_write": false,
        "max_file_size": 10485760
    }
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from moxie.plugins.base import Plugin, PluginContext, ToolDefinition, ToolResult
from moxie.plugins.errors import ConfigError
from moxie.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


def _path_param(description: str) -> Dict[str, Any]:
    return {"type": "string", "description": description}


class FilesystemPlugin(Plugin):
    """Local file access restricted to ``allowed_paths``."""

    def __init__(self, manifest: PluginManifest):
        self._manifest = manifest
        self.allowed_roots: List[Path] = []
        self.allow_write = False
        self.max_file_size = DEFAULT_MAX_FILE_SIZE

    @property
    def manifest(self) -> PluginManifest:
        return self._manifest

    def validate_config(self, config: Dict[str, Any]) -> None:
        max_size = config.get("max_file_size", DEFAULT_MAX_FILE_SIZE)
        if max_size <= 0:
            raise ConfigError(f"{self._manifest.id}: max_file_size must be positive")

    def tools(self) -> List[ToolDefinition]:
        return [
            ToolDefinition(
                name="read_file",
                description="Read the contents of a file",
                parameters={
                    "type": "object",
                    "properties": {"path": _path_param("The path to the file to read")},
                    "required": ["path"],
                },
            ),
            ToolDefinition(
                name="list_directory",
                description="List files and directories in a path",
                parameters={
                    "type": "object",
                    "properties": {"path": _path_param("The directory path to list")},
                    "required": ["path"],
                },
            ),
            ToolDefinition(
                name="write_file",
                description="Write content to a file (only when writes are enabled)",
                parameters={
                    "type": "object",
                    "properties": {
                        "path": _path_param("The path to write to"),
                        "content": {"type": "string", "description": "The content to write"},
                    },
                    "required": ["path", "content"],
                },
                requires_confirmation=True,
            ),
        ]

    async def on_init(self, ctx: PluginContext) -> None:
        self.allowed_roots = [
            Path(os.path.expanduser(p)).resolve() for p in ctx.config.get("allowed_paths", [])
        ]
        self.allow_write = bool(ctx.config.get("allow_write", False))
        self.max_file_size = int(ctx.config.get("max_file_size", DEFAULT_MAX_FILE_SIZE))
        ctx.logger.info(
            f"Filesystem plugin initialized with {len(self.allowed_roots)} allowed path(s), "
            f"write={'on' if self.allow_write else 'off'}"
        )

    def resolve_allowed(self, raw: str) -> Optional[Path]:
        """Resolve ``raw`` and return it if it lies under an allowed root."""
        if not self.allowed_roots:
            return None
        path = Path(os.path.expanduser(raw)).resolve()
        for root in self.allowed_roots:
            if path == root or root in path.parents:
                return path
        return None

    async def execute(self, tool: str, params: Dict[str, Any], ctx: PluginContext) -> ToolResult:
        handlers = {
            "read_file": self.read_file,
            "list_directory": self.list_directory,
            "write_file": self.write_file,
        }
        handler = handlers.get(tool)
        if handler is None:
            return ToolResult.fail(f"Unknown tool: {tool}")
        return await handler(params)

    @staticmethod
    def _denied(raw: str) -> ToolResult:
        return ToolResult.fail(f"Access denied: path '{raw}' is not in allowed paths")

    async def read_file(self, params: Dict[str, Any]) -> ToolResult:
        return await asyncio.to_thread(self._read_file_sync, params["path"])

    def _read_file_sync(self, raw: str) -> ToolResult:
        path = self.resolve_allowed(raw)
        if path is None:
            return self._denied(raw)
        if not path.is_file():
            return ToolResult.fail(f"File not found: {raw}")

        size = path.stat().st_size
        if size > self.max_file_size:
            return ToolResult.fail(f"File too large: {size} bytes (max: {self.max_file_size} bytes)")

        content = path.read_text(encoding="utf-8", errors="replace")
        return ToolResult.ok({"path": str(path), "content": content, "size": size})

    async def list_directory(self, params: Dict[str, Any]) -> ToolResult:
        return await asyncio.to_thread(self._list_directory_sync, params["path"])

    def _list_directory_sync(self, raw: str) -> ToolResult:
        path = self.resolve_allowed(raw)
        if path is None:
            return self._denied(raw)
        if not path.is_dir():
            return ToolResult.fail(f"Directory not found: {raw}")

        entries = []
        for entry in sorted(path.iterdir()):
            is_file = entry.is_file()
            entries.append({
                "name": entry.name,
                "path": str(entry),
                "is_file": is_file,
                "is_dir": entry.is_dir(),
                "size": entry.stat().st_size if is_file else 0,
            })
        return ToolResult.ok({"path": str(path), "count": len(entries), "entries": entries})

    async def write_file(self, params: Dict[str, Any]) -> ToolResult:
        if not self.allow_write:
            return ToolResult.fail("Write operations are disabled for this plugin")

        return await asyncio.to_thread(self._write_file_sync, params["path"], params["content"])

    def _write_file_sync(self, raw: str, content: str) -> ToolResult:
        path = self.resolve_allowed(raw)
        if path is None:
            return self._denied(raw)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        logger.info(f"Wrote {len(content)} characters to {path}")
        return ToolResult.ok({"path": str(path), "bytes_written": len(content.encode("utf-8"))})


def register(manifest: PluginManifest) -> FilesystemPlugin:
    return FilesystemPlugin(manifest)
