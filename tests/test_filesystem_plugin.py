"""Tests for the bundled filesystem plugin, driven through the tool executor."""

import asyncio
import threading
from pathlib import Path

import pytest

from moxie.constants import BUNDLED_PLUGINS_DIR
from moxie.plugins.discovery import PluginDiscovery
from moxie.plugins.errors import ConfigError
from moxie.plugins.registry import PluginState


def load_filesystem_plugin():
    discovery = PluginDiscovery([])
    return discovery.load(discovery.discover_single(BUNDLED_PLUGINS_DIR / "filesystem", "bundled"))


@pytest.fixture
def files(tmp_path):
    root = tmp_path / "files"
    root.mkdir()
    (root / "notes.txt").write_text("hello world")
    (root / "sub").mkdir()
    return root


def start(loader, config):
    loader.register(load_filesystem_plugin(), config, source="bundled")
    asyncio.run(loader.init_all())
    return loader.get("moxie.filesystem")


class TestFilesystemConfig:
    """Config checks at registration."""

    def test_allowed_paths_required(self, loader):
        with pytest.raises(ConfigError):
            loader.register(load_filesystem_plugin(), {})

    def test_max_file_size_must_be_positive(self, loader, files):
        with pytest.raises(ConfigError):
            loader.register(load_filesystem_plugin(), {"allowed_paths": [str(files)], "max_file_size": 0})

    def test_defaults_applied(self, loader, files):
        instance = start(loader, {"allowed_paths": [str(files)]})
        assert instance.state == PluginState.ACTIVE
        assert instance.config["allow_write"] is False
        assert instance.config["max_file_size"] == 10485760


class TestFilesystemTools:
    """Tool behavior inside and outside the allowed paths."""

    def test_read_allowed_file(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)]})
        result = asyncio.run(executor.execute("moxie.filesystem.read_file", {"path": str(files / "notes.txt")}))

        assert result.success
        assert result.data["content"] == "hello world"
        assert result.data["size"] == 11

    def test_read_outside_allowed_paths(self, loader, executor, files, tmp_path):
        secret = tmp_path / "secret.txt"
        secret.write_text("nope")
        start(loader, {"allowed_paths": [str(files)]})

        result = asyncio.run(executor.execute("moxie.filesystem.read_file", {"path": str(secret)}))

        assert not result.success
        assert result.error == f"Access denied: path '{secret}' is not in allowed paths"

    def test_dot_dot_cannot_escape(self, loader, executor, files, tmp_path):
        (tmp_path / "secret.txt").write_text("nope")
        start(loader, {"allowed_paths": [str(files)]})

        raw = str(files / ".." / "secret.txt")
        result = asyncio.run(executor.execute("moxie.filesystem.read_file", {"path": raw}))
        assert result.error.startswith("Access denied")

    def test_missing_file(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)]})
        raw = str(files / "missing.txt")
        result = asyncio.run(executor.execute("moxie.filesystem.read_file", {"path": raw}))
        assert result.error == f"File not found: {raw}"

    def test_file_too_large(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)], "max_file_size": 5})
        result = asyncio.run(executor.execute("moxie.filesystem.read_file", {"path": str(files / "notes.txt")}))
        assert result.error == "File too large: 11 bytes (max: 5 bytes)"

    def test_list_directory(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)]})
        result = asyncio.run(executor.execute("moxie.filesystem.list_directory", {"path": str(files)}))

        assert result.success
        assert result.data["count"] == 2
        entries = {e["name"]: e for e in result.data["entries"]}
        assert entries["notes.txt"]["is_file"] and entries["notes.txt"]["size"] == 11
        assert entries["sub"]["is_dir"]

    def test_write_disabled_by_default(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)]})
        target = files / "new.txt"
        result = asyncio.run(executor.execute(
            "moxie.filesystem.write_file", {"path": str(target), "content": "x"}
        ))

        assert result.error == "Write operations are disabled for this plugin"
        assert not target.exists()

    def test_write_enabled(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)], "allow_write": True})
        target = files / "sub" / "out.txt"
        result = asyncio.run(executor.execute(
            "moxie.filesystem.write_file", {"path": str(target), "content": "héllo"}
        ))

        assert result.success
        assert result.data["bytes_written"] == 6
        assert target.read_text(encoding="utf-8") == "héllo"

    def test_write_requires_confirmation_flag(self, loader, executor, files):
        start(loader, {"allowed_paths": [str(files)]})
        assert executor.get_tool("moxie.filesystem.write_file").requires_confirmation
        assert not executor.get_tool("moxie.filesystem.read_file").requires_confirmation

    def test_disk_access_runs_off_the_event_loop(self, loader, executor, files, monkeypatch):
        start(loader, {"allowed_paths": [str(files)]})
        threads = []
        original_iterdir, original_is_file = Path.iterdir, Path.is_file

        def iterdir(self):
            threads.append(threading.get_ident())
            return original_iterdir(self)

        def is_file(self, *args, **kwargs):
            threads.append(threading.get_ident())
            return original_is_file(self, *args, **kwargs)

        monkeypatch.setattr(Path, "iterdir", iterdir)
        monkeypatch.setattr(Path, "is_file", is_file)

        async def run():
            loop_thread = threading.get_ident()
            listed = await executor.execute("moxie.filesystem.list_directory", {"path": str(files)})
            read = await executor.execute("moxie.filesystem.read_file", {"path": str(files / "notes.txt")})
            return loop_thread, listed, read

        loop_thread, listed, read = asyncio.run(run())

        assert listed.success and read.success
        assert threads
        assert loop_thread not in threads
