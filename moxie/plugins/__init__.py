"""Plugin runtime for Moxie.

Imports are lazy so that lightweight pieces such as PluginConfigService or
PluginManifest can be used (e.g. by manage_plugins.py) without importing the
whole runtime.
"""

__all__ = [
    "Plugin",
    "PluginContext",
    "ToolDefinition",
    "ToolResult",
    "PluginManifest",
    "PluginRegistry",
    "PluginInstance",
    "PluginState",
    "PluginLifecycle",
    "PluginLoader",
    "ToolExecutor",
    "PluginDiscovery",
    "PluginConfigService",
]


def __getattr__(name):
    if name in ("Plugin", "PluginContext", "ToolDefinition", "ToolResult"):
        from moxie.plugins import base
        return getattr(base, name)
    if name == "PluginManifest":
        from moxie.plugins.manifest import PluginManifest
        return PluginManifest
    if name in ("PluginRegistry", "PluginInstance", "PluginState"):
        from moxie.plugins import registry
        return getattr(registry, name)
    if name == "PluginLifecycle":
        from moxie.plugins.lifecycle import PluginLifecycle
        return PluginLifecycle
    if name == "PluginLoader":
        from moxie.plugins.loader import PluginLoader
        return PluginLoader
    if name == "ToolExecutor":
        from moxie.plugins.executor import ToolExecutor
        return ToolExecutor
    if name == "PluginDiscovery":
        from moxie.plugins.discovery import PluginDiscovery
        return PluginDiscovery
    if name == "PluginConfigService":
        from moxie.plugins.config import PluginConfigService
        return PluginConfigService
    raise AttributeError(f"module 'moxie.plugins' has no attribute {name!r}")
