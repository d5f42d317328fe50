"""Echo plugin entry point."""

from typing import Any, Dict, List

from moxie.plugins.base import Plugin, PluginContext, ToolDefinition
from moxie.plugins.manifest import PluginManifest


class EchoPlugin(Plugin):
    """Echoes its input back as ``{"result": input}``."""

    def __init__(self, manifest: PluginManifest):
        self._manifest = manifest

    @property
    def manifest(self) -> PluginManifest:
        return self._manifest

    def tools(self) -> List[ToolDefinition]:
        return [
            ToolDefinition(
                name="echo",
                description="Return the given input unchanged",
                parameters={
                    "type": "object",
                    "properties": {
                        "input": {"type": "string", "description": "Text to echo back"},
                    },
                    "required": ["input"],
                },
            )
        ]

    async def execute(self, tool: str, params: Dict[str, Any], ctx: PluginContext) -> Any:
        if tool == "echo":
            return {"result": params["input"]}
        raise ValueError(f"Unknown tool: {tool}")


def register(manifest: PluginManifest) -> EchoPlugin:
    return EchoPlugin(manifest)
