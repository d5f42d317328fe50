"""Closed error taxonomy of the plugin runtime.

``str(error)`` yields the ``Kind(detail)`` encoding used in logs and API
responses, e.g. ``ToolNotFound(com.example.echo.missing)``.
"""


class PluginError(Exception):
    """Base class for plugin runtime errors."""

    kind = "PluginError"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.kind}({self.detail})"


class ToolNotFound(PluginError):
    kind = "ToolNotFound"


class InvalidParameters(PluginError):
    kind = "InvalidParameters"


class ExecutionFailed(PluginError):
    kind = "ExecutionFailed"


class PluginNotFound(PluginError):
    kind = "PluginNotFound"


class PluginDisabled(PluginError):
    kind = "PluginDisabled"


class InitFailed(PluginError):
    kind = "InitFailed"


class ConfigError(PluginError):
    kind = "ConfigError"


class IoError(PluginError):
    kind = "IoError"


class JsonError(PluginError):
    kind = "JsonError"


class DuplicateIdError(PluginError):
    kind = "DuplicateId"


class InvalidStateTransition(PluginError):
    kind = "InvalidStateTransition"
