"""Plugin manifest model - describes a plugin's identity, metadata and configuration."""

import re
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from moxie.plugins.errors import ConfigError

_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

SECRET_MASK = "********"


class Version(BaseModel):
    """Semantic version of a plugin."""

    model_config = ConfigDict(frozen=True)

    major: int = Field(default=0, ge=0)
    minor: int = Field(default=1, ge=0)
    patch: int = Field(default=0, ge=0)

    @model_validator(mode="before")
    @classmethod
    def parse_shorthand(cls, data: Any) -> Any:
        """Accept "1.2.3" and (1, 2, 3) besides the mapping form."""
        if isinstance(data, str):
            parts = data.strip().split(".")
            if len(parts) != 3 or not all(p.isdigit() for p in parts):
                raise ValueError(f"Invalid version string: {data!r}")
            return {"major": int(parts[0]), "minor": int(parts[1]), "patch": int(parts[2])}
        if isinstance(data, (tuple, list)):
            if len(data) != 3:
                raise ValueError(f"Version needs three components, got {len(data)}")
            return {"major": data[0], "minor": data[1], "patch": data[2]}
        return data

    def is_compatible_with(self, required: "Version") -> bool:
        """Same major, and minor/patch at least the required ones."""
        if self.major != required.major:
            return False
        return (self.minor, self.patch) >= (required.minor, required.patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


class PluginCategory(str, Enum):
    """Plugin category for organization."""

    FILESYSTEM = "filesystem"
    DATABASE = "database"
    OFFICE = "office"
    COMMUNICATION = "communication"
    NETWORK = "network"
    HARDWARE = "hardware"
    KNOWLEDGE = "knowledge"
    CLOUD = "cloud"
    CUSTOM = "custom"


class ConfigFieldType(str, Enum):
    """Type of a plugin configuration value."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING_ARRAY = "string_array"
    PATH = "path"
    PATH_ARRAY = "path_array"
    SECRET = "secret"    # never logged or listed in clear text
    SELECT = "select"    # one of ``options``
    OBJECT_ARRAY = "object_array"  # list of JSON objects, checked by the plugin


class ConfigField(BaseModel):
    """A configuration field a plugin accepts."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1, description="Key in the plugin config table")
    type: ConfigFieldType = Field(default=ConfigFieldType.STRING)
    required: bool = False
    label: str = ""
    description: str = ""
    default: Any = None
    options: Tuple[str, ...] = Field(default=(), description="Allowed values for select fields")

    @model_validator(mode="after")
    def check_options(self):
        if self.type == ConfigFieldType.SELECT and not self.options:
            raise ValueError(f"Select field '{self.key}' needs at least one option")
        return self

    def check_value(self, value: Any) -> Optional[str]:
        """Return a problem description, or None if the value fits the type."""
        t = self.type
        if t in (ConfigFieldType.STRING, ConfigFieldType.PATH, ConfigFieldType.SECRET):
            ok = isinstance(value, str)
        elif t == ConfigFieldType.NUMBER:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        elif t == ConfigFieldType.BOOLEAN:
            ok = isinstance(value, bool)
        elif t in (ConfigFieldType.STRING_ARRAY, ConfigFieldType.PATH_ARRAY):
            ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        elif t == ConfigFieldType.OBJECT_ARRAY:
            ok = isinstance(value, list) and all(isinstance(v, dict) for v in value)
        else:
            if value not in self.options:
                return f"'{self.key}' must be one of {list(self.options)}, got {value!r}"
            ok = True
        if not ok:
            return f"'{self.key}' expected {t.value}, got {type(value).__name__}"
        return None


class PluginManifest(BaseModel):
    """Static identity and metadata of a plugin.

    ``id`` is the only stable identity and must be unique in a registry.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique plugin identifier, e.g. 'com.example.echo'")
    name: str = Field(..., description="Human-readable plugin name")
    description: str = Field(..., description="Short description")
    version: Version = Field(default_factory=Version)
    author: str = ""
    category: PluginCategory = PluginCategory.CUSTOM
    keywords: Set[str] = Field(default_factory=set)
    config_fields: List[ConfigField] = Field(default_factory=list)
    dependencies: Dict[str, Version] = Field(
        default_factory=dict,
        description="Other plugin ids this plugin needs, with the minimum version",
    )
    exclusive_execution: bool = Field(
        default=False,
        description="Serialize tool calls: at most one in flight for this plugin",
    )

    @field_validator("id")
    @classmethod
    def id_is_identifier(cls, v: str) -> str:
        if not v or not _ID_PATTERN.match(v):
            raise ValueError("Plugin ID must be non-empty and contain only letters, digits, '.', '-' or '_'")
        return v

    @field_validator("name", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @field_validator("config_fields")
    @classmethod
    def unique_config_keys(cls, v: List[ConfigField]) -> List[ConfigField]:
        keys = [f.key for f in v]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(f"Duplicate config field keys: {duplicates}")
        return v

    def apply_config(self, config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Validate a config table against ``config_fields`` and fill in defaults.

        Keys not declared in the manifest are passed through unchanged.

        Raises:
            ConfigError: Lists every missing or mistyped field
        """
        result = dict(config or {})
        problems = []
        for config_field in self.config_fields:
            if config_field.key not in result or result[config_field.key] is None:
                if config_field.default is not None:
                    result[config_field.key] = config_field.default
                elif config_field.required:
                    problems.append(f"missing required field '{config_field.key}'")
                continue
            problem = config_field.check_value(result[config_field.key])
            if problem:
                problems.append(problem)

        if problems:
            raise ConfigError(f"{self.id}: " + "; ".join(problems))
        return result

    def masked_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Copy of ``config`` with secret fields masked, for logs and listings."""
        secrets = {f.key for f in self.config_fields if f.type == ConfigFieldType.SECRET}
        return {k: (SECRET_MASK if k in secrets and v else v) for k, v in config.items()}

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data["version"] = str(self.version)
        data["keywords"] = sorted(self.keywords)
        data["dependencies"] = {k: str(v) for k, v in self.dependencies.items()}
        return data
