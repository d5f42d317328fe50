"""Custom API plugin - turns configured REST endpoints into tools.

Config (plugins/config.json):

    "moxie.api": {
        "services": [
            {
                "id": "weather",
                "name": "Weather",
                "base_url": "https://api.weather.example/v1",
                "auth_type": "query_param",
                "auth_param": "appid",
                "auth_env": "WEATHER_API_KEY",
                "endpoints": [
                    {
                        "name": "current",
                        "path": "/weather/{city}",
                        "description": "Current weather for a city",
                        "params": {
                            "city": {"location": "path", "required": true},
                            "units": {"default": "metric"}
                        }
                    }
                ]
            }
        ]
    }

Each endpoint becomes the tool ``<service id>_<endpoint name>``.
"""

import asyncio
import json
import logging
import os
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from moxie.plugins.base import Plugin, PluginContext, ToolDefinition, ToolResult
from moxie.plugins.errors import ConfigError
from moxie.plugins.manifest import PluginManifest

logger = logging.getLogger(__name__)


class AuthType(str, Enum):
    NONE = "none"
    API_KEY = "api_key"
    BEARER = "bearer"
    BASIC = "basic"
    QUERY_PARAM = "query_param"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class ParamLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"


class ParamDef(BaseModel):
    type: str = "string"
    required: bool = False
    description: str = ""
    default: Any = None
    location: ParamLocation = ParamLocation.QUERY


class EndpointDef(BaseModel):
    name: str = Field(..., pattern=r"^[A-Za-z0-9_-]+$")
    method: HttpMethod = HttpMethod.GET
    path: str
    description: str = ""
    params: Dict[str, ParamDef] = Field(default_factory=dict)
    response_type: str = "json"
    requires_confirmation: bool = False


class ServiceDef(BaseModel):
    id: str = Field(..., pattern=r"^[A-Za-z0-9_-]+$")
    name: str
    base_url: str
    auth_type: AuthType = AuthType.NONE
    auth_header: Optional[str] = None     # header name for api_key auth
    auth_param: Optional[str] = None      # query parameter name for query_param auth
    auth_env: Optional[str] = None        # environment variable holding the credential
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_secs: float = Field(default=30, gt=0)
    endpoints: List[EndpointDef] = Field(default_factory=list)


def parse_services(raw: List[Dict[str, Any]]) -> List[ServiceDef]:
    """Parse the ``services`` config value.

    Raises:
        ConfigError: A service is malformed or two endpoints map to one tool name
    """
    services = []
    seen = set()
    for index, item in enumerate(raw or []):
        try:
            service = ServiceDef.model_validate(item)
        except ValidationError as e:
            raise ConfigError(f"moxie.api: invalid service #{index}: {e}") from e
        if service.auth_type != AuthType.NONE and not service.auth_env:
            raise ConfigError(f"moxie.api: service '{service.id}' needs auth_env for {service.auth_type.value} auth")
        for endpoint in service.endpoints:
            tool_name = f"{service.id}_{endpoint.name}"
            if tool_name in seen:
                raise ConfigError(f"moxie.api: duplicate endpoint tool '{tool_name}'")
            seen.add(tool_name)
        services.append(service)
    return services


class ApiPlugin(Plugin):
    """Generic REST client driven by the ``services`` config."""

    def __init__(self, manifest: PluginManifest, session: Optional[aiohttp.ClientSession] = None):
        self._manifest = manifest
        self._session = session
        self._owns_session = session is None
        self.services: List[ServiceDef] = []
        self._endpoints: Dict[str, Tuple[ServiceDef, EndpointDef]] = {}

    @property
    def manifest(self) -> PluginManifest:
        return self._manifest

    def validate_config(self, config: Dict[str, Any]) -> None:
        # Runs at registration, before the tool list is read
        self.services = parse_services(config.get("services", []))
        self._endpoints = {
            f"{service.id}_{endpoint.name}": (service, endpoint)
            for service in self.services
            for endpoint in service.endpoints
        }

    def tools(self) -> List[ToolDefinition]:
        tools = []
        for tool_name, (service, endpoint) in self._endpoints.items():
            description = endpoint.description or f"{endpoint.method.value} {endpoint.path}"
            properties = {}
            for name, param in endpoint.params.items():
                prop: Dict[str, Any] = {"type": param.type}
                if param.description:
                    prop["description"] = param.description
                if param.default is not None:
                    prop["default"] = param.default
                properties[name] = prop
            tools.append(ToolDefinition(
                name=tool_name,
                description=f"{service.name}: {description}",
                parameters={
                    "type": "object",
                    "properties": properties,
                    "required": [n for n, p in endpoint.params.items() if p.required],
                },
                requires_confirmation=endpoint.requires_confirmation,
            ))
        return tools

    async def on_init(self, ctx: PluginContext) -> None:
        ctx.logger.info(
            f"Custom API plugin initialized with {len(self.services)} service(s), "
            f"{len(self._endpoints)} endpoint(s)"
        )

    async def on_shutdown(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def execute(self, tool: str, params: Dict[str, Any], ctx: PluginContext) -> ToolResult:
        found = self._endpoints.get(tool)
        if found is None:
            return ToolResult.fail(f"Unknown tool: {tool}")
        service, endpoint = found

        try:
            request = self.build_request(service, endpoint, params)
        except ValueError as e:
            return ToolResult.fail(str(e))

        logger.debug(f"{endpoint.method.value} {request['url']}")
        try:
            async with self._get_session().request(
                endpoint.method.value,
                request["url"],
                params=request["params"] or None,
                json=request["json"],
                headers=request["headers"],
                auth=request["auth"],
                timeout=aiohttp.ClientTimeout(total=service.timeout_secs),
            ) as response:
                status = response.status
                text = await response.text()
        except asyncio.TimeoutError:
            return ToolResult.fail(f"Request failed: timed out after {service.timeout_secs}s")
        except aiohttp.ClientError as e:
            return ToolResult.fail(f"Request failed: {e}")

        try:
            body: Any = json.loads(text)
        except json.JSONDecodeError:
            body = text

        if status >= 400:
            pretty = json.dumps(body, indent=2, ensure_ascii=False) if not isinstance(body, str) else body
            return ToolResult.fail(f"API returned error {status}: {pretty}")
        return ToolResult.ok({"status": status, "data": body})

    def build_request(self, service: ServiceDef, endpoint: EndpointDef, params: Dict[str, Any]) -> Dict[str, Any]:
        """Assemble url, query, headers, body and auth for one call.

        Raises:
            ValueError: The credential environment variable is not set
        """
        values = {name: p.default for name, p in endpoint.params.items() if p.default is not None}
        values.update(params)

        path = endpoint.path
        query: Dict[str, str] = {}
        headers: Dict[str, str] = dict(service.headers)
        body: Dict[str, Any] = {}
        for name, value in values.items():
            param = endpoint.params.get(name)
            location = param.location if param else ParamLocation.QUERY
            if location == ParamLocation.PATH:
                path = path.replace(f"{{{name}}}", quote(str(value), safe=""))
            elif location == ParamLocation.HEADER:
                headers[name] = str(value)
            elif location == ParamLocation.BODY:
                body[name] = value
            else:
                query[name] = value if isinstance(value, str) else json.dumps(value)

        auth = None
        if service.auth_type != AuthType.NONE:
            credential = os.getenv(service.auth_env or "", "")
            if not credential:
                raise ValueError(f"Missing credential: environment variable {service.auth_env} is not set")
            if service.auth_type == AuthType.API_KEY:
                headers[service.auth_header or "X-API-Key"] = credential
            elif service.auth_type == AuthType.BEARER:
                headers["Authorization"] = f"Bearer {credential}"
            elif service.auth_type == AuthType.BASIC:
                user, _, password = credential.partition(":")
                auth = aiohttp.BasicAuth(user, password)
            else:
                query[service.auth_param or "api_key"] = credential

        with_body = endpoint.method in (HttpMethod.POST, HttpMethod.PUT, HttpMethod.PATCH)
        return {
            "url": service.base_url.rstrip("/") + path,
            "params": query,
            "headers": headers,
            "json": body if with_body and body else None,
            "auth": auth,
        }


def register(manifest: PluginManifest) -> ApiPlugin:
    return ApiPlugin(manifest)
