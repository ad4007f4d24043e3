"""Per-session tool catalog assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import httpx

from .config import Settings
from .custom_tools import CustomHandler, get_custom_tools
from .errors import ConfigurationError, DownstreamHttpError
from .models import Integration, RequestDescriptor, ToolDescriptor, ToolKind
from .openapi import OpenAPILoader
from .platform_client import PlatformClient
from .schema import ToolSchema


logger = logging.getLogger(__name__)

PROXY_TOOL_NAME = "CALL_API_REQUEST"
PROXY_TOOL_DESCRIPTION = """Call an API if no tool is available for an integration that matches the user's request. Always follow the following guidelines:
- Before using this tool, respond with a plan that outlines the requests that you will need to make to fulfill the user's goal.
- If you find that you need to make multiple requests to fulfill the user's goal, you can use this tool multiple times.
- If there are errors, don't give up! Try to fix them by using the response to look at the error and adjust the request body accordingly."""


@dataclass(frozen=True)
class StaticCatalog:
    """Tools shared by every session, computed once at startup."""

    tools: List[ToolDescriptor] = field(default_factory=list)
    requests: Dict[str, RequestDescriptor] = field(default_factory=dict)
    custom_handlers: Dict[str, CustomHandler] = field(default_factory=dict)

    def __post_init__(self) -> None:
        seen = set()
        for tool in self.tools:
            if tool.name in seen:
                raise ConfigurationError(f"Duplicate tool name in catalog: {tool.name}")
            seen.add(tool.name)

    @property
    def names(self) -> set[str]:
        return {tool.name for tool in self.tools}


def create_proxy_api_tool(integrations: Iterable[Integration]) -> ToolDescriptor:
    integration_names = [integration.type for integration in integrations]
    schema = ToolSchema(
        {
            "type": "object",
            "properties": {
                "integration": {
                    "type": "string",
                    "description": "The name of the integration to use for this request.",
                    "enum": integration_names,
                },
                "url": {
                    "type": "string",
                    "description": (
                        "Use the full URL when specifying the `url` parameter, including the base URL. "
                        "It should NEVER be a relative path - always a full URL."
                    ),
                },
                "httpMethod": {
                    "type": "string",
                    "enum": ["GET", "POST", "PUT", "PATCH", "DELETE"],
                },
                "queryParams": {"type": "object", "additionalProperties": True},
                "headers": {
                    "type": "object",
                    "additionalProperties": {"type": "string"},
                    "description": "Do not include any Authorization headers.",
                },
                "body": {"type": "object", "additionalProperties": True},
            },
            "required": ["integration", "url", "httpMethod"],
            "additionalProperties": False,
        }
    )
    return ToolDescriptor(
        name=PROXY_TOOL_NAME,
        description=PROXY_TOOL_DESCRIPTION,
        schema=schema,
        integration_name="general",
        kind=ToolKind.RAW_PROXY,
    )


async def fetch_integrations(
    settings: Settings, client: PlatformClient, bearer: str
) -> List[Integration]:
    try:
        records = await client.list_integrations(bearer)
    except (DownstreamHttpError, httpx.HTTPError, ValueError) as exc:
        logger.warning("Could not fetch integrations: %s", exc)
        return []

    integrations = [Integration.from_api(record) for record in records if isinstance(record, dict)]
    allowlist = settings.integration_allowlist()
    if allowlist:
        integrations = [i for i in integrations if i.type in allowlist]
    return integrations


def build_static_catalog(
    settings: Settings,
    integrations: List[Integration],
    openapi_loader: Optional[OpenAPILoader] = None,
) -> StaticCatalog:
    tools: List[ToolDescriptor] = []
    requests: Dict[str, RequestDescriptor] = {}
    handlers: Dict[str, CustomHandler] = {}

    if settings.enable_custom_openapi_actions:
        loader = openapi_loader or OpenAPILoader(settings.openapi_dir)
        openapi_tools, requests = loader.load_tools(integrations)
        tools.extend(openapi_tools)
        logger.info("Loaded %s OpenAPI tools", len(openapi_tools))

    if settings.enable_proxy_api_tool:
        if integrations:
            tools.append(create_proxy_api_tool(integrations))
        else:
            logger.warning("Proxy API tool enabled, but no integrations are available")

    if settings.enable_custom_tool:
        allowlist = settings.integration_allowlist()
        for custom in get_custom_tools():
            if allowlist and custom.descriptor.integration_name not in allowlist:
                continue
            tools.append(custom.descriptor)
            handlers[custom.descriptor.name] = custom.handler

    return StaticCatalog(tools=tools, requests=requests, custom_handlers=handlers)


class CatalogBuilder:
    def __init__(
        self,
        settings: Settings,
        client: PlatformClient,
        static_catalog: StaticCatalog,
    ) -> None:
        self.settings = settings
        self.client = client
        self.static_catalog = static_catalog

    async def registry_tools(self, bearer: str) -> List[ToolDescriptor]:
        actions = await self.client.list_actions(bearer)
        allowlist = self.settings.integration_allowlist()

        tools: List[ToolDescriptor] = []
        for integration, integration_actions in actions.items():
            if allowlist and integration not in allowlist:
                continue
            for action in integration_actions or []:
                function: Dict[str, Any] = action.get("function") or {}
                if not function.get("name"):
                    continue
                tools.append(
                    ToolDescriptor(
                        name=function["name"],
                        description=function.get("description") or "",
                        schema=ToolSchema.from_json_schema(function.get("parameters")),
                        integration_name=integration,
                        kind=ToolKind.REGISTRY_ACTION,
                    )
                )
        return tools

    async def build(self, bearer: str) -> List[ToolDescriptor]:
        static_names = self.static_catalog.names
        tools: List[ToolDescriptor] = []
        seen = set()

        for tool in await self.registry_tools(bearer):
            if tool.name in static_names or tool.name in seen:
                logger.warning("Skipping registry action with duplicate name: %s", tool.name)
                continue
            seen.add(tool.name)
            tools.append(tool)
        tools.extend(self.static_catalog.tools)

        allowlist = self.settings.tool_allowlist()
        if allowlist:
            tools = [tool for tool in tools if tool.name in allowlist]
        return tools
