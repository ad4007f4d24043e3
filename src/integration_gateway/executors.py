"""Execution strategies, one per tool kind."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlencode

from .custom_tools import CustomHandler
from .errors import ToolNotFoundError
from .logging import redact_payload
from .models import ProxyRequestArgs, RequestDescriptor, ToolDescriptor
from .platform_client import PlatformClient

logger = logging.getLogger(__name__)

INTEGRATION_PROXY_HEADERS: Dict[str, Dict[str, str]] = {
    "slack": {"X-Paragon-Use-Slack-Token-Type": "user"},
}


class RegistryActionExecutor:
    def __init__(self, client: PlatformClient) -> None:
        self.client = client

    async def execute(self, tool: ToolDescriptor, args: Dict[str, Any], bearer: str) -> Any:
        logger.debug("Running action %s payload=%s", tool.name, redact_payload(args))
        return await self.client.run_action(bearer, tool.name, args)


class OpenApiExecutor:
    def __init__(self, client: PlatformClient, requests: Mapping[str, RequestDescriptor]) -> None:
        self.client = client
        self.requests = requests

    async def execute(self, tool: ToolDescriptor, args: Dict[str, Any], bearer: str) -> str:
        request = self.requests.get(tool.name)
        if not request:
            raise ToolNotFoundError(tool.name)

        params = args.get("params") or {}
        target_url = request.resolve_path(params)
        query = [
            (name, _query_value(params[name]))
            for name in request.query_parameter_names()
            if params.get(name) is not None
        ]
        if query:
            target_url = f"{target_url}?{urlencode(query)}"

        return await self.client.proxy_request(
            bearer,
            tool.integration_name,
            request.method,
            target_url,
            headers={"X-Paragon-Use-Raw-Response": "true"},
            body=args.get("body"),
        )


class RawProxyExecutor:
    def __init__(self, client: PlatformClient) -> None:
        self.client = client

    async def execute(self, tool: ToolDescriptor, args: Dict[str, Any], bearer: str) -> str:
        request = ProxyRequestArgs.model_validate(args)
        target_url = request.url
        if request.query_params:
            query = {key: _query_value(value) for key, value in request.query_params.items()}
            target_url = f"{target_url}?{urlencode(query)}"

        headers = {**INTEGRATION_PROXY_HEADERS.get(request.integration, {}), **request.headers}
        return await self.client.proxy_request(
            bearer,
            request.integration,
            request.http_method,
            target_url,
            headers=headers,
            body=request.body,
        )


class CustomToolExecutor:
    def __init__(self, client: PlatformClient, handlers: Mapping[str, CustomHandler]) -> None:
        self.client = client
        self.handlers = handlers

    async def execute(self, tool: ToolDescriptor, args: Dict[str, Any], bearer: str) -> Any:
        handler: Optional[CustomHandler] = self.handlers.get(tool.name)
        if not handler:
            raise ToolNotFoundError(tool.name)
        return await handler(self.client, bearer, args)


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
