"""Client for the integration platform's action, registry and proxy APIs."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings
from .errors import USER_NOT_CONNECTED_MESSAGE, DownstreamHttpError, UserNotConnectedError

logger = logging.getLogger(__name__)

PROXY_URL_HEADER = "X-Paragon-Proxy-Url"


class PlatformClient:
    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.project_id = settings.project_id
        self.actionkit_base_url = settings.actionkit_base_url.rstrip("/")
        self.zeus_base_url = settings.zeus_base_url.rstrip("/")
        self.proxy_base_url = settings.proxy_base_url.rstrip("/")
        self.timeout_seconds = settings.http_timeout_seconds
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport)

    def _headers(self, bearer: str) -> Dict[str, str]:
        return {"Content-Type": "application/json", "Authorization": f"Bearer {bearer}"}

    async def list_actions(self, bearer: str) -> Dict[str, List[Dict[str, Any]]]:
        url = f"{self.actionkit_base_url}/projects/{self.project_id}/actions"
        async with self._client() as client:
            response = await client.get(
                url, headers=self._headers(bearer), params={"limit_to_available": "false"}
            )
        raise_for_response(response)
        payload = response.json()

        actions = payload.get("actions") if isinstance(payload, dict) else None
        if not isinstance(actions, dict):
            logger.warning("Unexpected actions response shape: %s", type(payload))
            return {}
        return actions

    async def list_integrations(self, bearer: str) -> List[Dict[str, Any]]:
        url = f"{self.zeus_base_url}/projects/{self.project_id}/sdk/integrations"
        async with self._client() as client:
            response = await client.get(url, headers=self._headers(bearer))
        raise_for_response(response)
        payload = response.json()

        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            return payload["data"]
        logger.warning("Unexpected integrations response shape: %s", type(payload))
        return []

    async def run_action(self, bearer: str, action: str, parameters: Dict[str, Any]) -> Any:
        url = f"{self.actionkit_base_url}/projects/{self.project_id}/actions"
        async with self._client() as client:
            response = await client.post(
                url,
                headers=self._headers(bearer),
                json={"action": action, "parameters": parameters},
            )
        raise_for_response(response)
        return response.json() if response.content else None

    async def proxy_request(
        self,
        bearer: str,
        integration: str,
        method: str,
        target_url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> str:
        url = f"{self.proxy_base_url}/projects/{self.project_id}/sdk/proxy/{integration}"
        request_headers = {**self._headers(bearer), PROXY_URL_HEADER: target_url}
        request_headers.update(headers or {})
        content = None if method.upper() == "GET" else json.dumps(body)

        logger.debug("Proxy request integration=%s method=%s url=%s", integration, method, target_url)
        async with self._client() as client:
            response = await client.request(
                method.upper(), url, headers=request_headers, content=content
            )
        raise_for_response(response)
        return response.text


def raise_for_response(response: httpx.Response) -> None:
    if response.is_success:
        return

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        message = payload.get("message")
        if message == USER_NOT_CONNECTED_MESSAGE:
            raise UserNotConnectedError(response.status_code, payload)
        raise DownstreamHttpError(response.status_code, str(message), payload)

    raise DownstreamHttpError(response.status_code, response.text)
