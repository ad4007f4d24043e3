"""Pytest configuration and fixtures."""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from integration_gateway.catalog import CatalogBuilder, StaticCatalog
from integration_gateway.config import Settings
from integration_gateway.platform_client import PlatformClient
from integration_gateway.service import GatewayService
from integration_gateway.setup_links import SetupLinkService
from integration_gateway.token_store import EphemeralTokenStore
from integration_gateway.tokens import CapabilityTokenCodec


SLACK_SEND_MESSAGE = {
    "function": {
        "name": "SLACK_SEND_MESSAGE",
        "description": "Send a message to a Slack channel",
        "parameters": {
            "type": "object",
            "properties": {
                "channel": {"type": "string"},
                "text": {"type": "string"},
            },
            "required": ["channel", "text"],
        },
    }
}


class PlatformStub:
    """Fake integration platform answering on the configured test hosts."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.actions: Dict[str, List[Dict[str, Any]]] = {"slack": [SLACK_SEND_MESSAGE]}
        self.integrations: List[Dict[str, Any]] = []
        self.action_responses: Dict[str, Tuple[int, Any]] = {}
        self.actions_status = 200
        self.proxy_handler: Callable[[httpx.Request], httpx.Response] = (
            lambda request: httpx.Response(200, text='{"ok": true}')
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == "actionkit.test" and request.method == "GET":
            if self.actions_status != 200:
                return httpx.Response(self.actions_status, json={"message": "registry down"})
            return httpx.Response(200, json={"actions": self.actions})
        if host == "actionkit.test" and request.method == "POST":
            payload = json.loads(request.content)
            status, body = self.action_responses.get(payload["action"], (200, {"ok": True}))
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)
        if host == "zeus.test":
            return httpx.Response(200, json=self.integrations)
        if host == "proxy.test":
            return self.proxy_handler(request)
        return httpx.Response(404, json={"message": "Not found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def posted_actions(self) -> List[Dict[str, Any]]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.url.host == "actionkit.test" and r.method == "POST"
        ]

    def action_list_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.host == "actionkit.test" and r.method == "GET")


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def settings(private_key_pem: str) -> Settings:
    return Settings(
        project_id="proj-1",
        signing_key=private_key_pem,
        mcp_server_url="https://mcp.example.com",
        environment="production",
        actionkit_base_url="https://actionkit.test",
        zeus_base_url="https://zeus.test",
        proxy_base_url="https://proxy.test",
    )


@pytest.fixture
def codec(private_key_pem: str) -> CapabilityTokenCodec:
    return CapabilityTokenCodec(private_key_pem)


@pytest.fixture
def platform() -> PlatformStub:
    return PlatformStub()


@pytest.fixture
def client(settings: Settings, platform: PlatformStub) -> PlatformClient:
    return PlatformClient(settings, transport=platform.transport)


@pytest.fixture
def setup_links(settings: Settings, codec: CapabilityTokenCodec) -> SetupLinkService:
    return SetupLinkService(settings, codec, EphemeralTokenStore())


@pytest.fixture
def build_service(
    settings: Settings,
    client: PlatformClient,
    setup_links: SetupLinkService,
) -> Callable[..., GatewayService]:
    def _build(static_catalog: Optional[StaticCatalog] = None) -> GatewayService:
        builder = CatalogBuilder(settings, client, static_catalog or StaticCatalog())
        return GatewayService(settings, client, builder, setup_links)

    return _build


@pytest.fixture
def bearer(codec: CapabilityTokenCodec) -> str:
    return codec.sign("user-1")
