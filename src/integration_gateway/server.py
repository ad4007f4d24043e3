"""HTTP and MCP server setup for the gateway."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Set

import httpx
from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.sse import SseServerTransport
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Mount, Route

from .catalog import CatalogBuilder, build_static_catalog, fetch_integrations
from .config import Settings, load_signing_key
from .errors import ConfigurationError, InvalidTokenError
from .platform_client import PlatformClient
from .service import GatewayService
from .setup_links import SetupLinkService, render_setup_page
from .token_store import EphemeralTokenStore
from .tokens import CapabilityTokenCodec

logger = logging.getLogger(__name__)

MESSAGES_PATH = "/messages/"


async def build_gateway(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GatewayService:
    if not settings.project_id:
        raise ConfigurationError("PROJECT_ID is not set")

    codec = CapabilityTokenCodec(load_signing_key(settings))
    client = PlatformClient(settings, transport=transport)

    integrations = []
    if settings.enable_custom_openapi_actions or settings.enable_proxy_api_tool:
        bootstrap_bearer = codec.sign(settings.bootstrap_user_id)
        integrations = await fetch_integrations(settings, client, bootstrap_bearer)
        logger.info("Fetched %s integrations", len(integrations))

    static_catalog = build_static_catalog(settings, integrations)
    for tool in static_catalog.tools:
        logger.info("Registered tool: %s", tool.name)

    store = EphemeralTokenStore(
        ttl_seconds=settings.setup_token_ttl_seconds,
        max_reads=settings.setup_token_max_reads,
    )
    return GatewayService(
        settings,
        client,
        CatalogBuilder(settings, client, static_catalog),
        SetupLinkService(settings, codec, store),
    )


async def build_server(settings: Settings) -> Starlette:
    service = await build_gateway(settings)
    return build_app(settings, service)


def build_app(settings: Settings, service: GatewayService) -> Starlette:
    sse = SseServerTransport(MESSAGES_PATH)
    codec = service.setup_links.codec

    async def handle_sse(request: Request) -> Response:
        bearer = _authenticate(request, settings, codec)
        if not bearer:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        known_streams = set(getattr(sse, "_read_stream_writers", {}))
        async with sse.connect_sse(request.scope, request.receive, request._send) as streams:
            read_stream, write_stream = streams
            session = service.open_session(
                bearer, session_id=_transport_session_id(sse, known_streams)
            )
            logger.info("Client connected: %s", session.session_id)
            mcp_server = _session_server(settings, service, session.session_id)
            task = asyncio.ensure_future(
                mcp_server.run(read_stream, write_stream, mcp_server.create_initialization_options())
            )

            async def close() -> None:
                task.cancel()
                await asyncio.wait({task})

            session.close_callback = close
            try:
                await asyncio.wait({task})
            finally:
                if not task.done():
                    task.cancel()
                service.close_session(session.session_id)
                logger.debug("Client disconnected: %s", session.session_id)
        return Response()

    async def setup(request: Request) -> Response:
        try:
            info = service.setup_links.redeem(request.query_params.get("token"))
        except InvalidTokenError:
            return JSONResponse({"error": "Invalid token"}, status_code=400)
        return HTMLResponse(render_setup_page(info, settings.connect_sdk_cdn_url))

    @asynccontextmanager
    async def lifespan(_app: Starlette):  # type: ignore[no-untyped-def]
        yield
        logger.info("Closing %s open sessions", len(service.sessions))
        await service.sessions.close_all(settings.shutdown_timeout_seconds)

    app = Starlette(
        routes=[
            Route("/sse", endpoint=handle_sse, methods=["GET"]),
            Mount(MESSAGES_PATH, app=sse.handle_post_message),
            Route("/setup", endpoint=setup, methods=["GET"]),
        ],
        lifespan=lifespan,
    )
    app.state.gateway = service
    _attach_healthcheck(app)
    _attach_cors(app)
    return app


def _session_server(settings: Settings, service: GatewayService, session_id: str) -> Server:
    server: Server = Server(settings.service_name, version=settings.service_version)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        tools = await service.list_tools(session_id)
        return [tool.to_mcp_tool() for tool in tools]

    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Dict[str, Any]) -> types.CallToolResult:
        result = await service.call_tool(session_id, name, arguments)
        return result.to_mcp()

    return server


def _transport_session_id(sse: SseServerTransport, known: Set[Any]) -> Optional[str]:
    """Return the id the SSE transport gave the stream opened since ``known`` was taken.

    Clients post to ``/messages/?session_id=<id>`` with this value. ``None`` when
    the new stream cannot be told apart from concurrent ones.
    """
    added = [sid for sid in getattr(sse, "_read_stream_writers", {}) if sid not in known]
    if len(added) != 1:
        return None
    sid = added[0]
    return sid.hex if isinstance(sid, uuid.UUID) else str(sid)


def _authenticate(request: Request, settings: Settings, codec: CapabilityTokenCodec) -> Optional[str]:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer", "").strip()
    if token:
        try:
            codec.verify(token)
            return token
        except InvalidTokenError as exc:
            logger.warning("Bearer validation failed: %s", exc)
            return None

    user = request.query_params.get("user")
    if user and not settings.is_production:
        return codec.sign(user)
    return None


def _attach_healthcheck(app) -> None:  # type: ignore[no-untyped-def]
    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        return JSONResponse({"status": "ok"})

    app.add_route("/health", healthcheck, methods=["GET"])


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
