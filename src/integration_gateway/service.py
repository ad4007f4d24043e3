"""Core gateway service: session lifecycle and tool dispatch."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from .catalog import CatalogBuilder
from .config import Settings
from .errors import ToolExecutionFailed, UserNotConnectedError
from .executors import (
    CustomToolExecutor,
    OpenApiExecutor,
    RawProxyExecutor,
    RegistryActionExecutor,
)
from .logging import redact_payload
from .models import ToolDescriptor, ToolKind, ToolResult
from .platform_client import PlatformClient
from .sessions import CloseCallback, Session, SessionRegistry
from .setup_links import SetupLinkService

logger = logging.getLogger(__name__)


class GatewayService:
    """
    Owns the connected sessions and routes tool calls.

    Every failure inside ``call_tool`` resolves to an ``isError`` result; only
    an unknown session id raises, since there is no session to answer on.
    """

    def __init__(
        self,
        settings: Settings,
        client: PlatformClient,
        catalog_builder: CatalogBuilder,
        setup_links: SetupLinkService,
        sessions: Optional[SessionRegistry] = None,
    ) -> None:
        static_catalog = catalog_builder.static_catalog
        self.settings = settings
        self.catalog_builder = catalog_builder
        self.setup_links = setup_links
        self.sessions = sessions or SessionRegistry()
        self.registry_executor = RegistryActionExecutor(client)
        self.openapi_executor = OpenApiExecutor(client, static_catalog.requests)
        self.proxy_executor = RawProxyExecutor(client)
        self.custom_executor = CustomToolExecutor(client, static_catalog.custom_handlers)
        self.semaphore = asyncio.Semaphore(settings.max_concurrency)

    def open_session(
        self,
        bearer: str,
        session_id: Optional[str] = None,
        close_callback: Optional[CloseCallback] = None,
    ) -> Session:
        return self.sessions.create(bearer, session_id=session_id, close_callback=close_callback)

    def close_session(self, session_id: str) -> None:
        self.sessions.remove(session_id)

    async def list_tools(self, session_id: Optional[str]) -> List[ToolDescriptor]:
        session = self.sessions.get(session_id)
        return await session.get_catalog(self.catalog_builder)

    async def call_tool(
        self,
        session_id: Optional[str],
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> ToolResult:
        session = self.sessions.get(session_id)
        args = arguments if arguments is not None else {}

        try:
            await session.get_catalog(self.catalog_builder)
        except Exception as exc:
            logger.exception("Could not load tools for session %s", session.session_id)
            return ToolResult.error(str(exc))

        tool = session.find_tool(name)
        if not tool:
            return ToolResult.error(f"Tool not found: {name}")

        try:
            errors = tool.schema.validate(args)
        except Exception as exc:
            logger.warning("Input schema for tool=%s could not be applied: %s", name, exc)
            return ToolResult.error(f"Invalid input schema for tool {name}: {exc}")
        if errors:
            logger.info("Validation failed for tool=%s errors=%s", name, len(errors))
            return ToolResult.validation_error(errors)

        async with self.semaphore:
            logger.info("Executing tool=%s payload=%s", name, redact_payload(args))
            try:
                response = await self._execute(tool, args, session.bearer)
                if response is None:
                    raise ToolExecutionFailed(tool.name)
                return ToolResult.from_response(response)
            except UserNotConnectedError as exc:
                return self._recover_not_connected(session, tool, args, exc)
            except ToolExecutionFailed as exc:
                logger.warning("Tool returned no result: %s", tool.name)
                return ToolResult.error(str(exc))
            except Exception as exc:
                logger.exception("Tool execution failed: %s", tool.name)
                return ToolResult.error(str(exc))

    async def _execute(self, tool: ToolDescriptor, args: Dict[str, Any], bearer: str) -> Any:
        if tool.kind is ToolKind.REGISTRY_ACTION:
            return await self.registry_executor.execute(tool, args, bearer)
        if tool.kind is ToolKind.OPENAPI:
            return await self.openapi_executor.execute(tool, args, bearer)
        if tool.kind is ToolKind.RAW_PROXY:
            return await self.proxy_executor.execute(tool, args, bearer)
        if tool.kind is ToolKind.CUSTOM:
            return await self.custom_executor.execute(tool, args, bearer)
        raise ValueError(f"Unsupported tool kind: {tool.kind}")

    def _recover_not_connected(
        self,
        session: Session,
        tool: ToolDescriptor,
        args: Dict[str, Any],
        error: UserNotConnectedError,
    ) -> ToolResult:
        integration_name = tool.integration_name
        if tool.kind is ToolKind.RAW_PROXY and args.get("integration"):
            integration_name = args["integration"]

        try:
            setup_url = self.setup_links.generate(session.bearer, integration_name, error.meta)
        except Exception as exc:
            logger.warning("Could not generate setup link for %s: %s", integration_name, exc)
            return ToolResult.error(str(error))

        return self.setup_links.recovery_result(setup_url, integration_name)
