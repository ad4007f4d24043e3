"""In-memory registry of connected agent sessions."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from .catalog import CatalogBuilder
from .errors import SessionNotFoundError
from .models import ToolDescriptor

logger = logging.getLogger(__name__)

CloseCallback = Callable[[], Awaitable[None]]


@dataclass
class Session:
    session_id: str
    bearer: str
    catalog: Optional[List[ToolDescriptor]] = None
    close_callback: Optional[CloseCallback] = None
    _catalog_task: Optional["asyncio.Task[List[ToolDescriptor]]"] = field(default=None, repr=False)

    async def get_catalog(self, builder: CatalogBuilder) -> List[ToolDescriptor]:
        """Return the cached catalog, sharing one in-flight fetch between concurrent callers."""
        if self.catalog is not None:
            return self.catalog

        if self._catalog_task is None:
            self._catalog_task = asyncio.ensure_future(builder.build(self.bearer))
        task = self._catalog_task
        try:
            catalog = await asyncio.shield(task)
        except Exception:
            if self._catalog_task is task:
                self._catalog_task = None
            raise

        if self.catalog is None:
            self.catalog = catalog
            self._catalog_task = None
            logger.debug("Cached %s tools for session %s", len(catalog), self.session_id)
        return self.catalog

    def find_tool(self, name: str) -> Optional[ToolDescriptor]:
        for tool in self.catalog or []:
            if tool.name == name:
                return tool
        return None

    async def close(self) -> None:
        if self.close_callback is not None:
            await self.close_callback()


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def create(
        self,
        bearer: str,
        session_id: Optional[str] = None,
        close_callback: Optional[CloseCallback] = None,
    ) -> Session:
        session = Session(
            session_id=session_id or uuid.uuid4().hex,
            bearer=bearer,
            close_callback=close_callback,
        )
        self._sessions[session.session_id] = session
        logger.debug("Session opened: %s (%s connected)", session.session_id, len(self._sessions))
        return session

    def get(self, session_id: Optional[str]) -> Session:
        session = self._sessions.get(session_id) if session_id else None
        if not session:
            raise SessionNotFoundError(session_id)
        return session

    def remove(self, session_id: str) -> Optional[Session]:
        session = self._sessions.pop(session_id, None)
        if session:
            logger.debug("Session closed: %s", session_id)
        return session

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def close_all(self, timeout: float) -> None:
        """Close every session concurrently, waiting at most ``timeout`` seconds in total."""
        sessions = list(self._sessions.values())
        if not sessions:
            return

        tasks = {asyncio.ensure_future(session.close()): session for session in sessions}
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            logger.warning("Timed out closing session %s", tasks[task].session_id)
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Failed to close session %s",
                    tasks[task].session_id,
                    exc_info=task.exception(),
                )
        for session in sessions:
            self.remove(session.session_id)
