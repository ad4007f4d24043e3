"""Exception types raised by the gateway."""

from __future__ import annotations

from typing import Any, Dict, Optional


USER_NOT_CONNECTED_MESSAGE = "Integration not enabled for user."


class GatewayError(Exception):
    pass


class ConfigurationError(GatewayError):
    """Startup configuration is unusable; the process must not serve traffic."""


class SessionNotFoundError(GatewayError):
    def __init__(self, session_id: Optional[str]) -> None:
        super().__init__(f"No session found by ID: {session_id}")
        self.session_id = session_id


class ToolNotFoundError(GatewayError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolExecutionFailed(GatewayError):
    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Failed to execute tool: {tool_name}")
        self.tool_name = tool_name


class InvalidTokenError(GatewayError):
    pass


class DownstreamHttpError(GatewayError):
    def __init__(
        self,
        status_code: int,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(f"HTTP error; status: {status_code}; message: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload or {}


class UserNotConnectedError(DownstreamHttpError):
    """The end user has not connected the integration a downstream call targeted."""

    def __init__(self, status_code: int, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(status_code, USER_NOT_CONNECTED_MESSAGE, payload)

    def __str__(self) -> str:
        return USER_NOT_CONNECTED_MESSAGE

    @property
    def meta(self) -> Dict[str, Any]:
        meta = self.payload.get("meta")
        return meta if isinstance(meta, dict) else {}
