"""Setup links that let an end user connect a missing integration."""

from __future__ import annotations

import html
import json
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .config import Settings
from .errors import InvalidTokenError
from .models import ToolResult
from .token_store import EphemeralTokenStore
from .tokens import CapabilityTokenCodec

logger = logging.getLogger(__name__)


class SetupTokenInfo(BaseModel):
    """The only token fields handed to the browser connect widget."""

    projectId: Optional[str] = None
    loginToken: Optional[str] = None
    integrationName: Optional[str] = None


class SetupLinkService:
    def __init__(
        self,
        settings: Settings,
        codec: CapabilityTokenCodec,
        store: EphemeralTokenStore,
    ) -> None:
        self.settings = settings
        self.codec = codec
        self.store = store

    def generate(
        self,
        bearer: str,
        integration_name: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> str:
        meta = meta or {}
        user_id = self.codec.decode_unverified(bearer).user_id
        if not user_id:
            raise InvalidTokenError("User ID not found")

        login_token = self.codec.sign(user_id)
        token = self.codec.sign(
            user_id,
            integration_name=integration_name,
            project_id=meta.get("projectId") or self.settings.project_id,
            persona_id=meta.get("personaId"),
            integration_id=meta.get("integrationId"),
            login_token=login_token,
        )
        opaque_id = self.store.put(token)
        logger.info("Generated setup link for integration=%s", integration_name)
        return f"{self.settings.mcp_server_domain}/setup?token={opaque_id}"

    def recovery_result(self, setup_url: str, integration_name: str) -> ToolResult:
        return ToolResult.text(
            f"The {integration_name} integration is not enabled for the user. "
            "To set it up, the user will need to visit:",
            setup_url,
            f"Instruct the user to set up their {integration_name} integration by visiting the link. "
            "Format the setup link in Markdown as a clickable link. "
            "Do not ask the user for confirmation before sharing it.",
            is_error=True,
        )

    def redeem(self, opaque_id: Optional[str]) -> SetupTokenInfo:
        token = self.store.get(opaque_id) if opaque_id else None
        if not token:
            raise InvalidTokenError("Invalid token")
        try:
            claims = self.codec.verify(token)
        except InvalidTokenError as exc:
            logger.warning("Setup token failed verification: %s", exc)
            raise InvalidTokenError("Invalid token") from exc

        return SetupTokenInfo(
            projectId=claims.project_id,
            loginToken=claims.login_token,
            integrationName=claims.integration_name,
        )


SETUP_PAGE_TEMPLATE = """<html>
  <head>
    <script src="{sdk_url}"></script>
    <script id="token-info" type="application/json">{token_info}</script>
    <script type="text/javascript">
      async function main() {{
        const tokenInfo = JSON.parse(document.getElementById("token-info").textContent);
        await paragon.authenticate(tokenInfo.projectId, tokenInfo.loginToken);
        paragon.connect(tokenInfo.integrationName, {{
          onError: (error) => console.error("Error connecting to integration", error),
          onSuccess: () => console.log("Connected to integration"),
        }});
      }}
      main();
    </script>
  </head>
  <body>
  </body>
</html>
"""


def render_setup_page(info: SetupTokenInfo, sdk_url: str) -> str:
    token_info = json.dumps(info.model_dump()).replace("<", "\\u003c")
    return SETUP_PAGE_TEMPLATE.format(sdk_url=html.escape(sdk_url), token_info=token_info)
