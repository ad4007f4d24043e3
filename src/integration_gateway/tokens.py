"""Signed capability tokens.

The same claim set serves as a session bearer credential and as the one-time
setup credential handed to the browser connect widget. A setup credential
carries a login token, which must itself be a plain bearer credential.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from cryptography.hazmat.primitives import serialization

from .errors import ConfigurationError, InvalidTokenError


logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
TOKEN_LIFETIME_SECONDS = 60 * 60 * 24 * 7

_PAYLOAD_FIELDS = {
    "persona_id": "personaId",
    "integration_id": "integrationId",
    "integration_name": "integrationName",
    "project_id": "projectId",
    "login_token": "loginToken",
}


@dataclass(frozen=True)
class CapabilityClaims:
    user_id: Optional[str]
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    persona_id: Optional[str] = None
    integration_id: Optional[str] = None
    integration_name: Optional[str] = None
    project_id: Optional[str] = None
    login_token: Optional[str] = None

    @classmethod
    def from_jwt(cls, claims: Dict[str, Any]) -> "CapabilityClaims":
        payload = claims.get("payload") or {}
        if not isinstance(payload, dict):
            payload = {}
        return cls(
            user_id=claims.get("sub"),
            issued_at=claims.get("iat"),
            expires_at=claims.get("exp"),
            **{attr: payload.get(key) for attr, key in _PAYLOAD_FIELDS.items()},
        )


class CapabilityTokenCodec:
    def __init__(self, private_key_pem: str, lifetime_seconds: int = TOKEN_LIFETIME_SECONDS) -> None:
        try:
            self._private_key = serialization.load_pem_private_key(
                private_key_pem.encode("utf-8"), password=None
            )
        except (ValueError, TypeError) as exc:
            raise ConfigurationError("Signing key is not a valid PEM private key") from exc
        self._public_key = self._private_key.public_key()
        self.lifetime_seconds = lifetime_seconds

    def sign(
        self,
        user_id: Optional[str] = None,
        *,
        persona_id: Optional[str] = None,
        integration_id: Optional[str] = None,
        integration_name: Optional[str] = None,
        project_id: Optional[str] = None,
        login_token: Optional[str] = None,
        now: Optional[float] = None,
    ) -> str:
        if login_token is not None:
            self._check_login_token(login_token, now)

        values = {
            "persona_id": persona_id,
            "integration_id": integration_id,
            "integration_name": integration_name,
            "project_id": project_id,
            "login_token": login_token,
        }
        issued_at = int(now if now is not None else time.time())
        claims: Dict[str, Any] = {
            "payload": {_PAYLOAD_FIELDS[attr]: value for attr, value in values.items() if value},
            "iat": issued_at,
            "exp": issued_at + self.lifetime_seconds,
        }
        if user_id:
            claims["sub"] = user_id
        return jwt.encode(claims, self._private_key, algorithm=ALGORITHM)

    def verify(self, token: str, now: Optional[float] = None) -> CapabilityClaims:
        try:
            if now is None:
                claims = jwt.decode(token, self._public_key, algorithms=[ALGORITHM])
            else:
                claims = jwt.decode(
                    token,
                    self._public_key,
                    algorithms=[ALGORITHM],
                    options={"verify_exp": False},
                )
                if int(claims.get("exp", 0)) <= now:
                    raise jwt.ExpiredSignatureError("Signature has expired")
        except jwt.PyJWTError as exc:
            raise InvalidTokenError(str(exc)) from exc
        return CapabilityClaims.from_jwt(claims)

    def decode_unverified(self, token: str) -> CapabilityClaims:
        try:
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as exc:
            raise InvalidTokenError(str(exc)) from exc
        return CapabilityClaims.from_jwt(claims)

    def _check_login_token(self, login_token: str, now: Optional[float]) -> None:
        claims = self.verify(login_token, now=now)
        if claims.login_token:
            raise InvalidTokenError("A login token must not embed another login token")
