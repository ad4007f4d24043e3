"""Logging setup and redaction of credentials in tool arguments."""

from __future__ import annotations

import logging
import re
from typing import Any


REDACTED = "***REDACTED***"

# Covers loginToken, access_token, Authorization and friends.
_SENSITIVE_KEYS = re.compile(r"(token|secret|api[_-]?key|password|authorization|cookie)", re.IGNORECASE)
_CREDENTIAL_VALUE = re.compile(r"^\s*(bearer|basic)\s+[\w.~+/=-]+\s*$|^eyJ[\w-]+\.[\w-]+\.", re.IGNORECASE)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def redact_payload(payload: Any) -> Any:
    """Return a copy of ``payload`` with credential keys and values masked.

    Dicts and lists are walked recursively. A string value is masked when it
    looks like an Authorization header value or a JWT, whatever its key.
    """
    if isinstance(payload, dict):
        return {
            key: REDACTED if _SENSITIVE_KEYS.search(str(key)) else redact_payload(value)
            for key, value in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [redact_payload(item) for item in payload]
    if isinstance(payload, str) and _CREDENTIAL_VALUE.search(payload):
        return REDACTED
    return payload
