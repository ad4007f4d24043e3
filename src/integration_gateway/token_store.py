"""Short-lived, in-memory store mapping opaque ids to setup tokens."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    token: str
    expires_at: float
    reads: int = 0


class EphemeralTokenStore:
    def __init__(
        self,
        ttl_seconds: float = 300,
        max_reads: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_reads = max_reads
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def put(self, token: str) -> str:
        self.purge_expired()
        opaque_id = str(uuid.uuid4())
        self._entries[opaque_id] = _Entry(token=token, expires_at=self._clock() + self.ttl_seconds)
        return opaque_id

    def get(self, opaque_id: str) -> Optional[str]:
        entry = self._entries.get(opaque_id)
        if not entry:
            return None
        if self._clock() >= entry.expires_at or entry.reads >= self.max_reads:
            self._entries.pop(opaque_id, None)
            return None
        entry.reads += 1
        return entry.token

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %s expired setup tokens", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
