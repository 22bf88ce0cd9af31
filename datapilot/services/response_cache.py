from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from datapilot.schemas.pipeline import OrchestratorResponse


def normalize_question(question: str) -> str:
    return " ".join(question.strip().lower().split())


@dataclass(frozen=True)
class CacheKey:
    question: str
    session_id: str | None = None
    dialect: str = "postgresql"

    def digest(self) -> str:
        payload = {
            "question": normalize_question(self.question),
            "session_id": self.session_id or "",
            "dialect": self.dialect,
        }
        encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ResponseCache:
    """TTL cache of terminal responses with FIFO eviction at capacity.

    Entries expire lazily on read. Inserting a new key into a full cache evicts
    the oldest-inserted entry; overwriting a key re-stamps it as the newest.
    Responses go in and come out as deep copies.
    """

    def __init__(
        self,
        ttl_ms: int = 5 * 60 * 1000,
        max_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl_ms = ttl_ms
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[float, OrchestratorResponse]] = OrderedDict()

    def _expired(self, expires_at: float) -> bool:
        return expires_at <= self._clock()

    def get(self, key: CacheKey) -> OrchestratorResponse | None:
        digest = key.digest()
        with self._lock:
            entry = self._entries.get(digest)
            if entry is None:
                return None
            expires_at, response = entry
            if self._expired(expires_at):
                del self._entries[digest]
                return None
            return response.model_copy(deep=True)

    def set(self, key: CacheKey, response: OrchestratorResponse) -> None:
        digest = key.digest()
        stored = response.model_copy(deep=True)
        with self._lock:
            if digest in self._entries:
                del self._entries[digest]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[digest] = (self._clock() + self.ttl_ms / 1000, stored)

    def invalidate(self, key: CacheKey) -> bool:
        with self._lock:
            return self._entries.pop(key.digest(), None) is not None

    def prune(self) -> int:
        with self._lock:
            expired = [digest for digest, (expires_at, _) in self._entries.items() if self._expired(expires_at)]
            for digest in expired:
                del self._entries[digest]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {"size": self.size, "max_size": self.max_size, "ttl_ms": self.ttl_ms}
