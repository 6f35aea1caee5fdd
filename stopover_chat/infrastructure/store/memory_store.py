from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from typing import Any

from stopover_chat.application.ports.conversation_store import ConversationStoragePort
from stopover_chat.application.ports.session_store import SessionCachePort


class MemorySessionCache(SessionCachePort):
    """Process-local TTL cache. Used when REDIS_URL is empty and in tests."""

    def __init__(self, default_ttl_seconds: int | None = None, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, tuple[dict[str, Any], float | None]] = {}
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def ping(self) -> bool:
        return True


class MemoryConversationStorage(ConversationStoragePort):
    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, conversation_id: str) -> dict[str, Any] | None:
        with self._lock:
            record = self._records.get(conversation_id)
            return copy.deepcopy(record) if record is not None else None

    def save(self, conversation_id: str, record: dict[str, Any]) -> None:
        with self._lock:
            self._records[conversation_id] = copy.deepcopy(record)

    def delete(self, conversation_id: str) -> None:
        with self._lock:
            self._records.pop(conversation_id, None)
