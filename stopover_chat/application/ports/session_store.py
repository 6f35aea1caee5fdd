from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class SessionCachePort(ABC):
    """Fast key/value cache for booking sessions. Entries expire after a TTL."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the backend answers."""
        raise NotImplementedError
