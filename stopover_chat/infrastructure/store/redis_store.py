from __future__ import annotations

import json
import logging
from typing import Any

import redis

from stopover_chat.application.exceptions import PersistenceError
from stopover_chat.application.ports.session_store import SessionCachePort


def create_redis_client(url: str) -> redis.Redis:
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
    )


class RedisSessionCache(SessionCachePort):
    """Session cache on Redis; expiry is delegated to Redis key TTLs."""

    def __init__(self, client: redis.Redis, key_prefix: str = "stopover:", default_ttl_seconds: int | None = None) -> None:
        self._client = client
        self._prefix = key_prefix
        self._default_ttl = default_ttl_seconds
        self._logger = logging.getLogger(__name__)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self._client.get(self._key(key))
        except redis.RedisError as e:
            raise PersistenceError(f"Redis connection error on get: {e}", service="kv", operation="get") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            self._logger.warning("Discarding unreadable cache entry", extra={"reason": key})
            return None

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        try:
            if ttl:
                self._client.setex(self._key(key), ttl, json.dumps(value))
            else:
                self._client.set(self._key(key), json.dumps(value))
        except redis.RedisError as e:
            raise PersistenceError(f"Redis connection error on set: {e}", service="kv", operation="set") from e

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            raise PersistenceError(f"Redis connection error on delete: {e}", service="kv", operation="delete") from e

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            self._logger.warning("Redis health check failed", extra={"reason": str(e)})
            return False
