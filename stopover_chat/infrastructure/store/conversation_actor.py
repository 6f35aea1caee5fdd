from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from collections.abc import Callable
from typing import Any

from stopover_chat.application.ports.conversation_store import (
    ActorResponse,
    ConversationDirectoryPort,
    ConversationStoragePort,
)

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_IDLE_TTL_SECONDS = 24 * 60 * 60


class ConversationActor:
    """Sole owner of one conversation record.

    Every operation runs under the actor's lock, so at most one request
    touches the record at a time. Storage failures come back as status 500;
    a missing conversation is 404.
    """

    def __init__(
        self,
        conversation_id: str,
        storage: ConversationStoragePort,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        idle_ttl_seconds: int = DEFAULT_IDLE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.conversation_id = conversation_id
        self._storage = storage
        self._history_limit = history_limit
        self._idle_ttl = idle_ttl_seconds
        self._clock = clock
        self._record: dict[str, Any] | None = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)
        self._handlers: dict[str, Callable[[dict[str, Any]], ActorResponse]] = {
            "init": self._handle_init,
            "state": self._handle_state,
            "update": self._handle_update,
            "message": self._handle_message,
            "cleanup": self._handle_cleanup,
        }

    def handle(self, op: str, payload: dict[str, Any] | None = None) -> ActorResponse:
        handler = self._handlers.get(op)
        if handler is None:
            return ActorResponse(status=404, body={"error": "Not Found"})
        with self._lock:
            try:
                return handler(dict(payload or {}))
            except Exception as e:
                self._logger.exception(
                    "Conversation actor error",
                    extra={"conversation_id": self.conversation_id, "operation": op},
                )
                self._record = None
                return ActorResponse(status=500, body={"error": "Internal Server Error", "details": str(e)})

    def _load(self) -> dict[str, Any] | None:
        if self._record is None:
            self._record = self._storage.load(self.conversation_id)
        return self._record

    def _save(self) -> None:
        self._storage.save(self.conversation_id, self._record)

    @staticmethod
    def _not_found() -> ActorResponse:
        return ActorResponse(status=404, body={"error": "Conversation not found"})

    def _handle_init(self, payload: dict[str, Any]) -> ActorResponse:
        metadata = payload.get("metadata") or {}
        self._record = {
            "conversation_id": self.conversation_id,
            "customer_id": payload.get("customer_id") or "alex-johnson",
            "booking_pnr": payload.get("booking_pnr") or "X4HG8",
            "messages": [],
            "booking_state": {},
            "current_step": "welcome",
            "awaiting_input": False,
            "suggested_replies": [],
            "last_activity": self._clock(),
            "metadata": {
                "entry_point": metadata.get("entry_point") or "email",
                "user_agent": metadata.get("user_agent"),
                "ip_address": metadata.get("ip_address"),
            },
        }
        self._save()
        return ActorResponse(status=200, body={"success": True, "data": copy.deepcopy(self._record)})

    def _handle_state(self, payload: dict[str, Any]) -> ActorResponse:
        record = self._load()
        if record is None:
            return self._not_found()
        return ActorResponse(status=200, body={"success": True, "data": copy.deepcopy(record)})

    def _handle_update(self, payload: dict[str, Any]) -> ActorResponse:
        record = self._load()
        if record is None:
            return self._not_found()
        if payload.get("booking_state"):
            record["booking_state"] = {**record.get("booking_state", {}), **payload["booking_state"]}
        for key in ("current_step", "awaiting_input", "suggested_replies"):
            if key in payload and payload[key] is not None:
                record[key] = payload[key]
        record["last_activity"] = self._clock()
        self._save()
        return ActorResponse(status=200, body={"success": True, "data": copy.deepcopy(record)})

    def _handle_message(self, payload: dict[str, Any]) -> ActorResponse:
        record = self._load()
        if record is None:
            return self._not_found()
        now = self._clock()
        message = {
            **payload,
            "id": payload.get("id") or uuid.uuid4().hex,
            "timestamp": payload.get("timestamp") or now,
        }
        messages = record.setdefault("messages", [])
        messages.append(message)
        if len(messages) > self._history_limit:
            record["messages"] = messages[-self._history_limit :]
        record["last_activity"] = now
        self._save()
        return ActorResponse(
            status=200,
            body={"success": True, "message": message, "totalMessages": len(record["messages"])},
        )

    def _handle_cleanup(self, payload: dict[str, Any]) -> ActorResponse:
        record = self._load()
        removed = False
        if record is not None and self._clock() - record.get("last_activity", 0) > self._idle_ttl:
            self._storage.delete(self.conversation_id)
            self._record = None
            removed = True
        return ActorResponse(status=200, body={"success": True, "removed": removed})


class ConversationNamespace(ConversationDirectoryPort):
    """Maps conversation ids to their actor, creating actors on first use."""

    def __init__(
        self,
        storage: ConversationStoragePort,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        idle_ttl_seconds: int = DEFAULT_IDLE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._history_limit = history_limit
        self._idle_ttl = idle_ttl_seconds
        self._clock = clock
        self._actors: dict[str, ConversationActor] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def get(self, conversation_id: str) -> ConversationActor:
        with self._lock:
            actor = self._actors.get(conversation_id)
            if actor is None:
                actor = ConversationActor(
                    conversation_id,
                    self._storage,
                    history_limit=self._history_limit,
                    idle_ttl_seconds=self._idle_ttl,
                    clock=self._clock,
                )
                self._actors[conversation_id] = actor
            return actor

    def send(self, conversation_id: str, op: str, payload: dict[str, Any] | None = None) -> ActorResponse:
        return self.get(conversation_id).handle(op, payload)

    def sweep(self) -> list[str]:
        """Run cleanup on every known actor; returns the ids of removed conversations."""
        with self._lock:
            self._last_sweep = self._clock()
            actors = list(self._actors.values())
        removed: list[str] = []
        for actor in actors:
            if actor.handle("cleanup").body.get("removed"):
                removed.append(actor.conversation_id)
                with self._lock:
                    self._actors.pop(actor.conversation_id, None)
        return removed

    def sweep_if_due(self, interval_seconds: float) -> list[str]:
        with self._lock:
            due = self._clock() - self._last_sweep >= interval_seconds
        return self.sweep() if due else []
