from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from stopover_chat.application.exceptions import PersistenceError
from stopover_chat.application.ports.assets import AssetPort
from stopover_chat.application.ports.conversation_store import ConversationDirectoryPort
from stopover_chat.application.ports.session_store import SessionCachePort
from stopover_chat.application.utils.resilience import ResilientExecutor
from stopover_chat.domain.entities.booking_session import BookingSession, SessionMetadata

SESSION_KEY_PREFIX = "booking-session:"
CONTEXT_KEY_PREFIX = "conversation-context:"


def _new_id() -> str:
    return str(uuid.uuid4())


class SessionCoordinator:
    """Owns booking sessions (KV cache) and conversation records (actors).

    Every storage call goes through the ResilientExecutor: persistence
    failures degrade to None/False and are logged, never raised.
    """

    def __init__(
        self,
        cache: SessionCachePort,
        conversations: ConversationDirectoryPort,
        executor: ResilientExecutor,
        assets: AssetPort | None = None,
        session_ttl_seconds: int = 7200,
        context_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._cache = cache
        self._conversations = conversations
        self._executor = executor
        self._assets = assets
        self._session_ttl = session_ttl_seconds
        self._context_ttl = context_ttl_seconds
        self._clock = clock
        self._new_id = id_factory
        self._logger = logging.getLogger(__name__)

    # sessions

    def initialize_session(
        self,
        customer_id: str,
        booking_ref: str,
        entry_point: str = "email",
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> BookingSession:
        now = self._clock()
        session = BookingSession(
            session_id=self._new_id(),
            conversation_id=self._new_id(),
            customer_id=customer_id,
            booking_pnr=booking_ref,
            metadata=SessionMetadata(
                entry_point=entry_point,
                started_at=now,
                last_activity=now,
                user_agent=user_agent,
                ip_address=ip_address,
            ),
        )
        stored = self._store_session(session)
        if not stored:
            self._logger.warning("Session not cached; continuing stateless", extra={"session_id": session.session_id})
        self.initialize_conversation(
            session.conversation_id,
            customer_id=customer_id,
            booking_ref=booking_ref,
            entry_point=entry_point,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        self._logger.info(
            "Booking session initialized",
            extra={"session_id": session.session_id, "conversation_id": session.conversation_id},
        )
        return session

    def get_session(self, session_id: str) -> BookingSession | None:
        data = self._executor.execute(
            lambda: self._cache.get(SESSION_KEY_PREFIX + session_id),
            "kv",
            "get-session",
        )
        if not data:
            return None
        try:
            return BookingSession.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            self._logger.warning("Unreadable session discarded", extra={"session_id": session_id, "reason": str(e)})
            return None

    def update_session(self, session_id: str, partial_state: dict[str, Any]) -> bool:
        """Merge `partial_state` into the session state. Last write wins."""
        session = self.get_session(session_id)
        if session is None:
            return False
        data = session.to_dict()
        state = {**data["state"], **partial_state}
        if "selections" in partial_state and partial_state["selections"] is not None:
            state["selections"] = {**data["state"]["selections"], **partial_state["selections"]}
        data["state"] = state
        updated = BookingSession.from_dict(data).touched(self._clock())
        return self._store_session(updated)

    def _store_session(self, session: BookingSession) -> bool:
        def op() -> bool:
            self._cache.set(SESSION_KEY_PREFIX + session.session_id, session.to_dict(), self._session_ttl)
            return True

        return bool(self._executor.execute(op, "kv", "set-session"))

    # conversation context cache

    def cache_conversation_context(self, conversation_id: str, context: dict[str, Any]) -> bool:
        def op() -> bool:
            self._cache.set(CONTEXT_KEY_PREFIX + conversation_id, context, self._context_ttl)
            return True

        return bool(self._executor.execute(op, "kv", "set-conversation-context"))

    def get_conversation_context(self, conversation_id: str) -> dict[str, Any] | None:
        return self._executor.execute(
            lambda: self._cache.get(CONTEXT_KEY_PREFIX + conversation_id),
            "kv",
            "get-conversation-context",
        )

    # conversations

    def _send(self, conversation_id: str, op: str, payload: dict[str, Any] | None = None) -> dict[str, Any] | None:
        response = self._conversations.send(conversation_id, op, payload)
        if response.status == 404:
            return None
        if not response.ok:
            raise PersistenceError(
                f"Conversation actor returned {response.status}: {response.body.get('details', '')}",
                service="durable-objects",
                operation=op,
                retryable=response.status >= 500,
            )
        return response.body

    def initialize_conversation(
        self,
        conversation_id: str,
        customer_id: str,
        booking_ref: str,
        entry_point: str = "email",
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> bool:
        payload = {
            "customer_id": customer_id,
            "booking_pnr": booking_ref,
            "metadata": {"entry_point": entry_point, "user_agent": user_agent, "ip_address": ip_address},
        }
        body = self._executor.execute(lambda: self._send(conversation_id, "init", payload), "durable-objects", "init")
        return bool(body)

    def get_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        body = self._executor.execute(
            lambda: self._send(conversation_id, "state"),
            "durable-objects",
            "get-state",
        )
        if not body:
            return None
        return body.get("data", body)

    def update_conversation(self, conversation_id: str, updates: dict[str, Any]) -> bool:
        body = self._executor.execute(
            lambda: self._send(conversation_id, "update", updates),
            "durable-objects",
            "update",
        )
        return bool(body)

    def append_message(self, conversation_id: str, message: dict[str, Any]) -> bool:
        body = self._executor.execute(
            lambda: self._send(conversation_id, "message", message),
            "durable-objects",
            "message",
        )
        return bool(body)

    def coordinate(self, session_id: str | None, conversation_id: str, updates: dict[str, Any]) -> bool:
        """Apply one state change to both the session and its conversation.

        `updates` uses session-state keys (currentStep, selections, pricing, newPnr).
        """
        conversation_updates: dict[str, Any] = {}
        if "currentStep" in updates:
            conversation_updates["current_step"] = updates["currentStep"]
        if "selections" in updates:
            conversation_updates["booking_state"] = updates["selections"]
        for key in ("awaiting_input", "suggested_replies"):
            if key in updates:
                conversation_updates[key] = updates[key]

        session_updates = {k: v for k, v in updates.items() if k not in ("awaiting_input", "suggested_replies")}
        session_ok = self.update_session(session_id, session_updates) if session_id else False
        conversation_ok = self.update_conversation(conversation_id, conversation_updates)
        if not (session_ok and conversation_ok):
            self._logger.warning(
                "Session coordination incomplete",
                extra={"session_id": session_id, "conversation_id": conversation_id},
            )
        return session_ok and conversation_ok

    def asset_urls(self) -> dict[str, dict[str, str]]:
        if self._assets is None:
            return {}
        return self._executor.execute(self._assets.all_urls, "assets", "get-asset-urls")

    def health_check(self) -> dict[str, Any]:
        results = {"kv": False, "assets": False, "durableObjects": False}
        try:
            results["kv"] = self._cache.ping()
        except Exception as e:
            self._logger.error("KV health check failed", extra={"reason": str(e)})
        try:
            results["assets"] = self._assets is None or bool(self._assets.all_urls())
        except Exception as e:
            self._logger.error("Asset health check failed", extra={"reason": str(e)})
        try:
            response = self._conversations.send("health-check", "state")
            results["durableObjects"] = response.status in (200, 404)
        except Exception as e:
            self._logger.error("Durable objects health check failed", extra={"reason": str(e)})
        return {
            **results,
            "serviceHealth": self._executor.service_health(),
            "errorStats": self._executor.error_stats(),
        }
