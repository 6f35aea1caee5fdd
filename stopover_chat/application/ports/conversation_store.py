from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


class ConversationStoragePort(ABC):
    """Durable storage for one record per conversation."""

    @abstractmethod
    def load(self, conversation_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, conversation_id: str, record: dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, conversation_id: str) -> None:
        raise NotImplementedError


@dataclass(frozen=True)
class ActorResponse:
    status: int
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class ConversationDirectoryPort(ABC):
    """Routes requests to the single owner of each conversation.

    Supported operations: init, state, update, message, cleanup.
    """

    @abstractmethod
    def send(self, conversation_id: str, op: str, payload: dict[str, Any] | None = None) -> ActorResponse:
        raise NotImplementedError
