from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from stopover_chat.application.exceptions import PersistenceError
from stopover_chat.application.ports.conversation_store import ConversationStoragePort


class JsonConversationStorage(ConversationStoragePort):
    """One JSON file per conversation, written atomically."""

    def __init__(self, data_dir: str = "./data/conversations") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def _get_lock(self, conversation_id: str) -> threading.Lock:
        with self._lock_lock:
            if conversation_id not in self._locks:
                self._locks[conversation_id] = threading.Lock()
            return self._locks[conversation_id]

    def _get_file_path(self, conversation_id: str) -> Path:
        safe_id = "".join(c for c in conversation_id if c.isalnum() or c in "-_")
        if not safe_id:
            raise ValueError(f"Invalid conversation id: {conversation_id!r}")
        return self._data_dir / f"{safe_id}.json"

    def load(self, conversation_id: str) -> dict[str, Any] | None:
        file_path = self._get_file_path(conversation_id)
        with self._get_lock(conversation_id):
            if not file_path.exists():
                return None
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except json.JSONDecodeError:
                # A corrupted file is treated as a missing conversation.
                self._logger.warning("Corrupted conversation file", extra={"conversation_id": conversation_id})
                return None
            except OSError as e:
                raise PersistenceError(f"Failed to read conversation file: {e}", service="durable-objects") from e

    def save(self, conversation_id: str, record: dict[str, Any]) -> None:
        file_path = self._get_file_path(conversation_id)
        temp_path = file_path.with_suffix(".json.tmp")
        with self._get_lock(conversation_id):
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump(record, f, indent=2, ensure_ascii=False)
                temp_path.replace(file_path)
            except OSError as e:
                if temp_path.exists():
                    temp_path.unlink(missing_ok=True)
                raise PersistenceError(f"Failed to write conversation file: {e}", service="durable-objects") from e

    def delete(self, conversation_id: str) -> None:
        file_path = self._get_file_path(conversation_id)
        with self._get_lock(conversation_id):
            file_path.unlink(missing_ok=True)
