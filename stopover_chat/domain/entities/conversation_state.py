from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from stopover_chat.domain.entities.message import Message


class ConversationStep(str, Enum):
    WELCOME = "welcome"
    CATEGORY_SELECTION = "category-selection"
    HOTEL_SELECTION = "hotel-selection"
    TIMING_DURATION = "timing-duration"
    EXTRAS_SELECTION = "extras-selection"
    BOOKING_SUMMARY = "booking-summary"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"

    @classmethod
    def parse(cls, value: str | None) -> ConversationStep | None:
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class ConversationState:
    current_step: ConversationStep = ConversationStep.WELCOME
    messages: tuple[Message, ...] = ()
    awaiting_input: bool = False
    suggested_replies: tuple[str, ...] = ()

    def to_record_fields(self) -> dict[str, Any]:
        return {
            "current_step": self.current_step.value,
            "awaiting_input": self.awaiting_input,
            "suggested_replies": list(self.suggested_replies),
        }

    @staticmethod
    def from_record(record: dict[str, Any]) -> ConversationState:
        return ConversationState(
            current_step=ConversationStep.parse(record.get("current_step")) or ConversationStep.WELCOME,
            messages=tuple(Message.from_dict(m) for m in record.get("messages", [])),
            awaiting_input=bool(record.get("awaiting_input", False)),
            suggested_replies=tuple(record.get("suggested_replies", [])),
        )
