from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from stopover_chat.domain.entities.pricing import PricingBreakdown
from stopover_chat.domain.entities.selection_state import SelectionState


@dataclass(frozen=True)
class SessionMetadata:
    entry_point: str = "email"  # "email" | "mmb"
    started_at: float = 0.0
    last_activity: float = 0.0
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class BookingSession:
    session_id: str
    conversation_id: str
    customer_id: str
    booking_pnr: str
    current_step: str = "welcome"
    selections: SelectionState = field(default_factory=SelectionState)
    pricing: PricingBreakdown | None = None
    new_pnr: str | None = None
    metadata: SessionMetadata = field(default_factory=SessionMetadata)

    def touched(self, now: float) -> BookingSession:
        return replace(self, metadata=replace(self.metadata, last_activity=now))

    def state_dict(self) -> dict[str, Any]:
        return {
            "currentStep": self.current_step,
            "selections": self.selections.to_dict(),
            "pricing": self.pricing.to_dict() if self.pricing else None,
            "newPnr": self.new_pnr,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "conversationId": self.conversation_id,
            "customerId": self.customer_id,
            "bookingPnr": self.booking_pnr,
            "state": self.state_dict(),
            "metadata": {
                "entryPoint": self.metadata.entry_point,
                "startedAt": self.metadata.started_at,
                "lastActivity": self.metadata.last_activity,
                "userAgent": self.metadata.user_agent,
                "ipAddress": self.metadata.ip_address,
            },
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> BookingSession:
        state = data.get("state") or {}
        meta = data.get("metadata") or {}
        pricing = state.get("pricing")
        return BookingSession(
            session_id=data["sessionId"],
            conversation_id=data["conversationId"],
            customer_id=data.get("customerId", ""),
            booking_pnr=data.get("bookingPnr", ""),
            current_step=state.get("currentStep", "welcome"),
            selections=SelectionState.from_dict(state.get("selections")),
            pricing=PricingBreakdown.from_dict(pricing) if pricing else None,
            new_pnr=state.get("newPnr"),
            metadata=SessionMetadata(
                entry_point=meta.get("entryPoint", "email"),
                started_at=float(meta.get("startedAt", 0.0)),
                last_activity=float(meta.get("lastActivity", 0.0)),
                user_agent=meta.get("userAgent"),
                ip_address=meta.get("ipAddress"),
            ),
        )
