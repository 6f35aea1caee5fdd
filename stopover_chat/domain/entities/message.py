from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from stopover_chat.domain.entities.tool_result import UIComponent


@dataclass(frozen=True)
class Message:
    id: str
    role: str  # "agent" | "user"
    kind: str  # "text" | "rich" | "form"
    text: str
    timestamp: float
    ui_component: UIComponent | None = None
    step: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "kind": self.kind,
            "text": self.text,
            "timestamp": self.timestamp,
            "uiComponent": self.ui_component.to_dict() if self.ui_component else None,
            "step": self.step,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Message:
        return Message(
            id=str(data.get("id", "")),
            role=data.get("role", "agent"),
            kind=data.get("kind", "text"),
            text=data.get("text", ""),
            timestamp=float(data.get("timestamp", 0)),
            ui_component=UIComponent.from_dict(data.get("uiComponent")),
            step=data.get("step"),
        )
