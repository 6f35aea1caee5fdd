from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from stopover_chat.domain.entities.pricing import PricingBreakdown
from stopover_chat.domain.entities.selection_state import SelectionState

UI_TYPES = ("categories", "hotels", "options", "extras", "summary", "form")


@dataclass(frozen=True)
class UIComponent:
    type: str
    data: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> UIComponent | None:
        if not data or not data.get("type"):
            return None
        return UIComponent(type=data["type"], data=dict(data.get("data") or {}))


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool invocation.

    `selection_update` carries the selection state the caller should persist on success;
    tools never write it themselves.
    """

    success: bool
    message: str
    ui_component: UIComponent | None = None
    error: str | None = None
    selection_update: SelectionState | None = None
    pricing: PricingBreakdown | None = None
    new_pnr: str | None = None

    @staticmethod
    def failure(message: str, error: str) -> ToolResult:
        return ToolResult(success=False, message=message, error=error)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.ui_component is not None:
            payload["uiComponent"] = self.ui_component.to_dict()
        if self.error:
            payload["error"] = self.error
        if self.pricing is not None:
            payload["pricing"] = self.pricing.to_dict()
        if self.new_pnr:
            payload["newPnr"] = self.new_pnr
        return payload
