from __future__ import annotations

from typing import Any

from stopover_chat.domain.entities.tool_result import UI_TYPES, UIComponent

WIDGETS = {
    "categories": "category-carousel",
    "hotels": "hotel-carousel",
    "options": "stopover-options",
    "extras": "stopover-extras",
    "summary": "summary-card",
    "form": "form",
}


def render_descriptor(component: UIComponent | dict[str, Any] | None) -> dict[str, Any]:
    """Map a UI descriptor to the widget a client should render.

    Unknown or missing tags render as a no-op widget instead of failing.
    """
    if isinstance(component, dict):
        component = UIComponent.from_dict(component)
    if component is None or component.type not in UI_TYPES:
        return {"widget": "none", "data": {}}
    return {"widget": WIDGETS[component.type], "data": component.data}


def describe_interaction(action: str, data: dict[str, Any] | None = None) -> str:
    """Turn a click on a rich component into the user message sent to the model."""
    data = data or {}
    if action == "category-select":
        return f"I'd like the {data.get('name') or data.get('id')} stopover category"
    if action == "hotel-select":
        return f"I'd like to stay at {data.get('name') or data.get('id')}"
    if action == "options-select":
        nights = data.get("duration")
        return f"I'd like a {nights}-night stopover on my {data.get('timing')} journey"
    if action == "extras-select":
        parts = ["airport transfers"] if data.get("includeTransfers") else []
        for tour in data.get("tours", []):
            parts.append(f"{tour.get('quantity', 1)}x {tour.get('name') or tour.get('id')}")
        return "Please add " + ", ".join(parts) if parts else "No extras, thanks"
    if action == "payment":
        method = data.get("method")
        return "I'd like to pay with points" if method == "loyalty" else "I'd like to pay by card"
    if action == "form-submit":
        return "I've submitted my payment details"
    if action == "email":
        return "Please email my confirmation"
    return str(data.get("text") or action)
