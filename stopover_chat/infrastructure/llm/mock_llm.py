from __future__ import annotations

import json
import re
from collections.abc import Iterator

from stopover_chat.application.dto.completion import (
    CompletionRequest,
    ModelTurn,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallEvent,
)
from stopover_chat.application.ports.llm import CompletionPort

_STEP_RE = re.compile(r"CURRENT STEP:\s*([a-z-]+)")
_PASSENGERS_RE = re.compile(r"Passengers:\s*(\d+)")
_TOTAL_RE = re.compile(r"total is \$([\d,]+(?:\.\d+)?) or ([\d,]+)")
_NIGHTS_RE = re.compile(r"(\d)\s*(?:-\s*)?night")

CATEGORY_KEYWORDS = (
    ("premium beach", "premium-beach"),
    ("beach", "premium-beach"),
    ("luxury", "luxury"),
    ("premium", "premium"),
    ("standard", "standard"),
)
HOTEL_KEYWORDS = (
    ("millennium", "millennium-doha"),
    ("steigenberger", "steigenberger-doha"),
    ("souq", "souq-waqif-boutique"),
    ("crowne", "crowne-plaza-doha"),
    ("najada", "al-najada-doha"),
)
TOUR_KEYWORDS = (
    ("whale", "whale-sharks-qatar"),
    ("pearl", "pearl-diving-experience"),
    ("skyline", "doha-city-skyline-tour"),
    ("city tour", "doha-city-skyline-tour"),
    ("desert", "desert-safari-adventure"),
    ("safari", "desert-safari-adventure"),
)
SHOW_WORDS = ("yes", "sure", "show", "option", "categor", "package", "stopover")
LOYALTY_WORDS = ("point", "avios", "loyalty")
SUBMITTED_WORDS = ("submitted", "entered", "paid", "done", "confirm")


def _match(text: str, table: tuple[tuple[str, str], ...]) -> str | None:
    for keyword, value in table:
        if keyword in text:
            return value
    return None


class MockCompletion(CompletionPort):
    """Offline keyword matcher standing in for a model in dev mode.

    It only reads the last user message, the step line of the system prompt
    and totals quoted earlier in the conversation.
    """

    def __init__(self) -> None:
        self._calls = 0

    def complete(self, request: CompletionRequest, model: str) -> ModelTurn:
        self._calls += 1
        system = next((m["content"] for m in request.messages if m.get("role") == "system"), "")
        user_texts = [str(m.get("content", "")) for m in request.messages if m.get("role") == "user"]
        text = (user_texts[-1] if user_texts else "").lower()
        step_match = _STEP_RE.search(system)
        step = step_match.group(1) if step_match else "welcome"
        passengers_match = _PASSENGERS_RE.search(system)
        passengers = int(passengers_match.group(1)) if passengers_match else 1

        name, args = self._infer_tool(step, text, passengers, request)
        if name is None:
            return ModelTurn(text=self._reply(step), model=model)
        call = ToolCall(id=f"call_{self._calls}", name=name, arguments=json.dumps(args))
        return ModelTurn(text="", tool_calls=(call,), model=model)

    def stream(self, request: CompletionRequest, model: str) -> Iterator[StreamEvent]:
        turn = self.complete(request, model)
        return self._events(turn)

    def _events(self, turn: ModelTurn) -> Iterator[StreamEvent]:
        for word in turn.text.split(" "):
            if word:
                yield TextDelta(word + " ")
        for call in turn.tool_calls:
            yield ToolCallEvent(call)

    def _infer_tool(self, step: str, text: str, passengers: int, request: CompletionRequest) -> tuple[str | None, dict]:
        category = _match(text, CATEGORY_KEYWORDS)
        hotel = _match(text, HOTEL_KEYWORDS)

        if step == "welcome" and any(word in text for word in SHOW_WORDS):
            return "show_stopover_categories", {}
        if step in ("category-selection", "hotel-selection") and category:
            return "select_stopover_category", {"categoryId": category}
        if step == "category-selection" and any(word in text for word in SHOW_WORDS):
            return "show_stopover_categories", {}
        if step in ("hotel-selection", "timing-duration") and hotel:
            return "select_hotel", {"hotelId": hotel}
        if step in ("timing-duration", "extras-selection") and ("outbound" in text or "return" in text):
            nights = _NIGHTS_RE.search(text)
            return "select_timing_and_duration", {
                "timing": "return" if "return" in text else "outbound",
                "duration": int(nights.group(1)) if nights else 2,
            }
        if step in ("extras-selection", "booking-summary"):
            tours = [{"tourId": tour_id, "quantity": passengers} for kw, tour_id in TOUR_KEYWORDS if kw in text]
            tours = list({t["tourId"]: t for t in tours}.values())
            wants_transfer = "transfer" in text and "no transfer" not in text
            if tours or wants_transfer or "no extras" in text:
                return "select_extras", {"includeTransfers": wants_transfer, "selectedTours": tours}
        # "submitted my payment" also contains "pay"; check it first
        if step == "payment" and any(word in text for word in SUBMITTED_WORDS):
            history = " ".join(str(m.get("content", "")).lower() for m in request.messages if m.get("role") == "user")
            method = "loyalty" if any(word in history for word in LOYALTY_WORDS) else "card"
            return "complete_booking", {"paymentMethod": method, "confirmed": True}
        if step in ("booking-summary", "payment") and ("pay" in text or "card" in text):
            total = self._quoted_total(request)
            if total is not None:
                loyalty = any(word in text for word in LOYALTY_WORDS)
                amount = total[1] if loyalty else total[0]
                return "initiate_payment", {"paymentMethod": "loyalty" if loyalty else "card", "totalAmount": amount}
        return None, {}

    @staticmethod
    def _quoted_total(request: CompletionRequest) -> tuple[float, int] | None:
        for message in reversed(request.messages):
            found = _TOTAL_RE.search(str(message.get("content", "")))
            if found:
                return float(found.group(1).replace(",", "")), int(found.group(2).replace(",", ""))
        return None

    @staticmethod
    def _reply(step: str) -> str:
        if step == "confirmation":
            return "Your stopover is booked. Is there anything else I can help you with for your trip?"
        if step == "welcome":
            return "I can help you add a stopover in Doha to your trip. Would you like to see the packages?"
        return "Happy to help. Could you tell me which option you'd like?"
