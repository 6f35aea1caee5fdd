from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class SelectionState:
    """Identifiers of what the customer has picked so far.

    Every later field implies the earlier ones are set: a hotel implies a
    category, timing implies a hotel, extras imply timing, payment implies extras.
    """

    category_id: str | None = None
    hotel_id: str | None = None
    timing: str | None = None  # "outbound" | "return"
    nights: int | None = None
    extras_selected: bool = False
    include_transfers: bool = False
    tours: tuple[tuple[str, int], ...] = ()  # (tour_id, quantity)
    payment_method: str | None = None  # "card" | "loyalty"
    status: str = "in-progress"  # "in-progress" | "confirmed"

    def with_category(self, category_id: str) -> SelectionState:
        return SelectionState(category_id=category_id)

    def with_hotel(self, hotel_id: str) -> SelectionState:
        return SelectionState(category_id=self.category_id, hotel_id=hotel_id)

    def with_timing(self, timing: str, nights: int) -> SelectionState:
        return SelectionState(
            category_id=self.category_id,
            hotel_id=self.hotel_id,
            timing=timing,
            nights=nights,
        )

    def with_extras(self, include_transfers: bool, tours: tuple[tuple[str, int], ...]) -> SelectionState:
        return replace(
            self,
            extras_selected=True,
            include_transfers=include_transfers,
            tours=tours,
            payment_method=None,
        )

    def with_payment(self, payment_method: str) -> SelectionState:
        return replace(self, payment_method=payment_method)

    def confirmed(self) -> SelectionState:
        return replace(self, status="confirmed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category_id,
            "hotel": self.hotel_id,
            "timing": self.timing,
            "duration": self.nights,
            "extras": {
                "selected": self.extras_selected,
                "transfers": self.include_transfers,
                "tours": [{"id": tour_id, "quantity": qty} for tour_id, qty in self.tours],
            },
            "paymentMethod": self.payment_method,
            "status": self.status,
        }

    @staticmethod
    def from_dict(data: dict[str, Any] | None) -> SelectionState:
        if not data:
            return SelectionState()
        extras = data.get("extras") or {}
        return SelectionState(
            category_id=data.get("category"),
            hotel_id=data.get("hotel"),
            timing=data.get("timing"),
            nights=data.get("duration"),
            extras_selected=bool(extras.get("selected", False)),
            include_transfers=bool(extras.get("transfers", False)),
            tours=tuple((t["id"], int(t.get("quantity", 1))) for t in extras.get("tours", [])),
            payment_method=data.get("paymentMethod"),
            status=data.get("status", "in-progress"),
        )
