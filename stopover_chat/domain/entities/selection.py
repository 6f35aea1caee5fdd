from __future__ import annotations

from dataclasses import dataclass, field

from stopover_chat.domain.entities.catalog_item import (
    HotelOption,
    StopoverCategory,
    TourOption,
    TransferOption,
)


@dataclass(frozen=True)
class SelectedTour:
    tour: TourOption
    quantity: int

    @property
    def total_price(self) -> float:
        return self.tour.price * self.quantity


@dataclass(frozen=True)
class SelectedExtras:
    transfer: TransferOption | None = None
    tours: tuple[SelectedTour, ...] = ()


@dataclass(frozen=True)
class StopoverSelection:
    """A fully resolved stopover choice, ready for pricing."""

    timing: str  # "outbound" | "return"
    nights: int
    category: StopoverCategory
    hotel: HotelOption
    extras: SelectedExtras = field(default_factory=SelectedExtras)
