from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from stopover_chat.application.ports.catalog import CatalogPort
from stopover_chat.domain.entities.customer import BookingData, CustomerData
from stopover_chat.domain.entities.selection import SelectedExtras, SelectedTour, StopoverSelection
from stopover_chat.domain.entities.selection_state import SelectionState
from stopover_chat.domain.pricing import MAX_STOPOVER_NIGHTS


def _identity(key: str) -> str:
    return key


@dataclass(frozen=True)
class ToolContext:
    """Read-only view handed to every tool execute function."""

    catalog: CatalogPort
    customer: CustomerData
    booking: BookingData
    selection: SelectionState = field(default_factory=SelectionState)
    asset_url: Callable[[str], str] = _identity
    max_nights: int = MAX_STOPOVER_NIGHTS


def resolve_selection(state: SelectionState, catalog: CatalogPort) -> StopoverSelection | None:
    """Build a priceable selection from stored ids, or None while anything is missing."""
    if not (state.category_id and state.hotel_id and state.timing and state.nights):
        return None
    category = catalog.get_category(state.category_id)
    hotel = catalog.get_hotel(state.hotel_id, category_id=state.category_id)
    if category is None or hotel is None:
        return None

    tours: list[SelectedTour] = []
    for tour_id, quantity in state.tours:
        tour = catalog.get_tour(tour_id)
        if tour is None:
            return None
        tours.append(SelectedTour(tour=tour, quantity=quantity))

    extras = SelectedExtras(
        transfer=catalog.default_transfer() if state.include_transfers else None,
        tours=tuple(tours),
    )
    return StopoverSelection(
        timing=state.timing,
        nights=state.nights,
        category=category,
        hotel=hotel,
        extras=extras,
    )
