from __future__ import annotations

from stopover_chat.application.ports.catalog import CatalogPort
from stopover_chat.domain.catalog import lookup, package_hotel, validate_catalogs
from stopover_chat.domain.entities.catalog_item import (
    HotelOption,
    StopoverCategory,
    TourOption,
    TransferOption,
)
from stopover_chat.infrastructure.knowledge.catalog_data import CATEGORIES, HOTELS, TOURS, TRANSFERS


class StopoverCatalogStore(CatalogPort):
    """Read-only catalog backed by the static tables in catalog_data.

    Every hotel is offered with every stopover package.
    """

    def __init__(
        self,
        categories: tuple[StopoverCategory, ...] = CATEGORIES,
        hotels: tuple[HotelOption, ...] = HOTELS,
        tours: tuple[TourOption, ...] = TOURS,
        transfers: tuple[TransferOption, ...] = TRANSFERS,
    ) -> None:
        problems = validate_catalogs(categories, hotels, tours, transfers)
        if problems:
            raise ValueError("Invalid stopover catalog: " + "; ".join(problems))
        if not transfers:
            raise ValueError("Invalid stopover catalog: at least one transfer option is required")
        self._categories = categories
        self._hotels = hotels
        self._tours = tours
        self._transfers = transfers

    def categories(self) -> tuple[StopoverCategory, ...]:
        return self._categories

    def get_category(self, category_id: str | None) -> StopoverCategory | None:
        return lookup(self._categories, category_id)

    def hotels_for_category(self, category_id: str) -> tuple[HotelOption, ...]:
        category = self.get_category(category_id)
        if category is None:
            return ()
        return tuple(package_hotel(hotel, category) for hotel in self._hotels)

    def get_hotel(self, hotel_id: str | None, category_id: str | None = None) -> HotelOption | None:
        hotel = lookup(self._hotels, hotel_id)
        if hotel is None or category_id is None:
            return hotel
        category = self.get_category(category_id)
        return package_hotel(hotel, category) if category else None

    def tours(self) -> tuple[TourOption, ...]:
        return self._tours

    def get_tour(self, tour_id: str | None) -> TourOption | None:
        return lookup(self._tours, tour_id)

    def default_transfer(self) -> TransferOption:
        return self._transfers[0]
