from __future__ import annotations

from abc import ABC, abstractmethod

from stopover_chat.domain.entities.catalog_item import (
    HotelOption,
    StopoverCategory,
    TourOption,
    TransferOption,
)


class CatalogPort(ABC):
    @abstractmethod
    def categories(self) -> tuple[StopoverCategory, ...]:
        """All stopover categories in display order."""
        raise NotImplementedError

    @abstractmethod
    def get_category(self, category_id: str | None) -> StopoverCategory | None:
        raise NotImplementedError

    @abstractmethod
    def hotels_for_category(self, category_id: str) -> tuple[HotelOption, ...]:
        """Hotels offered in a category, priced at the category's package rate."""
        raise NotImplementedError

    @abstractmethod
    def get_hotel(self, hotel_id: str | None, category_id: str | None = None) -> HotelOption | None:
        """Hotel by id. With `category_id`, the hotel is priced for that package."""
        raise NotImplementedError

    @abstractmethod
    def tours(self) -> tuple[TourOption, ...]:
        raise NotImplementedError

    @abstractmethod
    def get_tour(self, tour_id: str | None) -> TourOption | None:
        raise NotImplementedError

    @abstractmethod
    def default_transfer(self) -> TransferOption:
        raise NotImplementedError
