from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

from stopover_chat.domain.entities.catalog_item import (
    CATEGORY_KINDS,
    HOTEL_GRADES,
    HotelOption,
    StopoverCategory,
    TourOption,
    TransferOption,
)

T = TypeVar("T")


def lookup(catalog: Iterable[T], item_id: str | None) -> T | None:
    """Return the catalog entry whose `id` matches exactly, or None."""
    if not item_id:
        return None
    for item in catalog:
        if getattr(item, "id", None) == item_id:
            return item
    return None


def package_hotel(hotel: HotelOption, category: StopoverCategory) -> HotelOption:
    """A hotel sold inside a stopover package is charged at the package's nightly rate."""
    return HotelOption(
        id=hotel.id,
        name=hotel.name,
        grade=hotel.grade,
        star_rating=hotel.star_rating,
        price_per_night=category.price_per_night,
        image=hotel.image,
        amenities=hotel.amenities,
    )


def _duplicate_ids(items: Iterable) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for item in items:
        if item.id in seen:
            dupes.append(item.id)
        seen.add(item.id)
    return dupes


def validate_catalogs(
    categories: Iterable[StopoverCategory],
    hotels: Iterable[HotelOption],
    tours: Iterable[TourOption],
    transfers: Iterable[TransferOption],
) -> list[str]:
    """Return human-readable problems with the static catalogs (empty when valid)."""
    categories, hotels, tours, transfers = list(categories), list(hotels), list(tours), list(transfers)
    problems: list[str] = []

    for name, items in (("category", categories), ("hotel", hotels), ("tour", tours), ("transfer", transfers)):
        for dupe in _duplicate_ids(items):
            problems.append(f"duplicate {name} id '{dupe}'")
        for item in items:
            price = getattr(item, "price_per_night", None)
            if price is None:
                price = item.price
            if price < 0:
                problems.append(f"{name} '{item.id}' has a negative price")

    for category in categories:
        if category.kind not in CATEGORY_KINDS:
            problems.append(f"category '{category.id}' has unknown kind '{category.kind}'")
    for hotel in hotels:
        if hotel.grade not in HOTEL_GRADES:
            problems.append(f"hotel '{hotel.id}' has unknown grade '{hotel.grade}'")
    for tour in tours:
        if tour.max_participants < 1:
            problems.append(f"tour '{tour.id}' must allow at least one participant")

    return problems
