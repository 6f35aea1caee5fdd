from __future__ import annotations

from dataclasses import dataclass

CATEGORY_KINDS = ("standard", "premium", "premium-beach", "luxury")
HOTEL_GRADES = ("4-star", "5-star", "5-star-deluxe")


@dataclass(frozen=True)
class StopoverCategory:
    id: str
    name: str
    kind: str  # one of CATEGORY_KINDS
    star_rating: int
    price_per_night: float
    image: str
    amenities: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "starRating": self.star_rating,
            "pricePerNight": self.price_per_night,
            "image": self.image,
            "amenities": list(self.amenities),
        }


@dataclass(frozen=True)
class HotelOption:
    id: str
    name: str
    grade: str  # one of HOTEL_GRADES
    star_rating: int
    price_per_night: float
    image: str
    amenities: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "grade": self.grade,
            "starRating": self.star_rating,
            "pricePerNight": self.price_per_night,
            "image": self.image,
            "amenities": list(self.amenities),
        }


@dataclass(frozen=True)
class TourOption:
    id: str
    name: str
    description: str
    duration: str
    price: float
    image: str
    max_participants: int
    highlights: tuple[str, ...] = ()

    @property
    def duration_hours(self) -> int:
        head = self.duration.split()[0] if self.duration else ""
        return int(head) if head.isdigit() else 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "duration": self.duration,
            "price": self.price,
            "image": self.image,
            "maxParticipants": self.max_participants,
            "highlights": list(self.highlights),
        }


@dataclass(frozen=True)
class TransferOption:
    id: str
    name: str
    description: str
    price: float
    type: str = "airport-transfer"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "type": self.type,
        }


@dataclass(frozen=True)
class RecommendedTour:
    tour: TourOption
    reason: str
    match_score: int
    availability_status: str = "available"

    def to_dict(self) -> dict:
        return {
            **self.tour.to_dict(),
            "reason": self.reason,
            "matchScore": self.match_score,
            "availabilityStatus": self.availability_status,
        }
