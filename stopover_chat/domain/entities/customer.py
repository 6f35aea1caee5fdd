from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class CustomerData:
    name: str = "Valued Customer"
    loyalty_number: str | None = None
    email: str | None = None
    tier: str | None = None
    loyalty_balance: int | None = None


@dataclass(frozen=True)
class FlightRoute:
    origin: str
    destination: str
    stops: tuple[str, ...] = ()
    departure_date: str | None = None
    return_date: str | None = None

    @property
    def routing(self) -> str:
        return " - ".join((self.origin, *self.stops, self.destination))


@dataclass(frozen=True)
class BookingData:
    pnr: str
    route: FlightRoute = field(default_factory=lambda: FlightRoute(origin="LHR", destination="BKK", stops=("DOH",)))
    passengers: int = 1
    status: str = "confirmed"
