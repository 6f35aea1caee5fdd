from __future__ import annotations

from dataclasses import dataclass

from stopover_chat.domain.entities.catalog_item import RecommendedTour, TourOption
from stopover_chat.domain.entities.pricing import PricingBreakdown
from stopover_chat.domain.entities.selection import SelectedExtras, StopoverSelection

FLIGHT_FARE_DIFFERENCE = 115
LOYALTY_CONVERSION_RATE = 125  # loyalty points per unit of cash
LOYALTY_CURRENCY = "Avios"
MAX_STOPOVER_NIGHTS = 4  # default; deployments may configure another bound

DEFAULT_TOUR_SCORE = 70
TOUR_SCORES = {
    "whale-sharks-qatar": 95,
    "pearl-diving-experience": 85,
    "desert-safari-adventure": 80,
    "doha-city-skyline-tour": 75,
}
TOUR_REASONS = {
    "whale-sharks-qatar": "Perfect for your stopover dates - whale shark season is at its peak!",
    "pearl-diving-experience": "A hands-on taste of Qatar's pearling heritage, easy to fit into a short stay.",
    "desert-safari-adventure": "The classic Qatar adventure for travellers with a full day to spare.",
    "doha-city-skyline-tour": "The best way to see Doha's landmarks in a single afternoon.",
}


@dataclass(frozen=True)
class RecommendationContext:
    nights: int | None = None
    passengers: int = 1
    timing: str | None = None


def calculate_extras_price(extras: SelectedExtras) -> float:
    transfers = extras.transfer.price if extras.transfer else 0
    return transfers + sum(t.total_price for t in extras.tours)


def loyalty_required(cash: float) -> int:
    return int(round(cash * LOYALTY_CONVERSION_RATE))


def cash_from_loyalty(points: int) -> float:
    return round(points / LOYALTY_CONVERSION_RATE, 2)


def compute_pricing(selection: StopoverSelection, nights: int, max_nights: int = MAX_STOPOVER_NIGHTS) -> PricingBreakdown:
    if nights < 1 or nights > max_nights:
        raise ValueError(f"nights must be between 1 and {max_nights}, got {nights}")

    hotel_cost = selection.hotel.price_per_night * nights
    transfers_cost = selection.extras.transfer.price if selection.extras.transfer else 0
    tours_cost = sum(t.total_price for t in selection.extras.tours)
    total = hotel_cost + FLIGHT_FARE_DIFFERENCE + transfers_cost + tours_cost

    return PricingBreakdown(
        hotel_cost=hotel_cost,
        flight_fare_difference=FLIGHT_FARE_DIFFERENCE,
        transfers_cost=transfers_cost,
        tours_cost=tours_cost,
        total_cash_price=total,
        total_loyalty_price=loyalty_required(total),
    )


def format_price(amount: float, currency: str = "USD") -> str:
    if currency == LOYALTY_CURRENCY:
        return f"{int(round(amount)):,} {LOYALTY_CURRENCY}"
    if float(amount).is_integer():
        return f"${int(amount):,}"
    return f"${amount:,.2f}"


def score_tour(tour: TourOption, context: RecommendationContext) -> int:
    score = TOUR_SCORES.get(tour.id, DEFAULT_TOUR_SCORE)
    if context.passengers > tour.max_participants:
        score -= 50
    if context.nights == 1 and tour.duration_hours >= 7:
        score -= 10
    return score


def recommend(tours: list[TourOption] | tuple[TourOption, ...], context: RecommendationContext | None = None) -> RecommendedTour | None:
    """Pick the best-scoring tour. Ties go to the tour listed first."""
    if not tours:
        return None
    context = context or RecommendationContext()
    best = max(tours, key=lambda t: score_tour(t, context))
    reason = TOUR_REASONS.get(best.id, f"A highly rated experience for your {context.nights or 1}-night stopover.")
    return RecommendedTour(tour=best, reason=reason, match_score=score_tour(best, context))


def tours_sorted_by_price(tours, ascending: bool = True) -> list[TourOption]:
    return sorted(tours, key=lambda t: t.price, reverse=not ascending)


def pricing_display_items(selection: StopoverSelection, pricing: PricingBreakdown) -> list[dict[str, str]]:
    """Summary line items in the order they are shown to the customer."""
    nights_label = "night" if selection.nights == 1 else "nights"
    items = [
        {"label": f"Hotel ({selection.nights} {nights_label})", "value": format_price(pricing.hotel_cost)},
        {"label": "Flight fare difference", "value": format_price(pricing.flight_fare_difference)},
    ]
    if selection.extras.transfer is not None:
        items.append({"label": "Airport transfers", "value": format_price(pricing.transfers_cost)})
    for selected in selection.extras.tours:
        items.append(
            {
                "label": f"{selected.tour.name} ({selected.quantity}x)",
                "value": format_price(selected.total_price),
            }
        )
    return items
