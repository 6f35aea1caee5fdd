from __future__ import annotations

from stopover_chat.domain.entities.catalog_item import (
    HotelOption,
    StopoverCategory,
    TourOption,
    TransferOption,
)
from stopover_chat.domain.entities.customer import BookingData, CustomerData, FlightRoute

STOPOVER_LOCATION = "Doha (DOH)"

CATEGORIES: tuple[StopoverCategory, ...] = (
    StopoverCategory(
        id="standard",
        name="Standard",
        kind="standard",
        star_rating=3,
        price_per_night=80,
        image="stopovers/standard_stopover.jpg",
        amenities=("Comfortable accommodation", "Room only", "WiFi access", "City center location"),
    ),
    StopoverCategory(
        id="premium",
        name="Premium",
        kind="premium",
        star_rating=4,
        price_per_night=150,
        image="stopovers/premium_stopover.jpg",
        amenities=(
            "Luxury accommodation",
            "Full breakfast buffet",
            "High-speed WiFi",
            "Fitness center access",
            "Concierge service",
        ),
    ),
    StopoverCategory(
        id="premium-beach",
        name="Premium Beach",
        kind="premium-beach",
        star_rating=5,
        price_per_night=215,
        image="stopovers/premium_beach_stopover.jpg",
        amenities=(
            "Beach club access",
            "Full breakfast buffet",
            "Private beach access",
            "Spa services",
            "Pool and beach bar",
        ),
    ),
    StopoverCategory(
        id="luxury",
        name="Luxury",
        kind="luxury",
        star_rating=5,
        price_per_night=300,
        image="stopovers/luxury_stopover.jpg",
        amenities=(
            "Ultra-luxury accommodation",
            "Gourmet breakfast and dining",
            "Exclusive spa access",
            "Private pool access",
            "24/7 concierge",
        ),
    ),
)

HOTELS: tuple[HotelOption, ...] = (
    HotelOption(
        id="millennium-doha",
        name="Millennium Hotel Doha",
        grade="5-star",
        star_rating=5,
        price_per_night=180,
        image="hotels/millenium_hotel.webp",
        amenities=("City view rooms", "Outdoor swimming pool", "Fitness center and spa", "Airport shuttle service"),
    ),
    HotelOption(
        id="steigenberger-doha",
        name="Steigenberger Hotel Doha",
        grade="5-star",
        star_rating=5,
        price_per_night=195,
        image="hotels/steigenberger_hotel.webp",
        amenities=("Rooftop pool with panoramic views", "Award-winning restaurants", "Executive lounge access"),
    ),
    HotelOption(
        id="souq-waqif-boutique",
        name="Souq Waqif Boutique Hotel",
        grade="5-star-deluxe",
        star_rating=5,
        price_per_night=220,
        image="hotels/souq_waqif_hotel.webp",
        amenities=("Traditional Qatari architecture", "Heritage courtyard dining", "Traditional hammam spa"),
    ),
    HotelOption(
        id="crowne-plaza-doha",
        name="Crowne Plaza Doha",
        grade="4-star",
        star_rating=4,
        price_per_night=165,
        image="hotels/crowne_plaza_hotel.webp",
        amenities=("Executive club floors", "Outdoor pool and sun deck", "Free airport shuttle"),
    ),
    HotelOption(
        id="al-najada-doha",
        name="Al Najada Doha Hotel",
        grade="4-star",
        star_rating=4,
        price_per_night=155,
        image="hotels/al_najada_hotel.webp",
        amenities=("Modern Arabian hospitality", "Rooftop swimming pool", "Airport transfer service"),
    ),
)

TOURS: tuple[TourOption, ...] = (
    TourOption(
        id="whale-sharks-qatar",
        name="Whale Sharks of Qatar",
        description="Snorkel alongside whale sharks in Qatar's waters with professional guides and all equipment included.",
        duration="6 hours",
        price=195,
        image="tours/whale_sharks_of_qatar.jpg",
        max_participants=12,
        highlights=("Swimming with whale sharks", "Marine biologist guide", "Lunch included"),
    ),
    TourOption(
        id="pearl-diving-experience",
        name="Traditional Pearl Diving Experience",
        description="A dhow boat ride and pearl diving demonstration rooted in Qatar's pearling heritage.",
        duration="4 hours",
        price=145,
        image="tours/the_pearl.jpg",
        max_participants=16,
        highlights=("Traditional dhow boat", "Pearl diving demonstration", "Souvenir pearl gift"),
    ),
    TourOption(
        id="doha-city-skyline-tour",
        name="Doha City & Skyline Tour",
        description="Doha's modern architecture, cultural landmarks and skyline views in one guided tour.",
        duration="5 hours",
        price=125,
        image="tours/plane_over_skyline.jpg",
        max_participants=20,
        highlights=("Museum of Islamic Art visit", "Corniche waterfront walk", "Traditional market visit"),
    ),
    TourOption(
        id="desert-safari-adventure",
        name="Desert Safari Adventure",
        description="Dune bashing, camel riding and a Bedouin camp dinner in the Qatari desert.",
        duration="7 hours",
        price=175,
        image="tours/desert_safari.jpg",
        max_participants=24,
        highlights=("Dune bashing in 4WD vehicles", "Camel riding", "Arabic dinner"),
    ),
)

TRANSFERS: tuple[TransferOption, ...] = (
    TransferOption(
        id="airport-transfer-return",
        name="Airport Transfers (Return)",
        description="Return transfers between Hamad International Airport and your hotel with meet and greet.",
        price=60,
        type="airport-transfer",
    ),
)

SAMPLE_CUSTOMER = CustomerData(
    name="Alex Johnson",
    loyalty_number="QR12345678",
    email="alex.johnson@email.com",
    tier="Gold",
    loyalty_balance=275000,
)

SAMPLE_BOOKING = BookingData(
    pnr="X4HG8",
    route=FlightRoute(
        origin="LHR",
        destination="BKK",
        stops=("DOH",),
        departure_date="2025-03-15",
        return_date="2025-03-29",
    ),
    passengers=2,
    status="confirmed",
)
