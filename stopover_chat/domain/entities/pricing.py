from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PricingBreakdown:
    hotel_cost: float
    flight_fare_difference: float
    transfers_cost: float
    tours_cost: float
    total_cash_price: float
    total_loyalty_price: int

    def to_dict(self) -> dict:
        return {
            "hotelCost": self.hotel_cost,
            "flightFareDifference": self.flight_fare_difference,
            "transfersCost": self.transfers_cost,
            "toursCost": self.tours_cost,
            "totalCashPrice": self.total_cash_price,
            "totalLoyaltyPrice": self.total_loyalty_price,
        }

    @staticmethod
    def from_dict(data: dict) -> PricingBreakdown:
        return PricingBreakdown(
            hotel_cost=data["hotelCost"],
            flight_fare_difference=data["flightFareDifference"],
            transfers_cost=data["transfersCost"],
            tours_cost=data["toursCost"],
            total_cash_price=data["totalCashPrice"],
            total_loyalty_price=int(data["totalLoyaltyPrice"]),
        )
