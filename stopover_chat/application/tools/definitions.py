from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from stopover_chat.application.tools.context import ToolContext, resolve_selection
from stopover_chat.application.utils.booking_reference import mint_booking_reference
from stopover_chat.domain.entities.tool_result import ToolResult, UIComponent
from stopover_chat.domain.pricing import (
    LOYALTY_CURRENCY,
    MAX_STOPOVER_NIGHTS,
    RecommendationContext,
    compute_pricing,
    format_price,
    pricing_display_items,
    recommend,
)

STOPOVER_AIRPORT = "DOH"
STOPOVER_LOCATION = "Doha (DOH)"


class ToolName(str, Enum):
    SHOW_CATEGORIES = "show_stopover_categories"
    SELECT_CATEGORY = "select_stopover_category"
    SELECT_HOTEL = "select_hotel"
    SELECT_TIMING = "select_timing_and_duration"
    SELECT_EXTRAS = "select_extras"
    INITIATE_PAYMENT = "initiate_payment"
    COMPLETE_BOOKING = "complete_booking"


class ToolArgs(BaseModel):
    # Models send camelCase or snake_case; unknown keys (model-computed totals etc.) are dropped.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class NoArgs(ToolArgs):
    pass


class SelectCategoryArgs(ToolArgs):
    category_id: str = Field(min_length=1, description="The id of the selected stopover category")
    category_name: str | None = Field(default=None, description="The display name of the category")


class SelectHotelArgs(ToolArgs):
    hotel_id: str = Field(min_length=1, description="The id of the selected hotel")
    hotel_name: str | None = Field(default=None, description="The display name of the hotel")


class SelectTimingArgs(ToolArgs):
    timing: Literal["outbound", "return"] = Field(description="Stopover on the outbound or the return journey")
    duration: int = Field(ge=1, description="Number of nights in Doha")

    @field_validator("duration")
    @classmethod
    def _within_max_nights(cls, value: int, info: ValidationInfo) -> int:
        max_nights = (info.context or {}).get("max_nights", MAX_STOPOVER_NIGHTS)
        if value > max_nights:
            raise ValueError(f"must be at most {max_nights} nights")
        return value


class TourSelectionArgs(ToolArgs):
    tour_id: str = Field(min_length=1)
    quantity: int = Field(ge=1, description="Number of participants")


class SelectExtrasArgs(ToolArgs):
    include_transfers: bool = Field(description="Whether to add return airport transfers")
    selected_tours: list[TourSelectionArgs] = Field(default_factory=list, description="Tours with quantities")


class InitiatePaymentArgs(ToolArgs):
    payment_method: Literal["card", "loyalty"] = Field(description="Pay by card or with loyalty points")
    total_amount: float = Field(gt=0, description="Cash total for card, points total for loyalty")


class CompleteBookingArgs(ToolArgs):
    payment_method: Literal["card", "loyalty"]
    confirmed: bool = Field(description="True once the customer has submitted the payment form")


@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    description: str
    args_model: type[ToolArgs]
    ui_type: str
    execute: Callable[[ToolArgs, ToolContext], ToolResult]


def _image(ctx: ToolContext, payload: dict) -> dict:
    return {**payload, "imageUrl": ctx.asset_url(payload["image"])}


def _payment_label(method: str) -> str:
    return "Credit Card" if method == "card" else LOYALTY_CURRENCY


def show_categories(args: NoArgs, ctx: ToolContext) -> ToolResult:
    categories = [_image(ctx, c.to_dict()) for c in ctx.catalog.categories()]
    return ToolResult(
        success=True,
        message="Here are our stopover categories. Each offers a different level of comfort and amenities:",
        ui_component=UIComponent(type="categories", data={"categories": categories}),
    )


def select_category(args: SelectCategoryArgs, ctx: ToolContext) -> ToolResult:
    category = ctx.catalog.get_category(args.category_id)
    if category is None:
        valid = ", ".join(c.id for c in ctx.catalog.categories())
        return ToolResult.failure(
            message="I couldn't find that stopover category. Please pick one of the options shown.",
            error=f"Unknown category '{args.category_id}'. Valid categories: {valid}",
        )

    hotels = [_image(ctx, h.to_dict()) for h in ctx.catalog.hotels_for_category(category.id)]
    return ToolResult(
        success=True,
        message=f"Great choice! You've selected the {category.name} category. Now let's choose your hotel:",
        ui_component=UIComponent(
            type="hotels",
            data={"hotels": hotels, "selectedCategoryId": category.id},
        ),
        selection_update=ctx.selection.with_category(category.id),
    )


def select_hotel(args: SelectHotelArgs, ctx: ToolContext) -> ToolResult:
    if not ctx.selection.category_id:
        return ToolResult.failure(
            message="Let's pick a stopover category first, then I'll show you the hotels.",
            error="A hotel cannot be selected before a category",
        )
    hotel = ctx.catalog.get_hotel(args.hotel_id, category_id=ctx.selection.category_id)
    if hotel is None:
        return ToolResult.failure(
            message="I couldn't find that hotel. Please pick one of the hotels shown.",
            error=f"Unknown hotel '{args.hotel_id}'",
        )

    route = ctx.booking.route
    return ToolResult(
        success=True,
        message=f"Perfect! You've selected {hotel.name}. Now let's choose when you'd like your stopover and for how long:",
        ui_component=UIComponent(
            type="options",
            data={
                "selectedHotelId": hotel.id,
                "hotel": _image(ctx, hotel.to_dict()),
                "timings": ["outbound", "return"],
                "durations": list(range(1, ctx.max_nights + 1)),
                "originalRoute": {"origin": route.origin, "destination": route.destination},
                "stopover": STOPOVER_AIRPORT,
            },
        ),
        selection_update=ctx.selection.with_hotel(hotel.id),
    )


def select_timing(args: SelectTimingArgs, ctx: ToolContext) -> ToolResult:
    if not ctx.selection.hotel_id:
        return ToolResult.failure(
            message="Please choose a hotel before we set the dates of your stopover.",
            error="Timing cannot be selected before a hotel",
        )

    tours = ctx.catalog.tours()
    recommended = recommend(
        tours,
        RecommendationContext(nights=args.duration, passengers=ctx.booking.passengers, timing=args.timing),
    )
    transfer = ctx.catalog.default_transfer()
    return ToolResult(
        success=True,
        message=(
            f"Excellent! You've chosen a {args.duration}-night {args.timing} stopover. "
            "Would you like to add any extras?"
        ),
        ui_component=UIComponent(
            type="extras",
            data={
                "transfers": transfer.to_dict(),
                "tours": [_image(ctx, t.to_dict()) for t in tours],
                "recommendedTour": _image(ctx, recommended.to_dict()) if recommended else None,
                "passengers": ctx.booking.passengers,
                "selectedTiming": args.timing,
                "selectedDuration": args.duration,
            },
        ),
        selection_update=ctx.selection.with_timing(args.timing, args.duration),
    )


def select_extras(args: SelectExtrasArgs, ctx: ToolContext) -> ToolResult:
    if not (ctx.selection.timing and ctx.selection.nights):
        return ToolResult.failure(
            message="Let's settle the timing and length of your stopover before adding extras.",
            error="Extras cannot be selected before timing and duration",
        )

    merged: dict[str, int] = {}
    for item in args.selected_tours:
        tour = ctx.catalog.get_tour(item.tour_id)
        if tour is None:
            return ToolResult.failure(
                message="One of those tours isn't available. Please choose from the tours shown.",
                error=f"Unknown tour '{item.tour_id}'",
            )
        merged[tour.id] = merged.get(tour.id, 0) + item.quantity
        if merged[tour.id] > tour.max_participants:
            return ToolResult.failure(
                message=f"{tour.name} takes at most {tour.max_participants} participants.",
                error=f"Quantity {merged[tour.id]} exceeds max participants for '{tour.id}'",
            )

    updated = ctx.selection.with_extras(args.include_transfers, tuple(merged.items()))
    selection = resolve_selection(updated, ctx.catalog)
    if selection is None:
        return ToolResult.failure(
            message="Something in your selection is no longer available. Let's start again from the categories.",
            error="Stored selection could not be resolved against the catalog",
        )

    pricing = compute_pricing(selection, selection.nights, ctx.max_nights)
    total = format_price(pricing.total_cash_price)
    loyalty = format_price(pricing.total_loyalty_price, LOYALTY_CURRENCY)
    return ToolResult(
        success=True,
        message=f"Here's your complete stopover package summary. Your total is {total} or {loyalty}.",
        ui_component=UIComponent(
            type="summary",
            data={
                "title": "Booking Summary",
                "items": pricing_display_items(selection, pricing),
                "total": total,
                "loyaltyOption": loyalty,
                "pricing": pricing.to_dict(),
                "actions": [{"type": "payment", "label": "Proceed to Payment", "primary": True}],
            },
        ),
        selection_update=updated,
        pricing=pricing,
    )


CARD_FIELDS = [
    {"id": "cardNumber", "type": "text", "label": "Card Number", "required": True},
    {"id": "expiryDate", "type": "text", "label": "Expiry Date (MM/YY)", "required": True},
    {"id": "cvv", "type": "text", "label": "CVV", "required": True},
    {"id": "nameOnCard", "type": "text", "label": "Name on Card", "required": True},
]
LOYALTY_FIELDS = [
    {"id": "loyaltyNumber", "type": "text", "label": "Loyalty Programme Number", "required": True},
    {"id": "password", "type": "password", "label": "Password", "required": True},
]


def initiate_payment(args: InitiatePaymentArgs, ctx: ToolContext) -> ToolResult:
    selection = resolve_selection(ctx.selection, ctx.catalog) if ctx.selection.extras_selected else None
    if selection is None:
        return ToolResult.failure(
            message="Let's finish choosing your extras so I can prepare your total before payment.",
            error="Payment cannot start before the booking summary",
        )

    pricing = compute_pricing(selection, selection.nights, ctx.max_nights)
    if args.payment_method == "card":
        expected, currency = pricing.total_cash_price, "USD"
    else:
        expected, currency = pricing.total_loyalty_price, LOYALTY_CURRENCY
    if abs(args.total_amount - expected) > 0.01:
        return ToolResult.failure(
            message=f"The amount doesn't match your booking total of {format_price(expected, currency)}.",
            error=f"total_amount {args.total_amount} does not match computed total {expected}",
        )

    if args.payment_method == "card":
        fields, submit = CARD_FIELDS, "Pay Now"
        message = f"Please enter your payment details to complete your booking for {format_price(expected)}:"
    else:
        fields, submit = LOYALTY_FIELDS, f"Log in & Pay with {LOYALTY_CURRENCY}"
        message = f"Please log in to your loyalty account to pay {format_price(expected, currency)}:"

    return ToolResult(
        success=True,
        message=message,
        ui_component=UIComponent(
            type="form",
            data={
                "type": "payment",
                "method": args.payment_method,
                "fields": fields,
                "submitLabel": submit,
                "paymentIntent": {
                    "amount": expected,
                    "currency": currency,
                    "method": args.payment_method,
                    "reference": ctx.booking.pnr,
                },
            },
        ),
        selection_update=ctx.selection.with_payment(args.payment_method),
        pricing=pricing,
    )


def complete_booking(args: CompleteBookingArgs, ctx: ToolContext) -> ToolResult:
    if not ctx.selection.payment_method:
        return ToolResult.failure(
            message="We need to set up your payment before I can confirm the booking.",
            error="Booking cannot complete before payment is initiated",
        )
    if args.payment_method != ctx.selection.payment_method:
        return ToolResult.failure(
            message="The payment method doesn't match the one you started with.",
            error=f"Payment was initiated with '{ctx.selection.payment_method}', not '{args.payment_method}'",
        )
    if not args.confirmed:
        return ToolResult.failure(
            message="Your payment hasn't been confirmed yet. Please submit the payment form.",
            error="Payment not confirmed",
        )

    seed = json.dumps(ctx.selection.to_dict(), sort_keys=True)
    new_pnr = mint_booking_reference(ctx.booking.pnr, seed)
    return ToolResult(
        success=True,
        message=(
            f"Congratulations! Your stopover booking is confirmed. Your new booking reference is {new_pnr}. "
            "You'll receive a confirmation email shortly."
        ),
        ui_component=UIComponent(
            type="summary",
            data={
                "title": "Booking Confirmed!",
                "items": [
                    {"label": "New PNR", "value": new_pnr},
                    {"label": "Stopover Location", "value": STOPOVER_LOCATION},
                    {"label": "Payment Method", "value": _payment_label(args.payment_method)},
                    {"label": "Status", "value": "Confirmed"},
                ],
                "newPnr": new_pnr,
                "actions": [
                    {"type": "email", "label": "Email Confirmation", "primary": False},
                    {"type": "close", "label": "Close", "primary": True},
                ],
            },
        ),
        selection_update=ctx.selection.confirmed(),
        new_pnr=new_pnr,
    )


TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name=ToolName.SHOW_CATEGORIES,
        description="Display the available stopover categories to the customer",
        args_model=NoArgs,
        ui_type="categories",
        execute=show_categories,
    ),
    ToolDefinition(
        name=ToolName.SELECT_CATEGORY,
        description="Record the customer's stopover category and display the hotels in it",
        args_model=SelectCategoryArgs,
        ui_type="hotels",
        execute=select_category,
    ),
    ToolDefinition(
        name=ToolName.SELECT_HOTEL,
        description="Record the customer's hotel and display stopover timing and duration options",
        args_model=SelectHotelArgs,
        ui_type="options",
        execute=select_hotel,
    ),
    ToolDefinition(
        name=ToolName.SELECT_TIMING,
        description="Record stopover timing (outbound or return) and number of nights, then display extras",
        args_model=SelectTimingArgs,
        ui_type="extras",
        execute=select_timing,
    ),
    ToolDefinition(
        name=ToolName.SELECT_EXTRAS,
        description="Record airport transfers and tours, then display the priced booking summary",
        args_model=SelectExtrasArgs,
        ui_type="summary",
        execute=select_extras,
    ),
    ToolDefinition(
        name=ToolName.INITIATE_PAYMENT,
        description="Start payment by card or loyalty points for the booking total shown in the summary",
        args_model=InitiatePaymentArgs,
        ui_type="form",
        execute=initiate_payment,
    ),
    ToolDefinition(
        name=ToolName.COMPLETE_BOOKING,
        description="Confirm the stopover booking after the customer has submitted payment",
        args_model=CompleteBookingArgs,
        ui_type="summary",
        execute=complete_booking,
    ),
)
