"""
Tests for the booking tools and the tool registry.
"""

from __future__ import annotations

import pytest

from stopover_chat.application.exceptions import ValidationError
from stopover_chat.application.tools.context import ToolContext
from stopover_chat.application.tools.definitions import NoArgs, ToolDefinition, ToolName
from stopover_chat.application.tools.registry import ToolRegistry
from stopover_chat.domain.entities.selection_state import SelectionState
from stopover_chat.domain.entities.tool_result import ToolResult, UIComponent
from stopover_chat.infrastructure.knowledge.catalog_data import SAMPLE_BOOKING, SAMPLE_CUSTOMER
from stopover_chat.infrastructure.knowledge.catalog_store import StopoverCatalogStore

registry = ToolRegistry()
catalog = StopoverCatalogStore()

TIMED = SelectionState(category_id="premium", hotel_id="millennium-doha", timing="outbound", nights=2)
SUMMARIZED = TIMED.with_extras(False, (("whale-sharks-qatar", 2),))


def _ctx(selection: SelectionState = SelectionState()) -> ToolContext:
    return ToolContext(catalog=catalog, customer=SAMPLE_CUSTOMER, booking=SAMPLE_BOOKING, selection=selection)


def test_schemas_cover_every_tool():
    schemas = registry.schemas()

    names = [s["function"]["name"] for s in schemas]
    assert names == [t.value for t in ToolName]
    category = next(s for s in schemas if s["function"]["name"] == "select_stopover_category")
    assert "categoryId" in category["function"]["parameters"]["properties"]
    assert "title" not in category["function"]["parameters"]
    timing = next(s for s in schemas if s["function"]["name"] == "select_timing_and_duration")
    assert timing["function"]["parameters"]["properties"]["duration"]["maximum"] == 4


def test_show_categories():
    result = registry.run("show_stopover_categories", "{}", _ctx())

    assert result.success
    assert result.ui_component.type == "categories"
    assert len(result.ui_component.data["categories"]) == 4
    assert result.selection_update is None


def test_unknown_category_fails_without_selection_update():
    result = registry.run("select_stopover_category", {"categoryId": "mega-luxury"}, _ctx())

    assert not result.success
    assert "mega-luxury" in result.error
    assert result.selection_update is None
    assert result.ui_component is None


def test_select_category_lists_hotels_at_package_rate():
    result = registry.run("select_stopover_category", '{"categoryId": "premium"}', _ctx())

    assert result.success
    assert result.ui_component.type == "hotels"
    assert {h["pricePerNight"] for h in result.ui_component.data["hotels"]} == {150}
    assert result.selection_update.category_id == "premium"


def test_snake_case_arguments_accepted():
    result = registry.run("select_stopover_category", {"category_id": "luxury"}, _ctx())

    assert result.success
    assert result.selection_update.category_id == "luxury"


def test_hotel_requires_category():
    result = registry.run("select_hotel", {"hotelId": "millennium-doha"}, _ctx())

    assert not result.success
    assert result.error


def test_select_hotel_resets_later_choices():
    result = registry.run("select_hotel", {"hotelId": "steigenberger-doha"}, _ctx(SUMMARIZED))

    assert result.success
    assert result.ui_component.type == "options"
    assert result.selection_update == SelectionState(category_id="premium", hotel_id="steigenberger-doha")


@pytest.mark.parametrize("duration", [0, 5])
def test_duration_outside_range_is_rejected(duration):
    selection = SelectionState(category_id="premium", hotel_id="millennium-doha")

    result = registry.run("select_timing_and_duration", {"timing": "outbound", "duration": duration}, _ctx(selection))

    assert not result.success
    assert "duration" in result.error


def test_registry_honours_configured_night_bound():
    short = ToolRegistry(max_nights=2)
    selection = SelectionState(category_id="premium", hotel_id="millennium-doha")

    timing = next(s for s in short.schemas() if s["function"]["name"] == "select_timing_and_duration")
    assert timing["function"]["parameters"]["properties"]["duration"]["maximum"] == 2
    with pytest.raises(ValidationError):
        short.validate("select_timing_and_duration", {"timing": "outbound", "duration": 3})
    ctx = ToolContext(
        catalog=catalog, customer=SAMPLE_CUSTOMER, booking=SAMPLE_BOOKING, selection=selection, max_nights=2
    )
    assert short.run("select_timing_and_duration", {"timing": "return", "duration": 2}, ctx).success


def test_select_timing_recommends_a_tour():
    selection = SelectionState(category_id="premium", hotel_id="millennium-doha")

    result = registry.run("select_timing_and_duration", {"timing": "return", "duration": 3}, _ctx(selection))

    assert result.success
    data = result.ui_component.data
    assert data["recommendedTour"]["id"] == "whale-sharks-qatar"
    assert data["transfers"]["price"] == 60
    assert result.selection_update.nights == 3


def test_select_extras_prices_summary():
    args = {"includeTransfers": False, "selectedTours": [{"tourId": "whale-sharks-qatar", "quantity": 2}]}

    result = registry.run("select_extras", args, _ctx(TIMED))

    assert result.success
    assert result.ui_component.type == "summary"
    assert result.pricing.total_cash_price == 805
    assert result.pricing.total_loyalty_price == 100625
    assert "$805" in result.message and "100,625 Avios" in result.message


def test_select_extras_merges_duplicate_tours_and_caps_participants():
    merged = registry.run(
        "select_extras",
        {
            "includeTransfers": True,
            "selectedTours": [
                {"tourId": "whale-sharks-qatar", "quantity": 1},
                {"tourId": "whale-sharks-qatar", "quantity": 1},
            ],
        },
        _ctx(TIMED),
    )
    too_many = registry.run(
        "select_extras",
        {"includeTransfers": False, "selectedTours": [{"tourId": "whale-sharks-qatar", "quantity": 13}]},
        _ctx(TIMED),
    )

    assert merged.selection_update.tours == (("whale-sharks-qatar", 2),)
    assert merged.pricing.total_cash_price == 865
    assert not too_many.success


def test_select_extras_unknown_tour():
    args = {"includeTransfers": False, "selectedTours": [{"tourId": "moon-walk", "quantity": 1}]}

    assert not registry.run("select_extras", args, _ctx(TIMED)).success


def test_tools_are_idempotent():
    args = {"includeTransfers": True, "selectedTours": [{"tourId": "pearl-diving-experience", "quantity": 2}]}

    first = registry.run("select_extras", args, _ctx(TIMED))
    second = registry.run("select_extras", args, _ctx(TIMED))

    assert first == second


def test_initiate_payment_requires_matching_total():
    wrong = registry.run("initiate_payment", {"paymentMethod": "card", "totalAmount": 800}, _ctx(SUMMARIZED))
    card = registry.run("initiate_payment", {"paymentMethod": "card", "totalAmount": 805}, _ctx(SUMMARIZED))
    points = registry.run("initiate_payment", {"paymentMethod": "loyalty", "totalAmount": 100625}, _ctx(SUMMARIZED))

    assert not wrong.success
    assert card.success and card.ui_component.type == "form"
    assert card.ui_component.data["paymentIntent"]["amount"] == 805
    assert points.ui_component.data["paymentIntent"]["currency"] == "Avios"
    assert points.selection_update.payment_method == "loyalty"


def test_payment_requires_summary():
    result = registry.run("initiate_payment", {"paymentMethod": "card", "totalAmount": 805}, _ctx(TIMED))

    assert not result.success


def test_complete_booking_mints_new_reference():
    paid = SUMMARIZED.with_payment("card")

    result = registry.run("complete_booking", {"paymentMethod": "card", "confirmed": True}, _ctx(paid))
    again = registry.run("complete_booking", {"paymentMethod": "card", "confirmed": True}, _ctx(paid))

    assert result.success
    assert len(result.new_pnr) == 5
    assert result.new_pnr != SAMPLE_BOOKING.pnr
    assert result.new_pnr == again.new_pnr
    assert result.selection_update.status == "confirmed"
    assert [a["type"] for a in result.ui_component.data["actions"]] == ["email", "close"]


def test_complete_booking_needs_confirmation_and_same_method():
    paid = SUMMARIZED.with_payment("card")

    unconfirmed = registry.run("complete_booking", {"paymentMethod": "card", "confirmed": False}, _ctx(paid))
    switched = registry.run("complete_booking", {"paymentMethod": "loyalty", "confirmed": True}, _ctx(paid))

    assert not unconfirmed.success
    assert not switched.success


def test_validate_rejects_bad_json_and_unknown_tools():
    with pytest.raises(ValidationError):
        registry.validate("select_hotel", "{not json")
    with pytest.raises(ValidationError) as exc:
        registry.validate("book_spaceship", {})
    assert exc.value.details


def test_run_never_raises_for_unknown_tool():
    result = registry.run("book_spaceship", {}, _ctx())

    assert not result.success
    assert "book_spaceship" in result.error


def test_mismatched_ui_type_becomes_failure():
    def broken(args, ctx):
        return ToolResult(success=True, message="ok", ui_component=UIComponent(type="form", data={}))

    custom = ToolRegistry(
        definitions=(
            ToolDefinition(
                name=ToolName.SHOW_CATEGORIES,
                description="broken",
                args_model=NoArgs,
                ui_type="categories",
                execute=broken,
            ),
        )
    )

    result = custom.run("show_stopover_categories", {}, _ctx())

    assert not result.success
    assert "form" in result.error
