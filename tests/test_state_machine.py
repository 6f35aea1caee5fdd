"""
Tests for step transitions and the conversation state machine.
"""

from __future__ import annotations

import itertools

import pytest

from stopover_chat.application.tools.definitions import ToolName
from stopover_chat.application.use_cases.conversation_state_machine import ConversationStateMachine
from stopover_chat.application.utils.greeting import RETRY_REPLIES, build_greeting, is_start_over
from stopover_chat.application.utils.step_transitions import (
    STEP_ORDER,
    TRANSITIONS,
    next_step,
    validate_transition_table,
)
from stopover_chat.domain.entities.conversation_state import ConversationState, ConversationStep
from stopover_chat.domain.entities.tool_result import ToolResult, UIComponent
from stopover_chat.infrastructure.knowledge.catalog_data import SAMPLE_BOOKING, SAMPLE_CUSTOMER


def _machine() -> ConversationStateMachine:
    ids = itertools.count(1)
    return ConversationStateMachine(clock=lambda: 1000.0, id_factory=lambda: f"m{next(ids)}")


def _ok(ui_type: str = "categories") -> ToolResult:
    return ToolResult(success=True, message="done", ui_component=UIComponent(type=ui_type, data={}))


def test_shipped_table_is_valid():
    validate_transition_table(TRANSITIONS)


def test_table_with_a_skip_is_rejected():
    table = dict(TRANSITIONS)
    table[(ConversationStep.WELCOME, ToolName.SELECT_HOTEL)] = ConversationStep.TIMING_DURATION

    with pytest.raises(ValueError, match="skips"):
        validate_transition_table(table)


def test_table_missing_a_tool_is_rejected():
    table = {k: v for k, v in TRANSITIONS.items() if k[1] != ToolName.COMPLETE_BOOKING}

    with pytest.raises(ValueError, match="complete_booking"):
        validate_transition_table(table)


def test_transitions_never_skip_or_go_back():
    index = {step: i for i, step in enumerate(STEP_ORDER)}
    for step, tool in itertools.product(STEP_ORDER, ToolName):
        target = next_step(step, tool.value)
        if target is not None:
            assert index[target] - index[step] in (0, 1)


def test_out_of_order_and_unknown_tools_have_no_transition():
    assert next_step(ConversationStep.WELCOME, "complete_booking") is None
    assert next_step(ConversationStep.CONFIRMATION, "show_stopover_categories") is None
    assert next_step(ConversationStep.WELCOME, "launch_rocket") is None


def test_start_greets_customer():
    state = _machine().start(SAMPLE_CUSTOMER, SAMPLE_BOOKING)

    assert state.current_step == ConversationStep.WELCOME
    assert len(state.messages) == 1
    assert state.messages[0].text == build_greeting(SAMPLE_CUSTOMER, SAMPLE_BOOKING)
    assert "Alex Johnson" in state.messages[0].text and "X4HG8" in state.messages[0].text
    assert state.awaiting_input
    assert state.suggested_replies


def test_each_call_appends_exactly_one_message():
    machine = _machine()
    state = machine.start(SAMPLE_CUSTOMER, SAMPLE_BOOKING)

    state = machine.record_user_input(state, "Show me")
    assert len(state.messages) == 2 and not state.awaiting_input
    state = machine.apply_tool_result(state, "show_stopover_categories", _ok())
    assert len(state.messages) == 3
    state = machine.record_agent_text(state, "Any questions?")
    assert len(state.messages) == 4


def test_successful_tool_moves_step_and_attaches_ui():
    machine = _machine()
    state = machine.start(SAMPLE_CUSTOMER, SAMPLE_BOOKING)

    state = machine.apply_tool_result(state, "show_stopover_categories", _ok())

    assert state.current_step == ConversationStep.CATEGORY_SELECTION
    assert state.messages[-1].kind == "rich"
    assert state.messages[-1].ui_component.type == "categories"
    assert state.messages[-1].step == "category-selection"


def test_failed_tool_keeps_step():
    machine = _machine()
    state = machine.start(SAMPLE_CUSTOMER, SAMPLE_BOOKING)

    state = machine.apply_tool_result(state, "show_stopover_categories", ToolResult.failure("nope", "boom"))

    assert state.current_step == ConversationStep.WELCOME
    assert state.messages[-1].text == "nope"
    assert state.messages[-1].ui_component is None


def test_disallowed_successful_tool_raises():
    machine = _machine()
    state = machine.start(SAMPLE_CUSTOMER, SAMPLE_BOOKING)

    with pytest.raises(ValueError):
        machine.apply_tool_result(state, "complete_booking", _ok("summary"))


def test_retryable_failure_offers_retry_replies():
    machine = _machine()
    state = machine.start(SAMPLE_CUSTOMER, SAMPLE_BOOKING)

    retry = machine.record_failure(state, "Busy", retryable=True)
    final = machine.record_failure(state, "Too long", retryable=False)

    assert retry.suggested_replies == RETRY_REPLIES
    assert final.suggested_replies != RETRY_REPLIES
    assert retry.current_step == state.current_step


def test_form_results_are_form_messages():
    machine = _machine()
    state = ConversationState(current_step=ConversationStep.BOOKING_SUMMARY)

    state = machine.apply_tool_result(state, "initiate_payment", _ok("form"))

    assert state.current_step == ConversationStep.PAYMENT
    assert state.messages[-1].kind == "form"


def test_confirmation_is_terminal():
    machine = _machine()
    state = ConversationState(current_step=ConversationStep.PAYMENT)

    state = machine.apply_tool_result(state, "complete_booking", _ok("summary"))

    assert machine.is_terminal(state)
    assert machine.next_step(state, "show_stopover_categories") is None


def test_record_round_trip_through_actor_fields():
    machine = _machine()
    state = machine.apply_tool_result(machine.start(SAMPLE_CUSTOMER, SAMPLE_BOOKING), "show_stopover_categories", _ok())
    record = {**state.to_record_fields(), "messages": [m.to_dict() for m in state.messages]}

    restored = ConversationState.from_record(record)

    assert restored.current_step == state.current_step
    assert restored.messages[-1].ui_component == state.messages[-1].ui_component
    assert restored.suggested_replies == state.suggested_replies


def test_start_over_phrases():
    assert is_start_over("Start over")
    assert is_start_over("  start   again ")
    assert not is_start_over("start over the categories please")
