"""
Tests for a full chat turn: model call, tool execution, step movement and persistence.
"""

from __future__ import annotations

import threading
import time

import pytest

from stopover_chat.application.dto.completion import ModelTurn, TextDelta, ToolCall
from stopover_chat.application.exceptions import (
    AllModelsFailedError,
    AuthenticationError,
    ContextTooLongError,
    LLMUpstreamError,
    RateLimitError,
    ValidationError,
)
from stopover_chat.application.use_cases.handle_chat_turn import ChatTurnInput
from stopover_chat.application.utils.greeting import RETRY_REPLIES
from stopover_chat.infrastructure.knowledge.catalog_data import SAMPLE_BOOKING, SAMPLE_CUSTOMER
from stopover_chat.infrastructure.llm.mock_llm import MockCompletion
from tests.fakes import ScriptedCompletion, build_use_case, text_turn, tool_turn


class SlowCompletion(ScriptedCompletion):
    def complete(self, request, model):
        time.sleep(0.05)
        return super().complete(request, model)


class BrokenStreamCompletion(ScriptedCompletion):
    """Connection drops after the first delta."""

    def _events(self, turn):
        yield TextDelta(turn.text.split()[0] + " ")
        raise LLMUpstreamError("connection reset")

EXTRAS = {"includeTransfers": False, "selectedTours": [{"tourId": "whale-sharks-qatar", "quantity": 2}]}

FUNNEL = [
    ("Show me stopover options", tool_turn("show_stopover_categories")),
    ("Premium please", tool_turn("select_stopover_category", categoryId="premium")),
    ("Millennium Hotel Doha", tool_turn("select_hotel", hotelId="millennium-doha")),
    ("Outbound, 2 nights", tool_turn("select_timing_and_duration", timing="outbound", duration=2)),
    ("Two whale shark tickets, no transfer", tool_turn("select_extras", **EXTRAS)),
    ("Pay by card", tool_turn("initiate_payment", paymentMethod="card", totalAmount=805)),
    ("I've submitted my payment details", tool_turn("complete_booking", paymentMethod="card", confirmed=True)),
]


def _turn(text: str, **kwargs) -> ChatTurnInput:
    return ChatTurnInput(
        messages=[{"role": "user", "content": text}],
        customer=SAMPLE_CUSTOMER,
        booking=SAMPLE_BOOKING,
        **kwargs,
    )


def _run(steps, port=None, models=("model-a",)):
    port = port or ScriptedCompletion()
    use_case, sessions = build_use_case(port, models=models)
    results = []
    session_id = None
    for text, model_turn in steps:
        port.queue(model_turn)
        result = use_case.handle(_turn(text, session_id=session_id))
        session_id = result.session_id
        results.append(result)
    return results, use_case, sessions, port


def test_scenario_a_summary_prices():
    """Premium, Millennium, outbound 2 nights, 2x whale sharks: $805 or 100,625 points."""
    results, _, sessions, _ = _run(FUNNEL[:5])

    assert [r.current_step for r in results] == [
        "category-selection",
        "hotel-selection",
        "timing-duration",
        "extras-selection",
        "booking-summary",
    ]
    summary = results[-1]
    pricing = summary.tool_results[0]["result"]["pricing"]
    assert pricing["totalCashPrice"] == 805
    assert pricing["totalLoyaltyPrice"] == 100625
    assert summary.ui_component.type == "summary"
    session = sessions.get_session(summary.session_id)
    assert session.pricing.total_cash_price == 805
    assert session.selections.tours == (("whale-sharks-qatar", 2),)


def test_scenario_b_transfers_reprice_summary():
    """Changing extras at the summary step with a transfer brings the total to $865."""
    steps = FUNNEL[:5] + [("Add airport transfers too", tool_turn("select_extras", **{**EXTRAS, "includeTransfers": True}))]

    results, _, _, _ = _run(steps)

    last = results[-1]
    assert last.current_step == "booking-summary"
    assert last.tool_results[0]["result"]["pricing"]["totalCashPrice"] == 865
    assert last.tool_results[0]["result"]["pricing"]["totalLoyaltyPrice"] == 108125


def test_scenario_c_booking_confirmed_with_new_pnr():
    results, _, sessions, _ = _run(FUNNEL)

    confirmation = results[-1]
    new_pnr = confirmation.tool_results[0]["result"]["newPnr"]
    assert confirmation.current_step == "confirmation"
    assert new_pnr and new_pnr != "X4HG8"
    assert new_pnr in confirmation.message
    assert results[-2].ui_component.type == "form"

    session = sessions.get_session(confirmation.session_id)
    assert session.new_pnr == new_pnr
    assert session.selections.status == "confirmed"
    record = sessions.get_conversation(confirmation.conversation_id)
    assert record["current_step"] == "confirmation"
    # greeting + a user and an agent message per turn
    assert len(record["messages"]) == 1 + 2 * len(FUNNEL)
    assert record["messages"][0]["text"].startswith("Hello Alex Johnson!")


def test_prompt_carries_current_step_and_tools():
    _, _, _, port = _run(FUNNEL[:3])

    assert "CURRENT STEP: welcome" in port.requests[0].messages[0]["content"]
    assert "CURRENT STEP: hotel-selection" in port.requests[2].messages[0]["content"]
    assert port.requests[0].messages[-1] == {"role": "user", "content": "Show me stopover options"}
    assert len(port.requests[0].tools) == 7


def test_out_of_order_tool_is_rejected_and_step_kept():
    results, _, _, _ = _run([("Just book it", tool_turn("complete_booking", paymentMethod="card", confirmed=True))])

    result = results[0]
    assert result.current_step == "welcome"
    assert result.tool_results[0]["result"]["success"] is False
    assert "not allowed" in result.tool_results[0]["result"]["error"]


def test_unknown_tool_is_rejected():
    results, _, _, _ = _run([("Hi", tool_turn("book_spaceship"))])

    assert results[0].current_step == "welcome"
    assert "Unknown tool" in results[0].tool_results[0]["result"]["error"]


def test_unknown_category_keeps_step():
    results, _, sessions, _ = _run(
        [FUNNEL[0], ("The mega one", tool_turn("select_stopover_category", categoryId="mega-luxury"))]
    )

    assert results[-1].current_step == "category-selection"
    assert results[-1].tool_results[0]["result"]["success"] is False
    assert sessions.get_session(results[-1].session_id).selections.category_id is None


def test_text_reply_keeps_step():
    results, _, _, _ = _run([FUNNEL[0], ("What's included?", text_turn("Each category includes breakfast."))])

    assert results[-1].current_step == "category-selection"
    assert results[-1].message == "Each category includes breakfast."
    assert results[-1].ui_component is None
    assert results[-1].tool_results == []


def test_only_first_tool_call_is_executed():
    turn = ModelTurn(
        text="",
        tool_calls=(
            ToolCall(id="a", name="show_stopover_categories", arguments="{}"),
            ToolCall(id="b", name="select_stopover_category", arguments='{"categoryId": "premium"}'),
        ),
    )

    results, _, _, _ = _run([("Show and pick premium", turn)])

    assert results[0].current_step == "category-selection"
    assert [t["toolCallId"] for t in results[0].tool_results] == ["a"]


def test_fallback_models_reported():
    port = ScriptedCompletion([LLMUpstreamError("503"), LLMUpstreamError("timeout")])

    results, _, _, _ = _run([FUNNEL[0]], port=port, models=("a", "b", "c"))

    assert results[0].model == "c"
    assert results[0].fallback_transitions == 2


def test_retryable_failure_is_recorded_and_raised():
    port = ScriptedCompletion([RateLimitError("429")] * 3)
    use_case, sessions = build_use_case(port, models=("a", "b", "c"))
    session = sessions.initialize_session("alex-johnson", "X4HG8")

    with pytest.raises(AllModelsFailedError):
        use_case.handle(_turn("Show me options", session_id=session.session_id))

    record = sessions.get_conversation(session.conversation_id)
    assert record["suggested_replies"] == list(RETRY_REPLIES)
    assert record["messages"][-1]["role"] == "agent"
    assert record["current_step"] == "welcome"


def test_non_retryable_failure_offers_step_replies():
    port = ScriptedCompletion([ContextTooLongError("prompt is too long")])
    use_case, sessions = build_use_case(port, models=("a", "b"))
    session = sessions.initialize_session("alex-johnson", "X4HG8")

    with pytest.raises(ContextTooLongError):
        use_case.handle(_turn("Hi", session_id=session.session_id))

    record = sessions.get_conversation(session.conversation_id)
    assert record["suggested_replies"] != list(RETRY_REPLIES)
    assert "too long" in record["messages"][-1]["text"]


def test_start_over_resets_without_model_call():
    results, use_case, sessions, port = _run(FUNNEL[:2])
    calls = len(port.requests)

    reset = use_case.handle(_turn("Start over", session_id=results[-1].session_id))

    assert reset.current_step == "welcome"
    assert reset.message.startswith("Hello Alex Johnson!")
    assert len(port.requests) == calls
    assert sessions.get_session(reset.session_id).selections.category_id is None


@pytest.mark.parametrize(
    "messages",
    [[], [{"role": "assistant", "content": "Hello"}], [{"role": "user", "content": "   "}]],
)
def test_invalid_messages_rejected(messages):
    use_case, _ = build_use_case(ScriptedCompletion())

    with pytest.raises(ValidationError):
        use_case.handle(ChatTurnInput(messages=messages, customer=SAMPLE_CUSTOMER, booking=SAMPLE_BOOKING))


def test_unknown_conversation_resumes_at_client_step():
    port = ScriptedCompletion([tool_turn("select_stopover_category", categoryId="luxury")])
    use_case, sessions = build_use_case(port)

    result = use_case.handle(_turn("Luxury instead", conversation_id="conv-lost", current_step="hotel-selection"))

    assert result.session_id is None
    assert result.conversation_id == "conv-lost"
    assert result.current_step == "hotel-selection"
    record = sessions.get_conversation("conv-lost")
    assert record["current_step"] == "hotel-selection"
    assert record["booking_state"]["category"] == "luxury"


def test_stream_emits_deltas_then_done():
    port = ScriptedCompletion([text_turn("Doha is lovely in March.")])
    use_case, _ = build_use_case(port)

    events = list(use_case.open_stream(_turn("What's Doha like?")))

    assert events[0]["type"] == "session"
    assert "".join(e["text"] for e in events if e["type"] == "text-delta").strip() == "Doha is lovely in March."
    assert events[-1]["type"] == "done"
    assert events[-1]["currentStep"] == "welcome"


def test_stream_with_tool_call_applies_after_completion():
    port = ScriptedCompletion([tool_turn("show_stopover_categories")])
    use_case, sessions = build_use_case(port)

    events = list(use_case.open_stream(_turn("Show me")))

    types = [e["type"] for e in events]
    assert types == ["session", "tool-result", "done"]
    assert events[-1]["currentStep"] == "category-selection"
    assert events[-1]["uiComponent"]["type"] == "categories"
    record = sessions.get_conversation(events[0]["conversationId"])
    assert record["current_step"] == "category-selection"


def test_abandoned_stream_is_not_applied():
    port = ScriptedCompletion([text_turn("one two three four")])
    use_case, sessions = build_use_case(port)

    stream = use_case.open_stream(_turn("Hello"))
    session_event = next(stream)
    next(stream)
    stream.close()

    record = sessions.get_conversation(session_event["conversationId"])
    assert record["messages"] == []
    assert record["current_step"] == "welcome"


def test_stream_open_failure_raises_before_any_event():
    port = ScriptedCompletion([AuthenticationError("Invalid API key")])
    use_case, sessions = build_use_case(port)
    session = sessions.initialize_session("alex-johnson", "X4HG8")

    with pytest.raises(AuthenticationError):
        use_case.open_stream(_turn("Hello", session_id=session.session_id))

    record = sessions.get_conversation(session.conversation_id)
    assert "trouble connecting" in record["messages"][-1]["text"]
    # lock released: the next turn goes through
    port.queue(text_turn("Welcome back."))
    assert use_case.handle(_turn("Hello again", session_id=session.session_id)).message == "Welcome back."


def test_stream_broken_mid_way_yields_error_event():
    port = BrokenStreamCompletion([text_turn("Doha has a lot to offer")])
    use_case, sessions = build_use_case(port)

    events = list(use_case.open_stream(_turn("What's Doha like?")))

    assert [e["type"] for e in events[:2]] == ["session", "text-delta"]
    assert events[-1]["type"] == "error"
    assert events[-1]["errorType"] == "LLMUpstreamError"
    assert events[-1]["retryable"] is True
    record = sessions.get_conversation(events[0]["conversationId"])
    assert record["suggested_replies"] == list(RETRY_REPLIES)


def test_empty_stream_yields_contract_error():
    use_case, _ = build_use_case(ScriptedCompletion([text_turn("")]))

    events = list(use_case.open_stream(_turn("Hello")))

    assert events[-1]["type"] == "error"
    assert events[-1]["errorType"] == "LLMContractError"


def test_stream_close_is_idempotent_and_frees_the_conversation():
    port = ScriptedCompletion([text_turn("one two"), text_turn("Sure.")])
    use_case, _ = build_use_case(port)

    stream = use_case.open_stream(_turn("Hello"))
    conversation_id = next(stream)["conversationId"]
    stream.close()
    stream.close()

    assert use_case.handle(_turn("Hello", conversation_id=conversation_id)).message == "Sure."


def test_concurrent_turns_on_one_session_are_not_lost():
    port = SlowCompletion([tool_turn("show_stopover_categories")])
    use_case, sessions = build_use_case(port)
    session_id = use_case.handle(_turn("Show me options")).session_id
    # the second turn only makes sense from the step the first one leaves
    port.queue(tool_turn("select_stopover_category", categoryId="premium"), tool_turn("show_stopover_categories"))
    results = []

    def send(text):
        results.append(use_case.handle(_turn(text, session_id=session_id)))

    threads = [threading.Thread(target=send, args=(text,)) for text in ("Premium please", "Show them again")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert [r.current_step for r in results] == ["hotel-selection", "hotel-selection"]
    session = sessions.get_session(session_id)
    assert session.selections.category_id == "premium"
    assert session.current_step == "hotel-selection"
    record = sessions.get_conversation(session.conversation_id)
    # greeting plus a user and an agent message for each of the three turns
    assert len(record["messages"]) == 7


def test_forget_drops_idle_locks_only():
    use_case, _ = build_use_case(ScriptedCompletion([text_turn("Hi there.")]))
    stream = use_case.open_stream(_turn("Hello"))
    busy = next(stream)["conversationId"]
    use_case._get_lock("conv-idle")

    use_case.forget([busy, "conv-idle", "conv-unknown"])

    assert "conv-idle" not in use_case._locks
    assert busy in use_case._locks
    stream.close()


def test_offline_mock_walks_the_whole_funnel():
    use_case, _ = build_use_case(MockCompletion())
    history: list[dict] = []
    session_id = None
    steps = []
    for text in [
        "Yes, show me stopover options",
        "Premium please",
        "Millennium Hotel Doha",
        "Outbound, 2 nights",
        "Two whale shark tickets, no transfer",
        "Pay by card",
        "I've submitted my payment details",
    ]:
        history.append({"role": "user", "content": text})
        result = use_case.handle(
            ChatTurnInput(messages=list(history), customer=SAMPLE_CUSTOMER, booking=SAMPLE_BOOKING, session_id=session_id)
        )
        history.append({"role": "assistant", "content": result.message})
        session_id = result.session_id
        steps.append(result.current_step)

    assert steps == [
        "category-selection",
        "hotel-selection",
        "timing-duration",
        "extras-selection",
        "booking-summary",
        "payment",
        "confirmation",
    ]
    assert "$805 or 100,625 Avios" in history[9]["content"]
