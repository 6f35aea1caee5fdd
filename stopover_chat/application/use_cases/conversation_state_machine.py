from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from dataclasses import replace

from stopover_chat.application.utils.greeting import RETRY_REPLIES, build_greeting, suggested_replies_for
from stopover_chat.application.utils.step_transitions import TERMINAL_STEPS, TRANSITIONS, next_step
from stopover_chat.domain.entities.conversation_state import ConversationState, ConversationStep
from stopover_chat.domain.entities.customer import BookingData, CustomerData
from stopover_chat.domain.entities.message import Message
from stopover_chat.domain.entities.tool_result import ToolResult


def _new_message_id() -> str:
    return uuid.uuid4().hex


class ConversationStateMachine:
    """Pure transitions over ConversationState.

    Each record_* / apply_* call appends exactly one message and returns a
    new state; nothing here performs I/O.
    """

    def __init__(
        self,
        transitions=TRANSITIONS,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] = _new_message_id,
    ) -> None:
        self._transitions = transitions
        self._clock = clock
        self._new_id = id_factory

    def _message(self, state: ConversationState, role: str, text: str, result: ToolResult | None = None) -> Message:
        ui = result.ui_component if result is not None and result.success else None
        if ui is None:
            kind = "text"
        elif ui.type == "form":
            kind = "form"
        else:
            kind = "rich"
        return Message(
            id=self._new_id(),
            role=role,
            kind=kind,
            text=text,
            timestamp=self._clock(),
            ui_component=ui,
            step=state.current_step.value,
        )

    def start(self, customer: CustomerData, booking: BookingData) -> ConversationState:
        state = ConversationState(current_step=ConversationStep.WELCOME)
        greeting = self._message(state, "agent", build_greeting(customer, booking))
        return replace(
            state,
            messages=(greeting,),
            awaiting_input=True,
            suggested_replies=suggested_replies_for(ConversationStep.WELCOME),
        )

    def record_user_input(self, state: ConversationState, text: str) -> ConversationState:
        message = self._message(state, "user", text)
        return replace(state, messages=state.messages + (message,), awaiting_input=False, suggested_replies=())

    def record_agent_text(self, state: ConversationState, text: str) -> ConversationState:
        message = self._message(state, "agent", text)
        return replace(
            state,
            messages=state.messages + (message,),
            awaiting_input=True,
            suggested_replies=suggested_replies_for(state.current_step),
        )

    def next_step(self, state: ConversationState, tool_name: str) -> ConversationStep | None:
        """Step a tool call would lead to, or None when it is not allowed now."""
        return next_step(state.current_step, tool_name, self._transitions)

    def is_terminal(self, state: ConversationState) -> bool:
        return state.current_step in TERMINAL_STEPS

    def apply_tool_result(self, state: ConversationState, tool_name: str, result: ToolResult) -> ConversationState:
        if not result.success:
            return self.record_failure(state, result.message, retryable=False)

        target = self.next_step(state, tool_name)
        if target is None:
            raise ValueError(f"Tool '{tool_name}' is not allowed at step '{state.current_step.value}'")
        moved = replace(state, current_step=target)
        message = self._message(moved, "agent", result.message, result)
        return replace(
            moved,
            messages=moved.messages + (message,),
            awaiting_input=True,
            suggested_replies=suggested_replies_for(target),
        )

    def record_failure(self, state: ConversationState, text: str, retryable: bool) -> ConversationState:
        """Agent apology for a failed turn. The step does not move."""
        message = self._message(state, "agent", text)
        replies = RETRY_REPLIES if retryable else suggested_replies_for(state.current_step)
        return replace(
            state,
            messages=state.messages + (message,),
            awaiting_input=True,
            suggested_replies=replies,
        )
