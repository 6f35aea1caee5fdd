from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from typing import Any

from stopover_chat.application.dto.completion import CompletionRequest, ModelTurn, TextDelta, ToolCall, ToolCallEvent
from stopover_chat.application.exceptions import (
    AllModelsFailedError,
    AuthenticationError,
    ContextTooLongError,
    LLMContractError,
    LLMUpstreamError,
    RateLimitError,
    ValidationError,
)
from stopover_chat.application.ports.catalog import CatalogPort
from stopover_chat.application.tools.context import ToolContext
from stopover_chat.application.tools.definitions import ToolName
from stopover_chat.application.tools.registry import ToolRegistry
from stopover_chat.application.use_cases.conversation_state_machine import ConversationStateMachine
from stopover_chat.application.use_cases.session_coordinator import SessionCoordinator
from stopover_chat.application.utils.greeting import build_greeting, is_start_over
from stopover_chat.application.utils.model_fallback import ModelFallbackChain, StreamOutcome
from stopover_chat.domain.entities.booking_session import BookingSession
from stopover_chat.domain.entities.conversation_state import ConversationState, ConversationStep
from stopover_chat.domain.entities.customer import BookingData, CustomerData
from stopover_chat.domain.entities.pricing import PricingBreakdown
from stopover_chat.domain.entities.selection_state import SelectionState
from stopover_chat.domain.entities.tool_result import ToolResult, UIComponent

# Tools that change what is being priced; any stored total is stale afterwards.
_REPRICING_TOOLS = {ToolName.SELECT_CATEGORY.value, ToolName.SELECT_HOTEL.value, ToolName.SELECT_TIMING.value}

PromptBuilder = Callable[[CustomerData, BookingData, ConversationStep, list[str]], str]


@dataclass(frozen=True)
class ChatTurnInput:
    messages: list[dict[str, Any]]
    customer: CustomerData
    booking: BookingData
    current_step: str | None = None
    session_id: str | None = None
    conversation_id: str | None = None
    customer_id: str | None = None
    entry_point: str = "email"
    user_agent: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class ChatTurnResult:
    message: str
    current_step: str
    suggested_replies: list[str]
    conversation_id: str
    session_id: str | None = None
    ui_component: UIComponent | None = None
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    model: str | None = None
    fallback_transitions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "uiComponent": self.ui_component.to_dict() if self.ui_component else None,
            "toolResults": self.tool_results,
            "currentStep": self.current_step,
            "suggestedReplies": self.suggested_replies,
            "conversationId": self.conversation_id,
            "sessionId": self.session_id,
            "model": self.model,
        }


@dataclass
class _Turn:
    conversation_id: str
    session: BookingSession | None
    state: ConversationState
    selection: SelectionState
    pricing: PricingBreakdown | None = None
    new_pnr: str | None = None
    persisted_messages: int = 0
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    last_result: ToolResult | None = None


def failure_text(error: Exception) -> str:
    if isinstance(error, RateLimitError):
        return "I'm handling a lot of requests right now. Please try again in a moment."
    if isinstance(error, ContextTooLongError):
        return "Our conversation has grown too long for me to follow. Please start a new conversation."
    if isinstance(error, AuthenticationError):
        return "I'm having trouble connecting to the booking assistant. Please try again later."
    if isinstance(error, AllModelsFailedError) and isinstance(error.last_error, RateLimitError):
        return failure_text(error.last_error)
    return "Sorry, I couldn't process that just now."


def _customer_slug(customer: CustomerData) -> str:
    return "-".join(customer.name.lower().split()) or "guest"


class HandleChatTurnUseCase:
    """One customer message in, one agent message out.

    Turns for the same conversation are serialized; the state, session and
    conversation record are only written after the model turn has been
    fully received.
    """

    def __init__(
        self,
        chain: ModelFallbackChain,
        registry: ToolRegistry,
        state_machine: ConversationStateMachine,
        sessions: SessionCoordinator,
        catalog: CatalogPort,
        prompt_builder: PromptBuilder,
        asset_url: Callable[[str], str] | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
    ) -> None:
        self._chain = chain
        self._registry = registry
        self._machine = state_machine
        self._sessions = sessions
        self._catalog = catalog
        self._prompt_builder = prompt_builder
        self._asset_url = asset_url
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def _get_lock(self, conversation_id: str) -> threading.Lock:
        with self._lock_lock:
            if conversation_id not in self._locks:
                self._locks[conversation_id] = threading.Lock()
            return self._locks[conversation_id]

    def validate(self, turn: ChatTurnInput) -> str:
        """Return the latest user message text or raise ValidationError."""
        if not turn.messages:
            raise ValidationError("Invalid messages format", details=["messages must not be empty"])
        last = turn.messages[-1]
        content = last.get("content")
        if last.get("role") != "user" or not isinstance(content, str) or not content.strip():
            raise ValidationError("Invalid messages format", details=["the last message must be a non-empty user message"])
        return content.strip()

    # turn setup

    def _resolve(self, turn: ChatTurnInput) -> tuple[str, BookingSession | None]:
        """Find or create the session and return the conversation id the turn belongs to."""
        session: BookingSession | None = None
        if turn.session_id:
            session = self._sessions.get_session(turn.session_id)
            if session is None:
                self._logger.warning("Session not found", extra={"session_id": turn.session_id})
        if session is None and not turn.conversation_id:
            session = self._sessions.initialize_session(
                customer_id=turn.customer_id or _customer_slug(turn.customer),
                booking_ref=turn.booking.pnr,
                entry_point=turn.entry_point,
                user_agent=turn.user_agent,
                ip_address=turn.ip_address,
            )
        conversation_id = session.conversation_id if session else turn.conversation_id
        return conversation_id, session

    def _open(self, turn: ChatTurnInput, conversation_id: str, session: BookingSession | None) -> _Turn:
        """Load conversation state. Callers hold the conversation lock."""
        if session is not None:
            # re-read; the previous turn may have written it while we waited
            session = self._sessions.get_session(session.session_id) or session

        record = self._sessions.get_conversation(conversation_id)
        if record is not None and record.get("conversation_id") == conversation_id:
            state = ConversationState.from_record(record)
            stored_selection = SelectionState.from_dict(record.get("booking_state"))
            persisted = len(state.messages)
            if not state.messages:
                # Freshly initialized record; the greeting has not been stored yet.
                state = replace(self._machine.start(turn.customer, turn.booking), current_step=state.current_step)
        else:
            if record is None:
                self._sessions.initialize_conversation(
                    conversation_id,
                    customer_id=turn.customer_id or _customer_slug(turn.customer),
                    booking_ref=turn.booking.pnr,
                    entry_point=turn.entry_point,
                )
            state = self._machine.start(turn.customer, turn.booking)
            resumed = ConversationStep.parse(turn.current_step) or self._cached_step(conversation_id)
            if resumed is not None and resumed != ConversationStep.WELCOME:
                self._logger.info(
                    "Resuming conversation without stored state",
                    extra={"conversation_id": conversation_id, "step": resumed.value},
                )
                state = replace(state, current_step=resumed)
            stored_selection = SelectionState()
            persisted = 0

        selection = session.selections if session else stored_selection
        return _Turn(
            conversation_id=conversation_id,
            session=session,
            state=state,
            selection=selection,
            pricing=session.pricing if session else None,
            new_pnr=session.new_pnr if session else None,
            persisted_messages=persisted,
        )

    def _cached_step(self, conversation_id: str) -> ConversationStep | None:
        context = self._sessions.get_conversation_context(conversation_id) or {}
        return ConversationStep.parse(context.get("currentStep"))

    def _request(self, turn: ChatTurnInput, ctx: _Turn) -> CompletionRequest:
        prompt = self._prompt_builder(turn.customer, turn.booking, ctx.state.current_step, self._registry.names())
        history = [{"role": m["role"], "content": m["content"]} for m in turn.messages if m.get("role") != "system"]
        return CompletionRequest(
            messages=[{"role": "system", "content": prompt}, *history],
            tools=self._registry.schemas(),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

    # applying a model turn

    def _tool_context(self, turn: ChatTurnInput, ctx: _Turn) -> ToolContext:
        kwargs: dict[str, Any] = {}
        if self._asset_url is not None:
            kwargs["asset_url"] = self._asset_url
        return ToolContext(
            catalog=self._catalog,
            customer=turn.customer,
            booking=turn.booking,
            selection=ctx.selection,
            max_nights=self._registry.max_nights,
            **kwargs,
        )

    def _run_tool(self, turn: ChatTurnInput, ctx: _Turn, call: ToolCall) -> ToolResult:
        if self._registry.get(call.name) is None:
            return ToolResult.failure(
                message="I can't do that here. Let's continue with your stopover booking.",
                error=f"Unknown tool '{call.name}'",
            )
        if self._machine.next_step(ctx.state, call.name) is None:
            if self._machine.is_terminal(ctx.state):
                return ToolResult.failure(
                    message="Your stopover is already confirmed. Start a new conversation to book another one.",
                    error="Conversation is complete",
                )
            return ToolResult.failure(
                message="Let's finish the current step before moving on.",
                error=f"Tool '{call.name}' is not allowed at step '{ctx.state.current_step.value}'",
            )
        return self._registry.run(call.name, call.arguments, self._tool_context(turn, ctx))

    def _apply_model_turn(self, turn: ChatTurnInput, ctx: _Turn, model_turn: ModelTurn) -> None:
        if not model_turn.tool_calls:
            ctx.state = self._machine.record_agent_text(ctx.state, model_turn.text)
            return

        call = model_turn.tool_calls[0]
        if len(model_turn.tool_calls) > 1:
            self._logger.warning(
                "Ignoring extra tool calls",
                extra={"conversation_id": ctx.conversation_id, "tool": call.name, "reason": len(model_turn.tool_calls)},
            )
        result = self._run_tool(turn, ctx, call)
        self._logger.info(
            "Tool call handled",
            extra={
                "conversation_id": ctx.conversation_id,
                "tool": call.name,
                "step": ctx.state.current_step.value,
                "reason": "ok" if result.success else result.error,
            },
        )
        ctx.state = self._machine.apply_tool_result(ctx.state, call.name, result)
        ctx.tool_results.append({"toolCallId": call.id, "toolName": call.name, "result": result.to_payload()})
        ctx.last_result = result
        if result.success:
            if result.selection_update is not None:
                ctx.selection = result.selection_update
            if result.pricing is not None:
                ctx.pricing = result.pricing
            elif call.name in _REPRICING_TOOLS:
                ctx.pricing = None
            if result.new_pnr:
                ctx.new_pnr = result.new_pnr

    def _start_over(self, turn: ChatTurnInput, ctx: _Turn) -> None:
        ctx.selection = SelectionState()
        ctx.pricing = None
        ctx.state = replace(ctx.state, current_step=ConversationStep.WELCOME)
        ctx.state = self._machine.record_agent_text(ctx.state, build_greeting(turn.customer, turn.booking))

    def _fail(self, ctx: _Turn, error: Exception) -> None:
        retryable = bool(getattr(error, "retryable", False))
        ctx.state = self._machine.record_failure(ctx.state, failure_text(error), retryable=retryable)
        self._persist(ctx)

    def _persist(self, ctx: _Turn) -> None:
        for message in ctx.state.messages[ctx.persisted_messages :]:
            self._sessions.append_message(ctx.conversation_id, message.to_dict())
        ctx.persisted_messages = len(ctx.state.messages)

        updates = {
            "currentStep": ctx.state.current_step.value,
            "selections": ctx.selection.to_dict(),
            "pricing": ctx.pricing.to_dict() if ctx.pricing else None,
            "newPnr": ctx.new_pnr,
            "awaiting_input": ctx.state.awaiting_input,
            "suggested_replies": list(ctx.state.suggested_replies),
        }
        session_id = ctx.session.session_id if ctx.session else None
        self._sessions.coordinate(session_id, ctx.conversation_id, updates)
        self._sessions.cache_conversation_context(
            ctx.conversation_id,
            {"currentStep": ctx.state.current_step.value, "sessionId": session_id},
        )

    def _result(self, ctx: _Turn, model: str | None, transitions: int) -> ChatTurnResult:
        last = ctx.state.messages[-1]
        return ChatTurnResult(
            message=last.text,
            ui_component=last.ui_component,
            tool_results=list(ctx.tool_results),
            current_step=ctx.state.current_step.value,
            suggested_replies=list(ctx.state.suggested_replies),
            conversation_id=ctx.conversation_id,
            session_id=ctx.session.session_id if ctx.session else None,
            model=model,
            fallback_transitions=transitions,
        )

    # entry points

    def handle(self, turn: ChatTurnInput) -> ChatTurnResult:
        user_text = self.validate(turn)
        conversation_id, session = self._resolve(turn)
        with self._get_lock(conversation_id):
            ctx = self._open(turn, conversation_id, session)
            ctx.state = self._machine.record_user_input(ctx.state, user_text)

            if is_start_over(user_text) and not self._machine.is_terminal(ctx.state):
                self._start_over(turn, ctx)
                self._persist(ctx)
                return self._result(ctx, model=None, transitions=0)

            try:
                outcome = self._chain.complete(self._request(turn, ctx))
            except (LLMUpstreamError, AllModelsFailedError) as e:
                self._logger.error(
                    "Chat turn failed",
                    extra={"conversation_id": ctx.conversation_id, "reason": f"{type(e).__name__}: {e}"},
                )
                self._fail(ctx, e)
                raise

            self._apply_model_turn(turn, ctx, outcome.turn)
            self._persist(ctx)
            return self._result(ctx, model=outcome.model, transitions=len(outcome.transitions))

    def open_stream(self, turn: ChatTurnInput) -> TurnStream:
        """Open the model stream for one turn, falling back across models.

        Provider errors raised while opening propagate from here, before any
        event exists, so callers can still answer with a proper status code.
        The returned stream holds the conversation lock until it is closed.
        """
        user_text = self.validate(turn)
        conversation_id, session = self._resolve(turn)
        lock = self._get_lock(conversation_id)
        lock.acquire()
        try:
            ctx = self._open(turn, conversation_id, session)
            ctx.state = self._machine.record_user_input(ctx.state, user_text)

            if is_start_over(user_text) and not self._machine.is_terminal(ctx.state):
                self._start_over(turn, ctx)
                self._persist(ctx)
                done = {"type": "done", **self._result(ctx, model=None, transitions=0).to_dict()}
                return TurnStream(iter([self._session_event(ctx), done]), lock.release)

            try:
                outcome = self._chain.stream(self._request(turn, ctx))
            except (LLMUpstreamError, AllModelsFailedError) as e:
                self._logger.error(
                    "Streamed chat turn failed",
                    extra={"conversation_id": ctx.conversation_id, "reason": f"{type(e).__name__}: {e}"},
                )
                self._fail(ctx, e)
                raise
        except Exception:
            lock.release()
            raise

        def release() -> None:
            # a stream closed before its first event never reaches the generator's finally
            try:
                close = getattr(outcome.events, "close", None)
                if close is not None:
                    close()
            finally:
                lock.release()

        return TurnStream(self._stream_events(turn, ctx, outcome), release)

    def forget(self, conversation_ids: list[str]) -> None:
        """Drop turn locks of removed conversations; locks held by a running turn stay."""
        with self._lock_lock:
            for conversation_id in conversation_ids:
                lock = self._locks.get(conversation_id)
                if lock is not None and not lock.locked():
                    del self._locks[conversation_id]

    def _session_event(self, ctx: _Turn) -> dict[str, Any]:
        return {
            "type": "session",
            "sessionId": ctx.session.session_id if ctx.session else None,
            "conversationId": ctx.conversation_id,
        }

    def _error_event(self, ctx: _Turn, error: Exception) -> dict[str, Any]:
        return {
            "type": "error",
            "error": failure_text(error),
            "errorType": getattr(error, "error_type", type(error).__name__),
            "retryable": bool(getattr(error, "retryable", False)),
            "currentStep": ctx.state.current_step.value,
            "suggestedReplies": list(ctx.state.suggested_replies),
        }

    def _stream_events(self, turn: ChatTurnInput, ctx: _Turn, stream: StreamOutcome) -> Iterator[dict[str, Any]]:
        """Relay the open stream. Nothing is applied if the consumer stops early."""
        yield self._session_event(ctx)

        text_parts: list[str] = []
        calls: list[ToolCall] = []
        try:
            for event in stream.events:
                if isinstance(event, TextDelta):
                    text_parts.append(event.text)
                    yield {"type": "text-delta", "text": event.text}
                elif isinstance(event, ToolCallEvent):
                    calls.append(event.call)
        except LLMUpstreamError as e:
            # the response has started; a failure mid-stream can only be reported in-band
            self._logger.error(
                "Stream broke off",
                extra={"conversation_id": ctx.conversation_id, "model": stream.model, "reason": str(e)},
            )
            self._fail(ctx, e)
            yield self._error_event(ctx, e)
            return
        finally:
            close = getattr(stream.events, "close", None)
            if close is not None:
                close()

        model_turn = ModelTurn(text="".join(text_parts).strip(), tool_calls=tuple(calls), model=stream.model)
        if not model_turn.text and not model_turn.tool_calls:
            error = LLMContractError("Empty streamed response", model=stream.model)
            self._fail(ctx, error)
            yield self._error_event(ctx, error)
            return

        self._apply_model_turn(turn, ctx, model_turn)
        self._persist(ctx)
        for tool_result in ctx.tool_results:
            yield {"type": "tool-result", **tool_result}
        yield {"type": "done", **self._result(ctx, model=stream.model, transitions=len(stream.transitions)).to_dict()}


class TurnStream:
    """Events of one streamed turn, bound to the conversation lock taken when it was opened."""

    def __init__(self, events: Iterator[dict[str, Any]], release: Callable[[], None]) -> None:
        self._events = events
        self._release = release
        self._released = False
        self._guard = threading.Lock()

    def __iter__(self) -> TurnStream:
        return self

    def __next__(self) -> dict[str, Any]:
        return next(self._events)

    def close(self) -> None:
        """Stop the stream and release the lock. Safe to call more than once."""
        try:
            close = getattr(self._events, "close", None)
            if close is not None:
                close()
        finally:
            with self._guard:
                released, self._released = self._released, True
            if not released:
                self._release()
