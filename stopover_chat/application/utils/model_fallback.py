from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TypeVar

from stopover_chat.application.dto.completion import CompletionRequest, ModelTurn, StreamEvent
from stopover_chat.application.exceptions import (
    AllModelsFailedError,
    AuthenticationError,
    ContextTooLongError,
    LLMUpstreamError,
    RateLimitError,
)
from stopover_chat.application.ports.llm import CompletionPort

T = TypeVar("T")

_CONTEXT_MARKERS = ("context length", "context_length", "maximum context", "too many tokens", "prompt is too long")
_AUTH_MARKERS = ("invalid api key", "unauthorized", "authentication", "no auth credentials")


def classify_provider_error(exc: BaseException, model: str | None = None) -> LLMUpstreamError:
    """Map any provider exception onto the LLM error taxonomy.

    Uses the HTTP status carried by SDK exceptions when present, then the message text.
    """
    if isinstance(exc, LLMUpstreamError):
        if exc.model is None:
            exc.model = model
        return exc

    message = str(exc) or type(exc).__name__
    lowered = message.lower()
    status = getattr(exc, "status_code", None)

    if status == 429 or "rate limit" in lowered or "too many requests" in lowered:
        return RateLimitError(message, model=model)
    if status == 413 or any(marker in lowered for marker in _CONTEXT_MARKERS):
        return ContextTooLongError(message, model=model)
    if status in (401, 403) or any(marker in lowered for marker in _AUTH_MARKERS):
        return AuthenticationError(message, model=model)
    return LLMUpstreamError(message, model=model)


@dataclass(frozen=True)
class FallbackTransition:
    from_model: str
    to_model: str
    reason: str


@dataclass(frozen=True)
class CompletionOutcome:
    turn: ModelTurn
    model: str
    transitions: list[FallbackTransition] = field(default_factory=list)


@dataclass(frozen=True)
class StreamOutcome:
    events: Iterator[StreamEvent]
    model: str
    transitions: list[FallbackTransition] = field(default_factory=list)


class ModelFallbackChain:
    """Try each model in order until one answers.

    The chain is [default, *fallbacks]; when there are fewer models than
    attempts the last model is retried. Non-retryable errors (context too
    long, authentication) stop immediately.
    """

    def __init__(self, port: CompletionPort, models: list[str], max_attempts: int = 3) -> None:
        if not models:
            raise ValueError("ModelFallbackChain needs at least one model")
        self._port = port
        self._models = list(models)
        self._max_attempts = max(1, max_attempts)
        self._logger = logging.getLogger(__name__)

    @property
    def models(self) -> list[str]:
        return list(self._models)

    def _model_for(self, attempt: int) -> str:
        return self._models[min(attempt, len(self._models) - 1)]

    def _run(self, call: Callable[[str], T]) -> tuple[T, str, list[FallbackTransition]]:
        failures: list[tuple[str, LLMUpstreamError]] = []
        transitions: list[FallbackTransition] = []

        for attempt in range(self._max_attempts):
            model = self._model_for(attempt)
            try:
                return call(model), model, transitions
            except Exception as exc:
                error = classify_provider_error(exc, model)
                failures.append((model, error))
                self._logger.warning(
                    "Model attempt failed",
                    extra={"model": model, "attempt": attempt + 1, "reason": f"{error.error_type}: {error}"},
                )
                if not error.retryable:
                    if error is exc:
                        raise
                    raise error from exc
                if attempt + 1 < self._max_attempts:
                    next_model = self._model_for(attempt + 1)
                    transitions.append(FallbackTransition(model, next_model, error.error_type))
                    self._logger.info(
                        "Falling back to next model",
                        extra={"model": next_model, "attempt": attempt + 2, "reason": error.error_type},
                    )

        raise AllModelsFailedError(failures)

    def complete(self, request: CompletionRequest) -> CompletionOutcome:
        turn, model, transitions = self._run(lambda m: self._port.complete(request, m))
        return CompletionOutcome(turn=turn, model=model, transitions=transitions)

    def stream(self, request: CompletionRequest) -> StreamOutcome:
        """Open a stream with fallback. Errors after the stream is open are not retried."""
        events, model, transitions = self._run(lambda m: self._port.stream(request, m))
        return StreamOutcome(events=events, model=model, transitions=transitions)
