from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator

from stopover_chat.application.dto.completion import CompletionRequest, ModelTurn, StreamEvent


class CompletionPort(ABC):
    @abstractmethod
    def complete(self, request: CompletionRequest, model: str) -> ModelTurn:
        """
        Run one model turn.

        Requirements:
        - Return either text, one or more tool calls, or both
        - Raise LLMUpstreamError (or a subclass) for provider failures
        - Raise LLMContractError when the provider returns neither text nor tool calls
        """
        raise NotImplementedError

    @abstractmethod
    def stream(self, request: CompletionRequest, model: str) -> Iterator[StreamEvent]:
        """
        Open a streamed model turn.

        Requirements:
        - Errors while opening the stream are raised by this call, not by iteration
        - TextDelta events arrive in order
        - Each ToolCallEvent carries complete, parseable arguments
        - Closing the iterator early releases the provider connection
        """
        raise NotImplementedError
