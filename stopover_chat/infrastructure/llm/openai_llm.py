from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
from openai import OpenAI

from stopover_chat.application.dto.completion import (
    CompletionRequest,
    ModelTurn,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallEvent,
)
from stopover_chat.application.exceptions import LLMContractError
from stopover_chat.application.ports.llm import CompletionPort
from stopover_chat.application.utils.model_fallback import classify_provider_error


class OpenAICompletion(CompletionPort):
    """
    OpenAI-SDK adapter for any OpenAI-compatible chat endpoint (OpenRouter by default).

    Contract guarantees:
    - complete returns a ModelTurn with text and/or tool calls
    - stream raises opening errors immediately and emits each tool call once, complete
    - Raises:
        LLMUpstreamError (or subclass): networking/provider failures, classified
        LLMContractError: a response with neither text nor tool calls
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout_seconds: float = 60.0,
        client: OpenAI | None = None,
    ) -> None:
        self.client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            max_retries=0,
            default_headers={"X-Title": "stopover-chat"},
        )

    def _kwargs(self, request: CompletionRequest, model: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": request.messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.tools:
            kwargs["tools"] = request.tools
            kwargs["tool_choice"] = "auto"
        return kwargs

    def complete(self, request: CompletionRequest, model: str) -> ModelTurn:
        try:
            resp = self.client.chat.completions.create(**self._kwargs(request, model))
        except Exception as e:
            raise classify_provider_error(e, model) from e

        if not resp.choices:
            raise LLMContractError("LLM returned no choices.", model=model)
        message = resp.choices[0].message
        calls = tuple(
            ToolCall(id=c.id, name=c.function.name, arguments=c.function.arguments or "{}")
            for c in (message.tool_calls or [])
            if getattr(c, "function", None) is not None
        )
        text = (message.content or "").strip()
        if not text and not calls:
            raise LLMContractError("LLM returned empty response text.", model=model)
        return ModelTurn(text=text, tool_calls=calls, model=model)

    def stream(self, request: CompletionRequest, model: str) -> Iterator[StreamEvent]:
        try:
            resp = self.client.chat.completions.create(stream=True, **self._kwargs(request, model))
        except Exception as e:
            raise classify_provider_error(e, model) from e
        return self._events(resp, model)

    def _events(self, resp: Any, model: str) -> Iterator[StreamEvent]:
        pending: dict[int, dict[str, str]] = {}
        try:
            for chunk in resp:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta
                if delta.content:
                    yield TextDelta(delta.content)
                for tc in delta.tool_calls or []:
                    slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function is not None:
                        slot["name"] += tc.function.name or ""
                        slot["arguments"] += tc.function.arguments or ""
        except Exception as e:
            raise classify_provider_error(e, model) from e
        finally:
            resp.close()

        for index in sorted(pending):
            slot = pending[index]
            if not slot["name"]:
                raise LLMContractError("Streamed tool call has no name.", model=model)
            yield ToolCallEvent(
                ToolCall(id=slot["id"] or f"call_{index}", name=slot["name"], arguments=slot["arguments"] or "{}")
            )
