from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from stopover_chat.api.schemas import ChatRequestSchema, ChatResponseSchema, ErrorResponseSchema
from stopover_chat.application.exceptions import (
    AllModelsFailedError,
    ConfigurationError,
    LLMUpstreamError,
    ValidationError,
)
from stopover_chat.application.use_cases.handle_chat_turn import ChatTurnInput, failure_text
from stopover_chat.application.utils.ui_components import describe_interaction, render_descriptor
from stopover_chat.infrastructure.knowledge.catalog_data import SAMPLE_BOOKING, SAMPLE_CUSTOMER
from stopover_chat.wiring.dependencies import AppContext, get_app_context

router = APIRouter()
logger = logging.getLogger(__name__)


def error_response(
    status_code: int,
    error: str,
    error_type: str | None = None,
    retryable: bool | None = None,
    details: Any = None,
) -> JSONResponse:
    body = ErrorResponseSchema(error=error, type=error_type, retryable=retryable, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _to_turn(req: ChatRequestSchema) -> ChatTurnInput:
    messages = [m.model_dump() for m in req.messages]
    if req.interaction is not None:
        messages.append({"role": "user", "content": describe_interaction(req.interaction.action, req.interaction.data)})

    ctx = req.conversation_context
    customer = ctx.customer.to_entity() if ctx and ctx.customer else SAMPLE_CUSTOMER
    booking = ctx.booking.to_entity() if ctx and ctx.booking else SAMPLE_BOOKING
    return ChatTurnInput(
        messages=messages,
        customer=customer,
        booking=booking,
        current_step=ctx.current_step if ctx else None,
        session_id=req.session_id,
        conversation_id=req.conversation_id,
        customer_id=req.customer_id,
        entry_point=req.entry_point,
    )


def _ndjson(events: Iterator[dict[str, Any]]) -> Iterator[str]:
    try:
        for event in events:
            if event.get("type") == "done":
                event = {**event, "widget": render_descriptor(event.get("uiComponent"))}
            yield json.dumps(event) + "\n"
    finally:
        # releases the turn lock and the provider stream on disconnect
        close = getattr(events, "close", None)
        if close is not None:
            close()


@router.post(
    "/chat",
    response_model=ChatResponseSchema,
    responses={400: {"model": ErrorResponseSchema}, 500: {"model": ErrorResponseSchema}},
)
def chat(
    req: ChatRequestSchema,
    stream: bool | None = Query(None),
    context: AppContext = Depends(get_app_context),
):
    try:
        use_case = context.require_chat()
        turn = _to_turn(req)
        use_case.validate(turn)

        streaming = context.settings.STREAMING_ENABLED if stream is None else stream
        if streaming:
            # provider errors while opening the stream still map to a status code below
            events = use_case.open_stream(turn)
            return StreamingResponse(
                _ndjson(events),
                media_type="application/x-ndjson",
                background=BackgroundTask(events.close),
            )

        result = use_case.handle(turn)
    except ConfigurationError as e:
        logger.error("Chat unavailable", extra={"reason": e.debug})
        return error_response(e.status_code, str(e), e.error_type, e.retryable, details=e.debug)
    except ValidationError as e:
        return error_response(e.status_code, str(e), e.error_type, e.retryable, details=e.details)
    except (LLMUpstreamError, AllModelsFailedError) as e:
        logger.error("Chat turn failed", extra={"model": getattr(e, "model", None), "reason": str(e)})
        return error_response(e.status_code, failure_text(e), e.error_type, e.retryable, details=str(e))

    logger.info(
        "Chat turn completed",
        extra={
            "conversation_id": result.conversation_id,
            "session_id": result.session_id,
            "model": result.model,
            "step": result.current_step,
        },
    )
    payload = result.to_dict()
    return ChatResponseSchema(**payload, widget=render_descriptor(result.ui_component))
