from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stopover_chat.api.chat import router as chat_router
from stopover_chat.api.data_services import router as data_services_router
from stopover_chat.core.config import Settings, settings as default_settings
from stopover_chat.wiring.dependencies import AppContext, build_context

LOG_CONTEXT_KEYS = (
    "conversation_id",
    "session_id",
    "model",
    "tool",
    "step",
    "attempt",
    "service",
    "operation",
    "reason",
)


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in LOG_CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Stopover Booking Chat", version="1.0.0")
    app.state.context = context or build_context(settings)

    app.include_router(chat_router, tags=["chat"])
    app.include_router(data_services_router, tags=["data-services"])

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "type": "ValidationError", "retryable": False, "details": details},
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
