from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from stopover_chat.api.chat import error_response
from stopover_chat.api.schemas import DataServicesRequestSchema
from stopover_chat.wiring.dependencies import AppContext, get_app_context

router = APIRouter()
logger = logging.getLogger(__name__)

POST_ACTIONS = ("init-session", "get-session", "update-session", "health-check", "get-asset-urls")
GET_ACTIONS = ("health", "asset-urls")


def _health(context: AppContext) -> JSONResponse:
    health = context.sessions.health_check()
    healthy = health["kv"] and health["durableObjects"]
    return JSONResponse(status_code=200 if healthy else 503, content={"success": healthy, "health": health})


def _asset_urls(context: AppContext) -> dict:
    return {"success": True, "assets": context.sessions.asset_urls(), "cdn": context.assets.uses_cdn}


@router.get("/data-services")
def data_services_get(
    action: str | None = Query(None),
    context: AppContext = Depends(get_app_context),
):
    if action == "health":
        return _health(context)
    if action == "asset-urls":
        return _asset_urls(context)
    return error_response(400, "Invalid action", "ValidationError", False, details=list(GET_ACTIONS))


@router.post("/data-services")
def data_services_post(
    req: DataServicesRequestSchema,
    request: Request,
    context: AppContext = Depends(get_app_context),
):
    sessions = context.sessions
    logger.info("Data services request", extra={"operation": req.action, "session_id": req.session_id})

    if req.action == "init-session":
        if not req.customer_id or not req.booking_ref:
            return error_response(400, "customerId and bookingRef are required", "ValidationError", False)
        session = sessions.initialize_session(
            customer_id=req.customer_id,
            booking_ref=req.booking_ref,
            entry_point=req.entry_point,
            user_agent=req.user_agent or request.headers.get("user-agent"),
            ip_address=req.ip_address or (request.client.host if request.client else None),
        )
        return {
            "success": True,
            "sessionId": session.session_id,
            "conversationId": session.conversation_id,
            "session": session.to_dict(),
        }

    if req.action == "get-session":
        if not req.session_id:
            return error_response(400, "sessionId is required", "ValidationError", False)
        session = sessions.get_session(req.session_id)
        if session is None:
            return JSONResponse(status_code=404, content={"success": False, "error": "Session not found"})
        return {"success": True, "session": session.to_dict()}

    if req.action == "update-session":
        if not req.session_id or req.state is None:
            return error_response(400, "sessionId and state are required", "ValidationError", False)
        return {"success": sessions.update_session(req.session_id, req.state)}

    if req.action == "health-check":
        return _health(context)

    if req.action == "get-asset-urls":
        return _asset_urls(context)

    return error_response(400, "Invalid action", "ValidationError", False, details=list(POST_ACTIONS))
