"""Starlette HTTP server assembly for the treasury action service."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from treasury_actions.app import AppContext, get_app_context
from treasury_actions.engine.signals import WalletEvent
from treasury_actions.errors import (
    ActionValidationError,
    ConfigurationError,
    InvalidTokenError,
    UpstreamError,
)
from treasury_actions.middleware.audit import AuditMiddleware
from treasury_actions.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

_ENDPOINTS = {
    "auth": "/api/auth/signin",
    "paymentApprove": "/api/payments/approve",
    "paymentComplete": "/api/payments/complete",
    "paymentIncomplete": "/api/payments/incomplete",
    "actionTypes": "/api/action-types",
    "actions": "/api/actions",
}


class _BadRequest(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


def _error(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise _BadRequest("Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise _BadRequest("JSON object body required")
    return body


def _context(request: Request) -> AppContext:
    return request.app.state.context


async def health_handler(request: Request) -> Response:
    context = _context(request)
    return JSONResponse(
        {
            "status": "healthy",
            "timestamp": utc_now_iso(),
            "environment": context.settings.server.environment,
            "piSdkConfigured": context.payments.configured,
            "endpoints": _ENDPOINTS,
        }
    )


async def signin_handler(request: Request) -> Response:
    try:
        body = await _json_body(request)
    except _BadRequest as exc:
        return _error(exc.message, 400)
    auth_token = body.get("authToken")
    if not auth_token or not isinstance(auth_token, str):
        return _error("Authentication token required", 400)

    try:
        user = await _context(request).payments.verify_user(auth_token)
    except ConfigurationError:
        return _error("Server configuration error", 500)
    except InvalidTokenError:
        return _error("Invalid authentication token", 401)
    except UpstreamError as exc:
        logger.error("Auth signin error: %s", exc)
        return _error("Authentication failed", 500)

    return JSONResponse(
        {
            "success": True,
            "user": {"uid": user.get("uid"), "username": user.get("username")},
        }
    )


def _upstream_failure(exc: UpstreamError) -> JSONResponse:
    return _error(exc.message, exc.status_code, details=exc.body)


async def approve_payment_handler(request: Request) -> Response:
    try:
        body = await _json_body(request)
    except _BadRequest as exc:
        return _error(exc.message, 400)
    payment_id = body.get("paymentId")
    if not payment_id:
        return _error("Payment ID required", 400)

    try:
        data = await _context(request).payments.approve(str(payment_id))
    except ConfigurationError:
        return _error("Server configuration error", 500)
    except UpstreamError as exc:
        return _upstream_failure(exc)
    return JSONResponse({"success": True, "paymentId": payment_id, "approved": True, **data})


async def complete_payment_handler(request: Request) -> Response:
    try:
        body = await _json_body(request)
    except _BadRequest as exc:
        return _error(exc.message, 400)
    payment_id = body.get("paymentId")
    txid = body.get("txid")
    if not payment_id or not txid:
        return _error("Payment ID and transaction ID required", 400)

    try:
        data = await _context(request).payments.complete(str(payment_id), str(txid))
    except ConfigurationError:
        return _error("Server configuration error", 500)
    except UpstreamError as exc:
        return _upstream_failure(exc)
    return JSONResponse(
        {"success": True, "paymentId": payment_id, "txid": txid, "completed": True, **data}
    )


async def incomplete_payment_handler(request: Request) -> Response:
    try:
        body = await _json_body(request)
    except _BadRequest as exc:
        return _error(exc.message, 400)
    payment_id = body.get("paymentId")
    if not payment_id:
        return _error("Payment ID required", 400)

    try:
        data = await _context(request).payments.get_incomplete(str(payment_id))
    except ConfigurationError:
        return _error("Server configuration error", 500)
    except UpstreamError as exc:
        return _upstream_failure(exc)
    return JSONResponse({"success": True, "paymentId": payment_id, **data})


async def action_types_handler(request: Request) -> Response:
    table = _context(request).table
    return JSONResponse({"actionTypes": [entry.to_dict() for entry in table.list_all()]})


async def list_actions_handler(request: Request) -> Response:
    store = _context(request).store
    return JSONResponse({"actions": [action.to_dict() for action in store.list_all()]})


async def get_action_handler(request: Request) -> Response:
    action = _context(request).store.get(request.path_params["action_id"])
    if action is None:
        return _error("Action not found", 404)
    return JSONResponse(action.to_dict())


async def create_action_handler(request: Request) -> Response:
    try:
        body = await _json_body(request)
    except _BadRequest as exc:
        return _error(exc.message, 400)

    try:
        action = await _context(request).service.submit(body)
    except ActionValidationError as exc:
        reason = exc.reason.value if exc.reason else None
        return _error(str(exc), 400, reason=reason)
    return JSONResponse(action.to_dict(), status_code=201)


async def wallet_event_handler(request: Request) -> Response:
    context = _context(request)
    action_id = request.path_params["action_id"]
    try:
        body = await _json_body(request)
    except _BadRequest as exc:
        return _error(exc.message, 400)

    try:
        event = WalletEvent(body.get("event"))
    except ValueError:
        return _error(f"Unknown wallet event: {body.get('event')}", 400)

    if not context.bridge.is_registered(action_id):
        return _error("No pending wallet signature for action", 404)

    try:
        handler = await context.bridge.dispatch(
            action_id,
            event,
            payment_id=body.get("paymentId"),
            txid=body.get("txid"),
            reason=body.get("reason"),
        )
    except KeyError:
        return _error("No pending wallet signature for action", 404)
    except ValueError as exc:
        return _error(str(exc), 400)

    if handler.failure is not None:
        logger.warning(
            "Wallet event %s failed action %s: %s", event.value, action_id, handler.failure
        )
    action = context.store.get(action_id)
    if action is None:
        return _error("Action not found", 404)
    return JSONResponse(action.to_dict())


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application for one view of the action store."""
    context = context or get_app_context()
    settings = context.settings

    middleware: list[Middleware] = [
        Middleware(
            AuditMiddleware,
            trust_forwarded_headers=settings.server.http_trust_forwarded_headers,
        ),
    ]

    # CORS must be outermost so preflight requests get CORS headers.
    if settings.server.http_enable_cors and settings.server.http_allowed_origins:
        from starlette.middleware.cors import CORSMiddleware

        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.http_allowed_origins),
                allow_methods=["POST", "GET", "OPTIONS"],
                allow_headers=["Authorization", "Content-Type", "Accept"],
            ),
        )

    routes = [
        Route("/api/health", endpoint=health_handler, methods=["GET"]),
        Route("/api/auth/signin", endpoint=signin_handler, methods=["POST"]),
        Route("/api/payments/approve", endpoint=approve_payment_handler, methods=["POST"]),
        Route("/api/payments/complete", endpoint=complete_payment_handler, methods=["POST"]),
        Route(
            "/api/payments/incomplete",
            endpoint=incomplete_payment_handler,
            methods=["POST"],
        ),
        Route("/api/action-types", endpoint=action_types_handler, methods=["GET"]),
        Route("/api/actions", endpoint=list_actions_handler, methods=["GET"]),
        Route("/api/actions", endpoint=create_action_handler, methods=["POST"]),
        Route("/api/actions/{action_id}", endpoint=get_action_handler, methods=["GET"]),
        Route(
            "/api/actions/{action_id}/wallet-events",
            endpoint=wallet_event_handler,
            methods=["POST"],
        ),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info(
            "Starting treasury action server (view %s, signal mode %s)...",
            context.store.view_id,
            context.signal_mode.value,
        )
        context.sync_listener.start()
        context.marker_poller.start()
        try:
            yield
        finally:
            logger.info("Stopping treasury action server...")
            await context.marker_poller.stop()
            context.sync_listener.stop()
            await context.service.drain()

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
    )
    app.state.context = context
    return app
