"""Starlette JSON API over the request lifecycle engine."""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as BodyValidationError
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from gatepass.app import AppContext, get_app_context
from gatepass.domain.models import (
    DECISION_APPROVE,
    DECISION_REJECT,
    ROLE_ADVISOR,
    ROLE_HOD,
    ROLE_SECURITY,
    ROLE_STUDENT,
    Actor,
    RequestContent,
)
from gatepass.errors import ForbiddenError, GatePassError

logger = logging.getLogger(__name__)

_EXEMPT_PATHS = frozenset({"/api/health"})

_STATUS_BY_CODE = {
    "not_found": 404,
    "forbidden": 403,
    "invalid_state": 409,
    "validation_error": 400,
    "already_used": 409,
    "conflict": 409,
}

Handler = Callable[[Request], Awaitable[Response]]


class CreateRequestBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: str
    destination: str
    exit_date: date = Field(alias="exitDate")
    expected_return_date: date = Field(alias="expectedReturnDate")
    contact_number: str = Field(alias="contactNumber")


class DecisionBody(BaseModel):
    remarks: str | None = None


class VerifyQrBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qr_token: str | None = Field(default=None, alias="qrToken")


# ============================================================================
# Middleware
# ============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration for every request."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "%s %s -> %d (%d ms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response


class ActorMiddleware(BaseHTTPMiddleware):
    """
    Resolves the acting user from a header through the directory.

    Identity verification is done upstream; this layer only maps the
    presented id to a directory actor.
    """

    def __init__(self, app: Any, header_name: str = "X-Actor-Id") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        if request.url.path in _EXEMPT_PATHS or not request.url.path.startswith("/api/"):
            return await call_next(request)

        actor_id = request.headers.get(self.header_name, "").strip()
        if not actor_id:
            return JSONResponse(
                status_code=401,
                content={
                    "error": "missing_actor",
                    "message": f"{self.header_name} header is required",
                },
            )

        context: AppContext = request.app.state.context
        actor = context.directory.get_actor(actor_id)
        if actor is None:
            return JSONResponse(
                status_code=401,
                content={"error": "unknown_actor", "message": "User not found in directory"},
            )

        request.state.actor = actor
        return await call_next(request)


def requires_role(role: str) -> Callable[[Handler], Handler]:
    def decorator(handler: Handler) -> Handler:
        @functools.wraps(handler)
        async def wrapper(request: Request) -> Response:
            actor: Actor = request.state.actor
            if actor.role != role:
                raise ForbiddenError(
                    f"Access denied. Required role: {role}. Your role: {actor.role}"
                )
            return await handler(request)

        return wrapper

    return decorator


# ============================================================================
# Helpers
# ============================================================================


def _context(request: Request) -> AppContext:
    return request.app.state.context


async def _parse_body(request: Request, model: type[BaseModel]) -> Any:
    raw = await request.body()
    try:
        if not raw:
            return model.model_validate({})
        return model.model_validate_json(raw)
    except BodyValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) or "body" for error in exc.errors()
        )
        raise HTTPException(status_code=400, detail=f"Invalid request body: {fields}") from exc


async def _run(func: Callable[..., Any], *args: Any) -> Any:
    return await asyncio.to_thread(func, *args)


# ============================================================================
# Route handlers
# ============================================================================


async def health_handler(request: Request) -> Response:
    return JSONResponse({"status": "ok", "message": "Gate pass API"})


async def me_handler(request: Request) -> Response:
    actor: Actor = request.state.actor
    profile = _context(request).directory.profile(actor.id) or {}
    profile["assignedAdvisorId"] = actor.assigned_advisor_id
    profile["assignedHodId"] = actor.assigned_hod_id
    return JSONResponse({"user": profile})


@requires_role(ROLE_STUDENT)
async def create_request_handler(request: Request) -> Response:
    body: CreateRequestBody = await _parse_body(request, CreateRequestBody)
    context = _context(request)
    actor: Actor = request.state.actor
    requester = context.directory.requester_snapshot(actor.id, body.contact_number)
    if requester is None:
        raise ForbiddenError("Only registered students can submit requests")
    content = RequestContent(
        reason=body.reason,
        destination=body.destination,
        exit_date=body.exit_date,
        expected_return_date=body.expected_return_date,
    )
    created = await _run(context.engine.create_request, requester, content)
    return JSONResponse(
        status_code=201,
        content={
            "success": True,
            "message": "Gate pass request submitted to your Class Advisor",
            "request": created.to_dict(include_token=True),
            "warnings": {
                "noAdvisor": (
                    None if created.advisor_id else "No Class Advisor assigned to your class"
                ),
                "noHod": None if created.hod_id else "No HOD assigned to your department",
            },
        },
    )


@requires_role(ROLE_STUDENT)
async def student_requests_handler(request: Request) -> Response:
    actor: Actor = request.state.actor
    requests = await _run(_context(request).engine.list_requests, ROLE_STUDENT, actor.id)
    return JSONResponse({"requests": [r.to_dict(include_token=True) for r in requests]})


def _pending_list_handler(role: str) -> Handler:
    @requires_role(role)
    async def handler(request: Request) -> Response:
        actor: Actor = request.state.actor
        requests = await _run(_context(request).engine.list_requests, role, actor.id)
        return JSONResponse({"requests": [r.to_dict() for r in requests]})

    return handler


_DECISION_MESSAGES = {
    (ROLE_ADVISOR, DECISION_APPROVE): "Request approved and forwarded to HOD",
    (ROLE_HOD, DECISION_APPROVE): "Request approved. Gate pass issued to the student.",
    (ROLE_ADVISOR, DECISION_REJECT): "Request rejected",
    (ROLE_HOD, DECISION_REJECT): "Request rejected",
}


def _decision_handler(role: str, decision: str) -> Handler:
    @requires_role(role)
    async def handler(request: Request) -> Response:
        body: DecisionBody = await _parse_body(request, DecisionBody)
        engine = _context(request).engine
        actor: Actor = request.state.actor
        decide = engine.advisor_decide if role == ROLE_ADVISOR else engine.hod_decide
        updated = await _run(
            decide, request.path_params["request_id"], actor.id, decision, body.remarks
        )
        return JSONResponse(
            {
                "success": True,
                "message": _DECISION_MESSAGES[(role, decision)],
                "request": updated.to_dict(),
            }
        )

    return handler


@requires_role(ROLE_SECURITY)
async def verify_qr_handler(request: Request) -> Response:
    body: VerifyQrBody = await _parse_body(request, VerifyQrBody)
    actor: Actor = request.state.actor
    try:
        result = await _run(_context(request).engine.redeem, body.qr_token or "", actor.id)
    except GatePassError as exc:
        payload = exc.to_dict()
        payload["valid"] = False
        return JSONResponse(status_code=_STATUS_BY_CODE.get(exc.code, 400), content=payload)
    payload = result.to_dict()
    payload["message"] = "Gate pass verified successfully"
    return JSONResponse(payload)


@requires_role(ROLE_SECURITY)
async def scan_history_handler(request: Request) -> Response:
    actor: Actor = request.state.actor
    limit_param = request.query_params.get("limit")
    try:
        limit = int(limit_param) if limit_param else None
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="limit must be an integer") from exc
    logs = await _run(_context(request).engine.scan_history, actor.id, limit)
    return JSONResponse({"logs": [log.to_dict() for log in logs]})


# ============================================================================
# Error handlers
# ============================================================================


async def _gatepass_error_handler(request: Request, exc: GatePassError) -> Response:
    status_code = _STATUS_BY_CODE.get(exc.code, 400)
    logger.info("%s %s refused: %s (%s)", request.method, request.url.path, exc, exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def _http_error_handler(request: Request, exc: HTTPException) -> Response:
    if exc.status_code == 404:
        message = f"Route not found: {request.url.path}"
        code = "route_not_found"
    elif exc.status_code == 400:
        message = str(exc.detail)
        code = "validation_error"
    else:
        message = str(exc.detail)
        code = "http_error"
    return JSONResponse(status_code=exc.status_code, content={"error": code, "message": message})


async def _internal_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal server error"},
    )


# ============================================================================
# App assembly
# ============================================================================


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application, building the context from settings if omitted."""
    context = context or get_app_context()
    settings = context.settings

    middleware: list[Middleware] = [
        Middleware(RequestLoggingMiddleware),
        Middleware(ActorMiddleware, header_name=settings.server.actor_header),
    ]

    # CORS must be outermost so OPTIONS preflight is answered before actor checks.
    if settings.server.http_enable_cors and settings.server.http_allowed_origins:
        from starlette.middleware.cors import CORSMiddleware

        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.http_allowed_origins),
                allow_methods=["POST", "GET", "OPTIONS"],
                allow_headers=["Content-Type", "Accept", settings.server.actor_header],
                allow_credentials=True,
            ),
        )

    routes = [
        Route("/api/health", endpoint=health_handler, methods=["GET"]),
        Route("/api/me", endpoint=me_handler, methods=["GET"]),
        Route("/api/student/request", endpoint=create_request_handler, methods=["POST"]),
        Route("/api/student/requests", endpoint=student_requests_handler, methods=["GET"]),
        Route(
            "/api/advisor/requests",
            endpoint=_pending_list_handler(ROLE_ADVISOR),
            methods=["GET"],
        ),
        Route(
            "/api/advisor/approve/{request_id}",
            endpoint=_decision_handler(ROLE_ADVISOR, DECISION_APPROVE),
            methods=["POST"],
        ),
        Route(
            "/api/advisor/reject/{request_id}",
            endpoint=_decision_handler(ROLE_ADVISOR, DECISION_REJECT),
            methods=["POST"],
        ),
        Route("/api/hod/requests", endpoint=_pending_list_handler(ROLE_HOD), methods=["GET"]),
        Route(
            "/api/hod/approve/{request_id}",
            endpoint=_decision_handler(ROLE_HOD, DECISION_APPROVE),
            methods=["POST"],
        ),
        Route(
            "/api/hod/reject/{request_id}",
            endpoint=_decision_handler(ROLE_HOD, DECISION_REJECT),
            methods=["POST"],
        ),
        Route("/api/security/verify-qr", endpoint=verify_qr_handler, methods=["POST"]),
        Route("/api/security/scan-history", endpoint=scan_history_handler, methods=["GET"]),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Gate pass HTTP server started")
        try:
            yield
        finally:
            logger.info("Stopping gate pass HTTP server...")
            context.store.close()

    app = Starlette(
        routes=routes,
        middleware=middleware,
        lifespan=lifespan,
        exception_handlers={
            GatePassError: _gatepass_error_handler,
            HTTPException: _http_error_handler,
            Exception: _internal_error_handler,
        },
    )
    app.state.context = context
    return app
