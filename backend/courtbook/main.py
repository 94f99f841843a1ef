import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from courtbook.api.problem_details import (
    PROBLEM_TYPE_SERVER,
    PROBLEM_TYPE_VALIDATION,
    problem_details,
)
from courtbook.api.routes_access import router as access_router
from courtbook.api.routes_bookings import router as bookings_router
from courtbook.api.routes_health import router as health_router
from courtbook.api.routes_locations import router as locations_router
from courtbook.api.routes_metrics import router as metrics_router
from courtbook.api.routes_organizations import router as organizations_router
from courtbook.api.routes_resources import router as resources_router
from courtbook.domain.errors import DomainError, ErrorKind
from courtbook.infra.db import dispose_engine, get_session_factory
from courtbook.infra.logging import clear_log_context, configure_logging, update_log_context
from courtbook.infra.metrics import Metrics, configure_metrics
from courtbook.settings import settings

logger = logging.getLogger(__name__)
request_logger = logging.getLogger("courtbook.request")

REQUEST_ID_HEADER = "X-Request-ID"


def _actor_context(request: Request) -> dict[str, str]:
    user_id = getattr(request.state, "current_user_id", None)
    return {"user_id": str(user_id)} if user_id else {}


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns the request id, fills the log context and writes one access line per request."""

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        update_log_context(request_id=request_id, method=request.method, path=request.url.path)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            latency_ms = int((time.perf_counter() - started) * 1000)
            update_log_context(status_code=status_code, latency_ms=latency_ms, **_actor_context(request))
            request_logger.info("request", extra={"latency_ms": latency_ms})
            clear_log_context()


class MetricsMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: FastAPI, metrics_client: Metrics) -> None:
        super().__init__(app)
        self.metrics = metrics_client

    async def dispatch(self, request: Request, call_next: Callable):
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            path = _route_template(request)
            self.metrics.record_http_latency(
                request.method, path, status_code, time.perf_counter() - started
            )
            if status_code >= 500:
                self.metrics.record_http_5xx(request.method, path)


def _cors_origins(app_settings) -> list[str]:
    if app_settings.cors_origins:
        return list(app_settings.cors_origins)
    return ["http://localhost:3000"] if app_settings.app_env == "dev" else []


def _validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    errors = []
    for error in exc.errors():
        parts = [str(part) for part in error.get("loc", ()) if part not in {"body", "query", "path"}]
        errors.append({"field": ".".join(parts) or "body", "message": error.get("msg", "Invalid value")})
    return errors


def _register_exception_handlers(app: FastAPI, app_settings) -> None:
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return problem_details(
            request,
            status=422,
            title="Validation Error",
            detail="Request validation failed",
            errors=_validation_errors(exc),
            type_=PROBLEM_TYPE_VALIDATION,
        )

    @app.exception_handler(DomainError)
    async def handle_domain_error(request: Request, exc: DomainError):
        headers = None
        if exc.kind is ErrorKind.UNAVAILABLE:
            current = getattr(request.app.state, "app_settings", app_settings)
            headers = {"Retry-After": str(current.unavailable_retry_after_seconds)}
        return problem_details(
            request,
            status=exc.status_code,
            title=exc.title,
            detail=exc.detail,
            errors=exc.errors,
            type_=exc.type,
            headers=headers,
        )

    @app.exception_handler(HTTPException)
    async def handle_http_error(request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return problem_details(
            request,
            status=exc.status_code,
            title=None,
            detail=detail,
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        error_type = type(exc).__name__
        update_log_context(status_code=500, error_type=error_type, **_actor_context(request))
        logger.exception(
            "unhandled_exception",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
                "error_type": error_type,
            },
        )
        return problem_details(
            request,
            status=500,
            title="Internal Server Error",
            detail="Unexpected error",
            type_=PROBLEM_TYPE_SERVER,
        )


def create_app(app_settings) -> FastAPI:
    configure_logging()
    metrics_client = configure_metrics(app_settings.metrics_enabled)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Tests install their own session factory before startup.
        if getattr(app.state, "db_session_factory", None) is None:
            app.state.db_session_factory = get_session_factory()
        yield
        await dispose_engine()

    app = FastAPI(title="Court Booking", version="1.0.0", lifespan=lifespan)
    app.state.metrics = metrics_client
    app.state.app_settings = app_settings

    # Starlette runs the last-added middleware first.
    app.add_middleware(MetricsMiddleware, metrics_client=metrics_client)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(app_settings),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app, app_settings)

    for router in (
        health_router,
        bookings_router,
        resources_router,
        locations_router,
        organizations_router,
        access_router,
    ):
        app.include_router(router)
    if app_settings.metrics_enabled:
        app.include_router(metrics_router)

    return app


app = create_app(settings)
