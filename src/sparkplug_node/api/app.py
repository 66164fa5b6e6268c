"""FastAPI application factory and configuration."""

import logging
import secrets
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.base import BaseHTTPMiddleware

from .. import __version__
from ..sparkplug.errors import (
    ConfigurationMissing,
    InvalidMetricType,
    NodeNotOnline,
    PayloadTypeMismatch,
    SparkplugError,
    TransportFailure,
    UnknownDevice,
)

logger = logging.getLogger(__name__)

ERROR_STATUS_MAP = {
    InvalidMetricType: status.HTTP_400_BAD_REQUEST,
    PayloadTypeMismatch: status.HTTP_400_BAD_REQUEST,
    UnknownDevice: status.HTTP_404_NOT_FOUND,
    NodeNotOnline: status.HTTP_409_CONFLICT,
    ConfigurationMissing: status.HTTP_503_SERVICE_UNAVAILABLE,
    TransportFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}

API_DESCRIPTION = """
Status and control surface for a Sparkplug B edge node.

Publishes are rejected with **409** while the node is not online; nothing is
queued for a later session. When a bearer token is configured every endpoint
except the documentation and `/metrics` requires `Authorization: Bearer <token>`.
"""


def status_for_error(exc: SparkplugError) -> int:
    """HTTP status for an engine error, resolved through its class hierarchy."""
    # Most specific registered class wins
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware to enforce Bearer token authentication.

    Requests outside PUBLIC_PATHS must carry the configured token.
    """

    PUBLIC_PATHS = frozenset({"/docs", "/redoc", "/openapi.json", "/metrics"})

    def __init__(self, app, bearer_token: str):
        super().__init__(app)
        self.bearer_token = bearer_token

    @staticmethod
    def _reject(path: str, detail: str) -> JSONResponse:
        logger.warning(f"Rejected request to {path}: {detail}")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"error": "Authentication required", "detail": detail},
            headers={"WWW-Authenticate": "Bearer"},
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self.PUBLIC_PATHS:
            return await call_next(request)

        # Parse Bearer token
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if not scheme:
            return self._reject(path, "Missing Authorization header")
        if scheme.lower() != "bearer" or not token:
            return self._reject(path, "Expected 'Authorization: Bearer <token>'")
        # Constant-time comparison
        if not secrets.compare_digest(token.strip(), self.bearer_token):
            return self._reject(path, "Invalid bearer token")

        return await call_next(request)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach JSON error responses for validation, engine and unexpected errors."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Keep only JSON-safe fields of each error
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]
        logger.warning(f"Validation error on {request.url.path}: {len(errors)} error(s)")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"error": "Validation error", "detail": errors},
        )

    @app.exception_handler(SparkplugError)
    async def sparkplug_exception_handler(
        request: Request, exc: SparkplugError
    ) -> JSONResponse:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status_for_error(exc),
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unexpected error on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "detail": None},
        )


def create_app(
    title: str = "Sparkplug Edge Node",
    enable_metrics: bool = True,
    bearer_token: Optional[str] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        title: API title for OpenAPI documentation
        enable_metrics: Expose Prometheus metrics at /metrics
        bearer_token: Require this bearer token on non-public paths

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        version=__version__,
        description=API_DESCRIPTION,
        license_info={"name": "MIT"},
        openapi_tags=[
            {"name": "health", "description": "Transport and node liveness"},
            {"name": "node", "description": "Edge node status, data and rebirth"},
            {"name": "devices", "description": "Device births, data and deaths"},
        ],
    )

    # =========================================================================
    # Middleware
    # =========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if bearer_token:
        app.add_middleware(BearerAuthMiddleware, bearer_token=bearer_token)
        logger.info("Bearer token authentication enabled")
    else:
        logger.info("Bearer token authentication disabled - API is public")

    register_exception_handlers(app)

    # =========================================================================
    # Routers
    # =========================================================================
    from .routes import devices, health, node

    for module, tag in ((health, "health"), (node, "node"), (devices, "devices")):
        app.include_router(module.router, prefix="/api/v1", tags=[tag])

    # =========================================================================
    # Prometheus Metrics
    # =========================================================================
    if enable_metrics:
        Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=True,
            excluded_handlers=["/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics")
        logger.info("Prometheus metrics enabled at /metrics")

    logger.debug(f"FastAPI application created: {title} v{__version__}")
    return app
