"""FastAPI application factory and route setup for the presign service."""

import logging
import secrets
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from presigner.config import PresignerConfig
from presigner.errors import PresignError
from presigner.handler import PresignHandler
from presigner.identity import IdentityVerifier

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}

# Paths to suppress from per-request logging
_QUIET_PATHS = {"/metrics", "/health", "/healthz", "/readyz"}

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def error_response(message: str, status: int) -> JSONResponse:
    """Render the uniform ``{"error": message}`` body."""
    return JSONResponse(content={"error": message}, status_code=status)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    config: PresignerConfig,
    clock: Callable[[], datetime] = _utcnow,
    identity_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the presign FastAPI application.

    Everything the handler needs is placed on ``app.state`` here rather than
    in the lifespan, so the app works under ``httpx.ASGITransport`` without
    running startup hooks.

    Args:
        config: The loaded, frozen configuration.
        clock: Returns the current UTC instant; every request reads it once.
        identity_transport: Optional httpx transport for the identity provider.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Report configuration problems once at startup."""
        missing = config.storage.missing_fields()
        if missing:
            logger.error(
                "Storage configuration incomplete (missing: %s); "
                "every presign request will fail with 500",
                ", ".join(missing),
            )
        if not config.identity.base_url:
            logger.error("Identity provider base URL is not configured")
        logger.info("Presign route: POST %s", config.server.route)
        yield
        logger.info("Presign service stopped")

    app = FastAPI(
        title="Presigner",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.clock = clock
    app.state.identity_verifier = IdentityVerifier(
        base_url=config.identity.base_url,
        api_key=config.identity.api_key.get_secret_value(),
        timeout=config.identity.timeout_seconds,
        transport=identity_transport,
    )

    _register_exception_handlers(app)
    _register_middleware(app)

    # /metrics must be registered before the presign route.
    if config.observability.metrics:
        import presigner.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="presigner").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(PresignError)
    async def presign_error_handler(request: Request, exc: PresignError) -> Response:
        """Render PresignError subclasses as ``{"error": message}``."""
        return error_response(exc.message, exc.http_status)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> Response:
        """Render routing errors (404, 405) in the same shape."""
        response = error_response(str(exc.detail), exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        """Map FastAPI validation errors to a 400 ``{"error"}`` body."""
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        return error_response("; ".join(messages) or "Invalid request", 400)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return a 500."""
        logger.exception("Unhandled exception in request handler")
        response = error_response("Internal error", 500)
        response.headers.update(CORS_HEADERS)
        return response


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI) -> None:
    """Register middleware on the FastAPI app.

    Preflight requests are answered here and never reach a route. Every
    other response gets the CORS headers and a request id.
    """

    @app.middleware("http")
    async def cors_and_logging_middleware(request: Request, call_next) -> Response:
        """Short-circuit OPTIONS, add CORS headers, log one line per request."""
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)

        request_id = secrets.token_hex(8)
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers.update(CORS_HEADERS)
        response.headers["x-request-id"] = request_id

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                    "user_id": getattr(request.state, "user_id", None),
                },
            )

        return response


# ---------------------------------------------------------------------------
# Health check helpers
# ---------------------------------------------------------------------------


def _check_storage(config: PresignerConfig) -> dict:
    """Report whether the signing identity is complete."""
    missing = config.storage.missing_fields()
    if missing:
        return {"status": "error", "missing": missing}
    return {"status": "ok"}


def _check_identity(config: PresignerConfig) -> dict:
    """Report whether an identity provider is configured."""
    if not config.identity.base_url:
        return {"status": "error", "missing": ["base_url"]}
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: PresignerConfig) -> None:
    """Register the presign route and the health probes.

    Args:
        app: The FastAPI application to attach routes to.
        config: The presign service configuration.
    """
    presign_handler = PresignHandler(app)
    health_check_enabled = config.observability.health_check

    @app.get("/health")
    async def health_check() -> Response:
        """Return health status.

        When health_check is enabled, report storage and identity
        configuration and answer 503 if either is incomplete. When disabled,
        return a static ``{"status": "ok"}``.
        """
        if not health_check_enabled:
            return JSONResponse(content={"status": "ok"})

        checks = {
            "storage": _check_storage(config),
            "identity": _check_identity(config),
        }
        all_ok = all(check["status"] == "ok" for check in checks.values())
        return JSONResponse(
            content={"status": "ok" if all_ok else "degraded", "checks": checks},
            status_code=200 if all_ok else 503,
        )

    if health_check_enabled:

        @app.get("/healthz")
        async def healthz() -> Response:
            """Liveness probe. Returns 200 with empty body."""
            return Response(status_code=200)

        @app.get("/readyz")
        async def readyz() -> Response:
            """Readiness probe. 200 if configuration is complete, else 503."""
            ready = not config.storage.missing_fields() and bool(config.identity.base_url)
            return Response(status_code=200 if ready else 503)

    @app.post(config.server.route)
    async def handle_presign(request: Request) -> Response:
        """Handle POST <route> -- issue a presigned PUT or GET URL."""
        return await presign_handler.presign(request)
