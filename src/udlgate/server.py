"""FastAPI application factory and route setup for udlgate."""

import logging
import secrets
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from udlgate.auth import AuthGate
from udlgate.config import GatewayConfig
from udlgate.errors import InternalError
from udlgate.result import error_body, to_response
from udlgate.router import Router
from udlgate.storage import create_storage_backend

logger = logging.getLogger(__name__)

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


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: GatewayConfig) -> FastAPI:
    """Create and configure the udlgate FastAPI application.

    The configuration is immutable and injected here once: the auth gate is
    built from it and handed to the router, and the lifespan hook opens the
    backing store on startup and closes it on shutdown. The gateway itself
    keeps no state between requests.

    Args:
        config: The loaded gateway configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan hook: open the backing store, close it on shutdown."""
        storage = create_storage_backend(config.storage)
        await storage.init()
        app.state.storage = storage
        logger.info("Storage backend initialized: %s", config.storage.backend)

        if not config.auth.secret:
            logger.warning("No auth secret configured; every request will be rejected")

        yield

        await storage.close()
        logger.info("Storage backend closed")

    app = FastAPI(
        title="udlgate",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config

    _register_exception_handlers(app)
    _register_middleware(app, config)

    # Wire Prometheus metrics instrumentation BEFORE the catch-all route so
    # /metrics is registered first and not shadowed.
    if config.observability.metrics:
        import udlgate.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="udlgate").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch exceptions that escaped the router and return InternalError."""
        logger.exception("Unhandled exception outside the router")
        return JSONResponse(content=error_body(InternalError()), status_code=500)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI, config: GatewayConfig) -> None:
    """Register the request logging middleware on the FastAPI app."""

    # Paths to suppress from per-request logging
    _QUIET_PATHS = {"/metrics", "/health"}

    metrics_enabled = config.observability.metrics

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next) -> Response:
        """Assign a request id, log one line per request, count bytes.

        Generates a 16-char uppercase hex request id, stores it on
        request.state and returns it in the ``X-Request-Id`` header.
        """
        request_id = secrets.token_hex(8).upper()
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["X-Request-Id"] = request_id

        if metrics_enabled:
            import udlgate.metrics as _m

            if _m.bytes_received_total is not None:
                _m.bytes_received_total.inc(_content_length(request.headers))
            if _m.bytes_sent_total is not None:
                _m.bytes_sent_total.inc(_content_length(response.headers))

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
                    "operation": getattr(request.state, "operation", None),
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )

        return response


def _content_length(headers) -> int:
    """Return a Content-Length header as an int, or 0 if absent or malformed."""
    try:
        return max(int(headers.get("content-length", 0)), 0)
    except (ValueError, TypeError):
        return 0


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: GatewayConfig) -> None:
    """Register the health check (when enabled) and the gateway catch-all.

    Args:
        app: The FastAPI application to attach routes to.
        config: The gateway configuration.
    """
    router = Router(app, AuthGate(config.auth.secret))
    app.state.router = router

    if config.observability.health_check:

        @app.get("/health")
        async def health_check() -> Response:
            """Liveness probe. Unauthenticated; reports only that the process is up."""
            return JSONResponse(content={"status": "ok"})

    async def gateway(request: Request) -> Response:
        """Hand every other request to the router."""
        result = await router.dispatch(request)

        if config.observability.metrics:
            import udlgate.metrics as _metrics

            _metrics.record_operation(request.state.operation, result.status)

        return to_response(result)

    # No method list: every method, standard or not, reaches the auth gate.
    app.add_route("/{path:path}", gateway, include_in_schema=False)
