from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay.app.api.proxy import router as proxy_router
from relay.app.core.config import settings
from relay.app.core.http_client import init_http_client
from relay.app.core.logging import get_logger, setup_logging
from relay.app.exceptions import ProxyError
from relay.app.middleware.request_id import RequestIdMiddleware, get_request_id
from relay.app.services.gateway import ProxyGateway


def create_app(gateway: Optional[ProxyGateway] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        gateway: Pre-built proxy gateway. When omitted, one is built from
            settings on startup around the shared HTTP client.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the gateway on startup and close the HTTP pool on shutdown."""
        if gateway is not None:
            app.state.gateway = gateway
            logger.info("Application startup complete (injected gateway)")
            yield
        else:
            async with init_http_client() as http_client:
                app.state.gateway = ProxyGateway.from_settings(http_client)
                logger.info(
                    "Application startup complete",
                    extra={
                        "proxy_path": settings.proxy_path,
                        "client_limit": settings.rate_limit_client_max,
                        "domain_limit": settings.rate_limit_domain_max,
                        "cache_ttl_seconds": settings.cache_ttl_seconds,
                        "debug_mode": settings.debug,
                    },
                )
                yield
        app.state.gateway = None
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Frame Relay",
        description="Fetch relay with admission control, response caching and upstream error classification",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Middleware order: last added = first executed
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Cache", "X-Proxy-Error", "Retry-After"],
        max_age=600,
    )

    app.include_router(proxy_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with in-memory state sizes."""
        relay: Optional[ProxyGateway] = getattr(request.app.state, "gateway", None)
        if relay is None:
            return {"status": "degraded", "components": {"gateway": {"status": "error"}}}
        return {
            "status": "ok",
            "components": {
                "gateway": {"status": "ok"},
                "cache": {
                    "status": "ok",
                    "entries": len(relay.cache),
                    "max_entries": relay.cache.max_entries,
                },
                "admission": {
                    "status": "ok",
                    "windows": len(relay.admission.backend),
                },
            },
        }

    @app.exception_handler(ProxyError)
    async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
        """Render a ProxyError as its JSON body and status."""
        headers = {"X-Proxy-Error": exc.kind}
        if exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Log unexpected failures; never send a traceback to the client."""
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "details": str(exc) if settings.debug else "Internal server error",
                "request_id": request_id,
            },
            headers={"X-Proxy-Error": "internal_error"},
        )

    return app


# Create the application instance
app = create_app()
