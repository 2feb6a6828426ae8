"""Shared HTTP client for outbound upstream fetches.

The client is created on application startup and shared across requests
for connection reuse. Redirect following and the redirect bound are
configured here so every upstream fetch gets the same policy.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from relay.app.core.config import settings


_shared_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client instance.

    Raises:
        RuntimeError: If the HTTP client has not been initialized.
    """
    if _shared_http_client is None:
        raise RuntimeError(
            "HTTP client not initialized. Ensure lifespan context is active."
        )
    return _shared_http_client


def create_http_client(**kwargs) -> httpx.AsyncClient:
    """Create an upstream HTTP client with the configured limits.

    Args:
        **kwargs: Overrides. Can include:
            - timeout: Per-operation timeout in seconds
            - max_redirects: Redirects followed before giving up
            - max_connections / max_keepalive_connections / keepalive_expiry
            - transport: Custom httpx transport (used by tests)

    Returns:
        A new httpx.AsyncClient. The caller is responsible for closing it.
    """
    config = {
        "timeout": httpx.Timeout(kwargs.get("timeout", settings.upstream_timeout)),
        "follow_redirects": True,
        "max_redirects": kwargs.get("max_redirects", settings.upstream_max_redirects),
        "limits": httpx.Limits(
            max_connections=kwargs.get(
                "max_connections", settings.httpx_max_connections
            ),
            max_keepalive_connections=kwargs.get(
                "max_keepalive_connections", settings.httpx_max_keepalive_connections
            ),
            keepalive_expiry=kwargs.get(
                "keepalive_expiry", settings.httpx_keepalive_expiry
            ),
        ),
    }
    if "transport" in kwargs:
        config["transport"] = kwargs["transport"]
    return httpx.AsyncClient(**config)


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Initialize and yield the shared HTTP client.

    Meant for the FastAPI lifespan:

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with init_http_client():
                yield
    """
    global _shared_http_client

    _shared_http_client = create_http_client()

    try:
        yield _shared_http_client
    finally:
        if _shared_http_client is not None:
            await _shared_http_client.aclose()
            _shared_http_client = None
