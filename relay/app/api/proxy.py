"""Proxy endpoints for the relay."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from relay.app.core.config import settings
from relay.app.core.utils import get_client_id
from relay.app.middleware.request_id import get_request_id
from relay.app.services.gateway import ProxyGateway, ProxyResponse

router = APIRouter()

PROXY_ALIAS_PATH = "/proxy"


def get_gateway(request: Request) -> ProxyGateway:
    """FastAPI dependency returning the gateway built during lifespan startup."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Proxy gateway not initialized. Ensure lifespan context is active.")
    return gateway


def build_response(result: ProxyResponse) -> Response:
    """Mirror the upstream status, body and content type.

    No Content-Type header is set when the upstream sent none. Passing it
    as a raw header keeps Starlette from appending a charset.
    """
    headers = {"X-Cache": "HIT" if result.cache_hit else "MISS"}
    if result.content_type:
        headers["Content-Type"] = result.content_type
    return Response(
        content=result.content,
        status_code=result.status_code,
        headers=headers,
    )


async def proxy(
    request: Request,
    url: Optional[str] = Query(default=None, description="Percent-encoded target URL"),
    gateway: ProxyGateway = Depends(get_gateway),
) -> Response:
    """Fetch ``url`` on behalf of the caller.

    Errors are raised as ProxyError and rendered by the application's
    exception handler.
    """
    client_id = get_client_id(request, settings.trust_forwarded_for)
    result = await gateway.handle(url, client_id, request_id=get_request_id(request))
    return build_response(result)


router.add_api_route(settings.proxy_path, proxy, methods=["GET"], response_model=None)
if settings.proxy_path != PROXY_ALIAS_PATH:
    router.add_api_route(PROXY_ALIAS_PATH, proxy, methods=["GET"], response_model=None)


@router.get("/api")
async def api_root() -> dict[str, str]:
    """Usage hint for the proxy API."""
    return {
        "message": f"Proxy server is running. Use {settings.proxy_path}?url=YOUR_URL to proxy requests."
    }
