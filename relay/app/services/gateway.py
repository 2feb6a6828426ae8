"""Proxy pipeline: admission, cache lookup, upstream fetch, cache write.

The order is fixed. A denied client neither reads nor fills the cache, and
a cache hit costs admission budget but no upstream request. Writes are
idempotent: a concurrent fetch of the same URL simply overwrites the entry
with equivalent content.
"""

from dataclasses import dataclass
from typing import Optional

import httpx

from relay.app.core.logging import get_log_context, get_logger
from relay.app.core.utils import extract_domain
from relay.app.exceptions import MissingTarget
from relay.app.services.admission import AdmissionController
from relay.app.services.response_cache import ResponseCache
from relay.app.services.upstream import UpstreamFetcher

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProxyResponse:
    """Terminal successful outcome of one proxied request."""
    status_code: int
    content: bytes
    content_type: Optional[str]
    cache_hit: bool = False


class ProxyGateway:
    """Composes the admission controller, response cache and fetcher."""

    def __init__(
        self,
        admission: AdmissionController,
        cache: ResponseCache,
        fetcher: UpstreamFetcher,
    ):
        self.admission = admission
        self.cache = cache
        self.fetcher = fetcher

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None) -> "ProxyGateway":
        return cls(
            admission=AdmissionController.from_settings(),
            cache=ResponseCache.from_settings(),
            fetcher=UpstreamFetcher.from_settings(http_client),
        )

    async def handle(
        self,
        target_url: Optional[str],
        client_id: str,
        request_id: Optional[str] = None,
    ) -> ProxyResponse:
        """Serve one proxy request.

        Args:
            target_url: URL to fetch (raw query value, used verbatim as cache key)
            client_id: Client identity for admission control
            request_id: Request ID for log correlation

        Returns:
            ProxyResponse from cache or upstream

        Raises:
            ProxyError: missing target, admission denial or classified upstream failure
        """
        if not target_url:
            raise MissingTarget()

        domain = extract_domain(target_url)
        log_context = get_log_context(request_id=request_id, client_id=client_id, target_host=domain)

        decision = await self.admission.admit(client_id, domain)
        if not decision.allowed:
            raise decision.to_error()

        cached = await self.cache.lookup(target_url)
        if cached is not None:
            logger.debug("Serving cached response", extra={**log_context, "cache": "HIT"})
            return ProxyResponse(
                status_code=cached.status_code,
                content=cached.payload,
                content_type=cached.content_type,
                cache_hit=True,
            )

        upstream = await self.fetcher.fetch(target_url)
        if upstream.is_success:
            await self.cache.store(
                target_url, upstream.content, upstream.content_type, upstream.status_code
            )

        logger.info(
            f"Fetched upstream: {upstream.status_code}",
            extra={**log_context, "cache": "MISS", "status_code": upstream.status_code},
        )
        return ProxyResponse(
            status_code=upstream.status_code,
            content=upstream.content,
            content_type=upstream.content_type,
        )
