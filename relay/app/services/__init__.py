"""Services package for the relay.

This package provides:
- Admission control (per-client and per-domain fixed windows)
- Response cache for successful upstream responses
- Upstream fetcher with failure classification
- The proxy gateway composing the three
"""

from relay.app.services.admission import (
    AdmissionController,
    AdmissionDecision,
    AdmissionScope,
    RateWindow,
)
from relay.app.services.gateway import ProxyGateway, ProxyResponse
from relay.app.services.response_cache import CacheEntry, ResponseCache
from relay.app.services.upstream import (
    USER_AGENTS,
    UpstreamFetcher,
    UpstreamResponse,
    parse_retry_after,
)

__all__ = [
    # Admission
    "AdmissionController",
    "AdmissionDecision",
    "AdmissionScope",
    "RateWindow",
    # Cache
    "CacheEntry",
    "ResponseCache",
    # Upstream
    "USER_AGENTS",
    "UpstreamFetcher",
    "UpstreamResponse",
    "parse_retry_after",
    # Gateway
    "ProxyGateway",
    "ProxyResponse",
]
