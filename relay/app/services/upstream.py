"""Outbound fetches to third-party origins.

Requests are dressed up as a generic browser: a user agent picked at random
for every request from a fixed pool, generic Accept headers and a search
engine referrer. This only defeats naive bot heuristics and is not a
security boundary.

Every outcome is either an ``UpstreamResponse`` (any status below 500 other
than 429) or a classified ``ProxyError``. The fetcher never retries.
"""

import asyncio
import random
import socket
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Callable, Dict, Optional, Sequence

import httpx

from relay.app.core.config import settings
from relay.app.core.http_client import get_http_client
from relay.app.core.logging import get_logger
from relay.app.core.utils import extract_domain
from relay.app.exceptions import (
    GatewayUnreachable,
    RequestSetupFailed,
    UpstreamError,
    UpstreamRateLimited,
    UpstreamTimeout,
)

logger = get_logger(__name__)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/15.0 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:90.0) Gecko/20100101 Firefox/90.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/92.0.4515.107 Safari/537.36",
)

DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.5"
DEFAULT_REFERER = "https://www.google.com/"

# Picks one user agent from the pool
UserAgentChooser = Callable[[Sequence[str]], str]


@dataclass(frozen=True)
class UpstreamResponse:
    """A deliverable upstream response."""
    status_code: int
    content: bytes
    content_type: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


def parse_retry_after(value: Optional[str], default: int) -> int:
    """Parse a Retry-After header into whole seconds.

    Accepts delta-seconds or an HTTP-date. Falls back to ``default`` when
    the header is absent or unparseable.

    Examples:
        >>> parse_retry_after("5", 60)
        5
        >>> parse_retry_after(None, 60)
        60
        >>> parse_retry_after("soon", 60)
        60
    """
    if value is None:
        return default
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0, int(delta + 0.999))


def _caused_by(exc: BaseException, error_type: type) -> bool:
    """Walk the exception chain looking for ``error_type``."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, error_type):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def _is_dns_failure(exc: BaseException) -> bool:
    if _caused_by(exc, socket.gaierror):
        return True
    message = str(exc).lower()
    return any(
        marker in message
        for marker in ("name or service not known", "nodename nor servname", "getaddrinfo failed", "name resolution")
    )


def _is_tls_failure(exc: BaseException) -> bool:
    return _caused_by(exc, ssl.SSLError) or "[ssl" in str(exc).lower()


class UpstreamFetcher:
    """Performs one outbound GET and classifies the outcome."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        default_retry_after: int = 60,
        user_agents: Sequence[str] = USER_AGENTS,
        choose_user_agent: UserAgentChooser = random.choice,
    ):
        """Initialize the fetcher.

        Args:
            http_client: Client to use (defaults to the shared lifespan client)
            timeout: Bound on the whole exchange in seconds
            default_retry_after: Seconds reported when upstream 429 has no Retry-After
            user_agents: Pool of user agent strings
            choose_user_agent: Selection function over the pool
        """
        self._http_client = http_client
        self.timeout = timeout
        self.default_retry_after = default_retry_after
        self.user_agents = tuple(user_agents)
        self._choose_user_agent = choose_user_agent

    @classmethod
    def from_settings(cls, http_client: Optional[httpx.AsyncClient] = None) -> "UpstreamFetcher":
        return cls(
            http_client=http_client,
            timeout=settings.upstream_timeout,
            default_retry_after=settings.upstream_default_retry_after,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        return get_http_client()

    def build_headers(self) -> Dict[str, str]:
        """Browser-like headers; the user agent changes on every call."""
        return {
            "User-Agent": self._choose_user_agent(self.user_agents),
            "Accept": DEFAULT_ACCEPT,
            "Accept-Language": DEFAULT_ACCEPT_LANGUAGE,
            "Referer": DEFAULT_REFERER,
        }

    async def fetch(self, target_url: str) -> UpstreamResponse:
        """Fetch ``target_url``.

        Returns:
            UpstreamResponse for any status below 500 except 429

        Raises:
            UpstreamRateLimited: upstream answered 429
            UpstreamError: upstream answered 5xx
            UpstreamTimeout: the exchange exceeded the timeout
            GatewayUnreachable: connection refused or no response received
            RequestSetupFailed: DNS failure, bad URL, redirect loop, other transport errors
        """
        client = self._get_client()
        host = extract_domain(target_url)
        try:
            response = await asyncio.wait_for(
                client.get(target_url, headers=self.build_headers()),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(
                f"Upstream timeout: {type(e).__name__}",
                extra={"target_host": host, "error_kind": UpstreamTimeout.kind},
            )
            raise UpstreamTimeout() from e
        except httpx.ConnectError as e:
            if _is_dns_failure(e):
                logger.warning(
                    f"Upstream name resolution failed: {e}",
                    extra={"target_host": host, "error_kind": RequestSetupFailed.kind},
                )
                raise RequestSetupFailed(str(e) or "Could not resolve host") from e
            if _is_tls_failure(e):
                logger.warning(
                    f"Upstream TLS handshake failed: {e}",
                    extra={"target_host": host, "error_kind": RequestSetupFailed.kind},
                )
                raise RequestSetupFailed(str(e) or "TLS handshake failed") from e
            logger.warning(
                f"Upstream refused connection: {e}",
                extra={"target_host": host, "error_kind": GatewayUnreachable.kind},
            )
            raise GatewayUnreachable() from e
        except (httpx.RemoteProtocolError, httpx.ReadError) as e:
            logger.warning(
                f"Upstream sent no response: {e}",
                extra={"target_host": host, "error_kind": GatewayUnreachable.kind},
            )
            raise GatewayUnreachable(no_response=True) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                f"Upstream request failed: {type(e).__name__}: {e}",
                extra={"target_host": host, "error_kind": RequestSetupFailed.kind},
            )
            raise RequestSetupFailed(str(e) or type(e).__name__) from e

        status = response.status_code
        if status == 429:
            retry_after = parse_retry_after(
                response.headers.get("retry-after"), self.default_retry_after
            )
            logger.info(
                "Upstream rate limited",
                extra={"target_host": host, "error_kind": UpstreamRateLimited.kind, "retry_after": retry_after},
            )
            raise UpstreamRateLimited(retry_after)
        if status >= 500:
            logger.info(
                f"Upstream returned {status}",
                extra={"target_host": host, "error_kind": UpstreamError.kind, "status_code": status},
            )
            raise UpstreamError(status, response.reason_phrase or "")

        return UpstreamResponse(
            status_code=status,
            content=response.content,
            content_type=response.headers.get("content-type"),
        )
