"""Admission control for the proxy endpoint.

Two fixed windows gate every proxied request: one per client identity and
one per (client, target domain) pair. The domain window has a smaller
capacity so a single client cannot spend its whole budget on one origin.

A window resets the first time it is touched after ``window_start + W``.
A client can burst up to twice the capacity across a window boundary.
Stale windows are reclaimed by a low-probability sweep run inline on
admitted requests.
"""

import asyncio
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from relay.app.core.config import settings
from relay.app.core.logging import get_logger
from relay.app.core.store import InMemoryStore, StateStore
from relay.app.core.utils import Clock, now_ms
from relay.app.exceptions import ClientRateLimited, DomainRateLimited, ProxyError

logger = get_logger(__name__)


class AdmissionScope(str, Enum):
    """Which window denied a request."""
    CLIENT = "client"
    DOMAIN = "domain"


@dataclass(frozen=True)
class RateWindow:
    """Fixed-window counter state for one key."""
    count: int
    window_start: float  # milliseconds


@dataclass(frozen=True)
class AdmissionDecision:
    """Result of an admission check."""
    allowed: bool
    scope: Optional[AdmissionScope] = None
    retry_after: Optional[int] = None
    domain: Optional[str] = None

    def to_error(self) -> ProxyError:
        """Build the exception describing a denial."""
        if self.allowed:
            raise ValueError("An allowed decision has no error")
        retry_after = self.retry_after or 0
        if self.scope is AdmissionScope.DOMAIN:
            return DomainRateLimited(self.domain or "", retry_after)
        return ClientRateLimited(retry_after)


ALLOW = AdmissionDecision(allowed=True)


class AdmissionController:
    """Per-client and per-(client, domain) fixed-window rate limiter.

    Every checked request increments the counter of each window it reaches,
    denied ones included; a request is denied once a counter exceeds its
    capacity. The domain window is only consulted when the client window
    admitted the request and a domain could be parsed from the target.
    """

    def __init__(
        self,
        client_limit: int = 30,
        domain_limit: int = 10,
        window_ms: int = 60000,
        sweep_probability: float = 0.01,
        store: Optional[StateStore[RateWindow]] = None,
        clock: Clock = now_ms,
        rng: Callable[[], float] = random.random,
    ):
        """Initialize the controller.

        Args:
            client_limit: Requests allowed per client per window
            domain_limit: Requests allowed per (client, domain) per window
            window_ms: Window duration in milliseconds
            sweep_probability: Chance of sweeping stale windows per admitted request
            store: Window storage (defaults to an in-memory store)
            clock: Millisecond wall clock
            rng: Uniform [0, 1) source deciding when to sweep
        """
        self.client_limit = client_limit
        self.domain_limit = domain_limit
        self.window_ms = window_ms
        self.sweep_probability = sweep_probability
        self.backend: StateStore[RateWindow] = store if store is not None else InMemoryStore()
        self._clock = clock
        self._rng = rng
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls) -> "AdmissionController":
        return cls(
            client_limit=settings.rate_limit_client_max,
            domain_limit=settings.rate_limit_domain_max,
            window_ms=settings.rate_limit_window_ms,
            sweep_probability=settings.rate_limit_sweep_probability,
        )

    @staticmethod
    def client_key(client_id: str) -> str:
        return f"client:{client_id}"

    @staticmethod
    def domain_key(client_id: str, domain: str) -> str:
        return f"domain:{client_id}:{domain}"

    async def admit(self, client_id: str, domain: Optional[str]) -> AdmissionDecision:
        """Check and count one request.

        Args:
            client_id: Client identity (usually the source address)
            domain: Target hostname, or None when the target is unparseable

        Returns:
            ALLOW, or a denial carrying the scope and seconds until reset
        """
        async with self._lock:
            now = self._clock()

            window = self._hit(self.client_key(client_id), now)
            if window.count > self.client_limit:
                return self._deny(AdmissionScope.CLIENT, window, now, client_id, domain)

            if domain:
                window = self._hit(self.domain_key(client_id, domain), now)
                if window.count > self.domain_limit:
                    return self._deny(AdmissionScope.DOMAIN, window, now, client_id, domain)

            if self._rng() < self.sweep_probability:
                self.sweep(now)

            return ALLOW

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove windows that started more than one window duration ago."""
        now = self._clock() if now is None else now
        cutoff = now - self.window_ms
        removed = self.backend.sweep(lambda w: w.window_start < cutoff)
        if removed:
            logger.debug(f"Swept {removed} stale rate windows")
        return removed

    def _hit(self, key: str, now: float) -> RateWindow:
        window = self.backend.get(key)
        if window is None or now - window.window_start > self.window_ms:
            window = RateWindow(count=0, window_start=now)
        window = RateWindow(count=window.count + 1, window_start=window.window_start)
        self.backend.set(key, window)
        return window

    def _deny(
        self,
        scope: AdmissionScope,
        window: RateWindow,
        now: float,
        client_id: str,
        domain: Optional[str],
    ) -> AdmissionDecision:
        retry_after = math.ceil((window.window_start + self.window_ms - now) / 1000)
        # Never report more than one window
        retry_after = min(retry_after, max(self.window_ms // 1000, 1))
        logger.info(
            f"Admission denied ({scope.value} window)",
            extra={"client_id": client_id, "target_host": domain, "retry_after": retry_after},
        )
        return AdmissionDecision(
            allowed=False,
            scope=scope,
            retry_after=max(retry_after, 0),
            domain=domain,
        )
