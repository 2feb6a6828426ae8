"""Retry policy for the navigation engine.

The relay never retries upstream requests itself; all retry decisions are
made on the client side with this policy.
"""

from dataclasses import dataclass, field
from typing import FrozenSet

from relay.app.exceptions import GatewayUnreachable, UpstreamError, UpstreamTimeout

# Kind reported for a load that failed at the transport level
LOAD_FAILED = "load_failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for client retries.

    Attributes:
        max_retries: Scheduled retries before a navigation fails (default: 3)
        base_delay: Delay before the first retry in seconds (default: 1.0)
        max_delay: Cap on the exponential delay in seconds (default: 10.0)
        exponential_base: Base for exponential calculation (default: 2.0)
        rate_limit_max_delay: Cap on a server-provided cooldown (default: 60.0)
        retryable_kinds: Error kinds handled with exponential backoff

    Example:
        >>> policy = RetryPolicy()
        >>> policy.calculate_delay(attempt=2)
        4.0
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    rate_limit_max_delay: float = 60.0
    retryable_kinds: FrozenSet[str] = field(
        default_factory=lambda: frozenset({
            LOAD_FAILED,
            UpstreamTimeout.kind,
            GatewayUnreachable.kind,
            UpstreamError.kind,
        })
    )

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1``.

        delay = min(base_delay * (exponential_base ^ attempt), max_delay)

        Args:
            attempt: Retries already scheduled for this navigation (0-indexed)
        """
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)

    def cooldown_delay(self, retry_after: float) -> float:
        """Delay honouring a server-provided cooldown, capped."""
        return min(max(retry_after, 0.0), self.rate_limit_max_delay)

    def is_retryable(self, kind: str) -> bool:
        return kind in self.retryable_kinds
