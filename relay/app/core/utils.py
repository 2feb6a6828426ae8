"""Utility functions for the relay application."""

import time
from typing import Callable, Optional
from urllib.parse import urlsplit

from fastapi import Request

# Wall-clock source in milliseconds; injected wherever time matters
Clock = Callable[[], float]


def now_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Return the hostname of an absolute URL, or None if it cannot be parsed.

    Examples:
        >>> extract_domain("https://Example.com:8443/path?q=1")
        'example.com'
        >>> extract_domain("example.com") is None
        True
    """
    if not url:
        return None
    try:
        parts = urlsplit(url)
        # Accessing .port validates it and raises ValueError when malformed
        parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname:
        return None
    return parts.hostname


def get_client_id(request: Request, trust_forwarded_for: bool = False) -> str:
    """Resolve the client identity used for admission control.

    Args:
        request: Incoming request
        trust_forwarded_for: Use the first X-Forwarded-For hop when present

    Returns:
        Client address string ("unknown" when the transport exposes none)
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    return request.client.host if request.client else "unknown"
