"""Custom exceptions for the relay application.

Every failure the proxy endpoint can report is a ``ProxyError`` subclass
carrying its HTTP status, a machine-readable kind and a human-readable
detail string. A single exception handler turns them into JSON bodies.
"""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base class for proxy failures with HTTP status code.

    Subclasses define ``kind``, ``status_code`` and a default message.
    """
    kind: str = "proxy_error"
    status_code: int = 500
    default_message: str = "Proxy error"

    def __init__(
        self,
        details: str = "",
        message: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        self.retry_after = retry_after
        super().__init__(f"{self.message}: {details}" if details else self.message)

    def to_response(self) -> Dict[str, Any]:
        """Convert to the JSON error body sent to clients."""
        body: Dict[str, Any] = {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        return body


class MissingTarget(ProxyError):
    """Raised when the request carries no target URL.

    Maps to HTTP 400 Bad Request.
    """
    kind = "missing_target"
    status_code = 400
    default_message = "URL parameter is required"


class ClientRateLimited(ProxyError):
    """Raised when a client exceeds its request budget.

    Maps to HTTP 429 Too Many Requests.
    """
    kind = "client_rate_limited"
    status_code = 429
    default_message = "Too many requests from your IP"

    def __init__(self, retry_after: int):
        super().__init__("Please try again later", retry_after=retry_after)


class DomainRateLimited(ProxyError):
    """Raised when a client exceeds its budget against one target domain.

    Maps to HTTP 429 Too Many Requests.
    """
    kind = "domain_rate_limited"
    status_code = 429
    default_message = "Too many requests to this domain"

    def __init__(self, domain: str, retry_after: int):
        self.domain = domain
        super().__init__(
            f"You've made too many requests to {domain}. "
            "Please try again later or try a different site.",
            retry_after=retry_after,
        )


class UpstreamRateLimited(ProxyError):
    """Raised when the target website answers 429.

    Maps to HTTP 429 Too Many Requests.
    """
    kind = "upstream_rate_limited"
    status_code = 429
    default_message = "The target website is rate limiting requests"

    def __init__(self, retry_after: int):
        super().__init__(
            "Too many requests to the target website. "
            "Please try again later or try a different site.",
            retry_after=retry_after,
        )


class UpstreamError(ProxyError):
    """Raised when the target website answers with a 5xx status.

    The upstream status is passed through as the response status.
    """
    kind = "upstream_error"

    def __init__(self, status: int, details: str = ""):
        self.status_code = status
        super().__init__(
            details or f"Upstream responded with HTTP {status}",
            message=f"The target website returned a {status} error",
        )


class UpstreamTimeout(ProxyError):
    """Raised when the upstream exchange exceeds the fetch timeout.

    Maps to HTTP 504 Gateway Timeout.
    """
    kind = "timeout"
    status_code = 504
    default_message = "Request timeout"

    def __init__(self, details: str = "The target website took too long to respond"):
        super().__init__(details)


class GatewayUnreachable(ProxyError):
    """Raised when the target refuses the connection or sends no response.

    A refused connection maps to HTTP 503; a connection that produced no
    response maps to HTTP 504.
    """
    kind = "gateway_unreachable"
    status_code = 503
    default_message = "Service unavailable"

    def __init__(self, details: str = "", no_response: bool = False):
        if no_response:
            self.status_code = 504
            super().__init__(
                details or "The target website did not respond",
                message="Gateway timeout",
            )
        else:
            super().__init__(details or "The target server refused the connection")


class RequestSetupFailed(ProxyError):
    """Raised for any other failure building or sending the request.

    Covers DNS failures, malformed or unsupported URLs and redirect loops.
    Maps to HTTP 500 Internal Server Error.
    """
    kind = "request_setup_failed"
    status_code = 500
    default_message = "Failed to fetch the requested URL"


RATE_LIMIT_KINDS = frozenset({
    ClientRateLimited.kind,
    DomainRateLimited.kind,
    UpstreamRateLimited.kind,
})
