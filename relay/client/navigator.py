"""Client navigation engine.

Drives loads through the relay from a consuming UI and reacts to the
signals coming back:

* Idle -> Loading on any explicit navigation or when a retry fires.
* Loading -> Loaded on a clean load; the attempt counter resets.
* Loading -> Retrying on a transport failure while attempts remain, after
  an exponential delay; or on a gateway rate-limit error, after the
  server-provided cooldown without touching the attempt counter.
* Loading -> Failed once retries are exhausted or on a non-retryable error.
* Retrying -> Loading when the timer fires, for the same URL.

Every load carries a token. Only signals for the latest token are honoured,
and every new navigation cancels the pending retry timer.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional, Tuple

from relay.app.exceptions import RATE_LIMIT_KINDS
from relay.client.history import History
from relay.client.loader import GatewayErrorPayload, LoadSurface
from relay.client.retry import LOAD_FAILED, RetryPolicy
from relay.client.scheduler import ScheduledTask, Scheduler
from relay.client.sites import (
    ALTERNATIVE_SITES,
    HOME_URL,
    Site,
    build_proxy_url,
    format_countdown,
    resolve_input,
)

logger = logging.getLogger(__name__)

# Alternatives offered with a terminal failure
SUGGESTION_COUNT = 3


class Phase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    RETRYING = "retrying"
    FAILED = "failed"


@dataclass(frozen=True)
class FetchState:
    """State of the current navigation. Replaced on every transition."""
    phase: Phase = Phase.IDLE
    url: Optional[str] = None
    token: int = 0
    attempt_count: int = 0
    last_error: Optional[GatewayErrorPayload] = None
    retry_deadline: Optional[float] = None
    suggestions: Tuple[Site, ...] = ()


class NavigationEngine:
    """History stack plus load/error/retry state machine."""

    def __init__(
        self,
        surface: LoadSurface,
        scheduler: Scheduler,
        policy: Optional[RetryPolicy] = None,
        proxy_path: str = "/api/proxy",
        home_url: str = HOME_URL,
        on_change: Optional[Callable[[FetchState], None]] = None,
    ):
        """Initialize the engine.

        Args:
            surface: Performs loads and reports signals back
            scheduler: Time source and cancellable delayed callbacks
            policy: Retry configuration
            proxy_path: Gateway endpoint path
            home_url: Destination of home()
            on_change: Called with the new state after every transition
        """
        self.surface = surface
        self.scheduler = scheduler
        self.policy = policy or RetryPolicy()
        self.proxy_path = proxy_path
        self.home_url = home_url
        self.history = History()
        self.state = FetchState()
        self._on_change = on_change
        self._timer: Optional[ScheduledTask] = None
        self._next_token = 0
        self._closed = False

    @property
    def current_url(self) -> Optional[str]:
        return self.state.url

    @property
    def closed(self) -> bool:
        return self._closed

    # Explicit navigation

    def mount(self) -> None:
        """Load the home page when nothing has been loaded yet."""
        if self.state.url is None:
            self.home()

    def submit(self, text: str) -> Optional[str]:
        """Navigate to address bar input. Blank input is ignored.

        Returns:
            The resolved target URL, or None when nothing was loaded
        """
        url = resolve_input(text)
        if url is None or self._closed:
            return None
        self.open(url)
        return url

    def open(self, url: str) -> None:
        """Navigate to ``url`` (preset or alternative site selection)."""
        if self._closed:
            return
        self.history.push(url)
        self._issue(url)

    def home(self) -> None:
        if self._closed:
            return
        if self.history.current != self.home_url:
            self.history.push(self.home_url)
        self._issue(self.home_url)

    def back(self) -> bool:
        if self._closed:
            return False
        url = self.history.back()
        if url is None:
            return False
        self._issue(url)
        return True

    def forward(self) -> bool:
        if self._closed:
            return False
        url = self.history.forward()
        if url is None:
            return False
        self._issue(url)
        return True

    def refresh(self) -> bool:
        """Reload the current URL with a fresh attempt budget."""
        if self._closed or self.state.url is None:
            return False
        self._issue(self.state.url)
        return True

    def close(self) -> None:
        """Unmount: cancel the pending retry and ignore any later signal."""
        self._cancel_timer()
        self._closed = True

    # Signals from the load surface

    def handle_loaded(self, token: int, error: Optional[GatewayErrorPayload] = None) -> None:
        if not self._is_current(token):
            return

        if error is None:
            self._transition(
                phase=Phase.LOADED,
                attempt_count=0,
                last_error=None,
                retry_deadline=None,
                suggestions=(),
            )
            return

        if error.kind in RATE_LIMIT_KINDS and error.retry_after is not None:
            self._schedule_retry(
                self.policy.cooldown_delay(error.retry_after),
                error,
                attempt_count=self.state.attempt_count,
            )
        elif self.policy.is_retryable(error.kind):
            self._on_failure(error)
        else:
            self._fail(error)

    def handle_load_failed(self, token: int, reason: Optional[str] = None) -> None:
        if not self._is_current(token):
            return
        self._on_failure(
            GatewayErrorPayload(
                kind=LOAD_FAILED,
                message=f"Failed to load {self.state.url}",
                details=reason or "The site may be blocking proxy access or experiencing issues.",
            )
        )

    # Countdown

    def retry_remaining(self) -> Optional[float]:
        """Seconds until the scheduled retry, or None when not retrying."""
        if self.state.phase is not Phase.RETRYING or self.state.retry_deadline is None:
            return None
        return max(0.0, self.state.retry_deadline - self.scheduler.now())

    def countdown_label(self) -> Optional[str]:
        remaining = self.retry_remaining()
        return None if remaining is None else format_countdown(remaining)

    # Internals

    def _is_current(self, token: int) -> bool:
        return not self._closed and token == self.state.token and self.state.phase is Phase.LOADING

    def _issue(self, url: str, attempt_count: int = 0) -> None:
        if self._closed:
            return
        self._cancel_timer()
        self._next_token += 1
        self.state = FetchState(
            phase=Phase.LOADING,
            url=url,
            token=self._next_token,
            attempt_count=attempt_count,
        )
        self._notify()
        self.surface.load(build_proxy_url(url, self.proxy_path), self.state.token, self)

    def _on_failure(self, error: GatewayErrorPayload) -> None:
        attempt = self.state.attempt_count
        if attempt >= self.policy.max_retries:
            self._fail(
                GatewayErrorPayload(
                    kind=error.kind,
                    message=f"Failed to load {self.state.url}",
                    details=error.details or "The site may be blocking proxy access or experiencing issues.",
                )
            )
            return
        self._schedule_retry(self.policy.calculate_delay(attempt), error, attempt_count=attempt + 1)

    def _schedule_retry(self, delay: float, error: GatewayErrorPayload, attempt_count: int) -> None:
        self._cancel_timer()
        token = self.state.token
        url = self.state.url
        self._timer = self.scheduler.schedule(delay, lambda: self._fire_retry(token, url))
        logger.info(
            f"Retrying {url} in {delay:.1f}s ({error.kind}, attempt {attempt_count}/{self.policy.max_retries})",
            extra={"error_kind": error.kind},
        )
        self._transition(
            phase=Phase.RETRYING,
            attempt_count=attempt_count,
            last_error=error,
            retry_deadline=self._timer.deadline,
        )

    def _fire_retry(self, token: int, url: Optional[str]) -> None:
        if self._closed or token != self.state.token or self.state.phase is not Phase.RETRYING:
            return
        self._timer = None
        if url is not None:
            self._issue(url, attempt_count=self.state.attempt_count)

    def _fail(self, error: GatewayErrorPayload) -> None:
        self._cancel_timer()
        logger.info(f"Navigation failed: {error.kind}", extra={"error_kind": error.kind})
        self._transition(
            phase=Phase.FAILED,
            last_error=error,
            retry_deadline=None,
            suggestions=ALTERNATIVE_SITES[:SUGGESTION_COUNT],
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _transition(self, **changes) -> None:
        self.state = replace(self.state, **changes)
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.state)
