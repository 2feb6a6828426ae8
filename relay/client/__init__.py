"""Client side of the relay: navigation history and the load/retry engine."""

from relay.client.history import History
from relay.client.loader import (
    GatewayErrorPayload,
    HttpLoadSurface,
    LoadSurface,
)
from relay.client.navigator import FetchState, NavigationEngine, Phase
from relay.client.retry import RetryPolicy
from relay.client.scheduler import AsyncioScheduler, ScheduledTask, Scheduler
from relay.client.sites import (
    ALTERNATIVE_SITES,
    HOME_URL,
    POPULAR_SITES,
    Site,
    build_proxy_url,
    format_countdown,
    resolve_input,
)

__all__ = [
    "History",
    "GatewayErrorPayload",
    "HttpLoadSurface",
    "LoadSurface",
    "FetchState",
    "NavigationEngine",
    "Phase",
    "RetryPolicy",
    "AsyncioScheduler",
    "ScheduledTask",
    "Scheduler",
    "ALTERNATIVE_SITES",
    "HOME_URL",
    "POPULAR_SITES",
    "Site",
    "build_proxy_url",
    "format_countdown",
    "resolve_input",
]
