"""Core utilities for the relay application."""

from relay.app.core.config import settings
from relay.app.core.logging import get_logger, setup_logging
from relay.app.core.store import InMemoryStore, StateStore

__all__ = [
    "settings",
    "get_logger",
    "setup_logging",
    "StateStore",
    "InMemoryStore",
]
