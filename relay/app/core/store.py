"""State store abstraction for the relay's in-memory maps.

Rate windows and cached responses live behind this interface so that the
admission controller and the response cache can be exercised with a
deterministic clock and inspected in tests without module-level globals.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Generic, Iterator, Optional, Tuple, TypeVar

V = TypeVar("V")


class StateStore(ABC, Generic[V]):
    """Abstract keyed store.

    Values are treated as immutable: callers replace an entry wholesale with
    ``set`` instead of mutating it in place.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[V]:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: V) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""

    @abstractmethod
    def sweep(self, is_stale: Callable[[V], bool]) -> int:
        """Remove every entry for which ``is_stale`` returns True.

        Returns:
            Number of entries removed.
        """

    @abstractmethod
    def items(self) -> Iterator[Tuple[str, V]]:
        """Iterate over a snapshot of the stored items."""

    @abstractmethod
    def clear(self) -> None:
        """Remove all entries."""

    @abstractmethod
    def __len__(self) -> int:
        pass


class InMemoryStore(StateStore[V]):
    """Dictionary-backed store.

    Data is process-local and lost on restart.
    """

    def __init__(self) -> None:
        self._data: Dict[str, V] = {}

    def get(self, key: str) -> Optional[V]:
        return self._data.get(key)

    def set(self, key: str, value: V) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def sweep(self, is_stale: Callable[[V], bool]) -> int:
        stale_keys = [key for key, value in self._data.items() if is_stale(value)]
        for key in stale_keys:
            del self._data[key]
        return len(stale_keys)

    def items(self) -> Iterator[Tuple[str, V]]:
        return iter(list(self._data.items()))

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)
