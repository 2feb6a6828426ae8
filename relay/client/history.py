"""Browser-style navigation history."""

from typing import List, Optional


class History:
    """Ordered list of visited URLs with a current position.

    Pushing while not at the tail discards every entry after the current
    position first. Moving back and forward only changes the position.
    """

    def __init__(self) -> None:
        self._entries: List[str] = []
        self._index = -1

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> Optional[str]:
        if self._index < 0:
            return None
        return self._entries[self._index]

    @property
    def can_go_back(self) -> bool:
        return self._index > 0

    @property
    def can_go_forward(self) -> bool:
        return self._index < len(self._entries) - 1

    def push(self, url: str) -> None:
        del self._entries[self._index + 1:]
        self._entries.append(url)
        self._index = len(self._entries) - 1

    def back(self) -> Optional[str]:
        """Step back one entry; returns the new current URL or None."""
        if not self.can_go_back:
            return None
        self._index -= 1
        return self.current

    def forward(self) -> Optional[str]:
        """Step forward one entry; returns the new current URL or None."""
        if not self.can_go_forward:
            return None
        self._index += 1
        return self.current

    def __len__(self) -> int:
        return len(self._entries)
