"""Time-windowed duplicate suppression for chat messages."""

from __future__ import annotations

import time
from typing import Callable

DEDUPE_WINDOW_SECONDS = 5.0

Fingerprint = tuple[str, str, str]


def fingerprint(sender: str | None, destination: str | None, content: str | None) -> Fingerprint:
    return (sender or "", destination or "", content or "")


class RecentMessages:
    """Fingerprint -> first-seen time, evicted lazily on access."""

    def __init__(
        self,
        window_seconds: float = DEDUPE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._clock = clock
        self._seen: dict[Fingerprint, float] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def _evict(self, now: float) -> None:
        cutoff = now - self._window
        # insertion order is time order
        for key in list(self._seen):
            if self._seen[key] > cutoff:
                break
            del self._seen[key]

    def seen(self, key: Fingerprint) -> bool:
        now = self._clock()
        self._evict(now)
        return key in self._seen

    def remember(self, key: Fingerprint) -> None:
        now = self._clock()
        self._evict(now)
        self._seen.pop(key, None)
        self._seen[key] = now

    def check_and_remember(self, key: Fingerprint) -> bool:
        """True when the key is new within the window, recording it."""
        if self.seen(key):
            return False
        self.remember(key)
        return True
