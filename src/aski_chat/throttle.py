"""Per-chat debounce for read-mark requests."""

from __future__ import annotations

import time
from collections.abc import Callable

DEFAULT_READ_WINDOW = 1.5


class ReadThrottle:
    """Suppresses read marks for a chat that is in flight or was marked recently.

    ``clock`` must be monotonic; tests substitute a fake.
    """

    def __init__(
        self,
        window: float = DEFAULT_READ_WINDOW,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.window = window
        self._clock = clock
        self._in_flight: set[str] = set()
        self._last_marked: dict[str, float] = {}

    def is_in_flight(self, chat_id: str) -> bool:
        return chat_id in self._in_flight

    def last_marked(self, chat_id: str) -> float | None:
        return self._last_marked.get(chat_id)

    def try_acquire(self, chat_id: str) -> bool:
        """Claim the slot for ``chat_id``. False means the request must be dropped."""
        if chat_id in self._in_flight:
            return False
        last = self._last_marked.get(chat_id)
        if last is not None and self._clock() - last < self.window:
            return False
        self._in_flight.add(chat_id)
        return True

    def release(self, chat_id: str, *, success: bool) -> None:
        self._in_flight.discard(chat_id)
        if success:
            self._last_marked[chat_id] = self._clock()

    def reset(self) -> None:
        self._in_flight.clear()
        self._last_marked.clear()
