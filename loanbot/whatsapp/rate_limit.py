"""Per-sender sliding-window limit applied before events reach the bot."""
from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow at most *max_events* per sender inside *window* seconds.

    Every inbound event counts, whether or not the conversation would
    later accept it.
    """

    def __init__(
        self,
        max_events: int = 30,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max_events
        self.window = window
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}

    def allow(self, sender_id: str, now: Optional[float] = None) -> bool:
        now = self._clock() if now is None else now
        hits = self._hits.setdefault(sender_id, deque())
        while hits and now - hits[0] >= self.window:
            hits.popleft()
        if len(hits) >= self.max_events:
            logger.warning("Rate limit exceeded for %s", sender_id)
            return False
        hits.append(now)
        return True

    def prune(self, now: Optional[float] = None) -> int:
        """Forget senders with no hits inside the window."""
        now = self._clock() if now is None else now
        stale = [
            sid for sid, hits in self._hits.items()
            if not hits or now - hits[-1] >= self.window
        ]
        for sid in stale:
            del self._hits[sid]
        return len(stale)
