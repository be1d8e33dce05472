from __future__ import annotations

import time
from typing import Callable, Dict, List


class RateLimiter:
    """
    Per-user sliding-window request counter.

    Checking and recording are separate calls: a rejected attempt is never
    recorded. Old timestamps are pruned on every check, no sweep task.
    """

    def __init__(
        self,
        *,
        max_requests: int,
        window_sec: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max = max_requests
        self._window = window_sec
        self._clock = clock
        self._requests: Dict[str, List[float]] = {}

    def is_rate_limited(self, user_id: str) -> bool:
        now = self._clock()
        recent = [t for t in self._requests.get(user_id, []) if now - t < self._window]
        self._requests[user_id] = recent
        return len(recent) >= self._max

    def record_request(self, user_id: str) -> None:
        self._requests.setdefault(user_id, []).append(self._clock())
