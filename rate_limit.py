import threading
import time
from collections import deque
from typing import Callable, MutableMapping, Optional


class SlidingWindowRateLimiter:
    """Allows at most ``limit`` attempts per key within a rolling ``window_secs``.

    Every call to :meth:`try_consume` counts as an attempt, whether or not the
    caller's operation later succeeds. The clock and the per-key storage are
    injectable so tests can drive time explicitly.
    """

    def __init__(
        self,
        limit: int,
        window_secs: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        storage: Optional[MutableMapping[str, deque]] = None,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window_secs = window_secs
        self._clock = clock
        self._hits: MutableMapping[str, deque] = storage if storage is not None else {}
        self._lock = threading.Lock()
        self._last_sweep: Optional[float] = None

    def _prune(self, hits: deque, now: float) -> None:
        cutoff = now - self.window_secs
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _sweep(self, now: float) -> None:
        # Drops keys whose attempts have all left the window, at most once per window.
        if self._last_sweep is not None and now - self._last_sweep < self.window_secs:
            return
        self._last_sweep = now
        for key in list(self._hits):
            hits = self._hits[key]
            self._prune(hits, now)
            if not hits:
                del self._hits[key]

    def try_consume(self, key: str) -> bool:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            hits = self._hits.get(key)
            if hits is None:
                hits = deque()
                self._hits[key] = hits
            self._prune(hits, now)
            if len(hits) >= self.limit:
                return False
            hits.append(now)
            return True

    def remaining(self, key: str) -> int:
        with self._lock:
            hits = self._hits.get(key)
            if not hits:
                return self.limit
            self._prune(hits, self._clock())
            if not hits:
                del self._hits[key]
                return self.limit
            return max(self.limit - len(hits), 0)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)
