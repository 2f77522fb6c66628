import threading
import time
from dataclasses import dataclass


@dataclass
class RateLimitConfig:
    max_requests: int = 5
    window_seconds: int = 60


class RateLimiter:
    """Sliding-window limiter keyed by caller.

    Keys with no hit inside the window are dropped at most once per window,
    so memory stays bounded by the callers seen in the last window.
    """

    def __init__(self, config: RateLimitConfig) -> None:
        self._config = config
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._last_prune: float | None = None

    def allow(self, key: str, now: float | None = None) -> bool:
        now = time.monotonic() if now is None else now
        window_start = now - self._config.window_seconds
        with self._lock:
            if self._last_prune is None or now - self._last_prune >= self._config.window_seconds:
                self._prune_locked(window_start)
                self._last_prune = now
            hits = [t for t in self._hits.get(key, []) if t >= window_start]
            if len(hits) >= self._config.max_requests:
                self._hits[key] = hits
                return False
            hits.append(now)
            self._hits[key] = hits
            return True

    def prune(self, now: float | None = None) -> int:
        now = time.monotonic() if now is None else now
        with self._lock:
            self._last_prune = now
            return self._prune_locked(now - self._config.window_seconds)

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
            self._last_prune = None

    def _prune_locked(self, window_start: float) -> int:
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] < window_start]
        for key in stale:
            del self._hits[key]
        return len(stale)
