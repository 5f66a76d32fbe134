import time
from threading import Lock

from clinic_backend.core import config
from clinic_backend.core.errors import RateLimitError


class InMemoryRateLimiter:
    """Fixed-window request counter keyed by caller.

    Counters live in this process only; behind several workers each one
    enforces its own limit.
    """

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._lock = Lock()
        self._store: dict[str, tuple[int, float]] = {}

    def hit(self, key: str, max_requests: int, window_seconds: int) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            count, reset_at = self._store.get(key, (0, now + window_seconds))
            if reset_at <= now:
                count, reset_at = 0, now + window_seconds

            count += 1
            self._store[key] = (count, reset_at)

            if count > max_requests:
                raise RateLimitError(retry_after=max(1, int(reset_at - now + 0.999)))

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._store.items() if reset_at <= now]
        for key in expired:
            del self._store[key]


booking_limiter = InMemoryRateLimiter()


def limit_booking_requests(caller_id: str) -> None:
    booking_limiter.hit(
        f'booking:{caller_id}',
        config.BOOKING_RATE_LIMIT_MAX_REQUESTS,
        config.BOOKING_RATE_LIMIT_WINDOW_SECONDS,
    )
