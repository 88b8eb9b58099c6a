"""Serialized call pacing for third-party services."""

import logging
import threading
import time
from typing import Any, Callable, Optional

from ..errors import RateLimitError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Spaces calls by a fixed interval and pauses once when rate limited.

    One limiter is created per external service and handed to the
    components that call it. Calls through ``call()`` are retried exactly
    once after a rate-limit pause; a second rate-limit error propagates to
    the caller as a per-item failure.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        rate_limit_pause: float = 30.0,
        name: str = "default",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize rate limiter.

        Args:
            min_interval: Seconds between the start of consecutive calls
            rate_limit_pause: Fixed pause after a rate-limit signal
            name: Service name used in log lines
            sleep: Sleep function, replaceable in tests
            clock: Monotonic clock, replaceable in tests
        """
        self.min_interval = min_interval
        self.rate_limit_pause = rate_limit_pause
        self.name = name
        self._sleep = sleep
        self._clock = clock

        self._lock = threading.RLock()
        self._last_call_time: Optional[float] = None

        self.stats = {
            "calls": 0,
            "rate_limited": 0,
            "total_wait": 0.0,
        }

    def wait_for_slot(self) -> float:
        """Block until the next call may start.

        Returns:
            Time waited in seconds
        """
        wait_time = 0.0

        with self._lock:
            now = self._clock()
            if self._last_call_time is not None:
                elapsed = now - self._last_call_time
                if elapsed < self.min_interval:
                    wait_time = self.min_interval - elapsed
                    self._sleep(wait_time)
                    now = self._clock()

            self._last_call_time = now
            self.stats["calls"] += 1
            self.stats["total_wait"] += wait_time

        return wait_time

    def on_rate_limited(self, retry_after: Optional[float] = None) -> float:
        """Pause once after the service signalled a rate limit.

        Args:
            retry_after: Server hint, honoured when longer than the fixed pause

        Returns:
            Time paused in seconds
        """
        pause = max(self.rate_limit_pause, retry_after or 0.0)

        with self._lock:
            logger.warning(f"⏳ {self.name} rate limited, pausing {pause:.0f}s")
            self._sleep(pause)
            # The pause already spaced the retry from the failed call
            self._last_call_time = None
            self.stats["rate_limited"] += 1
            self.stats["total_wait"] += pause

        return pause

    def call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        """Call ``fn`` in the next free slot, retrying once after a rate limit."""
        self.wait_for_slot()
        try:
            return fn(*args, **kwargs)
        except RateLimitError as e:
            self.on_rate_limited(e.retry_after)

        self.wait_for_slot()
        return fn(*args, **kwargs)

    def reset(self):
        """Forget the previous call time."""
        with self._lock:
            self._last_call_time = None

    def get_stats(self) -> dict:
        with self._lock:
            return dict(self.stats)
