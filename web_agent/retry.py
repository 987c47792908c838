"""
Retry, polling and throttling primitives.

All waiting goes through a ``Clock`` so polling loops can be driven by a fake
clock in tests instead of wall-clock sleeps.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Clock:
    """Monotonic time source and sleeper."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)


SYSTEM_CLOCK = Clock()


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval polling bounded by a total deadline.

    Attributes:
        interval_ms: Sleep between attempts
        timeout_ms: Total budget measured from the first attempt
    """
    interval_ms: int
    timeout_ms: int

    async def poll(
        self,
        attempt: Callable[[], Awaitable[T]],
        done: Callable[[T], bool],
        clock: Clock = SYSTEM_CLOCK,
        final_attempt: bool = False,
    ) -> tuple[bool, Optional[T]]:
        """Call ``attempt`` until ``done`` accepts its result or time runs out.

        Args:
            attempt: Coroutine factory producing one result
            done: Predicate accepting a result
            clock: Time source
            final_attempt: Make one more attempt after the deadline and
                return it whatever it is

        Returns:
            Tuple of (satisfied, last_result)
        """
        deadline = clock.monotonic() + self.timeout_ms / 1000.0
        interval = max(self.interval_ms, 1) / 1000.0
        result: Optional[T] = None

        while True:
            result = await attempt()
            if done(result):
                return True, result
            remaining = deadline - clock.monotonic()
            if remaining <= 0:
                break
            await clock.sleep(min(interval, remaining))

        if final_attempt:
            result = await attempt()
            return done(result), result
        return False, result


class Throttle:
    """Minimum spacing between consecutive guarded operations.

    Tracks a single "last action" timestamp; ``wait()`` sleeps off whatever
    remains of the interval and then stamps the current time.
    """

    def __init__(self, min_interval_ms: int, clock: Clock = SYSTEM_CLOCK):
        self.min_interval = max(min_interval_ms, 0) / 1000.0
        self.clock = clock
        self._last: Optional[float] = None

    async def wait(self) -> float:
        """Block until the interval has elapsed.

        Returns:
            Seconds slept
        """
        slept = 0.0
        if self._last is not None:
            elapsed = self.clock.monotonic() - self._last
            remaining = self.min_interval - elapsed
            if remaining > 0:
                logger.debug(f"Throttling mutating action for {remaining * 1000:.0f}ms")
                await self.clock.sleep(remaining)
                slept = remaining
        self._last = self.clock.monotonic()
        return slept

    @property
    def last_action_at(self) -> Optional[float]:
        return self._last
