"""
Countdown Clock: remaining time to an auction deadline.

``time_left`` is pure. ``Ticker`` drives a callback on a fixed cadence on
the running event loop; ``CountdownClock`` combines the two for a single
auction and stops itself once the deadline has passed.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Remaining:
    """Non-negative remaining duration"""

    hours: int
    minutes: int
    seconds: int

    @property
    def total_seconds(self) -> int:
        return self.hours * 3600 + self.minutes * 60 + self.seconds

    def __str__(self) -> str:
        return f"{self.hours}h {self.minutes}m {self.seconds}s"


def time_left(deadline: Optional[datetime], now: datetime) -> Optional[Remaining]:
    """
    Decompose the time until ``deadline`` into hours/minutes/seconds.

    Args:
        deadline: Auction end (aware datetime); None means no deadline known
        now: Current time (aware datetime)

    Returns:
        Remaining duration, or None once ``now >= deadline`` (elapsed)
    """
    if deadline is None:
        return None
    diff = (deadline - now).total_seconds()
    if diff <= 0:
        return None

    whole = int(diff)
    return Remaining(
        hours=whole // 3600,
        minutes=(whole // 60) % 60,
        seconds=whole % 60,
    )


class Ticker:
    """
    Repeating timer bound to the running event loop.

    The first tick fires immediately on start. Callback errors are logged
    and do not stop the ticker.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "ticker"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start ticking (no-op if already running). Requires a running loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Ticker {self.name} started ({self.interval}s)")

    def stop(self):
        """Cancel the timer immediately"""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.debug(f"Ticker {self.name} stopped")

    async def _run(self):
        while True:
            try:
                self.callback()
            except Exception as e:
                logger.error(f"Ticker {self.name} callback error: {e}")
            await asyncio.sleep(self.interval)


class CountdownClock:
    """
    1-second countdown for one auction.

    Emits the current ``Remaining`` on every tick. On the first tick at or
    past the deadline it emits None and stops.
    """

    def __init__(
        self,
        deadline: Optional[datetime],
        on_tick: Callable[[Optional[Remaining]], None],
        interval: float = 1.0,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self.deadline = deadline
        self.on_tick = on_tick
        self.now_fn = now_fn
        self.remaining: Optional[Remaining] = None
        self._ticker = Ticker(interval, self.tick, name="countdown")

    @property
    def running(self) -> bool:
        return self._ticker.running

    def tick(self) -> Optional[Remaining]:
        """Recompute once and notify; stops the clock when elapsed"""
        self.remaining = time_left(self.deadline, self.now_fn())
        self.on_tick(self.remaining)
        if self.remaining is None:
            self.stop()
        return self.remaining

    def start(self):
        self._ticker.start()

    def stop(self):
        self._ticker.stop()

    def update_deadline(self, deadline: Optional[datetime]):
        """Point the clock at a new deadline (e.g. extended auction)"""
        self.deadline = deadline
