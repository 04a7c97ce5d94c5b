"""Contest countdown clock."""

import logging
import math
from enum import Enum
from typing import Callable, Optional

from ..config import (
    CRITICAL_THRESHOLD_SECONDS,
    TICK_INTERVAL_SECONDS,
    WARNING_THRESHOLD_SECONDS,
)
from ..utils.scheduling import ScheduledCallback, Scheduler

logger = logging.getLogger(__name__)


class ClockError(Exception):
    """Raised when the clock is driven out of order."""


class ClockLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class SessionClock:
    """
    Counts a contest down from a fixed duration.

    Remaining time is derived from a deadline on the scheduler's clock rather
    than from the number of ticks seen, so late or dropped ticks still land on
    zero. ``on_expire`` fires exactly once.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Optional[Callable[[int], None]] = None,
        on_expire: Optional[Callable[[], None]] = None,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        warning_threshold: int = WARNING_THRESHOLD_SECONDS,
        critical_threshold: int = CRITICAL_THRESHOLD_SECONDS,
        total_seconds: int = 0,
    ):
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._on_expire = on_expire
        self.tick_interval = tick_interval
        self.warning_threshold = warning_threshold
        self.critical_threshold = critical_threshold

        self.total_seconds = int(total_seconds)
        self.remaining_seconds = self.total_seconds
        self.expired = False
        self._started_at: Optional[float] = None
        self._deadline: Optional[float] = None
        self._token: Optional[ScheduledCallback] = None

    def start(self, total_seconds: int) -> None:
        if total_seconds <= 0:
            raise ValueError("total_seconds must be positive")
        if self._started_at is not None:
            raise ClockError("clock already started")

        self.total_seconds = int(total_seconds)
        self.remaining_seconds = self.total_seconds
        self._started_at = self._scheduler.now()
        self._deadline = self._started_at + self.total_seconds
        self._token = self._scheduler.call_every(self.tick_interval, self._tick)
        logger.info(f"[CLOCK STARTED] {self.total_seconds}s")

    def stop(self) -> None:
        """Freeze the clock without expiring it."""
        if self._token is not None:
            self._token.cancel()
            self._token = None

    @property
    def running(self) -> bool:
        return self._token is not None

    @property
    def elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 0
        return int(self._scheduler.now() - self._started_at)

    @property
    def warning_threshold_crossed(self) -> bool:
        return self._started_at is not None and self.remaining_seconds <= self.warning_threshold

    @property
    def critical_threshold_crossed(self) -> bool:
        return self._started_at is not None and self.remaining_seconds <= self.critical_threshold

    @property
    def level(self) -> ClockLevel:
        if self.critical_threshold_crossed:
            return ClockLevel.CRITICAL
        if self.warning_threshold_crossed:
            return ClockLevel.WARNING
        return ClockLevel.NORMAL

    def display(self) -> str:
        minutes, seconds = divmod(self.remaining_seconds, 60)
        return f"{minutes:02d}:{seconds:02d}"

    def _tick(self) -> None:
        if self.expired or self._deadline is None:
            return

        # Rounded to absorb float noise in the scheduler's clock
        left = round(self._deadline - self._scheduler.now(), 6)
        remaining = max(0, min(self.remaining_seconds, math.ceil(left)))
        self.remaining_seconds = remaining

        if remaining > 0:
            if self._on_tick:
                self._on_tick(remaining)
            return

        self.expired = True
        self.stop()
        logger.info("[CLOCK EXPIRED]")
        if self._on_tick:
            self._on_tick(0)
        if self._on_expire:
            self._on_expire()
