"""Nimbus Backend — Provider call budget (hourly + daily windows)"""

import time
import logging
from dataclasses import dataclass
from typing import Callable

from config import (
    HOURLY_CALL_LIMIT, DAILY_CALL_LIMIT,
    HOURLY_WINDOW_SECONDS, DAILY_WINDOW_SECONDS,
    NEAR_LIMIT_HOURLY, NEAR_LIMIT_DAILY,
)
from models import ApiUsage

logger = logging.getLogger("nimbus.budget")


@dataclass
class BudgetState:
    hourly_count: int
    daily_count: int
    hourly_window_start: float
    daily_window_start: float
    hourly_limit: int
    daily_limit: int
    show_limit_warning: bool = False


class CallBudgetTracker:
    """Counts outbound provider calls against hourly and daily ceilings.

    Windows reset lazily: every read or mutation first checks whether the
    window has elapsed, so no timer is needed. Counts are never clamped;
    callers check ``has_reached_limit()`` before calling the provider.
    """

    def __init__(
        self,
        hourly_limit: int = HOURLY_CALL_LIMIT,
        daily_limit: int = DAILY_CALL_LIMIT,
        clock: Callable[[], float] = time.time,
    ):
        self._clock = clock
        now = clock()
        self.state = BudgetState(
            hourly_count=0,
            daily_count=0,
            hourly_window_start=now,
            daily_window_start=now,
            hourly_limit=hourly_limit,
            daily_limit=daily_limit,
        )

    def reset_if_window_elapsed(self):
        now = self._clock()
        s = self.state
        if now - s.hourly_window_start >= HOURLY_WINDOW_SECONDS:
            logger.info("Resetting API call counter (new hour)")
            s.hourly_count = 0
            s.hourly_window_start = now
            s.show_limit_warning = False
        if now - s.daily_window_start >= DAILY_WINDOW_SECONDS:
            logger.info("Resetting daily API call counter (new day)")
            s.daily_count = 0
            s.daily_window_start = now

    def remaining_hourly(self) -> int:
        self.reset_if_window_elapsed()
        return self.state.hourly_limit - self.state.hourly_count

    def remaining_daily(self) -> int:
        self.reset_if_window_elapsed()
        return self.state.daily_limit - self.state.daily_count

    def is_near_limit(self) -> bool:
        return self.remaining_hourly() <= NEAR_LIMIT_HOURLY or self.remaining_daily() <= NEAR_LIMIT_DAILY

    def has_reached_limit(self) -> bool:
        return self.remaining_hourly() <= 0 or self.remaining_daily() <= 0

    def record_call(self):
        """Count one successful provider request. Never call for cache hits."""
        self.reset_if_window_elapsed()
        self.state.hourly_count += 1
        self.state.daily_count += 1
        logger.info(
            f"API Call #{self.state.hourly_count} of {self.state.hourly_limit} this hour "
            f"({self.state.daily_count}/{self.state.daily_limit} today)"
        )

    def flag_limit_warning(self):
        self.state.show_limit_warning = True

    def retry_after(self) -> float:
        """Seconds until the exhausted window resets (0 when budget remains)."""
        if not self.has_reached_limit():
            return 0.0
        now = self._clock()
        s = self.state
        if s.daily_limit - s.daily_count <= 0:
            reset_at = s.daily_window_start + DAILY_WINDOW_SECONDS
        else:
            reset_at = s.hourly_window_start + HOURLY_WINDOW_SECONDS
        return max(0.0, reset_at - now)

    def usage(self) -> ApiUsage:
        return ApiUsage(
            hourlyCallsLeft=self.remaining_hourly(),
            dailyCallsLeft=self.remaining_daily(),
            isNearLimit=self.is_near_limit(),
            hasReachedLimit=self.has_reached_limit(),
            showWarning=self.state.show_limit_warning,
            retryAfterSeconds=round(self.retry_after(), 1),
        )
