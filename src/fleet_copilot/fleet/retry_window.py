"""Bounded backward-in-time search for data that may not be ingested yet."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from fleet_copilot.core.clock import Clock, SystemClock, isoformat_z
from fleet_copilot.log import get_logger

logger = get_logger(__name__)

WindowFetch = Callable[[datetime, datetime], Awaitable[list[Any]]]

MEDIA_INCREMENT_MINUTES = 5
MEDIA_MAX_STEPS = 288  # 24 h of 5-minute steps
MEDIA_MAX_RANGE_MINUTES = 24 * 60


@dataclass
class RetryWindowResult:
    found: bool
    attempts: int
    range_minutes: int
    start_time: Optional[datetime]
    end_time: Optional[datetime]
    data: list[Any] = field(default_factory=list)

    def meta(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "attempts": self.attempts,
            "searchRangeMinutes": self.range_minutes,
            "startTime": isoformat_z(self.start_time) if self.start_time else None,
            "endTime": isoformat_z(self.end_time) if self.end_time else None,
        }


def step_count(max_range_minutes: int, increment_minutes: int, ceiling: int) -> int:
    """Number of windows needed to cover ``max_range_minutes``, capped at ``ceiling``."""
    steps = math.ceil(max(max_range_minutes, 0) / increment_minutes)
    return max(1, min(steps, ceiling))


class RetryWindowFetcher:
    """Widen a ``[now - n*increment, now]`` window until the source returns data.

    Each attempt is exactly one awaited call; attempts run one after another
    with no delay between them and stop at the step ceiling.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()

    async def fetch(
        self,
        fetch_window: WindowFetch,
        increment_minutes: int,
        max_range_minutes: int,
        ceiling: int,
    ) -> RetryWindowResult:
        if increment_minutes <= 0:
            raise ValueError("increment_minutes must be positive")

        max_steps = step_count(max_range_minutes, increment_minutes, ceiling)
        end = self._clock.now()
        start: Optional[datetime] = None
        range_minutes = 0

        for attempt in range(1, max_steps + 1):
            range_minutes = attempt * increment_minutes
            start = end - timedelta(minutes=range_minutes)
            data = await fetch_window(start, end)
            if data:
                logger.debug("retry_window_found", attempts=attempt, range_minutes=range_minutes, items=len(data))
                return RetryWindowResult(
                    found=True,
                    attempts=attempt,
                    range_minutes=range_minutes,
                    start_time=start,
                    end_time=end,
                    data=list(data),
                )

        logger.info("retry_window_exhausted", attempts=max_steps, range_minutes=range_minutes)
        return RetryWindowResult(
            found=False,
            attempts=max_steps,
            range_minutes=range_minutes,
            start_time=start,
            end_time=end,
            data=[],
        )
