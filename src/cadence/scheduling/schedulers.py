"""Built-in scheduling policies.

All schedulers work in UTC; cron expressions are evaluated in an IANA
timezone and converted back to UTC.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from cadence.scheduling.types import BaseScheduler, Scheduler, describe_scheduler

logger = logging.getLogger(__name__)


def _format_period(period: timedelta) -> str:
    seconds = period.total_seconds()
    if seconds.is_integer():
        return f"{int(seconds)}s"
    return f"{seconds:g}s"


class PeriodicScheduler(BaseScheduler):
    """Runs every ``period`` after the previous execution."""

    def __init__(self, period: timedelta):
        if period <= timedelta(0):
            raise ValueError("period must be positive")
        self.period = period

    def schedule_next(self, from_time: datetime) -> datetime | None:
        return from_time + self.period

    def __str__(self) -> str:
        return f"periodic({_format_period(self.period)})"


class DynamicPeriodicScheduler(BaseScheduler):
    """Periodic scheduler whose period is read on every poll.

    Lets a running action pick up a new period (e.g. from a settings
    source) on its next actualization. A provider returning None makes
    the next execution unknown.
    """

    def __init__(self, period_provider: Callable[[], timedelta | None]):
        self._period_provider = period_provider

    def schedule_next(self, from_time: datetime) -> datetime | None:
        period = self._period_provider()
        if period is None:
            return None
        return from_time + max(timedelta(0), period)

    def __str__(self) -> str:
        return "dynamic-periodic"


class CronScheduler(BaseScheduler):
    """Runs at the occurrences of a cron expression.

    The expression is evaluated in ``timezone`` so that "0 8 * * *" fires
    at 8 AM local time across DST changes.
    """

    def __init__(self, expression: str, timezone: str = "UTC"):
        if not croniter.is_valid(expression):
            raise ValueError(f"Invalid cron expression: {expression!r}")
        try:
            self._tz = ZoneInfo(timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {timezone!r}") from e
        self.expression = expression
        self.timezone = timezone

    def schedule_next(self, from_time: datetime) -> datetime | None:
        base_time = from_time.astimezone(self._tz)
        next_local = croniter(self.expression, base_time).get_next(datetime)
        return next_local.astimezone(UTC)

    def __str__(self) -> str:
        if self.timezone == "UTC":
            return f"cron({self.expression})"
        return f"cron({self.expression}, tz={self.timezone})"


class OneShotScheduler(BaseScheduler):
    """Runs once at ``at``; the next time is unknown afterwards."""

    def __init__(self, at: datetime):
        if at.tzinfo is None:
            raise ValueError("at must be timezone-aware")
        self.at = at

    def schedule_next(self, from_time: datetime) -> datetime | None:
        if from_time < self.at:
            return self.at
        return None

    def __str__(self) -> str:
        return f"once({self.at.isoformat()})"


class MultiScheduler:
    """Picks the earliest answer among several schedulers.

    Feedback is forwarded to every child.
    """

    def __init__(self, *schedulers: Scheduler):
        if not schedulers:
            raise ValueError("MultiScheduler requires at least one scheduler")
        self.schedulers = schedulers

    def schedule_next(self, from_time: datetime) -> datetime | None:
        candidates = [
            next_time
            for scheduler in self.schedulers
            if (next_time := scheduler.schedule_next(from_time)) is not None
        ]
        return min(candidates, default=None)

    def on_successful_iteration(self) -> None:
        for scheduler in self.schedulers:
            scheduler.on_successful_iteration()

    def on_failed_iteration(self, error: BaseException) -> None:
        for scheduler in self.schedulers:
            scheduler.on_failed_iteration(error)

    def __str__(self) -> str:
        return "multi(" + ", ".join(describe_scheduler(s) for s in self.schedulers) + ")"


class BackoffScheduler:
    """Delays the wrapped scheduler exponentially after failed iterations.

    After ``n`` consecutive failures the next execution is at least
    ``from_time + min(base_delay * 2**(n - 1), max_delay)``. A successful
    iteration resets the streak.
    """

    def __init__(
        self,
        inner: Scheduler,
        base_delay: timedelta = timedelta(seconds=1),
        max_delay: timedelta = timedelta(minutes=5),
    ):
        if base_delay <= timedelta(0) or max_delay < base_delay:
            raise ValueError("Expected 0 < base_delay <= max_delay")
        self.inner = inner
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._failures = 0

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def current_delay(self) -> timedelta:
        if self._failures == 0:
            return timedelta(0)
        return min(self.base_delay * (2 ** (self._failures - 1)), self.max_delay)

    def schedule_next(self, from_time: datetime) -> datetime | None:
        next_time = self.inner.schedule_next(from_time)
        if self._failures == 0 or next_time is None:
            return next_time
        return max(next_time, from_time + self.current_delay())

    def on_successful_iteration(self) -> None:
        if self._failures:
            logger.info(
                "backoff_reset",
                extra={"backoff.failures": self._failures},
            )
        self._failures = 0
        self.inner.on_successful_iteration()

    def on_failed_iteration(self, error: BaseException) -> None:
        self._failures += 1
        logger.debug(
            f"Backoff after {self._failures} failures: {self.current_delay()}"
        )
        self.inner.on_failed_iteration(error)

    def __str__(self) -> str:
        return f"backoff({describe_scheduler(self.inner)}, max={_format_period(self.max_delay)})"
