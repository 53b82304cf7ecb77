"""Diagnostic views over scheduled action runners.

- ActionInfo: on-demand snapshot of an action (never cached)
- ScheduledActionInfoProvider: JSON-ready info for a diagnostics registry
- ScheduledActionHealthCheck: health predicate derived from statistics
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from cadence.scheduling.monitor import ActionStatistics, RunnerState
from cadence.scheduling.types import ScheduledActionOptions, utc_now

if TYPE_CHECKING:
    from cadence.scheduling.runner import ScheduledActionRunner

MIN_OVERDUE_TOLERANCE = timedelta(minutes=1)


@dataclass(frozen=True)
class ActionInfo:
    name: str
    scheduler: str
    options: ScheduledActionOptions
    statistics: ActionStatistics

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "scheduler": self.scheduler,
            "options": self.options.model_dump(mode="json"),
            "statistics": self.statistics.to_dict(),
        }


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    FAILING = "failing"


@dataclass(frozen=True)
class HealthCheckResult:
    status: HealthStatus
    reason: str | None = None

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


class ScheduledActionInfoProvider:
    def __init__(self, runner: "ScheduledActionRunner"):
        self._runner = runner

    def query(self) -> dict[str, Any]:
        return self._runner.get_info().to_dict()


class ScheduledActionHealthCheck:
    """Reports whether an action is running on schedule.

    - Crashed runner: FAILING
    - Most recent iteration failed: DEGRADED
    - Next execution overdue beyond tolerance, nothing in flight: DEGRADED
    """

    def __init__(
        self,
        runner: "ScheduledActionRunner",
        overdue_tolerance: timedelta | None = None,
    ):
        self._runner = runner
        if overdue_tolerance is None:
            period = runner.action.options.actualization_period
            overdue_tolerance = max(period * 2, MIN_OVERDUE_TOLERANCE)
        self._overdue_tolerance = overdue_tolerance

    def check(self) -> HealthCheckResult:
        return evaluate_health(self._runner.monitor.snapshot(), self._overdue_tolerance)


def evaluate_health(
    statistics: ActionStatistics, overdue_tolerance: timedelta
) -> HealthCheckResult:
    if statistics.state is RunnerState.CRASHED:
        return HealthCheckResult(
            HealthStatus.FAILING, f"Runner crashed: {statistics.crash_error}"
        )

    if statistics.last_iteration_failed:
        return HealthCheckResult(
            HealthStatus.DEGRADED, f"Last iteration failed: {statistics.last_error}"
        )

    next_time = statistics.next_execution_time
    if (
        statistics.state is RunnerState.RUNNING
        and next_time is not None
        and not statistics.in_flight
    ):
        overdue = utc_now() - next_time
        if overdue > overdue_tolerance:
            return HealthCheckResult(
                HealthStatus.DEGRADED,
                f"Next execution overdue by {int(overdue.total_seconds())}s",
            )

    return HealthCheckResult(HealthStatus.HEALTHY)
