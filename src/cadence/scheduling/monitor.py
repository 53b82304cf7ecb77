"""Per-action execution statistics.

The monitor has a single writer (the action's runner, always on the event
loop thread) and any number of diagnostic readers. Each update assigns
individual fields, so a concurrent ``snapshot()`` may see one field updated
and another not yet; no reader relies on cross-field consistency.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from cadence.scheduling.types import utc_now

# Keep error summaries short enough for a diagnostics table cell
MAX_ERROR_SUMMARY_LENGTH = 500


class RunnerState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "finished"
    CRASHED = "crashed"


def summarize_error(error: BaseException) -> str:
    message = str(error)
    summary = f"{type(error).__name__}: {message}" if message else type(error).__name__
    if len(summary) > MAX_ERROR_SUMMARY_LENGTH:
        summary = summary[: MAX_ERROR_SUMMARY_LENGTH - 3] + "..."
    return summary


@dataclass(frozen=True)
class ActionStatistics:
    """Point-in-time copy of an action's statistics."""

    state: RunnerState = RunnerState.PENDING
    iterations_started: int = 0
    iterations_succeeded: int = 0
    iterations_failed: int = 0
    iterations_over_budget: int = 0
    in_flight_count: int = 0
    next_execution_time: datetime | None = None
    last_execution_time: datetime | None = None
    last_success_time: datetime | None = None
    last_failure_time: datetime | None = None
    last_error: str | None = None
    last_duration: timedelta | None = None
    crash_error: str | None = None

    @property
    def in_flight(self) -> bool:
        return self.in_flight_count > 0

    @property
    def last_iteration_failed(self) -> bool:
        if self.last_failure_time is None:
            return False
        if self.last_success_time is None:
            return True
        return self.last_failure_time > self.last_success_time

    def to_dict(self) -> dict[str, object]:
        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value else None

        return {
            "state": self.state.value,
            "iterations_started": self.iterations_started,
            "iterations_succeeded": self.iterations_succeeded,
            "iterations_failed": self.iterations_failed,
            "iterations_over_budget": self.iterations_over_budget,
            "in_flight": self.in_flight,
            "next_execution_time": iso(self.next_execution_time),
            "last_execution_time": iso(self.last_execution_time),
            "last_success_time": iso(self.last_success_time),
            "last_failure_time": iso(self.last_failure_time),
            "last_error": self.last_error,
            "last_duration_ms": (
                round(self.last_duration.total_seconds() * 1000, 3)
                if self.last_duration is not None
                else None
            ),
            "crash_error": self.crash_error,
        }


class ScheduledActionMonitor:
    """Mutable statistics owned by one action runner."""

    def __init__(self) -> None:
        self._state = RunnerState.PENDING
        self._started = 0
        self._succeeded = 0
        self._failed = 0
        self._over_budget = 0
        self._in_flight = 0
        self._next_execution_time: datetime | None = None
        self._last_execution_time: datetime | None = None
        self._last_success_time: datetime | None = None
        self._last_failure_time: datetime | None = None
        self._last_error: str | None = None
        self._last_duration: timedelta | None = None
        self._crash_error: str | None = None

    def on_runner_started(self) -> None:
        self._state = RunnerState.RUNNING

    def on_runner_finished(self) -> None:
        self._state = RunnerState.FINISHED

    def on_runner_crashed(self, error: BaseException) -> None:
        self._crash_error = summarize_error(error)
        self._state = RunnerState.CRASHED

    def on_next_execution(self, next_execution_time: datetime | None) -> None:
        self._next_execution_time = next_execution_time

    def on_iteration_started(self, execution_time: datetime) -> None:
        self._last_execution_time = execution_time
        self._started += 1
        self._in_flight += 1

    def on_iteration_succeeded(self) -> None:
        self._last_success_time = utc_now()
        self._succeeded += 1

    def on_iteration_failed(self, error: BaseException) -> None:
        self._last_error = summarize_error(error)
        self._last_failure_time = utc_now()
        self._failed += 1

    def on_over_budget(self) -> None:
        self._over_budget += 1

    def on_iteration_completed(self, duration: timedelta) -> None:
        self._last_duration = duration
        self._in_flight = max(0, self._in_flight - 1)

    def snapshot(self) -> ActionStatistics:
        return ActionStatistics(
            state=self._state,
            iterations_started=self._started,
            iterations_succeeded=self._succeeded,
            iterations_failed=self._failed,
            iterations_over_budget=self._over_budget,
            in_flight_count=self._in_flight,
            next_execution_time=self._next_execution_time,
            last_execution_time=self._last_execution_time,
            last_success_time=self._last_success_time,
            last_failure_time=self._last_failure_time,
            last_error=self._last_error,
            last_duration=self._last_duration,
            crash_error=self._crash_error,
        )
