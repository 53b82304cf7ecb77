"""Scheduling types.

Public types:
- Scheduler: Policy deciding when an action runs next
- BaseScheduler: Scheduler with no-op feedback hooks
- ScheduledActionOptions: Per-action runner options
- ScheduledAction: Name + scheduler + options + payload
- ScheduledActionContext: Per-execution value handed to the payload
- TimeBudget: Time left until the action's next planned execution
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_ACTUALIZATION_PERIOD = timedelta(seconds=5)


def utc_now() -> datetime:
    return datetime.now(UTC)


@runtime_checkable
class Scheduler(Protocol):
    """Decides the next execution time of a scheduled action.

    ``schedule_next`` may answer differently for the same ``from_time`` on
    repeated calls (e.g. the underlying configuration changed), so callers
    re-poll instead of caching the result. ``None`` means the next time
    cannot be determined right now.
    """

    def schedule_next(self, from_time: datetime) -> datetime | None: ...

    def on_successful_iteration(self) -> None: ...

    def on_failed_iteration(self, error: BaseException) -> None: ...


class BaseScheduler:
    """Scheduler base for policies that ignore iteration feedback."""

    def schedule_next(self, from_time: datetime) -> datetime | None:
        raise NotImplementedError

    def on_successful_iteration(self) -> None:
        pass

    def on_failed_iteration(self, error: BaseException) -> None:
        pass


def describe_scheduler(scheduler: Scheduler) -> str:
    """Human-readable scheduler description for diagnostics."""
    if type(scheduler).__str__ is not object.__str__:
        return str(scheduler)
    return type(scheduler).__name__


class ScheduledActionOptions(BaseModel):
    """Runner options for a single scheduled action.

    Attributes:
        actualization_period: How often an unknown or distant next execution
            time is re-queried from the scheduler.
        crash_on_payload_exception: Terminate the runner when the payload raises.
        crash_on_scheduler_exception: Terminate the runner when the scheduler raises.
        prefer_separate_thread: Run each execution on a dedicated thread
            instead of the shared pool (for long blocking payloads).
        allow_overlapping_execution: Start waiting for the next execution
            without waiting for the current one to complete.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    actualization_period: timedelta = DEFAULT_ACTUALIZATION_PERIOD
    crash_on_payload_exception: bool = False
    crash_on_scheduler_exception: bool = False
    prefer_separate_thread: bool = False
    allow_overlapping_execution: bool = False

    @field_validator("actualization_period")
    @classmethod
    def _positive_period(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("actualization_period must be positive")
        return value


@dataclass(frozen=True)
class TimeBudget:
    """Time remaining until the next planned execution.

    A budget is a read-only snapshot started at a monotonic instant; it is
    never extended. ``total`` is None for the infinite budget.
    """

    INFINITE: ClassVar["TimeBudget"]

    total: timedelta | None
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def start_new(cls, total: timedelta) -> "TimeBudget":
        return cls(total=max(timedelta(0), total))

    @property
    def is_infinite(self) -> bool:
        return self.total is None

    @property
    def elapsed(self) -> timedelta:
        return timedelta(seconds=time.monotonic() - self.started_at)

    @property
    def remaining(self) -> timedelta | None:
        if self.total is None:
            return None
        return max(timedelta(0), self.total - self.elapsed)

    @property
    def has_expired(self) -> bool:
        remaining = self.remaining
        return remaining is not None and remaining <= timedelta(0)

    def __str__(self) -> str:
        if self.total is None:
            return "infinite"
        return f"{self.total.total_seconds():.3f}s"


TimeBudget.INFINITE = TimeBudget(total=None, started_at=0.0)


@dataclass(frozen=True)
class ScheduledActionContext:
    """Everything a payload gets to know about the current execution."""

    action_name: str
    iteration: int
    execution_time: datetime
    budget: TimeBudget
    scheduler: Scheduler
    cancellation: asyncio.Event

    @property
    def cancellation_requested(self) -> bool:
        # Event.is_set() only reads a flag, so this is safe off the loop thread
        return self.cancellation.is_set()


# Payloads are either coroutine functions or plain callables
ActionPayload = Callable[[ScheduledActionContext], Awaitable[None] | None]


@dataclass(frozen=True)
class ScheduledAction:
    """A named recurring unit of work."""

    name: str
    scheduler: Scheduler
    options: ScheduledActionOptions
    payload: ActionPayload
