"""Execution loop for a single scheduled action.

Each iteration has two phases:

1. Wait: poll the scheduler until the next execution time is reached.
   Unknown or distant answers are re-polled every actualization period,
   so a scheduler whose answer changes over time is picked up.
2. Execute: size a time budget from the *following* execution time, run
   the payload through the configured worker placement, record the
   outcome in the monitor and feed it back to the scheduler.

The shared cancellation event is observed by every sleep. Cancellation is
a normal shutdown: the loop ends with a single ``scheduled_action_finished``
log and no error.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from cadence.scheduling.diagnostics import ActionInfo
from cadence.scheduling.errors import PayloadFailure, SchedulerFailure
from cadence.scheduling.monitor import ScheduledActionMonitor
from cadence.scheduling.placement import WorkerPlacement, placement_for
from cadence.scheduling.types import (
    ScheduledAction,
    ScheduledActionContext,
    TimeBudget,
    describe_scheduler,
    utc_now,
)

logger = logging.getLogger(__name__)

# Granularity of the final poll that corrects for coarse sleep timers
FINE_GRAINED_POLL_SECONDS = 0.001


async def _sleep(seconds: float, *events: asyncio.Event) -> None:
    """Sleep for ``seconds`` or until any of ``events`` is set."""
    if any(event.is_set() for event in events):
        return
    waiters = [asyncio.ensure_future(event.wait()) for event in events]
    try:
        await asyncio.wait(
            waiters, timeout=max(0.0, seconds), return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for waiter in waiters:
            waiter.cancel()


def _is_current_task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


def _ms(delta: timedelta) -> float:
    return round(delta.total_seconds() * 1000, 3)


class ScheduledActionRunner:
    """Owns the lifecycle of one scheduled action."""

    def __init__(
        self,
        action: ScheduledAction,
        placement: WorkerPlacement | None = None,
    ):
        self._action = action
        self._placement = placement or placement_for(
            action.options.prefer_separate_thread
        )
        self._monitor = ScheduledActionMonitor()
        self._iteration = 0
        # Executions started with allow_overlapping_execution
        self._overlapping: set[asyncio.Task[None]] = set()
        self._overlap_error: BaseException | None = None
        # Set when an overlapping execution ends the runner, to cut sleeps short
        self._overlap_failed = asyncio.Event()

    @property
    def action(self) -> ScheduledAction:
        return self._action

    @property
    def name(self) -> str:
        return self._action.name

    @property
    def monitor(self) -> ScheduledActionMonitor:
        return self._monitor

    def get_info(self) -> ActionInfo:
        return ActionInfo(
            name=self._action.name,
            scheduler=describe_scheduler(self._action.scheduler),
            options=self._action.options,
            statistics=self._monitor.snapshot(),
        )

    async def run(self, cancellation: asyncio.Event) -> None:
        """Run the wait/execute loop until cancellation or a crash.

        Raises:
            SchedulerFailure: The scheduler raised and the action crashes on it.
            PayloadFailure: The payload raised and the action crashes on it.
        """
        self._monitor.on_runner_started()
        try:
            await self._loop(cancellation)
        except asyncio.CancelledError:
            if _is_current_task_cancelling():
                for task in self._overlapping:
                    task.cancel()
                self._finish()
                raise
            # The payload itself signalled cancellation
        except Exception as error:
            self._monitor.on_runner_crashed(error)
            logger.error(
                "scheduled_action_crashed",
                exc_info=error,
                extra=self._extra(
                    **{"error.type": type(error).__name__, "error.message": str(error)}
                ),
            )
            raise
        self._finish()

    def _finish(self) -> None:
        self._monitor.on_runner_finished()
        logger.info("scheduled_action_finished", extra=self._extra())

    async def _loop(self, cancellation: asyncio.Event) -> None:
        last_execution_time = utc_now()

        while not cancellation.is_set():
            self._iteration += 1
            await self._wait_for_next_execution(last_execution_time, cancellation)
            if cancellation.is_set():
                break

            last_execution_time = utc_now()
            await self._execute_payload(last_execution_time, cancellation)

        if self._overlapping:
            await asyncio.gather(*self._overlapping, return_exceptions=True)
        self._raise_overlap_error()

    async def _wait_for_next_execution(
        self, last_execution_time: datetime, cancellation: asyncio.Event
    ) -> None:
        period = self._action.options.actualization_period.total_seconds()
        next_execution_time: datetime | None = None
        first_actualization_done = False

        while not cancellation.is_set():
            self._raise_overlap_error()

            new_next_execution_time = self._get_next_execution_time(last_execution_time)
            if (
                new_next_execution_time != next_execution_time
                or not first_actualization_done
            ):
                next_execution_time = new_next_execution_time
                self._report_next_execution_time(next_execution_time)
            first_actualization_done = True

            if next_execution_time is None:
                await self._sleep(period, cancellation)
                continue

            # Overdue: run once now, missed slots are not backfilled
            if next_execution_time <= last_execution_time:
                return

            time_to_wait = max(0.0, (next_execution_time - utc_now()).total_seconds())
            if time_to_wait > period:
                await self._sleep(period, cancellation)
                continue

            if time_to_wait > 0:
                await self._sleep(time_to_wait, cancellation)

            while (
                utc_now() < next_execution_time
                and not cancellation.is_set()
                and not self._overlap_failed.is_set()
            ):
                await self._sleep(FINE_GRAINED_POLL_SECONDS, cancellation)

            self._raise_overlap_error()
            return

    async def _sleep(self, seconds: float, cancellation: asyncio.Event) -> None:
        await _sleep(seconds, cancellation, self._overlap_failed)

    async def _execute_payload(
        self, execution_time: datetime, cancellation: asyncio.Event
    ) -> None:
        if cancellation.is_set():
            return

        next_execution_time = self._get_next_execution_time(execution_time)
        if next_execution_time is not None:
            budget = TimeBudget.start_new(next_execution_time - execution_time)
        else:
            budget = TimeBudget.INFINITE

        context = ScheduledActionContext(
            action_name=self._action.name,
            iteration=self._iteration,
            execution_time=execution_time,
            budget=budget,
            scheduler=self._action.scheduler,
            cancellation=cancellation,
        )

        logger.info(
            "scheduled_action_executing",
            extra=self._extra(**{"action.time_budget": str(budget)}),
        )

        self._monitor.on_iteration_started(execution_time)
        execution = self._run_payload(context)

        if not self._action.options.allow_overlapping_execution:
            await execution
            return

        task = asyncio.create_task(
            execution, name=f"{self._action.name}#{context.iteration}"
        )
        self._overlapping.add(task)
        task.add_done_callback(self._on_overlapping_done)

    async def _run_payload(self, context: ScheduledActionContext) -> None:
        started = time.monotonic()
        try:
            await self._placement.start(self._action.payload, context)
        except Exception as error:
            self._on_payload_failed(context, error)
        else:
            elapsed = timedelta(seconds=time.monotonic() - started)
            logger.info(
                "scheduled_action_executed",
                extra=self._extra(
                    context.iteration, **{"action.execution_time_ms": _ms(elapsed)}
                ),
            )
            if context.budget.total is not None and elapsed > context.budget.total:
                self._monitor.on_over_budget()
                logger.warning(
                    "scheduled_action_over_budget",
                    extra=self._extra(
                        context.iteration,
                        **{
                            "action.execution_time_ms": _ms(elapsed),
                            "action.time_budget_ms": _ms(context.budget.total),
                        },
                    ),
                )
            self._monitor.on_iteration_succeeded()
            self._notify_scheduler(self._action.scheduler.on_successful_iteration)
        finally:
            self._monitor.on_iteration_completed(
                timedelta(seconds=time.monotonic() - started)
            )

    def _on_payload_failed(
        self, context: ScheduledActionContext, error: Exception
    ) -> None:
        self._monitor.on_iteration_failed(error)
        self._notify_scheduler(self._action.scheduler.on_failed_iteration, error)

        if self._action.options.crash_on_payload_exception:
            raise PayloadFailure(
                self._action.name, "scheduled action threw an exception"
            ) from error

        logger.error(
            "scheduled_action_failed",
            exc_info=error,
            extra=self._extra(
                context.iteration,
                **{"error.type": type(error).__name__, "error.message": str(error)},
            ),
        )

    def _on_overlapping_done(self, task: asyncio.Task[None]) -> None:
        self._overlapping.discard(task)
        if task.cancelled():
            error: BaseException | None = asyncio.CancelledError()
        else:
            error = task.exception()
        if error is not None and self._overlap_error is None:
            self._overlap_error = error
            self._overlap_failed.set()

    def _raise_overlap_error(self) -> None:
        if self._overlap_error is not None:
            error, self._overlap_error = self._overlap_error, None
            self._overlap_failed.clear()
            raise error

    def _get_next_execution_time(self, from_time: datetime) -> datetime | None:
        try:
            return self._action.scheduler.schedule_next(from_time)
        except Exception as error:
            if self._action.options.crash_on_scheduler_exception:
                raise SchedulerFailure(
                    self._action.name, "can't schedule next iteration"
                ) from error
            self._log_scheduler_failure(error)
            return None

    def _notify_scheduler(self, hook: Callable[..., Any], *args: Any) -> None:
        try:
            hook(*args)
        except Exception as error:
            if self._action.options.crash_on_scheduler_exception:
                raise SchedulerFailure(
                    self._action.name, "scheduler feedback hook failed"
                ) from error
            self._log_scheduler_failure(error)

    def _log_scheduler_failure(self, error: Exception) -> None:
        logger.error(
            "scheduler_failure",
            exc_info=error,
            extra=self._extra(
                **{"error.type": type(error).__name__, "error.message": str(error)}
            ),
        )

    def _report_next_execution_time(self, next_execution_time: datetime | None) -> None:
        self._monitor.on_next_execution(next_execution_time)

        if next_execution_time is None:
            logger.warning(
                "next_execution_time",
                extra=self._extra(**{"schedule.next_execution_time": None}),
            )
            return

        time_to_next = max(timedelta(0), next_execution_time - utc_now())
        logger.info(
            "next_execution_time",
            extra=self._extra(
                **{
                    "schedule.next_execution_time": next_execution_time.isoformat(),
                    "schedule.time_to_next_ms": _ms(time_to_next),
                }
            ),
        )

    def _extra(self, iteration: int | None = None, **fields: Any) -> dict[str, Any]:
        return {
            "action.name": self._action.name,
            "action.iteration": self._iteration if iteration is None else iteration,
            **fields,
        }
