"""Scheduling subsystem: recurring actions driven by pluggable schedulers.

Public API:
- ScheduledActionsBuilder: Registers actions and builds the runner set
- ScheduledActionsRunner: Runs every action until the shutdown event fires
- ScheduledActionRunner: Wait/execute loop of a single action

Types:
- Scheduler: Policy protocol (schedule_next + iteration feedback)
- ScheduledActionOptions, ScheduledActionContext, TimeBudget
"""

from cadence.scheduling.builder import ScheduledActionsBuilder
from cadence.scheduling.diagnostics import (
    ActionInfo,
    HealthCheckResult,
    HealthStatus,
    ScheduledActionHealthCheck,
    ScheduledActionInfoProvider,
)
from cadence.scheduling.errors import (
    PayloadFailure,
    ScheduledActionError,
    SchedulerFailure,
)
from cadence.scheduling.monitor import (
    ActionStatistics,
    RunnerState,
    ScheduledActionMonitor,
)
from cadence.scheduling.runner import ScheduledActionRunner
from cadence.scheduling.runners import ScheduledActionsRunner
from cadence.scheduling.schedulers import (
    BackoffScheduler,
    CronScheduler,
    DynamicPeriodicScheduler,
    MultiScheduler,
    OneShotScheduler,
    PeriodicScheduler,
)
from cadence.scheduling.types import (
    BaseScheduler,
    ScheduledAction,
    ScheduledActionContext,
    ScheduledActionOptions,
    Scheduler,
    TimeBudget,
    describe_scheduler,
)

__all__ = [
    "ActionInfo",
    "ActionStatistics",
    "BackoffScheduler",
    "BaseScheduler",
    "CronScheduler",
    "DynamicPeriodicScheduler",
    "HealthCheckResult",
    "HealthStatus",
    "MultiScheduler",
    "OneShotScheduler",
    "PayloadFailure",
    "PeriodicScheduler",
    "RunnerState",
    "ScheduledAction",
    "ScheduledActionContext",
    "ScheduledActionError",
    "ScheduledActionHealthCheck",
    "ScheduledActionInfoProvider",
    "ScheduledActionMonitor",
    "ScheduledActionOptions",
    "ScheduledActionRunner",
    "ScheduledActionsBuilder",
    "ScheduledActionsRunner",
    "Scheduler",
    "SchedulerFailure",
    "TimeBudget",
    "describe_scheduler",
]
