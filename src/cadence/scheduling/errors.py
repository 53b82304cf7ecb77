"""Error types raised by scheduled action runners.

Cancellation is not an error: a runner that observes the shutdown event
or an ``asyncio.CancelledError`` from its payload simply stops.
"""


class ScheduledActionError(Exception):
    """Base class for failures that terminate a single action's runner."""

    def __init__(self, action_name: str, message: str):
        super().__init__(f"{action_name}: {message}")
        self.action_name = action_name


class SchedulerFailure(ScheduledActionError):
    """The scheduler (or one of its feedback hooks) raised."""


class PayloadFailure(ScheduledActionError):
    """The payload raised and the action is configured to crash on it."""
