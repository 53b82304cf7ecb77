"""Runs a fixed set of scheduled action runners side by side."""

import asyncio
import logging
from collections.abc import Sequence

from cadence.scheduling.diagnostics import (
    ActionInfo,
    HealthCheckResult,
    ScheduledActionHealthCheck,
)
from cadence.scheduling.runner import ScheduledActionRunner

logger = logging.getLogger(__name__)


class ScheduledActionsRunner:
    """Drives every action runner against one shared cancellation event.

    Each runner is an independent failure domain: a crashed runner does
    not cancel its siblings. Crashes are raised together once every runner
    has exited.
    """

    def __init__(self, runners: Sequence[ScheduledActionRunner]):
        self._runners = tuple(runners)

    @property
    def runners(self) -> tuple[ScheduledActionRunner, ...]:
        return self._runners

    def infos(self) -> list[ActionInfo]:
        return [runner.get_info() for runner in self._runners]

    def health(self) -> dict[str, HealthCheckResult]:
        return {
            runner.name: ScheduledActionHealthCheck(runner).check()
            for runner in self._runners
        }

    async def run(self, cancellation: asyncio.Event) -> None:
        """Run all actions until cancellation.

        Raises:
            ExceptionGroup: One or more runners crashed (raised after all
                runners have exited).
        """
        if not self._runners:
            logger.warning("no_scheduled_actions")
            await cancellation.wait()
            return

        logger.info(
            "scheduled_actions_starting",
            extra={"scheduler.action_count": len(self._runners)},
        )

        results = await asyncio.gather(
            *(runner.run(cancellation) for runner in self._runners),
            return_exceptions=True,
        )

        # Each runner logs its own crash when it happens
        crashes: list[Exception] = []
        for result in results:
            if isinstance(result, Exception):
                crashes.append(result)
            elif isinstance(result, BaseException):
                raise result

        if crashes:
            raise ExceptionGroup("scheduled actions crashed", crashes)
