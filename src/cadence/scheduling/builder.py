"""Registration API for scheduled actions."""

import logging
from typing import TYPE_CHECKING

from cadence.scheduling.runner import ScheduledActionRunner
from cadence.scheduling.runners import ScheduledActionsRunner
from cadence.scheduling.types import (
    ActionPayload,
    ScheduledAction,
    ScheduledActionOptions,
    Scheduler,
    describe_scheduler,
)

if TYPE_CHECKING:
    from cadence.config.models import CadenceConfig

logger = logging.getLogger(__name__)


class ScheduledActionsBuilder:
    """Collects named actions and builds the runner set.

    Example:
        builder = ScheduledActionsBuilder()
        builder.schedule("cleanup", PeriodicScheduler(timedelta(minutes=5)), cleanup)
        runner = builder.build()
        await runner.run(shutdown_event)
    """

    def __init__(self) -> None:
        self._actions: list[ScheduledAction] = []

    @property
    def actions(self) -> list[ScheduledAction]:
        return list(self._actions)

    def schedule(
        self,
        name: str,
        scheduler: Scheduler,
        payload: ActionPayload,
        options: ScheduledActionOptions | None = None,
    ) -> "ScheduledActionsBuilder":
        """Register an action. Returns the builder for chaining.

        Raises:
            ValueError: If the name is empty or already registered.
            TypeError: If the payload is not callable.
        """
        if not name:
            raise ValueError("Scheduled action name cannot be empty")
        if any(action.name == name for action in self._actions):
            raise ValueError(f"Scheduled action '{name}' is already registered")
        if not callable(payload):
            raise TypeError(f"Payload for '{name}' is not callable")

        self._actions.append(
            ScheduledAction(
                name=name,
                scheduler=scheduler,
                options=options or ScheduledActionOptions(),
                payload=payload,
            )
        )

        logger.info(
            "scheduled_action_registered",
            extra={
                "action.name": name,
                "action.scheduler": describe_scheduler(scheduler),
            },
        )
        return self

    def from_config(self, config: "CadenceConfig") -> "ScheduledActionsBuilder":
        """Register every enabled action declared in configuration.

        Raises:
            ConfigError: If a scheduler or payload target cannot be built.
        """
        for action in config.enabled_actions:
            self.schedule(
                action.name,
                action.build_scheduler(),
                action.resolve_payload(),
                config.options_for(action),
            )
        return self

    def build(self) -> ScheduledActionsRunner:
        return ScheduledActionsRunner(
            [ScheduledActionRunner(action) for action in self._actions]
        )
