"""Configuration models using Pydantic."""

import importlib
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cadence.scheduling.schedulers import (
    BackoffScheduler,
    CronScheduler,
    OneShotScheduler,
    PeriodicScheduler,
)
from cadence.scheduling.types import ActionPayload, Scheduler, ScheduledActionOptions


class ConfigError(Exception):
    """Configuration error."""

    pass


class LoggingConfig(BaseModel):
    """Configuration for log output.

    A level of None defers to the CADENCE_LOG_LEVEL environment variable.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None
    rich: bool = False
    file: bool = False
    retention_days: int = Field(default=7, ge=1)


class ActionOptionsOverride(BaseModel):
    """Per-action overrides of the [defaults] options. Unset fields inherit."""

    model_config = ConfigDict(extra="forbid")

    actualization_period: timedelta | None = None
    crash_on_payload_exception: bool | None = None
    crash_on_scheduler_exception: bool | None = None
    prefer_separate_thread: bool | None = None
    allow_overlapping_execution: bool | None = None


class ActionConfig(BaseModel):
    """A scheduled action declared in the config file.

    Exactly one trigger must be set: ``period``, ``cron`` or ``at``.
    """

    name: str = Field(min_length=1)
    target: str
    period: timedelta | None = None
    cron: str | None = None
    timezone: str = "UTC"
    at: datetime | None = None
    # Wraps the scheduler in exponential backoff after failed iterations
    backoff_max: timedelta | None = None
    backoff_base: timedelta = timedelta(seconds=1)
    enabled: bool = True
    options: ActionOptionsOverride = Field(default_factory=ActionOptionsOverride)

    @field_validator("target")
    @classmethod
    def _validate_target(cls, value: str) -> str:
        module, sep, attr = value.partition(":")
        if not sep or not module or not attr:
            raise ValueError(f"target must look like 'package.module:function', got {value!r}")
        return value

    @model_validator(mode="after")
    def _validate_trigger(self) -> "ActionConfig":
        triggers = [t for t in ("period", "cron", "at") if getattr(self, t) is not None]
        if len(triggers) != 1:
            raise ValueError(
                f"Action '{self.name}' needs exactly one of period, cron, at "
                f"(got: {', '.join(triggers) or 'none'})"
            )
        if self.at is not None and self.at.tzinfo is None:
            raise ValueError(f"Action '{self.name}': 'at' must include a UTC offset")
        return self

    def build_scheduler(self) -> Scheduler:
        """Create the scheduler described by this entry.

        Raises:
            ConfigError: If the cron expression, timezone or period is invalid.
        """
        scheduler: Scheduler
        try:
            if self.period is not None:
                scheduler = PeriodicScheduler(self.period)
            elif self.cron is not None:
                scheduler = CronScheduler(self.cron, self.timezone)
            elif self.at is not None:
                scheduler = OneShotScheduler(self.at)
            else:
                raise ConfigError(f"Action '{self.name}' has no trigger")

            if self.backoff_max is not None:
                scheduler = BackoffScheduler(
                    scheduler, base_delay=self.backoff_base, max_delay=self.backoff_max
                )
        except ValueError as e:
            raise ConfigError(f"Action '{self.name}': {e}") from e
        return scheduler

    def resolve_payload(self) -> ActionPayload:
        """Import the payload callable named by ``target``.

        Raises:
            ConfigError: If the module or attribute cannot be found.
        """
        module_name, _, attr_path = self.target.partition(":")
        try:
            obj: Any = importlib.import_module(module_name)
        except ImportError as e:
            raise ConfigError(
                f"Action '{self.name}': cannot import module '{module_name}': {e}"
            ) from e

        for attr in attr_path.split("."):
            try:
                obj = getattr(obj, attr)
            except AttributeError as e:
                raise ConfigError(
                    f"Action '{self.name}': '{self.target}' not found"
                ) from e

        if not callable(obj):
            raise ConfigError(f"Action '{self.name}': '{self.target}' is not callable")
        return obj


class CadenceConfig(BaseModel):
    """Root configuration model."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    defaults: ScheduledActionOptions = Field(default_factory=ScheduledActionOptions)
    actions: list[ActionConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_unique_names(self) -> "CadenceConfig":
        seen: set[str] = set()
        for action in self.actions:
            if action.name in seen:
                raise ValueError(f"Duplicate action name: '{action.name}'")
            seen.add(action.name)
        return self

    @property
    def enabled_actions(self) -> list[ActionConfig]:
        return [action for action in self.actions if action.enabled]

    def options_for(self, action: ActionConfig) -> ScheduledActionOptions:
        """Merge [defaults] with the action's own option overrides."""
        overrides = action.options.model_dump(exclude_none=True)
        if not overrides:
            return self.defaults
        return ScheduledActionOptions.model_validate(
            {**self.defaults.model_dump(), **overrides}
        )

    def get_action(self, name: str) -> ActionConfig:
        """Get an action by name.

        Raises:
            ConfigError: If no action has that name.
        """
        for action in self.actions:
            if action.name == name:
                return action
        available = ", ".join(a.name for a in self.actions)
        raise ConfigError(f"Unknown action '{name}'. Available: {available}")
