"""Shared test fixtures and factories."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from cadence.scheduling.runner import ScheduledActionRunner
from cadence.scheduling.types import (
    ActionPayload,
    BaseScheduler,
    ScheduledAction,
    ScheduledActionContext,
    ScheduledActionOptions,
    Scheduler,
)

# =============================================================================
# Schedulers
# =============================================================================


class ScriptedScheduler(BaseScheduler):
    """Scheduler whose answers come from a callable; records every call."""

    def __init__(self, answer: Callable[[datetime], datetime | None]):
        self._answer = answer
        self.calls: list[datetime] = []
        self.successes = 0
        self.failures: list[BaseException] = []

    def schedule_next(self, from_time: datetime) -> datetime | None:
        self.calls.append(from_time)
        return self._answer(from_time)

    def on_successful_iteration(self) -> None:
        self.successes += 1

    def on_failed_iteration(self, error: BaseException) -> None:
        self.failures.append(error)


def every(milliseconds: int) -> ScriptedScheduler:
    return ScriptedScheduler(lambda t: t + timedelta(milliseconds=milliseconds))


# =============================================================================
# Payloads
# =============================================================================


class RecordingPayload:
    """Async payload recording contexts and tracking concurrency."""

    def __init__(
        self,
        duration: float = 0.0,
        error: BaseException | None = None,
    ):
        self.duration = duration
        self.error = error
        self.contexts: list[ScheduledActionContext] = []
        self.active = 0
        self.max_active = 0

    @property
    def count(self) -> int:
        return len(self.contexts)

    async def __call__(self, context: ScheduledActionContext) -> None:
        self.contexts.append(context)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.duration:
                await asyncio.sleep(self.duration)
            if self.error is not None:
                raise self.error
        finally:
            self.active -= 1


# =============================================================================
# Runners
# =============================================================================


def make_runner(
    scheduler: Scheduler,
    payload: ActionPayload,
    name: str = "test-action",
    **options,
) -> ScheduledActionRunner:
    options.setdefault("actualization_period", timedelta(milliseconds=50))
    return ScheduledActionRunner(
        ScheduledAction(
            name=name,
            scheduler=scheduler,
            options=ScheduledActionOptions(**options),
            payload=payload,
        )
    )


async def run_for(runner: ScheduledActionRunner, seconds: float) -> None:
    """Run ``runner`` for ``seconds`` then signal shutdown and wait for exit."""
    shutdown = asyncio.Event()
    task = asyncio.create_task(runner.run(shutdown))
    await asyncio.sleep(seconds)
    shutdown.set()
    await asyncio.wait_for(task, timeout=2)


@pytest.fixture
def shutdown() -> asyncio.Event:
    return asyncio.Event()


@pytest.fixture
def runner_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Capture runner logs at INFO and above."""
    caplog.set_level(logging.INFO, logger="cadence")
    return caplog


def events(caplog: pytest.LogCaptureFixture, name: str) -> list[logging.LogRecord]:
    return [record for record in caplog.records if record.getMessage() == name]


# =============================================================================
# Config and CLI
# =============================================================================


# Module-level payloads referenced by config targets in tests
calls: list[ScheduledActionContext] = []


def sample_payload(context: ScheduledActionContext) -> None:
    calls.append(context)


not_callable = 42


def failing_payload(context: ScheduledActionContext) -> None:
    raise RuntimeError("boom")


@pytest.fixture
def config_toml_content() -> str:
    """Sample TOML configuration content."""
    return """
[logging]
level = "DEBUG"

[defaults]
actualization_period = 2

[[actions]]
name = "heartbeat"
target = "tests.conftest:sample_payload"
period = 30

[[actions]]
name = "morning-report"
target = "tests.conftest:sample_payload"
cron = "0 8 * * *"
timezone = "America/New_York"
backoff_max = 600

[actions.options]
crash_on_payload_exception = true
prefer_separate_thread = true

[[actions]]
name = "paused"
target = "tests.conftest:sample_payload"
period = 60
enabled = false
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
