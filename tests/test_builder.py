"""Tests for registering scheduled actions."""

import asyncio
from datetime import timedelta

import pytest

from cadence.config import ConfigError, load_config
from cadence.config.models import ActionConfig, CadenceConfig
from cadence.scheduling.builder import ScheduledActionsBuilder
from cadence.scheduling.schedulers import PeriodicScheduler
from cadence.scheduling.types import ScheduledActionOptions
from tests.conftest import RecordingPayload, events, every, sample_payload


class TestScheduledActionsBuilder:
    def test_schedule_and_build(self):
        options = ScheduledActionOptions(prefer_separate_thread=True)
        builder = (
            ScheduledActionsBuilder()
            .schedule("a", every(10), RecordingPayload())
            .schedule("b", every(20), RecordingPayload(), options)
        )

        runners = builder.build()

        assert [r.name for r in runners.runners] == ["a", "b"]
        assert runners.runners[0].action.options == ScheduledActionOptions()
        assert runners.runners[1].action.options is options

    def test_empty_name(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            ScheduledActionsBuilder().schedule("", every(10), RecordingPayload())

    def test_duplicate_name(self):
        builder = ScheduledActionsBuilder().schedule("a", every(10), RecordingPayload())
        with pytest.raises(ValueError, match="already registered"):
            builder.schedule("a", every(20), RecordingPayload())
        assert len(builder.actions) == 1

    def test_payload_must_be_callable(self):
        with pytest.raises(TypeError):
            ScheduledActionsBuilder().schedule("a", every(10), "not a function")

    def test_registration_logged(self, runner_logs):
        ScheduledActionsBuilder().schedule(
            "cleanup", PeriodicScheduler(timedelta(minutes=5)), RecordingPayload()
        )

        registered = events(runner_logs, "scheduled_action_registered")
        assert len(registered) == 1
        assert getattr(registered[0], "action.scheduler") == "periodic(300s)"

    def test_empty_build(self):
        assert ScheduledActionsBuilder().build().runners == ()


class TestBuilderFromConfig:
    def test_registers_enabled_actions(self, config_file):
        config = load_config(config_file)
        builder = ScheduledActionsBuilder().from_config(config)

        actions = {a.name: a for a in builder.actions}
        assert set(actions) == {"heartbeat", "morning-report"}
        assert actions["heartbeat"].payload is sample_payload
        assert actions["morning-report"].options.prefer_separate_thread is True
        assert actions["heartbeat"].options.actualization_period == timedelta(seconds=2)

    def test_bad_target(self):
        config = CadenceConfig(
            actions=[
                ActionConfig(name="a", target="time:missing", period=timedelta(seconds=1))
            ]
        )
        with pytest.raises(ConfigError):
            ScheduledActionsBuilder().from_config(config)

    @pytest.mark.asyncio
    async def test_configured_payload_runs(self):
        from tests import conftest

        conftest.calls.clear()
        config = CadenceConfig(
            defaults=ScheduledActionOptions(actualization_period=timedelta(milliseconds=50)),
            actions=[
                ActionConfig(
                    name="tick",
                    target="tests.conftest:sample_payload",
                    period=timedelta(milliseconds=20),
                )
            ],
        )
        runners = ScheduledActionsBuilder().from_config(config).build()

        shutdown = asyncio.Event()
        task = asyncio.create_task(runners.run(shutdown))
        await asyncio.sleep(0.1)
        shutdown.set()
        await asyncio.wait_for(task, timeout=2)

        assert conftest.calls
        assert conftest.calls[0].action_name == "tick"
