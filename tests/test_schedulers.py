"""Tests for scheduling policies and core scheduling types."""

import time
from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

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
    ScheduledActionOptions,
    Scheduler,
    TimeBudget,
    describe_scheduler,
)
from tests.conftest import ScriptedScheduler

BASE = datetime(2026, 1, 12, 0, 0, tzinfo=UTC)


class TestPeriodicScheduler:
    def test_adds_period(self):
        scheduler = PeriodicScheduler(timedelta(minutes=5))
        assert scheduler.schedule_next(BASE) == BASE + timedelta(minutes=5)

    def test_rejects_non_positive_period(self):
        with pytest.raises(ValueError):
            PeriodicScheduler(timedelta(0))

    def test_str(self):
        assert str(PeriodicScheduler(timedelta(seconds=30))) == "periodic(30s)"
        assert str(PeriodicScheduler(timedelta(milliseconds=1500))) == "periodic(1.5s)"

    def test_satisfies_protocol(self):
        assert isinstance(PeriodicScheduler(timedelta(seconds=1)), Scheduler)


class TestDynamicPeriodicScheduler:
    def test_period_read_on_every_call(self):
        """A changed period is used on the next poll."""
        period = {"value": timedelta(seconds=10)}
        scheduler = DynamicPeriodicScheduler(lambda: period["value"])

        assert scheduler.schedule_next(BASE) == BASE + timedelta(seconds=10)
        period["value"] = timedelta(seconds=2)
        assert scheduler.schedule_next(BASE) == BASE + timedelta(seconds=2)

    def test_none_means_unknown(self):
        scheduler = DynamicPeriodicScheduler(lambda: None)
        assert scheduler.schedule_next(BASE) is None


class TestCronScheduler:
    def test_next_occurrence_utc(self):
        scheduler = CronScheduler("0 8 * * *")
        assert scheduler.schedule_next(BASE) == datetime(2026, 1, 12, 8, 0, tzinfo=UTC)

    def test_timezone_winter(self):
        """8 AM in New York is 13:00 UTC in January (EST)."""
        scheduler = CronScheduler("0 8 * * *", timezone="America/New_York")
        assert scheduler.schedule_next(BASE) == datetime(2026, 1, 12, 13, 0, tzinfo=UTC)

    def test_timezone_summer(self):
        """8 AM in New York is 12:00 UTC in July (EDT)."""
        scheduler = CronScheduler("0 8 * * *", timezone="America/New_York")
        from_time = datetime(2026, 7, 1, 0, 0, tzinfo=UTC)
        assert scheduler.schedule_next(from_time) == datetime(2026, 7, 1, 12, 0, tzinfo=UTC)

    def test_result_is_utc(self):
        scheduler = CronScheduler("*/15 * * * *", timezone="Europe/Berlin")
        next_time = scheduler.schedule_next(BASE)
        assert next_time is not None
        assert next_time.utcoffset() == timedelta(0)
        assert next_time > BASE

    def test_invalid_expression(self):
        with pytest.raises(ValueError, match="Invalid cron expression"):
            CronScheduler("not a cron")

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            CronScheduler("0 8 * * *", timezone="Mars/Olympus")

    def test_str(self):
        assert str(CronScheduler("0 8 * * *")) == "cron(0 8 * * *)"
        assert (
            str(CronScheduler("0 8 * * *", timezone="Europe/Berlin"))
            == "cron(0 8 * * *, tz=Europe/Berlin)"
        )


class TestOneShotScheduler:
    def test_before_and_after(self):
        at = BASE + timedelta(hours=1)
        scheduler = OneShotScheduler(at)

        assert scheduler.schedule_next(BASE) == at
        assert scheduler.schedule_next(at) is None
        assert scheduler.schedule_next(at + timedelta(seconds=1)) is None

    def test_requires_timezone(self):
        with pytest.raises(ValueError):
            OneShotScheduler(datetime(2026, 1, 12, 9, 0))


class TestMultiScheduler:
    def test_earliest_answer(self):
        scheduler = MultiScheduler(
            PeriodicScheduler(timedelta(hours=1)),
            PeriodicScheduler(timedelta(minutes=10)),
            DynamicPeriodicScheduler(lambda: None),
        )
        assert scheduler.schedule_next(BASE) == BASE + timedelta(minutes=10)

    def test_all_unknown(self):
        scheduler = MultiScheduler(DynamicPeriodicScheduler(lambda: None))
        assert scheduler.schedule_next(BASE) is None

    def test_feedback_forwarded_to_children(self):
        first = ScriptedScheduler(lambda t: None)
        second = ScriptedScheduler(lambda t: None)
        scheduler = MultiScheduler(first, second)
        error = RuntimeError("boom")

        scheduler.on_successful_iteration()
        scheduler.on_failed_iteration(error)

        assert first.successes == second.successes == 1
        assert first.failures == second.failures == [error]

    def test_requires_children(self):
        with pytest.raises(ValueError):
            MultiScheduler()

    def test_str(self):
        scheduler = MultiScheduler(
            PeriodicScheduler(timedelta(seconds=5)), CronScheduler("0 8 * * *")
        )
        assert str(scheduler) == "multi(periodic(5s), cron(0 8 * * *))"


class TestBackoffScheduler:
    def test_passthrough_without_failures(self):
        scheduler = BackoffScheduler(PeriodicScheduler(timedelta(seconds=1)))
        assert scheduler.schedule_next(BASE) == BASE + timedelta(seconds=1)
        assert scheduler.current_delay() == timedelta(0)

    def test_exponential_delay(self):
        scheduler = BackoffScheduler(
            PeriodicScheduler(timedelta(seconds=1)),
            base_delay=timedelta(seconds=2),
            max_delay=timedelta(seconds=10),
        )
        error = RuntimeError("boom")

        scheduler.on_failed_iteration(error)
        assert scheduler.schedule_next(BASE) == BASE + timedelta(seconds=2)
        scheduler.on_failed_iteration(error)
        assert scheduler.schedule_next(BASE) == BASE + timedelta(seconds=4)
        scheduler.on_failed_iteration(error)
        scheduler.on_failed_iteration(error)
        assert scheduler.current_delay() == timedelta(seconds=10)
        assert scheduler.consecutive_failures == 4

    def test_inner_later_than_delay_wins(self):
        scheduler = BackoffScheduler(PeriodicScheduler(timedelta(hours=1)))
        scheduler.on_failed_iteration(RuntimeError("boom"))
        assert scheduler.schedule_next(BASE) == BASE + timedelta(hours=1)

    def test_success_resets(self):
        inner = ScriptedScheduler(lambda t: t + timedelta(seconds=1))
        scheduler = BackoffScheduler(inner, base_delay=timedelta(seconds=30))

        scheduler.on_failed_iteration(RuntimeError("boom"))
        scheduler.on_successful_iteration()

        assert scheduler.consecutive_failures == 0
        assert scheduler.schedule_next(BASE) == BASE + timedelta(seconds=1)
        assert inner.successes == 1
        assert len(inner.failures) == 1

    def test_unknown_stays_unknown(self):
        scheduler = BackoffScheduler(DynamicPeriodicScheduler(lambda: None))
        scheduler.on_failed_iteration(RuntimeError("boom"))
        assert scheduler.schedule_next(BASE) is None

    def test_invalid_delays(self):
        with pytest.raises(ValueError):
            BackoffScheduler(
                PeriodicScheduler(timedelta(seconds=1)),
                base_delay=timedelta(minutes=10),
                max_delay=timedelta(minutes=1),
            )


class TestDescribeScheduler:
    def test_uses_str_when_defined(self):
        assert describe_scheduler(PeriodicScheduler(timedelta(seconds=1))) == "periodic(1s)"

    def test_falls_back_to_class_name(self):
        class Nightly(BaseScheduler):
            def schedule_next(self, from_time):
                return None

        assert describe_scheduler(Nightly()) == "Nightly"


class TestScheduledActionOptions:
    def test_defaults(self):
        options = ScheduledActionOptions()
        assert options.actualization_period == timedelta(seconds=5)
        assert options.crash_on_payload_exception is False
        assert options.crash_on_scheduler_exception is False
        assert options.prefer_separate_thread is False
        assert options.allow_overlapping_execution is False

    def test_rejects_non_positive_period(self):
        with pytest.raises(ValidationError):
            ScheduledActionOptions(actualization_period=timedelta(0))

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            ScheduledActionOptions(retry=True)

    def test_frozen(self):
        options = ScheduledActionOptions()
        with pytest.raises(ValidationError):
            options.prefer_separate_thread = True


class TestTimeBudget:
    def test_finite(self):
        budget = TimeBudget.start_new(timedelta(seconds=10))
        assert not budget.is_infinite
        assert not budget.has_expired
        assert budget.remaining is not None
        assert timedelta(seconds=9) < budget.remaining <= timedelta(seconds=10)
        assert str(budget) == "10.000s"

    def test_negative_total_is_clamped(self):
        budget = TimeBudget.start_new(timedelta(seconds=-3))
        assert budget.total == timedelta(0)
        assert budget.has_expired

    def test_expires(self):
        budget = TimeBudget.start_new(timedelta(milliseconds=10))
        time.sleep(0.02)
        assert budget.has_expired
        assert budget.remaining == timedelta(0)
        assert budget.elapsed >= timedelta(milliseconds=10)

    def test_infinite(self):
        budget = TimeBudget.INFINITE
        assert budget.is_infinite
        assert budget.remaining is None
        assert not budget.has_expired
        assert str(budget) == "infinite"
