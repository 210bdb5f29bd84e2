# tests/test_scheduler.py
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from sitewatch.infra.scheduler import CronTabTrigger, Scheduler, build_trigger, split_schedule, validate_schedule
from sitewatch.util import parse_duration, unique


def _next_fire(trigger, now: datetime) -> datetime:
    return trigger.get_next_fire_time(None, now)


def test_split_schedule_with_zone_prefix() -> None:
    assert split_schedule("CRON_TZ=Europe/Berlin 0 9 * * *") == ("Europe/Berlin", "0 9 * * *")
    assert split_schedule("TZ=UTC @daily") == ("UTC", "@daily")
    assert split_schedule("  */5 * * * *  ") == (None, "*/5 * * * *")


def test_hourly_macro() -> None:
    trigger = build_trigger("@hourly")
    now = datetime(2024, 5, 1, 10, 15, tzinfo=ZoneInfo("UTC"))
    assert isinstance(trigger, CronTabTrigger)
    assert _next_fire(trigger, now) == datetime(2024, 5, 1, 11, 0, tzinfo=ZoneInfo("UTC"))


def test_cron_uses_default_timezone() -> None:
    trigger = build_trigger("0 9 * * *", default_timezone="Europe/Stockholm")
    now = datetime(2024, 1, 10, 0, 0, tzinfo=ZoneInfo("UTC"))
    fire = _next_fire(trigger, now)
    assert fire.astimezone(ZoneInfo("UTC")).hour == 8


def test_cron_tz_prefix_overrides_default() -> None:
    trigger = build_trigger("CRON_TZ=UTC 0 9 * * *", default_timezone="Europe/Stockholm")
    now = datetime(2024, 1, 10, 0, 0, tzinfo=ZoneInfo("UTC"))
    assert _next_fire(trigger, now).astimezone(ZoneInfo("UTC")).hour == 9


@pytest.mark.parametrize("dow", ["0", "7", "sun"])
def test_sunday_in_every_spelling(dow: str) -> None:
    trigger = build_trigger(f"0 12 * * {dow}")
    # 2024-05-01 is a Wednesday
    now = datetime(2024, 5, 1, 0, 0, tzinfo=ZoneInfo("UTC"))
    assert _next_fire(trigger, now) == datetime(2024, 5, 5, 12, 0, tzinfo=ZoneInfo("UTC"))


def test_day_of_month_or_day_of_week() -> None:
    trigger = build_trigger("0 0 1 * 1")
    # Monday 2026-10-19, noon: next Monday comes before the 1st
    now = datetime(2026, 10, 19, 12, 0, tzinfo=ZoneInfo("UTC"))
    assert _next_fire(trigger, now) == datetime(2026, 10, 26, 0, 0, tzinfo=ZoneInfo("UTC"))

    # Friday 2026-10-30: the 1st (a Sunday) comes before the next Monday
    now = datetime(2026, 10, 30, 12, 0, tzinfo=ZoneInfo("UTC"))
    assert _next_fire(trigger, now) == datetime(2026, 11, 1, 0, 0, tzinfo=ZoneInfo("UTC"))


def test_mixed_weekday_names_and_numbers() -> None:
    trigger = build_trigger("0 0 * * sun,1")
    now = datetime(2026, 10, 19, 12, 0, tzinfo=ZoneInfo("UTC"))

    first = _next_fire(trigger, now)
    second = trigger.get_next_fire_time(first, first)

    assert first == datetime(2026, 10, 25, 0, 0, tzinfo=ZoneInfo("UTC"))
    assert second == datetime(2026, 10, 26, 0, 0, tzinfo=ZoneInfo("UTC"))


def test_next_fire_is_after_previous_one() -> None:
    trigger = build_trigger("*/15 * * * *")
    previous = datetime(2024, 5, 1, 10, 15, tzinfo=ZoneInfo("UTC"))
    assert trigger.get_next_fire_time(previous, previous) == datetime(2024, 5, 1, 10, 30, tzinfo=ZoneInfo("UTC"))


def test_weekday_range() -> None:
    trigger = build_trigger("0 8 * * 1-5")
    # Saturday -> next Monday
    now = datetime(2024, 5, 4, 9, 0, tzinfo=ZoneInfo("UTC"))
    assert _next_fire(trigger, now) == datetime(2024, 5, 6, 8, 0, tzinfo=ZoneInfo("UTC"))


def test_every_interval() -> None:
    trigger = build_trigger("@every 1m30s")
    assert isinstance(trigger, IntervalTrigger)
    assert trigger.interval == timedelta(seconds=90)


@pytest.mark.parametrize(
    "expression",
    ["", "* * * *", "60 * * * *", "@fortnightly", "@every", "@every 0s", "TZ=Atlantis/Nowhere @daily"],
)
def test_invalid_schedules(expression: str) -> None:
    with pytest.raises(ValueError):
        validate_schedule(expression)


async def test_scheduler_registers_jobs() -> None:
    scheduler = Scheduler(timezone="UTC")

    async def job(key: str) -> None:
        pass

    await scheduler.start()
    try:
        scheduler.add_job(job, "*/5 * * * *", job_id="a|https://a.example/", args=["a"], name="a")
        jobs = scheduler.list_jobs()
        assert list(jobs) == ["a|https://a.example/"]
        assert jobs["a|https://a.example/"]["name"] == "a"

        scheduler.remove_job("a|https://a.example/")
        assert scheduler.list_jobs() == {}
    finally:
        await scheduler.stop()
    assert not scheduler.running


def test_parse_duration() -> None:
    assert parse_duration("1h2m3s") == timedelta(hours=1, minutes=2, seconds=3)
    assert parse_duration("1.5s") == timedelta(seconds=1.5)
    assert parse_duration(0) == timedelta(0)
    with pytest.raises(ValueError):
        parse_duration("3 seconds")
    with pytest.raises(ValueError):
        parse_duration(-1)


def test_unique_keeps_first_occurrence() -> None:
    assert unique(["b@x.io", "a@x.io", "b@x.io"]) == ["b@x.io", "a@x.io"]
