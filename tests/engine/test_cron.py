from datetime import datetime, timezone

import pytest

from cron_engine.cron import is_valid_schedule, next_fire_time, validate_schedule
from cron_engine.errors import InvalidScheduleError


@pytest.mark.parametrize("expression", [
    "0 0 * * *",
    "*/15 * * * *",
    "0 2 * * 0",
    "30 9 1-15 * 1-5",
    "0,30 8-18/2 * 1,6,12 *",
])
def test_accepts_valid_expressions(expression: str) -> None:
    assert is_valid_schedule(expression)


@pytest.mark.parametrize("expression", [
    "* * *",
    "* * * *",
    "99 * * * *",
    "a b c d e",
    "0 24 * * *",
    "0 0 0 * *",
    "0 0 * 13 *",
    "*/0 * * * *",
    "30-10 * * * *",
    "0 0 * * MON",
    "* * * * * *",
    "",
])
def test_rejects_invalid_expressions(expression: str) -> None:
    assert not is_valid_schedule(expression)
    with pytest.raises(InvalidScheduleError):
        validate_schedule(expression)


def test_rejects_seconds_field_with_reason() -> None:
    with pytest.raises(InvalidScheduleError, match="seconds are not supported"):
        validate_schedule("*/5 * * * * *")


def test_out_of_range_reason_names_field() -> None:
    with pytest.raises(InvalidScheduleError, match="minute value 99 out of range 0-59"):
        validate_schedule("99 * * * *")


def test_normalises_whitespace() -> None:
    assert validate_schedule("  0   0 *  * * ") == "0 0 * * *"


def test_next_fire_time_is_utc() -> None:
    after = datetime(2024, 3, 9, 23, 59, 30, tzinfo=timezone.utc)
    assert next_fire_time("0 0 * * *", after) == datetime(2024, 3, 10, 0, 0, tzinfo=timezone.utc)


def test_next_fire_time_treats_naive_as_utc() -> None:
    after = datetime(2024, 3, 10, 1, 7)
    assert next_fire_time("*/15 * * * *", after) == datetime(2024, 3, 10, 1, 15, tzinfo=timezone.utc)


def test_next_fire_time_weekly() -> None:
    # 2024-03-06 is a Wednesday; the next Sunday 02:00 is 2024-03-10
    after = datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc)
    assert next_fire_time("0 2 * * 0", after) == datetime(2024, 3, 10, 2, 0, tzinfo=timezone.utc)
