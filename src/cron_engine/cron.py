"""
Cron expression handling.

Only the classic five-field form (minute, hour, day-of-month, month, day-of-week) is accepted.
Each field is ``*``, a number, a range ``a-b``, a step ``*/n`` or ``a-b/n``, or a comma separated
list of those. Every instant is evaluated in UTC.
"""
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from croniter import croniter

from cron_engine.errors import InvalidScheduleError

FIELD_NAMES: Tuple[str, ...] = ("minute", "hour", "day-of-month", "month", "day-of-week")
FIELD_BOUNDS: Tuple[Tuple[int, int], ...] = ((0, 59), (0, 23), (1, 31), (1, 12), (0, 7))

_ATOM = re.compile(r"^(?:\*|(?P<start>\d+)(?:-(?P<end>\d+))?)(?:/(?P<step>\d+))?$")


def _check_field(value: str, name: str, bounds: Tuple[int, int], expression: str) -> None:
    low, high = bounds
    for atom in value.split(","):
        match = _ATOM.match(atom)
        if not match:
            raise InvalidScheduleError(expression, f"malformed {name} field '{value}'")
        start, end, step = match.group("start"), match.group("end"), match.group("step")
        for number in (start, end):
            if number is not None and not low <= int(number) <= high:
                raise InvalidScheduleError(expression, f"{name} value {number} out of range {low}-{high}")
        if start is not None and end is not None and int(start) > int(end):
            raise InvalidScheduleError(expression, f"{name} range {start}-{end} is reversed")
        if step is not None and int(step) == 0:
            raise InvalidScheduleError(expression, f"{name} step must be positive")


def validate_schedule(expression: Optional[str]) -> str:
    """
    Validate a five-field cron expression.

    Returns:
        str: The expression normalised to single-space separated fields.

    Raises:
        InvalidScheduleError: If the expression is malformed or out of range.
    """
    if not expression or not expression.strip():
        raise InvalidScheduleError(str(expression), "expression is empty")

    fields: List[str] = expression.split()
    if len(fields) == 6:
        raise InvalidScheduleError(expression, "cron expressions with seconds are not supported")
    if len(fields) != 5:
        raise InvalidScheduleError(expression, f"expected 5 fields, got {len(fields)}")

    for value, name, bounds in zip(fields, FIELD_NAMES, FIELD_BOUNDS):
        _check_field(value, name, bounds, expression)

    normalised = " ".join(fields)
    if not croniter.is_valid(normalised):
        raise InvalidScheduleError(expression, "rejected by cron parser")
    return normalised


def is_valid_schedule(expression: Optional[str]) -> bool:
    try:
        validate_schedule(expression)
        return True
    except InvalidScheduleError:
        return False


def next_fire_time(expression: str, after: Optional[datetime] = None) -> datetime:
    """
    Compute the next UTC instant matching the expression, strictly after ``after`` (default: now).
    """
    base = after or datetime.now(timezone.utc)
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    cron = croniter(validate_schedule(expression), base.astimezone(timezone.utc))
    return cron.get_next(datetime)
