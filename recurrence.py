# recurrence.py
"""When does an event fire?

Dates are compared at day granularity. Monthly anchors on days 29-31 simply
never match in months that lack that day; there is no clamping to month end.
"""
import datetime

from models import RECURRENCE_TYPES

MAX_LOOKAHEAD_DAYS = 365


def as_date(value):
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, str):
        return datetime.date.fromisoformat(value[:10])
    return value


def validate_recurrence(recurrence_type, recurrence_interval):
    if recurrence_type not in RECURRENCE_TYPES:
        raise ValueError(f"Unknown recurrence type {recurrence_type!r}")
    if recurrence_type == "custom":
        if not isinstance(recurrence_interval, int) or recurrence_interval <= 0:
            raise ValueError("custom recurrence needs a positive recurrence_interval")
    elif recurrence_interval is not None:
        raise ValueError(f"recurrence_interval is only valid for custom events, not {recurrence_type}")


def occurs_on(event, check_date):
    """Return True if ``event`` has an occurrence on ``check_date``.

    Misconfigured events (unknown type, custom without a positive interval)
    never occur rather than raising.
    """
    check_date = as_date(check_date)
    due_date = as_date(event.due_date)
    if check_date < due_date:
        return False

    kind = event.recurrence_type
    if kind == "one_time":
        return check_date == due_date
    if kind == "monthly":
        return check_date.day == due_date.day
    if kind == "weekly":
        return check_date.weekday() == due_date.weekday()
    if kind == "custom":
        interval = event.recurrence_interval
        if not interval or interval <= 0:
            return False
        return (check_date - due_date).days % interval == 0
    return False


def next_occurrence(event, from_date):
    """First occurrence on or after ``from_date``, or None.

    Recurring events are searched one day at a time for at most
    MAX_LOOKAHEAD_DAYS days.
    """
    from_date = as_date(from_date)
    if event.recurrence_type == "one_time":
        due_date = as_date(event.due_date)
        return due_date if from_date <= due_date else None

    for offset in range(MAX_LOOKAHEAD_DAYS):
        candidate = from_date + datetime.timedelta(days=offset)
        if occurs_on(event, candidate):
            return candidate
    return None
