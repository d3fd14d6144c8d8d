# notification_time.py
"""Turn an occurrence date plus a schedule into a send instant.

All date arithmetic happens in wall-clock time of a single zone. With no zone
the result is a naive datetime and the caller's window must be naive too; with
a pytz zone the wall-clock time is localized in that zone.
"""
import datetime

import pytz

from recurrence import as_date


def utcnow():
    return datetime.datetime.now(pytz.UTC).replace(tzinfo=None)


def parse_time_of_day(value):
    if isinstance(value, datetime.time):
        return value.replace(microsecond=0, tzinfo=None)
    parts = str(value).strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Expected HH:MM:SS, got {value!r}")
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = int(parts[2]) if len(parts) == 3 else 0
        return datetime.time(hours, minutes, seconds)
    except ValueError:
        raise ValueError(f"Expected HH:MM:SS, got {value!r}")


def compute_send_instant(target_date, days_before, time_of_day, tz=None):
    send_date = as_date(target_date) - datetime.timedelta(days=days_before)
    instant = datetime.datetime.combine(send_date, parse_time_of_day(time_of_day))
    if tz is not None:
        return tz.localize(instant)
    return instant


def to_utc_naive(value):
    """Naive datetimes are taken to already be UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(pytz.UTC).replace(tzinfo=None)


def to_local_date(value, tz=None):
    if isinstance(value, datetime.datetime) and value.tzinfo is not None and tz is not None:
        return value.astimezone(tz).date()
    return as_date(value)


def format_time_of_day(value):
    return parse_time_of_day(value).strftime("%H:%M")


def describe_schedule(days_before, time_of_day):
    time_label = format_time_of_day(time_of_day)
    if days_before == 0:
        return f"On the day at {time_label}"
    if days_before == 1:
        return f"1 day before at {time_label}"
    return f"{days_before} days before at {time_label}"


def format_notification_message(event, schedule, target_date):
    target_date = as_date(target_date)
    date_label = f"{target_date:%A, %B} {target_date.day}"
    if schedule.days_before == 0:
        body = f"Due today - {date_label}"
    elif schedule.days_before == 1:
        body = f"Due tomorrow - {date_label}"
    else:
        body = f"Due in {schedule.days_before} days - {date_label}"
    if event.description:
        body += f"\n{event.description}"
    return event.title, body
