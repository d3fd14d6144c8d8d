# planner.py
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime

from notification_time import compute_send_instant, to_local_date
from recurrence import next_occurrence

logger = logging.getLogger(__name__)


@dataclass
class PendingNotification:
    event: object
    schedule: object
    target_date: date
    notification_datetime: datetime


def plan(events, schedules, window_start, window_end, tz=None):
    """Notifications whose send instant falls in [window_start, window_end).

    Only the next occurrence on or after window_start is considered per event,
    so each (event, schedule) pair yields at most one notification per call.
    """
    schedules_by_event = defaultdict(list)
    for schedule in schedules:
        if schedule.is_active:
            schedules_by_event[schedule.event_id].append(schedule)

    from_date = to_local_date(window_start, tz)
    pending = []
    for event in events:
        if not event.is_active:
            continue
        event_schedules = schedules_by_event.get(event.id)
        if not event_schedules:
            continue

        occurrence = next_occurrence(event, from_date)
        if occurrence is None:
            logger.debug(f"No upcoming occurrence for event {event.id}")
            continue

        for schedule in event_schedules:
            send_at = compute_send_instant(
                occurrence, schedule.days_before, schedule.notification_time, tz
            )
            if window_start <= send_at < window_end:
                pending.append(PendingNotification(event, schedule, occurrence, send_at))

    return pending
