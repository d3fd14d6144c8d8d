# sweeper.py
import datetime
import logging
from dataclasses import asdict, dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from notification_time import to_utc_naive, utcnow

logger = logging.getLogger(__name__)

RETENTION_DAYS = 45


@dataclass
class CleanupReport:
    deactivated_count: int = 0
    deleted_events_count: int = 0
    deleted_schedules_count: int = 0
    deleted_orphaned_schedules_count: int = 0
    deleted_notifications_count: int = 0
    deleted_old_notifications_count: int = 0
    errors: list = field(default_factory=list)
    success: bool = True

    def as_dict(self):
        return asdict(self)


class Sweeper:
    """Hourly maintenance of events, schedules and the notification log.

    Every step catches its own storage errors so a failure is reported without
    stopping the steps after it. Only one-time events are ever hard-deleted.
    """

    def __init__(self, event_store, schedule_store, log_store, retention_days=RETENTION_DAYS):
        self.event_store = event_store
        self.schedule_store = schedule_store
        self.log_store = log_store
        self.retention_days = retention_days

    def sweep(self, now=None, today=None):
        now = to_utc_naive(now) if now is not None else utcnow()
        today = today or now.date()
        cutoff = now - datetime.timedelta(days=self.retention_days)
        report = CleanupReport()
        logger.info(f"Starting event cleanup for {today}")

        self._deactivate_past(today, report)
        self._delete_inactive_one_time(cutoff, report)
        self._delete_orphaned_schedules(report)
        self._delete_old_notifications(cutoff, report)

        logger.info(f"Cleanup process complete: {report}")
        return report

    def _fail(self, report, message, error):
        message = f"{message}: {error}"
        logger.error(message)
        report.errors.append(message)

    def _deactivate_past(self, today, report):
        try:
            events = self.event_store.deactivate_past_one_time(today)
        except SQLAlchemyError as e:
            self._fail(report, "Error deactivating events", e)
            return
        report.deactivated_count = len(events)
        for event in events:
            logger.info(f'  - Deactivated: "{event.title}" (due: {event.due_date})')

    def _delete_inactive_one_time(self, cutoff, report):
        try:
            events = self.event_store.list_inactive_one_time()
        except SQLAlchemyError as e:
            self._fail(report, "Error fetching inactive events", e)
            return
        if not events:
            logger.info("No inactive one-time events found to delete")
            return

        event_ids = [event.id for event in events]
        logger.info(f"Found {len(event_ids)} inactive one-time events to delete")

        # children first; an event is only removed once nothing points at it
        try:
            aged = self.log_store.count_older_than(cutoff, event_ids=event_ids)
            report.deleted_notifications_count = self.log_store.delete_for_events(event_ids)
            report.deleted_old_notifications_count += aged
        except SQLAlchemyError as e:
            self._fail(report, "Error deleting notification history", e)
            return

        try:
            report.deleted_schedules_count = self.schedule_store.delete_for_events(event_ids)
        except SQLAlchemyError as e:
            self._fail(report, "Error deleting schedules", e)
            return

        try:
            report.deleted_events_count = self.event_store.delete_many(event_ids)
        except SQLAlchemyError as e:
            self._fail(report, "Error deleting events", e)
            return
        for event in events:
            logger.info(f'  - Deleted: "{event.title}"')

    def _delete_orphaned_schedules(self, report):
        try:
            report.deleted_orphaned_schedules_count = self.schedule_store.delete_orphans()
        except SQLAlchemyError as e:
            self._fail(report, "Error deleting orphaned schedules", e)
            return
        logger.info(f"Deleted {report.deleted_orphaned_schedules_count} orphaned notification schedules")

    def _delete_old_notifications(self, cutoff, report):
        logger.info(f"Deleting notifications older than {cutoff} ({self.retention_days} days ago)")
        try:
            report.deleted_old_notifications_count += self.log_store.delete_older_than(cutoff)
        except SQLAlchemyError as e:
            self._fail(report, "Error deleting old notifications", e)
