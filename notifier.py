# notifier.py
"""One run of the notification pipeline: plan, dedup, deliver."""
import datetime
import logging
from dataclasses import asdict, dataclass, field

import pytz

from dedup import DedupGate
from delivery import DeliveryOrchestrator
from planner import plan
from push_client import DEVICE_NOT_REGISTERED
from sweeper import Sweeper

logger = logging.getLogger(__name__)


@dataclass
class NotificationRunReport:
    total_pending: int = 0
    duplicates_skipped: int = 0
    no_address_skipped: int = 0
    successfully_sent: int = 0
    failed: int = 0
    invalid_tokens: int = 0
    errors: list = field(default_factory=list)
    message: str = ""
    success: bool = True

    def as_dict(self):
        return asdict(self)


def _now_utc(now):
    if now is None:
        return datetime.datetime.now(pytz.UTC)
    if now.tzinfo is None:
        return pytz.UTC.localize(now)
    return now


def processing_window(now, lookback_hours=24, lookahead_hours=1):
    return (
        now - datetime.timedelta(hours=lookback_hours),
        now + datetime.timedelta(hours=lookahead_hours),
    )


async def run_notifications(stores, sender, settings, now=None):
    now = _now_utc(now)
    tz = settings.tz
    window_start, window_end = processing_window(now, settings.lookback_hours, settings.lookahead_hours)
    logger.info(f"Processing window: {window_start.isoformat()} to {window_end.isoformat()}")
    report = NotificationRunReport()

    events = stores.events.list_active()
    if not events:
        report.message = "No active events to process"
        logger.info(report.message)
        return report
    logger.info(f"Found {len(events)} active events")

    schedules = stores.schedules.list_active([event.id for event in events])
    if not schedules:
        report.message = "No active notification schedules"
        logger.info(report.message)
        return report
    logger.info(f"Found {len(schedules)} active notification schedules")

    pending = plan(events, schedules, window_start, window_end, tz=tz)
    report.total_pending = len(pending)
    if not pending:
        report.message = "No notifications due in this window"
        logger.info(report.message)
        return report
    logger.info(f"Found {len(pending)} notifications to send")

    unsent = DedupGate(stores.logs).filter_unsent(pending)
    report.duplicates_skipped = len(pending) - len(unsent)
    logger.info(f"{len(unsent)} notifications after deduplication")
    if not unsent:
        report.message = "All notifications were already sent"
        return report

    orchestrator = DeliveryOrchestrator(sender, stores.logs, stores.addresses)
    outcomes = await orchestrator.dispatch(unsent)
    for outcome in outcomes:
        if outcome.status == "ok":
            report.successfully_sent += 1
        elif outcome.status == "no_address":
            report.no_address_skipped += 1
        elif outcome.status == "duplicate":
            report.duplicates_skipped += 1
        else:
            report.failed += 1
            if outcome.error_kind == DEVICE_NOT_REGISTERED:
                report.invalid_tokens += 1
            event = outcome.notification.event
            report.errors.append(f"Event {event.title} ({event.id}): {outcome.message or 'Unknown error'}")

    report.message = "Notifications processed"
    logger.info(f"Notification processing complete: {report}")
    return report


def run_cleanup(stores, settings, now=None):
    now = _now_utc(now)
    sweeper = Sweeper(stores.events, stores.schedules, stores.logs, retention_days=settings.retention_days)
    return sweeper.sweep(now=now, today=now.astimezone(settings.tz).date())
