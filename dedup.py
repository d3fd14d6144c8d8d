# dedup.py
import logging

from notification_time import to_utc_naive

logger = logging.getLogger(__name__)

BLOCKING_STATUSES = ("sent", "pending")


class DedupGate:
    """Drops candidates already sent (or being sent) for the same event on the same UTC day."""

    def __init__(self, log_store):
        self.log_store = log_store

    def filter_unsent(self, candidates):
        unsent = []
        for candidate in candidates:
            day = to_utc_naive(candidate.notification_datetime).date()
            if self.log_store.exists_on_day(
                candidate.event.user_id, candidate.event.id, day, BLOCKING_STATUSES
            ):
                logger.info(f"Skipping duplicate notification for event {candidate.event.id} on {day}")
                continue
            unsent.append(candidate)
        return unsent
