# delivery.py
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from notification_time import format_notification_message, utcnow
from push_client import (
    MAX_BATCH_SIZE, PushTransportError, build_push_message, chunked, error_kind,
    is_invalid_token_error, ticket_error_message,
)

logger = logging.getLogger(__name__)


@dataclass
class DeliveryOutcome:
    notification: object
    status: str                          # ok, error, no_address, duplicate
    receipt_id: Optional[str] = None
    message: Optional[str] = None
    error_kind: Optional[str] = None
    log_id: Optional[int] = None

    @property
    def dispatched(self):
        return self.status in ("ok", "error")


class DeliveryOrchestrator:
    """Sends pending notifications in batches and records every attempt.

    Each candidate first claims its (user, event, day) slot in the log as
    ``pending``; a candidate whose slot is already taken is dropped. The claim
    is finalised to ``sent`` or ``failed`` once the gateway answers.
    """

    def __init__(self, sender, log_store, address_registry, batch_size=MAX_BATCH_SIZE):
        self.sender = sender
        self.log_store = log_store
        self.address_registry = address_registry
        self.batch_size = min(batch_size, MAX_BATCH_SIZE)

    async def dispatch(self, candidates):
        outcomes = []
        tokens = self.address_registry.get_many({c.event.user_id for c in candidates})
        logger.info(f"Found {len(tokens)} users with push tokens")

        addressed = []
        for candidate in candidates:
            token = tokens.get(candidate.event.user_id)
            if not token:
                logger.info(f"No push token for user {candidate.event.user_id}, skipping")
                outcomes.append(DeliveryOutcome(candidate, "no_address"))
                continue
            addressed.append((candidate, token))

        invalidated = set()
        for chunk in chunked(addressed, self.batch_size):
            outcomes.extend(await self._dispatch_chunk(chunk, invalidated))
        return outcomes

    async def _dispatch_chunk(self, chunk, invalidated):
        outcomes = []
        claimed = []
        for candidate, token in chunk:
            event = candidate.event
            try:
                log_id = self.log_store.claim(event.user_id, event.id, candidate.notification_datetime)
            except SQLAlchemyError as e:
                logger.error(f"Could not log notification for event {event.id}: {e}")
                outcomes.append(DeliveryOutcome(candidate, "error", message=f"log write failed: {e}"))
                continue
            if log_id is None:
                outcomes.append(DeliveryOutcome(candidate, "duplicate"))
                continue
            claimed.append((candidate, token, log_id))

        if not claimed:
            return outcomes

        messages = [self._build_message(candidate, token) for candidate, token, _ in claimed]
        try:
            tickets = await self.sender.send(messages)
        except PushTransportError as e:
            logger.error(f"Error sending push notifications: {e}")
            tickets = [{"status": "error", "message": str(e)} for _ in messages]

        for (candidate, _, log_id), ticket in zip(claimed, tickets):
            outcomes.append(self._record(candidate, log_id, ticket, invalidated))
        return outcomes

    def _build_message(self, candidate, token):
        title, body = format_notification_message(candidate.event, candidate.schedule, candidate.target_date)
        return build_push_message(token, title, body, {
            "event_id": candidate.event.id,
            "schedule_id": candidate.schedule.id,
            "target_date": candidate.target_date.isoformat(),
        })

    def _record(self, candidate, log_id, ticket, invalidated):
        ok = ticket.get("status") == "ok"
        outcome = DeliveryOutcome(
            candidate,
            "ok" if ok else "error",
            receipt_id=ticket.get("id"),
            message=ticket_error_message(ticket),
            error_kind=error_kind(ticket),
            log_id=log_id,
        )
        try:
            self.log_store.finalize(
                log_id,
                "sent" if ok else "failed",
                error_message=outcome.message,
                receipt_id=outcome.receipt_id,
                sent_at=utcnow(),
            )
        except SQLAlchemyError as e:
            logger.error(f"Could not finalise notification log {log_id}: {e}")

        user_id = candidate.event.user_id
        if is_invalid_token_error(ticket) and user_id not in invalidated:
            invalidated.add(user_id)
            try:
                self.address_registry.clear(user_id)
            except SQLAlchemyError as e:
                logger.error(f"Could not clear push token for user {user_id}: {e}")
            else:
                logger.info(f"Cleared invalid push token for user {user_id}")
        return outcome
