# stores.py
"""Storage boundary for the notifier.

Each store wraps a SQLAlchemy session factory and is handed to the components
that need it, so tests run the same code against an in-memory SQLite database.
"""
import datetime
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from models import Event, NotificationSchedule, NotificationLog, PushRegistration, TransactionAnomaly, EVENT_TYPES
from notification_time import parse_time_of_day, to_utc_naive, utcnow
from push_client import is_valid_push_token
from recurrence import validate_recurrence

logger = logging.getLogger(__name__)


def dedup_key(user_id, event_id, day):
    return f"{user_id}:{event_id}:{day.isoformat()}"


class EventStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def add(self, user_id, event_type, title, due_date, recurrence_type="one_time",
            recurrence_interval=None, description=None, is_active=True):
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type {event_type!r}")
        validate_recurrence(recurrence_type, recurrence_interval)
        event = Event(
            user_id=user_id, event_type=event_type, title=title, description=description,
            due_date=due_date, recurrence_type=recurrence_type,
            recurrence_interval=recurrence_interval, is_active=is_active,
        )
        with self._session_factory() as db:
            db.add(event)
            db.commit()
        return event

    def get(self, event_id):
        with self._session_factory() as db:
            return db.get(Event, event_id)

    def list_active(self, event_type=None):
        with self._session_factory() as db:
            query = db.query(Event).filter(Event.is_active.is_(True))
            if event_type is not None:
                query = query.filter(Event.event_type == event_type)
            return query.all()

    def set_active(self, event_id, is_active):
        with self._session_factory() as db:
            updated = db.query(Event).filter(Event.id == event_id).update(
                {"is_active": is_active, "updated_at": utcnow()}, synchronize_session=False
            )
            db.commit()
        return updated

    def deactivate_past_one_time(self, today):
        """Deactivate active one-time events due strictly before ``today``."""
        with self._session_factory() as db:
            events = db.query(Event).filter(
                Event.recurrence_type == "one_time",
                Event.is_active.is_(True),
                Event.due_date < today,
            ).all()
            stamp = utcnow()
            for event in events:
                event.is_active = False
                event.updated_at = stamp
            db.commit()
            return events

    def list_inactive_one_time(self):
        with self._session_factory() as db:
            return db.query(Event).filter(
                Event.recurrence_type == "one_time",
                Event.is_active.is_(False),
            ).all()

    def delete_many(self, event_ids):
        if not event_ids:
            return 0
        with self._session_factory() as db:
            deleted = db.query(Event).filter(Event.id.in_(event_ids)).delete(synchronize_session=False)
            db.commit()
        return deleted


class ScheduleStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def add(self, event_id, notification_time, days_before=0, is_active=True):
        if days_before < 0:
            raise ValueError("days_before must not be negative")
        schedule = NotificationSchedule(
            event_id=event_id,
            notification_time=parse_time_of_day(notification_time),
            days_before=days_before,
            is_active=is_active,
        )
        with self._session_factory() as db:
            db.add(schedule)
            db.commit()
        return schedule

    def list_active(self, event_ids):
        if not event_ids:
            return []
        with self._session_factory() as db:
            return db.query(NotificationSchedule).filter(
                NotificationSchedule.event_id.in_(event_ids),
                NotificationSchedule.is_active.is_(True),
            ).all()

    def set_active(self, schedule_id, is_active):
        with self._session_factory() as db:
            updated = db.query(NotificationSchedule).filter(
                NotificationSchedule.id == schedule_id
            ).update({"is_active": is_active}, synchronize_session=False)
            db.commit()
        return updated

    def delete(self, schedule_id):
        with self._session_factory() as db:
            deleted = db.query(NotificationSchedule).filter(
                NotificationSchedule.id == schedule_id
            ).delete(synchronize_session=False)
            db.commit()
        return deleted

    def delete_for_events(self, event_ids):
        if not event_ids:
            return 0
        with self._session_factory() as db:
            deleted = db.query(NotificationSchedule).filter(
                NotificationSchedule.event_id.in_(event_ids)
            ).delete(synchronize_session=False)
            db.commit()
        return deleted

    def delete_orphans(self):
        with self._session_factory() as db:
            deleted = db.query(NotificationSchedule).filter(
                NotificationSchedule.event_id.not_in(select(Event.id))
            ).delete(synchronize_session=False)
            db.commit()
        return deleted


class NotificationLogStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def exists_on_day(self, user_id, event_id, day, statuses):
        start = datetime.datetime.combine(day, datetime.time.min)
        end = start + datetime.timedelta(days=1)
        with self._session_factory() as db:
            found = db.query(NotificationLog.id).filter(
                NotificationLog.user_id == user_id,
                NotificationLog.event_id == event_id,
                NotificationLog.scheduled_for >= start,
                NotificationLog.scheduled_for < end,
                NotificationLog.status.in_(statuses),
            ).first()
        return found is not None

    def add(self, user_id, event_id, scheduled_for, status, error_message=None,
            receipt_id=None, sent_at=None, created_at=None):
        """Insert one entry; returns None if a sent/pending entry already owns that day."""
        scheduled_for = to_utc_naive(scheduled_for)
        entry = NotificationLog(
            user_id=user_id,
            event_id=event_id,
            scheduled_for=scheduled_for,
            sent_at=sent_at,
            status=status,
            error_message=error_message,
            expo_receipt_id=receipt_id,
            dedup_key=dedup_key(user_id, event_id, scheduled_for.date()) if status != "failed" else None,
            created_at=created_at or utcnow(),
        )
        with self._session_factory() as db:
            db.add(entry)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info(f"Notification for event {event_id} on {scheduled_for.date()} already logged")
                return None
        return entry

    def claim(self, user_id, event_id, scheduled_for):
        """Insert-if-absent a pending entry for this event and day. Returns the entry id or None."""
        entry = self.add(user_id, event_id, scheduled_for, "pending")
        return entry.id if entry is not None else None

    def finalize(self, entry_id, status, error_message=None, receipt_id=None, sent_at=None):
        values = {
            "status": status,
            "error_message": error_message,
            "expo_receipt_id": receipt_id,
            "sent_at": sent_at or utcnow(),
        }
        if status == "failed":
            values["dedup_key"] = None
        with self._session_factory() as db:
            db.query(NotificationLog).filter(NotificationLog.id == entry_id).update(
                values, synchronize_session=False
            )
            db.commit()

    def list_for_event(self, event_id):
        with self._session_factory() as db:
            return db.query(NotificationLog).filter(
                NotificationLog.event_id == event_id
            ).order_by(NotificationLog.id).all()

    def count_older_than(self, cutoff, event_ids=None):
        with self._session_factory() as db:
            query = db.query(NotificationLog).filter(NotificationLog.created_at < cutoff)
            if event_ids is not None:
                query = query.filter(NotificationLog.event_id.in_(event_ids))
            return query.count()

    def delete_for_events(self, event_ids):
        if not event_ids:
            return 0
        with self._session_factory() as db:
            deleted = db.query(NotificationLog).filter(
                NotificationLog.event_id.in_(event_ids)
            ).delete(synchronize_session=False)
            db.commit()
        return deleted

    def delete_older_than(self, cutoff):
        with self._session_factory() as db:
            deleted = db.query(NotificationLog).filter(
                NotificationLog.created_at < cutoff
            ).delete(synchronize_session=False)
            db.commit()
        return deleted


class AddressRegistry:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def register(self, user_id, token, device_info=None):
        if not token or not is_valid_push_token(token):
            raise ValueError("Invalid Expo push token format")
        with self._session_factory() as db:
            registration = db.get(PushRegistration, user_id) or PushRegistration(user_id=user_id)
            registration.expo_push_token = token
            registration.expo_push_token_updated_at = utcnow()
            registration.device_info = device_info
            db.add(registration)
            db.commit()
        logger.info(f"Push token registered for user {user_id}")
        return registration

    def get(self, user_id):
        with self._session_factory() as db:
            registration = db.get(PushRegistration, user_id)
        return registration.expo_push_token if registration else None

    def get_many(self, user_ids):
        if not user_ids:
            return {}
        with self._session_factory() as db:
            rows = db.query(PushRegistration).filter(
                PushRegistration.user_id.in_(list(user_ids)),
                PushRegistration.expo_push_token.isnot(None),
            ).all()
        return {row.user_id: row.expo_push_token for row in rows}

    def clear(self, user_id):
        with self._session_factory() as db:
            db.query(PushRegistration).filter(PushRegistration.user_id == user_id).update(
                {"expo_push_token": None, "expo_push_token_updated_at": None},
                synchronize_session=False,
            )
            db.commit()


class AnomalyStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def add_many(self, records):
        rows = [
            TransactionAnomaly(
                date=record.date, anomaly_message=record.message, type=record.type,
                score=record.score, read=record.read,
            )
            for record in records
        ]
        with self._session_factory() as db:
            db.add_all(rows)
            db.commit()
        return len(rows)

    def list_all(self):
        with self._session_factory() as db:
            return db.query(TransactionAnomaly).order_by(
                TransactionAnomaly.date.desc(), TransactionAnomaly.id.desc()
            ).all()

    def delete_before(self, cutoff_date):
        with self._session_factory() as db:
            deleted = db.query(TransactionAnomaly).filter(
                TransactionAnomaly.date < cutoff_date
            ).delete(synchronize_session=False)
            db.commit()
        return deleted

    def mark_all_read(self):
        with self._session_factory() as db:
            updated = db.query(TransactionAnomaly).filter(
                TransactionAnomaly.read.is_(False)
            ).update({"read": True}, synchronize_session=False)
            db.commit()
        return updated


@dataclass
class Stores:
    events: EventStore
    schedules: ScheduleStore
    logs: NotificationLogStore
    addresses: AddressRegistry
    anomalies: AnomalyStore

    @classmethod
    def from_session_factory(cls, session_factory):
        return cls(
            events=EventStore(session_factory),
            schedules=ScheduleStore(session_factory),
            logs=NotificationLogStore(session_factory),
            addresses=AddressRegistry(session_factory),
            anomalies=AnomalyStore(session_factory),
        )
