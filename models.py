# models.py
import uuid

from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, Time, Boolean, Float, JSON,
    ForeignKey, UniqueConstraint, Index,
)
from sqlalchemy.sql import func
from database import Base

EVENT_TYPES = ("bill", "credit_card", "budget_review")
RECURRENCE_TYPES = ("one_time", "weekly", "monthly", "custom")
LOG_STATUSES = ("sent", "failed", "pending")


def _uuid():
    return str(uuid.uuid4())


class Event(Base):
    __tablename__ = "events"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(32), nullable=False)       # bill, credit_card, budget_review
    title = Column(String, nullable=False)
    description = Column(Text)
    due_date = Column(Date, nullable=False)               # recurrence anchor
    recurrence_type = Column(String(16), nullable=False, default="one_time")
    recurrence_interval = Column(Integer)                 # days, custom only
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class NotificationSchedule(Base):
    __tablename__ = "event_notification_schedules"
    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    notification_time = Column(Time, nullable=False)
    days_before = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())


class NotificationLog(Base):
    __tablename__ = "notification_queue"
    __table_args__ = (
        # "user:event:YYYY-MM-DD" while sent or pending, NULL once failed
        UniqueConstraint("dedup_key", name="uq_notification_queue_dedup_key"),
        Index("ix_notification_queue_user_event_scheduled", "user_id", "event_id", "scheduled_for"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    scheduled_for = Column(DateTime, nullable=False)      # naive UTC
    sent_at = Column(DateTime)
    status = Column(String(16), nullable=False, default="pending")   # sent, failed, pending
    error_message = Column(Text)
    expo_receipt_id = Column(String)
    dedup_key = Column(String(160))
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True)


class PushRegistration(Base):
    __tablename__ = "user_push_tokens"
    user_id = Column(String(64), primary_key=True)
    expo_push_token = Column(String)
    expo_push_token_updated_at = Column(DateTime)
    device_info = Column(JSON)


class TransactionAnomaly(Base):
    __tablename__ = "transaction_anomalies"
    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, nullable=False, index=True)
    anomaly_message = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    score = Column(Float, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, server_default=func.now())
