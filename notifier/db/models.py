from typing import Any, List, Optional
from datetime import datetime
import enum
import uuid

from sqlalchemy import (
    String,
    Boolean,
    Text,
    Enum,
    Index,
    DateTime,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from notifier.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


def generate_id() -> str:
    return str(uuid.uuid4())


# Enums
class NotificationTarget(enum.Enum):
    ALL = "all"
    USERS = "users"


class NotificationStatus(enum.Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENT = "sent"
    FAILED = "failed"


# Statuses a dispatch may start from; SENT is terminal
CLAIMABLE_STATUSES = (
    NotificationStatus.DRAFT,
    NotificationStatus.SCHEDULED,
    NotificationStatus.FAILED,
)


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, onupdate=naive_utc_now
    )


# Models
class User(Base, AuditMixin):
    """App user. Only `id` and `is_active` matter to notification dispatch."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    email: Mapped[Optional[str]] = mapped_column(String(320), unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (Index("idx_users_is_active", "is_active"),)


class Notification(Base, AuditMixin):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    target: Mapped[NotificationTarget] = mapped_column(
        Enum(NotificationTarget), default=NotificationTarget.ALL, nullable=False
    )
    # Raw references as the composer stored them; normalized at dispatch time
    recipient_ids: Mapped[List[Any]] = mapped_column(
        JSON, default=list, nullable=False
    )
    scheduled_for: Mapped[Optional[datetime]] = mapped_column(DateTime)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[NotificationStatus] = mapped_column(
        Enum(NotificationStatus), default=NotificationStatus.DRAFT, nullable=False
    )

    # Dispatch bookkeeping
    provider_notification_id: Mapped[Optional[str]] = mapped_column(String(128))
    last_error: Mapped[Optional[str]] = mapped_column(Text)
    dispatch_claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_notif_status_scheduled_for", "status", "scheduled_for"),
        Index("idx_notif_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} status={self.status.value if self.status else None}>"
