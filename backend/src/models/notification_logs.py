"""
Notification log model - one row per (booking, user) push notification.
"""
from datetime import datetime, timezone
from uuid import uuid4, UUID

from sqlalchemy import String, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.lib.db import Base


class NotificationLog(Base):
    """
    Idempotency record for booking notifications.

    Rows are inserted *before* the push is sent; the unique constraint on
    (booking_id, user_id) makes a second insert for the same pair fail, which
    callers treat as "already notified".
    """
    __tablename__ = "notification_logs"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    notification_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="new_booking",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("booking_id", "user_id", name="uq_notification_logs_booking_user"),
    )

    def __repr__(self) -> str:
        return f"<NotificationLog(booking_id={self.booking_id}, user_id={self.user_id})>"
