"""
Therapist model - service providers - and their venue affiliations.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, DateTime, ForeignKey, Uuid, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from src.lib.db import Base


class TherapistStatus(str, enum.Enum):
    """Therapist account status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class Therapist(Base):
    """
    Therapist entity.
    `user_id` is the auth identity push notifications are addressed to;
    therapists who never signed in have none and cannot be notified.
    """
    __tablename__ = "therapists"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        unique=True,
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    status: Mapped[TherapistStatus] = mapped_column(
        SQLEnum(
            TherapistStatus,
            name="therapist_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=TherapistStatus.PENDING,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Therapist(id={self.id}, name={self.full_name}, status={self.status})>"


class TherapistVenue(Base):
    """
    Many-to-many affiliation between therapists and venues.
    """
    __tablename__ = "therapist_venues"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    therapist_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("therapists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    venue_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("venues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("therapist_id", "venue_id", name="uq_therapist_venue"),
    )

    def __repr__(self) -> str:
        return f"<TherapistVenue(therapist_id={self.therapist_id}, venue_id={self.venue_id})>"
