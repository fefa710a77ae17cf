"""
Booking model - appointment requests and commitments at a venue.
"""
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Integer,
    Numeric,
    Date,
    Time,
    DateTime,
    ForeignKey,
    JSON,
    Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.lib.db import Base


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.

    pending → awaiting_therapist_selection → confirmed → ongoing → completed,
    with quote_pending for on-request prices and cancelled from any open state.
    """
    PENDING = "pending"
    AWAITING_THERAPIST_SELECTION = "awaiting_therapist_selection"
    QUOTE_PENDING = "quote_pending"
    CONFIRMED = "confirmed"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "BookingStatus") -> bool:
        """Return True if `target` is an allowed next status."""
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.AWAITING_THERAPIST_SELECTION,
        BookingStatus.CONFIRMED,
        BookingStatus.QUOTE_PENDING,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.QUOTE_PENDING: frozenset({
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.AWAITING_THERAPIST_SELECTION: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.ONGOING,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.ONGOING: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


class Booking(Base):
    """
    Booking entity - one spa/grooming appointment at a venue.

    `booking_date`/`booking_time` hold the requested slot and are overwritten
    when a therapist claims one of the proposed alternatives.
    """
    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    booking_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        unique=True,
        comment="Human-facing sequential booking number",
    )

    # Venue
    venue_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("venues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    venue_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Client
    client_first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    client_last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    client_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    language: Mapped[str] = mapped_column(String(5), nullable=False, default="en")

    # Scheduling
    booking_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    booking_time: Mapped[time] = mapped_column(Time, nullable=False)

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    # Assignment
    therapist_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("therapists.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    therapist_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    declined_by: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Therapist ids who passed on this booking",
    )

    # Pricing
    total_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    treatments: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def client_name(self) -> str:
        return f"{self.client_first_name} {self.client_last_name}".strip()

    def has_declined(self, therapist_id: UUID) -> bool:
        return str(therapist_id) in (self.declined_by or [])

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, number={self.booking_number}, status={self.status})>"
