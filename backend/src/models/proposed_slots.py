"""
Proposed slot model - up to three alternative (date, time) slots for a booking
awaiting therapist selection, plus the single claim on one of them.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import Integer, Date, Time, DateTime, ForeignKey, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.lib.db import Base


SLOT_NUMBERS = (1, 2, 3)


@dataclass(frozen=True)
class ProposedSlot:
    """One candidate (date, time) pair."""
    date: date
    time: time


class ProposedSlotSet(Base):
    """
    ProposedSlotSet entity (one per booking).

    The claim columns (validated_slot/by/at) are written exactly once, by a
    conditional update guarded on `validated_slot IS NULL`.
    """
    __tablename__ = "booking_proposed_slots"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    booking_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Candidate slots, slot 1 preferred
    slot_1_date: Mapped[date] = mapped_column(Date, nullable=False)
    slot_1_time: Mapped[time] = mapped_column(Time, nullable=False)
    slot_2_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    slot_2_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    slot_3_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    slot_3_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    # Claim
    validated_slot: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    validated_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("therapists.id", ondelete="SET NULL"),
        nullable=True,
    )
    validated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Expiry
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    admin_notified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Set once admins were alerted that nobody claimed in time",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "validated_slot IS NULL OR validated_slot IN (1, 2, 3)",
            name="proposed_slots_validated_slot_range",
        ),
        CheckConstraint(
            "(slot_2_date IS NULL) = (slot_2_time IS NULL)",
            name="proposed_slots_slot_2_complete",
        ),
        CheckConstraint(
            "(slot_3_date IS NULL) = (slot_3_time IS NULL)",
            name="proposed_slots_slot_3_complete",
        ),
    )

    def slot(self, number: int) -> Optional[ProposedSlot]:
        """Return slot `number` (1-3) or None if it was not proposed."""
        if number not in SLOT_NUMBERS:
            return None
        slot_date = getattr(self, f"slot_{number}_date")
        slot_time = getattr(self, f"slot_{number}_time")
        if slot_date is None or slot_time is None:
            return None
        return ProposedSlot(date=slot_date, time=slot_time)

    def populated_slots(self) -> list[tuple[int, ProposedSlot]]:
        """All proposed slots in preference order."""
        return [(n, s) for n in SLOT_NUMBERS if (s := self.slot(n)) is not None]

    def __repr__(self) -> str:
        return (
            f"<ProposedSlotSet(booking_id={self.booking_id}, "
            f"validated_slot={self.validated_slot})>"
        )
