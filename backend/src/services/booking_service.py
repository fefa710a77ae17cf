"""
BookingService - booking intake and the status changes around slot claims.

Used by:
- POST /bookings (creation, optional alternative slots)
- POST /bookings/{id}/decline, POST /bookings/{id}/cancel
- SlotValidatorService and the claim reconciliation sweep (apply_claim)
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, retry_if_exception_type

from src.lib.logging import get_logger
from src.models.bookings import Booking, BookingStatus
from src.models.proposed_slots import ProposedSlot
from src.models.therapists import Therapist
from src.models.venues import Venue
from src.services.errors import (
    BookingNotFoundError,
    InvalidBookingStateError,
    TherapistNotFoundError,
    VenueNotFoundError,
)
from src.services.proposal_store import ClaimedSlot, ProposalStore


logger = get_logger(__name__)


DECLINABLE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.AWAITING_THERAPIST_SELECTION,
})


@dataclass
class NewBooking:
    """Input for creating a booking."""
    venue_id: UUID
    client_first_name: str
    phone: str
    slot_1: ProposedSlot
    client_last_name: str = ""
    client_email: Optional[str] = None
    language: str = "en"
    slot_2: Optional[ProposedSlot] = None
    slot_3: Optional[ProposedSlot] = None
    therapist_id: Optional[UUID] = None
    total_price: Optional[Decimal] = None
    treatments: list[str] = field(default_factory=list)

    @property
    def has_alternatives(self) -> bool:
        return self.slot_2 is not None or self.slot_3 is not None


class BookingService:
    """
    Service for creating bookings and moving them through their lifecycle.
    """

    def __init__(self, db: Session):
        self.db = db
        self.proposals = ProposalStore(db)

    def get_booking(self, booking_id: UUID) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def get_therapist(self, therapist_id: UUID) -> Therapist:
        therapist = self.db.get(Therapist, therapist_id)
        if therapist is None:
            raise TherapistNotFoundError(therapist_id)
        return therapist

    def create_booking(self, data: NewBooking) -> Booking:
        """
        Create a booking, plus its slot proposal when alternatives are given.

        A booking with alternative slots waits for a therapist to claim one
        (awaiting_therapist_selection); otherwise it starts as pending.

        Raises:
            VenueNotFoundError, TherapistNotFoundError
            ValueError: a pre-assigned therapist was combined with alternative slots
        """
        if data.therapist_id and data.has_alternatives:
            raise ValueError("A booking with alternative slots cannot be pre-assigned to a therapist")

        venue = self.db.get(Venue, data.venue_id)
        if venue is None:
            raise VenueNotFoundError(data.venue_id)

        therapist = self.get_therapist(data.therapist_id) if data.therapist_id else None

        booking = self._insert_booking(data, venue, therapist)
        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "booking_number": booking.booking_number,
                "status": booking.status.value,
            },
        )
        return booking

    @retry(
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(IntegrityError),
        reraise=True,
    )
    def _insert_booking(self, data: NewBooking, venue: Venue, therapist: Optional[Therapist]) -> Booking:
        # max+1 can collide under concurrent inserts; the unique index rejects
        # the loser and tenacity re-runs the whole insert
        next_number = self.db.execute(
            select(func.coalesce(func.max(Booking.booking_number), 0) + 1)
        ).scalar_one()

        now = datetime.now(timezone.utc)
        booking = Booking(
            booking_number=next_number,
            venue_id=venue.id,
            venue_name=venue.name,
            client_first_name=data.client_first_name,
            client_last_name=data.client_last_name,
            client_email=data.client_email,
            phone=data.phone,
            language=data.language,
            booking_date=data.slot_1.date,
            booking_time=data.slot_1.time,
            status=(
                BookingStatus.AWAITING_THERAPIST_SELECTION
                if data.has_alternatives
                else BookingStatus.PENDING
            ),
            therapist_id=therapist.id if therapist else None,
            therapist_name=therapist.full_name if therapist else None,
            assigned_at=now if therapist else None,
            declined_by=[],
            total_price=data.total_price,
            treatments=list(data.treatments),
            created_at=now,
            updated_at=now,
        )
        self.db.add(booking)
        try:
            self.db.flush()
            if data.has_alternatives:
                self.proposals.create_proposal(
                    booking.id,
                    data.slot_1,
                    slot_2=data.slot_2,
                    slot_3=data.slot_3,
                )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("Booking number collision, retrying", extra={"booking_number": next_number})
            raise
        return booking

    def decline_booking(self, booking_id: UUID, therapist_id: UUID) -> Booking:
        """
        Record that a therapist passed on a booking. Idempotent.

        Raises:
            BookingNotFoundError, TherapistNotFoundError
            InvalidBookingStateError: the booking is no longer open for therapists
        """
        booking = self.get_booking(booking_id)
        self.get_therapist(therapist_id)

        if booking.status not in DECLINABLE_STATUSES:
            raise InvalidBookingStateError(booking.status.value)

        if not booking.has_declined(therapist_id):
            booking.declined_by = [*(booking.declined_by or []), str(therapist_id)]
            self.db.commit()
            logger.info(
                "Therapist declined booking",
                extra={"booking_id": str(booking_id), "therapist_id": str(therapist_id)},
            )
        return booking

    def transition_status(self, booking: Booking, target: BookingStatus) -> Booking:
        """
        Move a booking to `target` if the state machine allows it.

        Raises:
            InvalidBookingStateError: transition not allowed
        """
        if not booking.status.can_transition_to(target):
            raise InvalidBookingStateError(booking.status.value)
        previous = booking.status
        booking.status = target
        booking.updated_at = datetime.now(timezone.utc)
        self.db.commit()
        logger.info(
            "Booking status changed",
            extra={"booking_id": str(booking.id), "from_status": previous.value, "to_status": target.value},
        )
        return booking

    def cancel_booking(self, booking_id: UUID) -> Booking:
        """
        Cancel an open booking. An unclaimed proposal can no longer be
        claimed afterwards, since claims require awaiting_therapist_selection.

        Raises:
            BookingNotFoundError
            InvalidBookingStateError: completed or already cancelled
        """
        return self.transition_status(self.get_booking(booking_id), BookingStatus.CANCELLED)

    def apply_claim(self, claim: ClaimedSlot, therapist_name: str) -> bool:
        """
        Copy a claimed slot onto its booking and confirm it.

        Guarded on the booking still awaiting therapist selection, so a
        booking cancelled meanwhile is left alone.

        Returns:
            True if the booking row was updated
        """
        result = self.db.execute(
            update(Booking)
            .where(
                Booking.id == claim.booking_id,
                Booking.status == BookingStatus.AWAITING_THERAPIST_SELECTION,
            )
            .values(
                booking_date=claim.slot.date,
                booking_time=claim.slot.time,
                therapist_id=claim.therapist_id,
                therapist_name=therapist_name,
                status=BookingStatus.CONFIRMED,
                assigned_at=claim.claimed_at,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0


def get_booking_service(db: Session) -> BookingService:
    """Get a BookingService bound to a session."""
    return BookingService(db)
