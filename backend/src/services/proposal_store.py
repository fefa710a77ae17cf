"""
ProposalStore - persistence boundary for proposed slots and their claim.

The claim is adjudicated by a single conditional UPDATE
(`... WHERE booking_id = :id AND validated_slot IS NULL`). Whichever caller's
update touches a row wins; everyone else sees zero affected rows. No
application-level locking is involved, so this holds across processes.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.lib.logging import get_logger
from src.lib.settings import settings
from src.models.bookings import Booking, BookingStatus
from src.models.proposed_slots import ProposedSlot, ProposedSlotSet
from src.services.errors import (
    NoProposalError,
    ProposalExistsError,
    SlotAlreadyClaimedError,
    SlotUnavailableError,
)


logger = get_logger(__name__)


@dataclass(frozen=True)
class ClaimedSlot:
    """Result of a successful claim."""
    booking_id: UUID
    slot_number: int
    slot: ProposedSlot
    therapist_id: UUID
    claimed_at: datetime


class ProposalStore:
    """
    Thin data-access layer over booking_proposed_slots.

    `create_proposal` only flushes so it can join the caller's transaction;
    `try_claim` and `mark_admin_notified` commit immediately because each is
    a self-contained conditional write.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_proposal(
        self,
        booking_id: UUID,
        slot_1: ProposedSlot,
        slot_2: Optional[ProposedSlot] = None,
        slot_3: Optional[ProposedSlot] = None,
        expires_at: Optional[datetime] = None,
    ) -> ProposedSlotSet:
        """
        Create the proposal for a booking.

        Raises:
            ProposalExistsError: the booking already has a proposal
        """
        if self.get_proposal(booking_id) is not None:
            raise ProposalExistsError(booking_id)

        now = datetime.now(timezone.utc)
        proposal = ProposedSlotSet(
            booking_id=booking_id,
            slot_1_date=slot_1.date,
            slot_1_time=slot_1.time,
            slot_2_date=slot_2.date if slot_2 else None,
            slot_2_time=slot_2.time if slot_2 else None,
            slot_3_date=slot_3.date if slot_3 else None,
            slot_3_time=slot_3.time if slot_3 else None,
            expires_at=expires_at or now + timedelta(minutes=settings.proposal_ttl_minutes),
            created_at=now,
        )
        self.db.add(proposal)
        try:
            # Unique booking_id catches a concurrent create
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ProposalExistsError(booking_id) from e

        logger.info(
            "Created slot proposal",
            extra={"booking_id": str(booking_id), "slots": len(proposal.populated_slots())},
        )
        return proposal

    def get_proposal(self, booking_id: UUID) -> Optional[ProposedSlotSet]:
        """Return the proposal for a booking, or None."""
        return self.db.execute(
            select(ProposedSlotSet).where(ProposedSlotSet.booking_id == booking_id)
        ).scalar_one_or_none()

    def try_claim(self, booking_id: UUID, slot_number: int, therapist_id: UUID) -> ClaimedSlot:
        """
        Atomically claim one proposed slot for a therapist.

        Raises:
            NoProposalError: no proposal for this booking
            SlotUnavailableError: the requested slot was not proposed
            SlotAlreadyClaimedError: another claim already succeeded
        """
        proposal = self.get_proposal(booking_id)
        if proposal is None:
            raise NoProposalError(booking_id)

        slot = proposal.slot(slot_number)
        if slot is None:
            raise SlotUnavailableError(slot_number)

        claimed_at = datetime.now(timezone.utc)
        result = self.db.execute(
            update(ProposedSlotSet)
            .where(
                ProposedSlotSet.booking_id == booking_id,
                ProposedSlotSet.validated_slot.is_(None),
            )
            .values(
                validated_slot=slot_number,
                validated_by=therapist_id,
                validated_at=claimed_at,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            self.db.rollback()
            logger.info(
                "Slot claim lost",
                extra={"booking_id": str(booking_id), "therapist_id": str(therapist_id)},
            )
            raise SlotAlreadyClaimedError(booking_id)

        self.db.commit()
        self.db.expire(proposal)

        logger.info(
            "Slot claimed",
            extra={
                "booking_id": str(booking_id),
                "slot_number": slot_number,
                "therapist_id": str(therapist_id),
            },
        )
        return ClaimedSlot(
            booking_id=booking_id,
            slot_number=slot_number,
            slot=slot,
            therapist_id=therapist_id,
            claimed_at=claimed_at,
        )

    def find_expired_unclaimed(self, now: Optional[datetime] = None) -> list[tuple[ProposedSlotSet, Booking]]:
        """
        Proposals nobody claimed before `expires_at` and that admins were not
        yet alerted about, restricted to bookings still awaiting selection.
        """
        now = now or datetime.now(timezone.utc)
        rows = self.db.execute(
            select(ProposedSlotSet, Booking)
            .join(Booking, Booking.id == ProposedSlotSet.booking_id)
            .where(
                ProposedSlotSet.validated_slot.is_(None),
                ProposedSlotSet.admin_notified_at.is_(None),
                ProposedSlotSet.expires_at < now,
                Booking.status == BookingStatus.AWAITING_THERAPIST_SELECTION,
            )
            .order_by(ProposedSlotSet.expires_at)
        ).all()
        return [(proposal, booking) for proposal, booking in rows]

    def mark_admin_notified(self, proposal_id: UUID) -> bool:
        """
        Stamp admin_notified_at once. Returns False if another sweep got there first.
        """
        result = self.db.execute(
            update(ProposedSlotSet)
            .where(
                ProposedSlotSet.id == proposal_id,
                ProposedSlotSet.admin_notified_at.is_(None),
            )
            .values(admin_notified_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0

    def find_unapplied_claims(
        self,
        now: Optional[datetime] = None,
        grace_seconds: Optional[int] = None,
    ) -> list[tuple[ProposedSlotSet, Booking]]:
        """
        Claimed proposals whose booking was never moved to confirmed.

        Claims younger than `grace_seconds` are left out: their validator
        request may still be about to confirm the booking itself.
        """
        now = now or datetime.now(timezone.utc)
        if grace_seconds is None:
            grace_seconds = settings.claim_reconcile_grace_seconds
        rows = self.db.execute(
            select(ProposedSlotSet, Booking)
            .join(Booking, Booking.id == ProposedSlotSet.booking_id)
            .where(
                ProposedSlotSet.validated_slot.is_not(None),
                ProposedSlotSet.validated_at < now - timedelta(seconds=grace_seconds),
                Booking.status == BookingStatus.AWAITING_THERAPIST_SELECTION,
            )
        ).all()
        return [(proposal, booking) for proposal, booking in rows]


def get_proposal_store(db: Session) -> ProposalStore:
    """Get a ProposalStore bound to a session."""
    return ProposalStore(db)
