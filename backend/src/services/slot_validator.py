"""
SlotValidatorService - a therapist claims one proposed slot for a booking.

Flow:
1. Preconditions, in order: booking exists, booking awaits therapist
   selection, proposal exists, slot was proposed, therapist exists
2. First-come-first-served claim (ProposalStore.try_claim)
3. Booking confirmed with the claimed slot and therapist
4. Best-effort side effects, dispatched independently: payment link to the
   client and a team chat alert

A failure in step 3 leaves the claim in place; the reconciliation sweep
(src.jobs.proposal_sweeper) re-applies it later.
"""
import asyncio
from dataclasses import dataclass
from datetime import date, time
from typing import Awaitable, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.lib.logging import get_logger
from src.lib.metrics import get_metrics_collector
from src.lib.settings import settings
from src.models.bookings import Booking, BookingStatus
from src.models.venues import Venue
from src.services.booking_service import BookingService
from src.services.errors import (
    BookingUpdateError,
    BookingWorkflowError,
    InvalidBookingStateError,
    NoProposalError,
    SlotAlreadyClaimedError,
    SlotUnavailableError,
)
from src.services.payment_links import PaymentLinkDispatcher, PaymentLinkRequest
from src.services.proposal_store import ClaimedSlot, ProposalStore
from src.services.team_chat import AlertType, BookingAlert, TeamChatNotifier


logger = get_logger(__name__)


@dataclass(frozen=True)
class SlotValidationResult:
    """What the therapist committed to."""
    selected_date: date
    selected_time: time
    therapist_name: str


class SlotValidatorService:
    """
    Validates a therapist's choice among a booking's proposed slots.
    """

    def __init__(
        self,
        db: Session,
        payment_links: PaymentLinkDispatcher,
        team_chat: TeamChatNotifier,
    ):
        self.db = db
        self.bookings = BookingService(db)
        self.proposals = ProposalStore(db)
        self.payment_links = payment_links
        self.team_chat = team_chat
        self.metrics = get_metrics_collector()

    async def validate_slot(
        self,
        booking_id: UUID,
        slot_number: int,
        therapist_id: UUID,
    ) -> SlotValidationResult:
        """
        Claim `slot_number` of `booking_id` for `therapist_id`.

        Raises:
            BookingNotFoundError, InvalidBookingStateError, NoProposalError,
            SlotUnavailableError, TherapistNotFoundError: preconditions
            SlotAlreadyClaimedError: another therapist claimed first
            BookingUpdateError: claim recorded but booking not confirmed
        """
        logger.info(
            "Validating slot",
            extra={
                "booking_id": str(booking_id),
                "slot_number": slot_number,
                "therapist_id": str(therapist_id),
            },
        )

        try:
            booking = self.bookings.get_booking(booking_id)
            if booking.status != BookingStatus.AWAITING_THERAPIST_SELECTION:
                raise InvalidBookingStateError(
                    booking.status.value,
                    expected=BookingStatus.AWAITING_THERAPIST_SELECTION.value,
                )

            proposal = self.proposals.get_proposal(booking_id)
            if proposal is None:
                raise NoProposalError(booking_id)
            if proposal.slot(slot_number) is None:
                raise SlotUnavailableError(slot_number)

            therapist = self.bookings.get_therapist(therapist_id)

            claim = self.proposals.try_claim(booking_id, slot_number, therapist.id)
        except SlotAlreadyClaimedError:
            self.metrics.increment_slot_claims(outcome="already_claimed")
            raise
        except BookingWorkflowError:
            self.metrics.increment_slot_claims(outcome="rejected")
            raise

        self.metrics.increment_slot_claims(outcome="claimed")
        therapist_name = therapist.full_name

        self._confirm_booking(claim, therapist_name)
        self.db.refresh(booking)

        logger.info(
            "Booking confirmed from proposed slot",
            extra={
                "booking_id": str(booking_id),
                "slot_number": slot_number,
                "selected_date": claim.slot.date.isoformat(),
                "selected_time": claim.slot.time.strftime("%H:%M"),
                "therapist_name": therapist_name,
            },
        )

        await self._dispatch_side_effects(booking, claim, therapist_name)

        return SlotValidationResult(
            selected_date=claim.slot.date,
            selected_time=claim.slot.time,
            therapist_name=therapist_name,
        )

    def _confirm_booking(self, claim: ClaimedSlot, therapist_name: str) -> None:
        try:
            updated = self.bookings.apply_claim(claim, therapist_name)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Slot claimed but booking update failed",
                extra={"booking_id": str(claim.booking_id), "slot_number": claim.slot_number},
                exc_info=True,
            )
            raise BookingUpdateError(claim.booking_id, str(e)) from e

        if not updated:
            current = self.db.get(Booking, claim.booking_id, populate_existing=True)
            if (
                current is not None
                and current.status == BookingStatus.CONFIRMED
                and current.therapist_id == claim.therapist_id
            ):
                # Reconciliation sweep applied this same claim first
                logger.info(
                    "Booking already confirmed for this claim",
                    extra={"booking_id": str(claim.booking_id), "slot_number": claim.slot_number},
                )
                return
            logger.error(
                "Slot claimed but booking no longer awaiting selection",
                extra={"booking_id": str(claim.booking_id), "slot_number": claim.slot_number},
            )
            raise BookingUpdateError(claim.booking_id, "booking is no longer awaiting therapist selection")

    async def _dispatch_side_effects(self, booking: Booking, claim: ClaimedSlot, therapist_name: str) -> None:
        """Run every side effect independently; none can fail the claim."""
        await asyncio.gather(
            self._guard("payment_link", booking.id, self._send_payment_link(booking)),
            self._guard("team_chat", booking.id, self._send_team_chat_alert(booking, claim, therapist_name)),
        )

    async def _guard(self, effect: str, booking_id: UUID, operation: Awaitable) -> bool:
        try:
            await operation
            return True
        except Exception:
            self.metrics.increment_side_effect_failures(effect)
            logger.error(
                f"Side effect {effect} failed",
                extra={"booking_id": str(booking_id), "effect": effect},
                exc_info=True,
            )
            return False

    async def _send_payment_link(self, booking: Booking) -> None:
        await self.payment_links.send(
            PaymentLinkRequest(
                booking_id=str(booking.id),
                language=booking.language or "en",
                channels=["whatsapp"],
                client_phone=booking.phone,
                client_email=booking.client_email,
            )
        )

    async def _send_team_chat_alert(self, booking: Booking, claim: ClaimedSlot, therapist_name: str) -> None:
        await self.team_chat.notify(
            BookingAlert(
                type=AlertType.BOOKING_CONFIRMED,
                booking_id=str(booking.id),
                booking_number=str(booking.booking_number),
                client_name=booking.client_name,
                venue_name=booking.venue_name or "",
                booking_date=claim.slot.date,
                booking_time=claim.slot.time,
                therapist_name=therapist_name,
                total_price=booking.total_price,
                currency=self._venue_currency(booking.venue_id),
                treatments=list(booking.treatments or []),
            )
        )

    def _venue_currency(self, venue_id: UUID) -> str:
        """Venue currency, falling back to the default if it cannot be resolved."""
        try:
            venue: Optional[Venue] = self.db.get(Venue, venue_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning(
                "Could not load venue currency, using default",
                extra={"venue_id": str(venue_id), "currency": settings.default_currency},
                exc_info=True,
            )
            return settings.default_currency
        if venue is None or not venue.currency:
            return settings.default_currency
        return venue.currency.upper()


def get_slot_validator_service(
    db: Session,
    payment_links: PaymentLinkDispatcher,
    team_chat: TeamChatNotifier,
) -> SlotValidatorService:
    """Get a SlotValidatorService instance."""
    return SlotValidatorService(db, payment_links, team_chat)
