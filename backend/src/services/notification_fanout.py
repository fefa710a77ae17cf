"""
NotificationFanoutService - alert eligible therapists about a booking.

Eligible recipients: therapists affiliated with the booking's venue, active,
with a user account, and not in the booking's declined_by list. In
single-recipient mode (notify_all=False) a booking that already has a
therapist only notifies that therapist.

Each (booking, user) pair is notified at most once: a NotificationLog row is
inserted before the push is sent, and the unique constraint turns a second
attempt (sequential retry or concurrent trigger) into a skipped duplicate.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.lib.logging import get_logger
from src.lib.metrics import get_metrics_collector
from src.lib.settings import settings
from src.models.bookings import Booking
from src.models.notification_logs import NotificationLog
from src.models.proposed_slots import ProposedSlotSet
from src.models.therapists import Therapist, TherapistStatus, TherapistVenue
from src.models.venues import Venue
from src.services.errors import BookingNotFoundError
from src.services.proposal_store import ProposalStore
from src.services.push_service import PushMessage, PushProvider
from src.services.team_chat import AlertType, BookingAlert, TeamChatNotifier


logger = get_logger(__name__)


NEW_BOOKING_TITLE = "🎉 New booking!"
NOTIFICATION_TYPE = "new_booking"


@dataclass(frozen=True)
class FanoutResult:
    """Outcome counts of one fan-out run."""
    notifications_sent: int
    skipped_duplicates: int
    total_eligible: int


def format_booking_message(booking: Booking, proposal: Optional[ProposedSlotSet] = None) -> str:
    """
    Push body for a booking.

    With a proposal every proposed slot is listed as a numbered option,
    otherwise the booking's own date and time are used.
    """
    header = f"Booking #{booking.booking_number} at {booking.venue_name or 'venue'}"
    if proposal is not None:
        options = [
            f"Option {number}: {slot.date.strftime('%d/%m/%Y')} at {slot.time.strftime('%H:%M')}"
            for number, slot in proposal.populated_slots()
        ]
        return "\n".join([f"{header} - choose a slot:", *options])
    return (
        f"{header} on {booking.booking_date.strftime('%d/%m/%Y')} "
        f"at {booking.booking_time.strftime('%H:%M')}"
    )


class NotificationFanoutService:
    """
    Sends new-booking push notifications and the team chat summary.
    """

    def __init__(
        self,
        db: Session,
        push_provider: PushProvider,
        team_chat: TeamChatNotifier,
    ):
        self.db = db
        self.proposals = ProposalStore(db)
        self.push_provider = push_provider
        self.team_chat = team_chat
        self.metrics = get_metrics_collector()

    def eligible_therapists(self, booking: Booking, notify_all: bool = False) -> list[Therapist]:
        """
        Therapists who should hear about `booking`.

        Args:
            booking: Booking to notify about
            notify_all: Notify every eligible therapist at the venue even if
                the booking already has one assigned
        """
        stmt = (
            select(Therapist)
            .join(TherapistVenue, TherapistVenue.therapist_id == Therapist.id)
            .where(
                TherapistVenue.venue_id == booking.venue_id,
                Therapist.status == TherapistStatus.ACTIVE,
                Therapist.user_id.is_not(None),
            )
            .order_by(Therapist.last_name, Therapist.first_name)
        )
        therapists = [
            t for t in self.db.execute(stmt).scalars().unique()
            if not booking.has_declined(t.id)
        ]

        if not notify_all and booking.therapist_id is not None:
            therapists = [t for t in therapists if t.id == booking.therapist_id]
            logger.info("Notifying assigned therapist only", extra={"booking_id": str(booking.id)})
        else:
            logger.info(
                f"Notifying all {len(therapists)} eligible therapists",
                extra={"booking_id": str(booking.id)},
            )
        return therapists

    async def notify_new_booking(self, booking_id: UUID, notify_all: bool = False) -> FanoutResult:
        """
        Fan out new-booking notifications.

        Raises:
            BookingNotFoundError: unknown booking
        """
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)

        proposal = self.proposals.get_proposal(booking_id)
        recipients = self.eligible_therapists(booking, notify_all=notify_all)

        body = format_booking_message(booking, proposal)
        claimed: list[Therapist] = []
        skipped = 0
        for therapist in recipients:
            if self._claim_notification(booking.id, therapist.user_id):
                claimed.append(therapist)
            else:
                skipped += 1

        results = await asyncio.gather(
            *(self._send_push(booking, therapist, body) for therapist in claimed)
        )
        sent = sum(1 for ok in results if ok)

        self.metrics.increment_notifications("sent", sent)
        self.metrics.increment_notifications("skipped_duplicate", skipped)
        self.metrics.increment_notifications("failed", len(claimed) - sent)

        await self._send_team_chat_summary(booking)

        logger.info(
            f"Notifications sent: {sent}/{len(recipients)}",
            extra={
                "booking_id": str(booking_id),
                "notifications_sent": sent,
                "skipped_duplicates": skipped,
                "total_eligible": len(recipients),
            },
        )
        return FanoutResult(
            notifications_sent=sent,
            skipped_duplicates=skipped,
            total_eligible=len(recipients),
        )

    def _claim_notification(self, booking_id: UUID, user_id: UUID) -> bool:
        """
        Insert the log row for (booking, user). False means it already exists.
        """
        self.db.add(
            NotificationLog(
                booking_id=booking_id,
                user_id=user_id,
                notification_type=NOTIFICATION_TYPE,
            )
        )
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Notification already sent, skipping",
                extra={"booking_id": str(booking_id), "user_id": str(user_id)},
            )
            return False
        return True

    async def _send_push(self, booking: Booking, therapist: Therapist, body: str) -> bool:
        message = PushMessage(
            user_id=str(therapist.user_id),
            title=NEW_BOOKING_TITLE,
            body=body,
            data={
                "bookingId": str(booking.id),
                "url": f"/pwa/bookings/{booking.id}",
            },
        )
        try:
            ok = await self.push_provider.send(message)
        except Exception:
            logger.error(
                f"Error sending push to {therapist.full_name}",
                extra={"booking_id": str(booking.id), "therapist_id": str(therapist.id)},
                exc_info=True,
            )
            return False
        if not ok:
            logger.warning(
                f"Push to {therapist.full_name} was not delivered",
                extra={"booking_id": str(booking.id), "therapist_id": str(therapist.id)},
            )
        return ok

    async def _send_team_chat_summary(self, booking: Booking) -> None:
        venue = self.db.get(Venue, booking.venue_id)
        currency = (venue.currency.upper() if venue and venue.currency else settings.default_currency)
        alert = BookingAlert(
            type=AlertType.NEW_BOOKING,
            booking_id=str(booking.id),
            booking_number=str(booking.booking_number),
            client_name=booking.client_name,
            venue_name=booking.venue_name or "",
            booking_date=booking.booking_date,
            booking_time=booking.booking_time,
            therapist_name=booking.therapist_name,
            total_price=booking.total_price,
            currency=currency,
            treatments=list(booking.treatments or []),
        )
        try:
            await self.team_chat.notify(alert)
        except Exception:
            self.metrics.increment_side_effect_failures("team_chat")
            logger.error(
                "Team chat summary failed",
                extra={"booking_id": str(booking.id)},
                exc_info=True,
            )


def get_notification_fanout_service(
    db: Session,
    push_provider: PushProvider,
    team_chat: TeamChatNotifier,
) -> NotificationFanoutService:
    """Get a NotificationFanoutService instance."""
    return NotificationFanoutService(db, push_provider, team_chat)
