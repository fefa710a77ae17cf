"""
Proposal sweeps.

- sweep_expired_proposals: alert admins once about proposals nobody claimed
  before they expired
- reconcile_claimed_bookings: re-apply claims whose booking update failed
  after the claim was recorded (the booking is still awaiting selection)

Both are safe to run concurrently with each other and with themselves: every
write is a conditional update.
"""
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from src.lib.db import get_db_context
from src.lib.logging import get_logger, log_with_context
from src.lib.metrics import get_metrics_collector
from src.lib.settings import settings
from src.models.therapists import Therapist
from src.models.venues import Venue
from src.services.booking_service import BookingService
from src.services.proposal_store import ClaimedSlot, ProposalStore
from src.services.team_chat import AlertType, BookingAlert, TeamChatNotifier, get_team_chat_notifier


logger = get_logger(__name__)


EXPIRED_THERAPIST_LABEL = "No therapist (proposal expired)"

EXPIRED_SWEEP_JOB_ID = "sweep_expired_proposals"
RECONCILE_JOB_ID = "reconcile_claimed_bookings"


async def sweep_expired_proposals(
    db: Session,
    team_chat: TeamChatNotifier,
    now: Optional[datetime] = None,
) -> dict[str, int]:
    """
    Alert the team about expired, unclaimed proposals.

    Each proposal is stamped with admin_notified_at before its alert is sent,
    so overlapping sweeps alert at most once.

    Returns:
        {"expired": proposals found, "notified": alerts sent}
    """
    store = ProposalStore(db)
    metrics = get_metrics_collector()
    expired = store.find_expired_unclaimed(now=now)
    notified = 0

    for proposal, booking in expired:
        if not store.mark_admin_notified(proposal.id):
            continue

        venue = db.get(Venue, booking.venue_id)
        alert = BookingAlert(
            type=AlertType.NEW_BOOKING,
            booking_id=str(booking.id),
            booking_number=str(booking.booking_number),
            client_name=booking.client_name,
            venue_name=booking.venue_name or "",
            booking_date=booking.booking_date,
            booking_time=booking.booking_time,
            therapist_name=EXPIRED_THERAPIST_LABEL,
            total_price=Decimal("0"),
            currency=(venue.currency.upper() if venue and venue.currency else settings.default_currency),
            treatments=list(booking.treatments or []),
        )
        try:
            await team_chat.notify(alert)
        except Exception:
            metrics.increment_side_effect_failures("team_chat")
            logger.error(
                "Expired proposal alert failed",
                extra={"booking_id": str(booking.id)},
                exc_info=True,
            )
            continue
        notified += 1

    metrics.increment_sweeps("expired_notified", notified)
    log_with_context(
        logger,
        "info",
        f"Expired proposal sweep: {notified}/{len(expired)} notified",
        sweep=EXPIRED_SWEEP_JOB_ID,
        expired=len(expired),
        notified=notified,
    )
    return {"expired": len(expired), "notified": notified}


def reconcile_claimed_bookings(db: Session, now: Optional[datetime] = None) -> dict[str, int]:
    """
    Confirm bookings whose proposal was claimed but which never left
    awaiting_therapist_selection. Payment link and alerts are not replayed.

    Only claims older than CLAIM_RECONCILE_GRACE_SECONDS are touched, so a
    validator request that is still running confirms its own booking.

    Returns:
        {"repaired": bookings confirmed}
    """
    store = ProposalStore(db)
    bookings = BookingService(db)
    repaired = 0

    for proposal, booking in store.find_unapplied_claims(now=now):
        slot = proposal.slot(proposal.validated_slot)
        if slot is None:
            logger.error(
                "Claimed slot missing from proposal",
                extra={"booking_id": str(booking.id), "slot_number": proposal.validated_slot},
            )
            continue

        therapist = db.get(Therapist, proposal.validated_by) if proposal.validated_by else None
        claim = ClaimedSlot(
            booking_id=booking.id,
            slot_number=proposal.validated_slot,
            slot=slot,
            therapist_id=proposal.validated_by,
            claimed_at=proposal.validated_at,
        )
        if bookings.apply_claim(claim, therapist.full_name if therapist else None):
            repaired += 1
            logger.warning(
                "Re-applied claimed slot to booking",
                extra={"booking_id": str(booking.id), "slot_number": proposal.validated_slot},
            )

    get_metrics_collector().increment_sweeps("claim_repaired", repaired)
    if repaired:
        log_with_context(logger, "warning", "Claim reconciliation repaired bookings", sweep=RECONCILE_JOB_ID, repaired=repaired)
    return {"repaired": repaired}


def run_expired_proposal_sweep() -> dict[str, int]:
    """Scheduler entry point: own session, own event loop (runs in a worker thread)."""
    with get_db_context() as db:
        return asyncio.run(sweep_expired_proposals(db, get_team_chat_notifier()))


def run_claim_reconciliation() -> dict[str, int]:
    """Scheduler entry point for reconcile_claimed_bookings."""
    with get_db_context() as db:
        return reconcile_claimed_bookings(db)


def register_sweeps(scheduler, interval_minutes: int) -> None:
    """Register both sweeps as interval jobs on a SchedulerManager."""
    scheduler.add_interval_job(
        run_expired_proposal_sweep,
        job_id=EXPIRED_SWEEP_JOB_ID,
        minutes=interval_minutes,
    )
    scheduler.add_interval_job(
        run_claim_reconciliation,
        job_id=RECONCILE_JOB_ID,
        minutes=interval_minutes,
    )
