"""
Unit tests for the proposal sweeps and their scheduling.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from src.jobs.proposal_sweeper import (
    EXPIRED_SWEEP_JOB_ID,
    EXPIRED_THERAPIST_LABEL,
    RECONCILE_JOB_ID,
    reconcile_claimed_bookings,
    register_sweeps,
    run_claim_reconciliation,
    run_expired_proposal_sweep,
    sweep_expired_proposals,
)
from src.lib.metrics import get_metrics_collector
from src.lib.settings import settings
from src.models.bookings import BookingStatus
from src.services.proposal_store import ProposalStore
from src.services.team_chat import AlertType
from tests.helpers import SLOT_1, SLOT_2


def past(minutes: int = 5) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


def after_grace() -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=settings.claim_reconcile_grace_seconds + 1)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_expired_proposal_alerted_once(db, venue, make_booking, team_chat):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2], expires_at=past())
    make_booking(venue, slots=[SLOT_1, SLOT_2])  # still open

    first = await sweep_expired_proposals(db, team_chat)
    second = await sweep_expired_proposals(db, team_chat)

    assert first == {"expired": 1, "notified": 1}
    assert second == {"expired": 0, "notified": 0}

    team_chat.notify.assert_awaited_once()
    alert = team_chat.notify.await_args.args[0]
    assert alert.type == AlertType.NEW_BOOKING
    assert alert.booking_id == str(booking.id)
    assert alert.therapist_name == EXPIRED_THERAPIST_LABEL
    assert alert.total_price == Decimal("0")
    assert alert.currency == "EUR"

    db.expire_all()
    assert ProposalStore(db).get_proposal(booking.id).admin_notified_at is not None
    assert get_metrics_collector().get_value("proposal_sweeps_total", action="expired_notified") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_claimed_or_cancelled_proposals_not_alerted(db, venue, make_booking, make_therapist, team_chat):
    claimed = make_booking(venue, slots=[SLOT_1, SLOT_2], expires_at=past())
    make_booking(venue, slots=[SLOT_1, SLOT_2], expires_at=past(), status=BookingStatus.CANCELLED)
    ProposalStore(db).try_claim(claimed.id, 1, make_therapist("Alice", venues=[venue]).id)

    result = await sweep_expired_proposals(db, team_chat)

    assert result == {"expired": 0, "notified": 0}
    team_chat.notify.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_alert_is_not_retried(db, venue, make_booking, team_chat):
    make_booking(venue, slots=[SLOT_1, SLOT_2], expires_at=past())
    team_chat.notify.side_effect = RuntimeError("webhook gone")

    result = await sweep_expired_proposals(db, team_chat)

    assert result == {"expired": 1, "notified": 0}
    assert get_metrics_collector().get_value("side_effect_failures_total", effect="team_chat") == 1
    assert await sweep_expired_proposals(db, team_chat) == {"expired": 0, "notified": 0}


@pytest.mark.unit
def test_reconcile_applies_stranded_claim(db, venue, make_booking, make_therapist):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    therapist = make_therapist("Alice", "Durand", venues=[venue])
    ProposalStore(db).try_claim(booking.id, 2, therapist.id)

    result = reconcile_claimed_bookings(db, now=after_grace())

    assert result == {"repaired": 1}
    db.expire_all()
    db.refresh(booking)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.booking_date == SLOT_2.date
    assert booking.booking_time == SLOT_2.time
    assert booking.therapist_id == therapist.id
    assert booking.therapist_name == "Alice Durand"

    assert reconcile_claimed_bookings(db, now=after_grace()) == {"repaired": 0}
    assert get_metrics_collector().get_value("proposal_sweeps_total", action="claim_repaired") == 1


@pytest.mark.unit
def test_reconcile_leaves_fresh_claims_to_their_validator(db, venue, make_booking, make_therapist):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    therapist = make_therapist("Alice", venues=[venue])
    ProposalStore(db).try_claim(booking.id, 1, therapist.id)

    assert reconcile_claimed_bookings(db) == {"repaired": 0}
    db.expire_all()
    db.refresh(booking)
    assert booking.status == BookingStatus.AWAITING_THERAPIST_SELECTION


@pytest.mark.unit
def test_reconcile_ignores_unclaimed(db, venue, make_booking):
    make_booking(venue, slots=[SLOT_1, SLOT_2])

    assert reconcile_claimed_bookings(db) == {"repaired": 0}


@pytest.mark.unit
def test_register_sweeps_adds_interval_jobs():
    scheduler = MagicMock()

    register_sweeps(scheduler, interval_minutes=7)

    calls = {c.kwargs["job_id"]: c for c in scheduler.add_interval_job.call_args_list}
    assert set(calls) == {EXPIRED_SWEEP_JOB_ID, RECONCILE_JOB_ID}
    assert calls[EXPIRED_SWEEP_JOB_ID].args[0] is run_expired_proposal_sweep
    assert calls[RECONCILE_JOB_ID].args[0] is run_claim_reconciliation
    assert all(c.kwargs["minutes"] == 7 for c in calls.values())
