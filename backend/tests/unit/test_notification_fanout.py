"""
Unit tests for NotificationFanoutService.
"""
import asyncio
import threading
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from src.lib.metrics import get_metrics_collector
from src.models.bookings import BookingStatus
from src.models.notification_logs import NotificationLog
from src.models.therapists import TherapistStatus
from src.models.venues import Venue
from src.services.errors import BookingNotFoundError
from src.services.notification_fanout import (
    NEW_BOOKING_TITLE,
    NotificationFanoutService,
    format_booking_message,
)
from src.services.team_chat import AlertType
from tests.helpers import SLOT_1, SLOT_2, SLOT_3


@pytest.fixture
def service(db, push_provider, team_chat):
    return NotificationFanoutService(db, push_provider, team_chat)


def pushed_user_ids(push_provider) -> set[str]:
    return {c.args[0].user_id for c in push_provider.send.await_args_list}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_notifies_every_eligible_therapist(service, venue, make_booking, make_therapist, push_provider, team_chat):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    alice = make_therapist("Alice", venues=[venue])
    bob = make_therapist("Bob", venues=[venue])

    result = await service.notify_new_booking(booking.id)

    assert result.notifications_sent == 2
    assert result.skipped_duplicates == 0
    assert result.total_eligible == 2
    assert pushed_user_ids(push_provider) == {str(alice.user_id), str(bob.user_id)}

    message = push_provider.send.await_args_list[0].args[0]
    assert message.title == NEW_BOOKING_TITLE
    assert message.data == {"bookingId": str(booking.id), "url": f"/pwa/bookings/{booking.id}"}

    team_chat.notify.assert_awaited_once()
    alert = team_chat.notify.await_args.args[0]
    assert alert.type == AlertType.NEW_BOOKING
    assert alert.currency == "EUR"
    assert alert.treatments == ["Deep tissue massage"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_repeated_fanout_skips_already_notified(db, service, venue, make_booking, make_therapist, push_provider):
    """Second run for the same booking sends nothing new."""
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    for name in ("Alice", "Bob", "Chloe"):
        make_therapist(name, venues=[venue])

    first = await service.notify_new_booking(booking.id)
    second = await service.notify_new_booking(booking.id)

    assert (first.notifications_sent, first.skipped_duplicates, first.total_eligible) == (3, 0, 3)
    assert (second.notifications_sent, second.skipped_duplicates, second.total_eligible) == (0, 3, 3)
    assert push_provider.send.await_count == 3

    count = db.execute(
        select(func.count()).select_from(NotificationLog).where(NotificationLog.booking_id == booking.id)
    ).scalar_one()
    assert count == 3

    metrics = get_metrics_collector()
    assert metrics.get_value("booking_notifications_total", status="sent") == 3
    assert metrics.get_value("booking_notifications_total", status="skipped_duplicate") == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_new_therapist_notified_on_rerun(service, venue, make_booking, make_therapist, push_provider):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    make_therapist("Alice", venues=[venue])
    await service.notify_new_booking(booking.id)

    bob = make_therapist("Bob", venues=[venue])
    push_provider.send.reset_mock()
    result = await service.notify_new_booking(booking.id)

    assert (result.notifications_sent, result.skipped_duplicates, result.total_eligible) == (1, 1, 2)
    assert pushed_user_ids(push_provider) == {str(bob.user_id)}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_ineligible_therapists_excluded(db, service, venue, make_booking, make_therapist, push_provider):
    other_venue = Venue(name="Cowork Nord", currency="EUR")
    db.add(other_venue)
    db.commit()

    declined = make_therapist("Dora", venues=[venue])
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2], declined_by=[str(declined.id)])
    eligible = make_therapist("Alice", venues=[venue])
    make_therapist("Ivan", venues=[venue], status=TherapistStatus.INACTIVE)
    make_therapist("Paul", venues=[venue], status=TherapistStatus.PENDING)
    make_therapist("Nora", venues=[venue], with_user=False)
    make_therapist("Otto", venues=[other_venue])

    result = await service.notify_new_booking(booking.id)

    assert result.total_eligible == 1
    assert result.notifications_sent == 1
    assert pushed_user_ids(push_provider) == {str(eligible.user_id)}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assigned_therapist_only_when_not_notify_all(service, venue, make_booking, make_therapist, push_provider):
    alice = make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])
    booking = make_booking(venue, status=BookingStatus.PENDING, therapist=alice)

    result = await service.notify_new_booking(booking.id, notify_all=False)

    assert result.total_eligible == 1
    assert pushed_user_ids(push_provider) == {str(alice.user_id)}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_notify_all_ignores_assignment(service, venue, make_booking, make_therapist):
    alice = make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])
    booking = make_booking(venue, status=BookingStatus.PENDING, therapist=alice)

    result = await service.notify_new_booking(booking.id, notify_all=True)

    assert result.total_eligible == 2
    assert result.notifications_sent == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unassigned_booking_notifies_everyone_without_notify_all(service, venue, make_booking, make_therapist):
    make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])
    booking = make_booking(venue, status=BookingStatus.PENDING)

    result = await service.notify_new_booking(booking.id, notify_all=False)

    assert result.total_eligible == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_assigned_therapist_who_declined_gets_nothing(service, venue, make_booking, make_therapist, push_provider):
    alice = make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])
    booking = make_booking(venue, status=BookingStatus.PENDING, therapist=alice, declined_by=[str(alice.id)])

    result = await service.notify_new_booking(booking.id)

    assert result.total_eligible == 0
    push_provider.send.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_push_not_counted_as_sent(service, venue, make_booking, make_therapist, push_provider):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    alice = make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])

    async def deliver(message):
        if message.user_id == str(alice.user_id):
            raise ConnectionError("push service unreachable")
        return True

    push_provider.send.side_effect = deliver

    result = await service.notify_new_booking(booking.id)

    assert result.notifications_sent == 1
    assert result.total_eligible == 2
    assert get_metrics_collector().get_value("booking_notifications_total", status="failed") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_team_chat_failure_is_not_fatal(service, venue, make_booking, make_therapist, team_chat):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    make_therapist("Alice", venues=[venue])
    team_chat.notify.side_effect = RuntimeError("webhook gone")

    result = await service.notify_new_booking(booking.id)

    assert result.notifications_sent == 1
    assert get_metrics_collector().get_value("side_effect_failures_total", effect="team_chat") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_eligible_therapists(service, venue, make_booking, push_provider, team_chat):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])

    result = await service.notify_new_booking(booking.id)

    assert (result.notifications_sent, result.skipped_duplicates, result.total_eligible) == (0, 0, 0)
    push_provider.send.assert_not_awaited()
    team_chat.notify.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_booking(service):
    with pytest.raises(BookingNotFoundError):
        await service.notify_new_booking(uuid4())


@pytest.mark.unit
def test_message_lists_proposed_slots(db, venue, make_booking):
    from src.services.proposal_store import ProposalStore

    booking = make_booking(venue, slots=[SLOT_1, SLOT_2, SLOT_3])
    proposal = ProposalStore(db).get_proposal(booking.id)

    body = format_booking_message(booking, proposal)

    assert f"Booking #{booking.booking_number} at Hotel Lumière" in body
    assert "Option 1: 03/11/2026 at 10:00" in body
    assert "Option 2: 03/11/2026 at 14:30" in body
    assert "Option 3: 04/11/2026 at 09:15" in body


@pytest.mark.unit
def test_message_single_slot(venue, make_booking):
    booking = make_booking(venue, status=BookingStatus.PENDING)

    body = format_booking_message(booking)

    assert body.endswith("on 03/11/2026 at 10:00")
    assert "Option" not in body


@pytest.mark.unit
def test_concurrent_fanouts_push_each_therapist_once(db, session_factory, venue, make_booking, make_therapist, push_provider, team_chat):
    """Two fan-outs for one booking, each in its own session and event loop."""
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    therapists = [make_therapist(name, venues=[venue]) for name in ("Alice", "Bob", "Chloe")]

    barrier = threading.Barrier(2)
    results = []
    errors = []
    lock = threading.Lock()

    def fan_out():
        session = session_factory()
        try:
            barrier.wait()
            result = asyncio.run(
                NotificationFanoutService(session, push_provider, team_chat).notify_new_booking(booking.id)
            )
            with lock:
                results.append(result)
        except Exception as e:
            with lock:
                errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=fan_out) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert len(results) == 2
    assert sum(r.notifications_sent for r in results) == 3
    assert sum(r.skipped_duplicates for r in results) == 3
    assert all(r.total_eligible == 3 for r in results)

    pushed = [c.args[0].user_id for c in push_provider.send.await_args_list]
    assert sorted(pushed) == sorted(str(t.user_id) for t in therapists)

    logged = db.execute(
        select(func.count()).select_from(NotificationLog).where(NotificationLog.booking_id == booking.id)
    ).scalar_one()
    assert logged == 3
