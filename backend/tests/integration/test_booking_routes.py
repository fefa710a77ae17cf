"""
Integration tests for booking, slot and notification routes against SQLite.
"""
from uuid import uuid4

import pytest

from src.models.bookings import Booking, BookingStatus
from src.services.proposal_store import ProposalStore
from tests.helpers import SLOT_1, SLOT_2, SLOT_3


def validate(client, booking_id, slot_number, therapist_id):
    return client.post(
        "/bookings/validate-slot",
        json={
            "bookingId": str(booking_id),
            "slotNumber": slot_number,
            "therapistId": str(therapist_id),
        },
    )


@pytest.mark.integration
def test_validate_slot_confirms_and_rejects_second_therapist(client, db, venue, make_booking, make_therapist):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2, SLOT_3])
    alice = make_therapist("Alice", "Durand", venues=[venue])
    bob = make_therapist("Bob", venues=[venue])

    first = validate(client, booking.id, 2, alice.id)
    second = validate(client, booking.id, 1, bob.id)

    assert first.status_code == 200
    assert first.json() == {
        "success": True,
        "selectedDate": "2026-11-03",
        "selectedTime": "14:30",
        "therapistName": "Alice Durand",
    }
    assert second.status_code == 400
    assert second.json()["code"] == "invalid_state"
    assert "correlation_id" in second.json()

    db.expire_all()
    stored = db.get(Booking, booking.id)
    assert stored.status == BookingStatus.CONFIRMED
    assert stored.therapist_id == alice.id


@pytest.mark.integration
def test_validate_slot_already_claimed_message(client, db, venue, make_booking, make_therapist):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    alice = make_therapist("Alice", venues=[venue])
    bob = make_therapist("Bob", venues=[venue])
    ProposalStore(db).try_claim(booking.id, 1, alice.id)

    response = validate(client, booking.id, 2, bob.id)

    assert response.status_code == 400
    assert response.json()["code"] == "already_claimed"
    assert response.json()["error"] == "This booking has already been validated by another therapist"


@pytest.mark.integration
@pytest.mark.parametrize(
    "body",
    [
        {"slotNumber": 1, "therapistId": str(uuid4())},
        {"bookingId": str(uuid4()), "slotNumber": 4, "therapistId": str(uuid4())},
        {"bookingId": str(uuid4()), "slotNumber": 0, "therapistId": str(uuid4())},
        {"bookingId": "not-a-uuid", "slotNumber": 1, "therapistId": str(uuid4())},
    ],
)
def test_validate_slot_malformed_body(client, body):
    response = client.post("/bookings/validate-slot", json=body)

    assert response.status_code == 400
    assert response.json()["code"] == "validation_error"
    assert response.json()["error"].startswith("Invalid request: ")
    assert "correlation_id" in response.json()


@pytest.mark.integration
def test_validate_slot_unknown_booking_is_400(client, venue, make_therapist):
    therapist = make_therapist("Alice", venues=[venue])

    response = validate(client, uuid4(), 1, therapist.id)

    assert response.status_code == 400
    assert response.json() == {
        "error": "Booking not found",
        "code": "not_found",
        "correlation_id": response.headers["X-Correlation-ID"],
    }


@pytest.mark.integration
def test_new_booking_notifications_are_idempotent(client, venue, make_booking, make_therapist, push_provider):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])

    first = client.post("/notifications/new-booking", json={"bookingId": str(booking.id)})
    second = client.post("/notifications/new-booking", json={"bookingId": str(booking.id)})

    assert first.status_code == 200
    assert first.json() == {"success": True, "notificationsSent": 2, "skippedDuplicates": 0, "totalEligible": 2}
    assert second.json() == {"success": True, "notificationsSent": 0, "skippedDuplicates": 2, "totalEligible": 2}
    assert push_provider.send.await_count == 2


@pytest.mark.integration
def test_new_booking_notification_unknown_booking_is_500(client):
    response = client.post("/notifications/new-booking", json={"bookingId": str(uuid4())})

    assert response.status_code == 500
    assert response.json()["error"] == "Booking not found"
    assert "correlation_id" in response.json()


@pytest.mark.integration
def test_create_booking_with_alternatives_notifies_therapists(client, db, venue, make_therapist, push_provider):
    make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])

    response = client.post(
        "/bookings",
        json={
            "venueId": str(venue.id),
            "clientFirstName": "Claire",
            "clientLastName": "Dubois",
            "phone": "+33612345678",
            "bookingDate": "2026-11-03",
            "bookingTime": "10:00",
            "slot2Date": "2026-11-03",
            "slot2Time": "14:30",
            "totalPrice": "120.00",
            "createdBy": "concierge",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "awaiting_therapist_selection"
    assert data["bookingTime"] == "10:00"

    # background fan-out runs before TestClient returns
    assert push_provider.send.await_count == 2

    proposal = client.get(f"/bookings/{data['id']}/proposal")
    assert proposal.status_code == 200
    assert [s["number"] for s in proposal.json()["slots"]] == [1, 2]
    assert proposal.json()["slots"][1] == {"number": 2, "date": "2026-11-03", "time": "14:30"}
    assert proposal.json()["validatedSlot"] is None


@pytest.mark.integration
def test_admin_booking_with_therapist_notifies_only_them(client, venue, make_therapist, push_provider):
    alice = make_therapist("Alice", venues=[venue])
    make_therapist("Bob", venues=[venue])

    response = client.post(
        "/bookings",
        json={
            "venueId": str(venue.id),
            "clientFirstName": "Claire",
            "phone": "+33612345678",
            "bookingDate": "2026-11-03",
            "bookingTime": "10:00",
            "therapistId": str(alice.id),
        },
    )

    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    assert push_provider.send.await_count == 1
    assert push_provider.send.await_args.args[0].user_id == str(alice.user_id)


@pytest.mark.integration
def test_create_booking_errors(client, venue, make_therapist):
    base = {
        "clientFirstName": "Claire",
        "phone": "+33612345678",
        "bookingDate": "2026-11-03",
        "bookingTime": "10:00",
    }
    alice = make_therapist("Alice", venues=[venue])

    unknown_venue = client.post("/bookings", json={**base, "venueId": str(uuid4())})
    half_slot = client.post("/bookings", json={**base, "venueId": str(venue.id), "slot2Date": "2026-11-04"})
    assigned_with_alternatives = client.post(
        "/bookings",
        json={
            **base,
            "venueId": str(venue.id),
            "slot2Date": "2026-11-04",
            "slot2Time": "11:00",
            "therapistId": str(alice.id),
        },
    )

    assert unknown_venue.status_code == 404
    assert half_slot.status_code == 422
    assert assigned_with_alternatives.status_code == 400
    assert assigned_with_alternatives.json()["code"] == "invalid_booking"


@pytest.mark.integration
def test_decline_excludes_therapist_from_fanout(client, venue, make_booking, make_therapist, push_provider):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    alice = make_therapist("Alice", venues=[venue])
    bob = make_therapist("Bob", venues=[venue])

    declined = client.post(f"/bookings/{booking.id}/decline", json={"therapistId": str(alice.id)})
    again = client.post(f"/bookings/{booking.id}/decline", json={"therapistId": str(alice.id)})
    notified = client.post("/notifications/new-booking", json={"bookingId": str(booking.id)})

    assert declined.status_code == 200
    assert declined.json() == {"success": True, "declinedBy": [str(alice.id)]}
    assert again.json()["declinedBy"] == [str(alice.id)]
    assert notified.json()["totalEligible"] == 1
    assert push_provider.send.await_args.args[0].user_id == str(bob.user_id)


@pytest.mark.integration
def test_decline_unknown_booking(client, venue, make_therapist):
    therapist = make_therapist("Alice", venues=[venue])

    response = client.post(f"/bookings/{uuid4()}/decline", json={"therapistId": str(therapist.id)})

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


@pytest.mark.integration
def test_proposal_not_found(client):
    response = client.get(f"/bookings/{uuid4()}/proposal")

    assert response.status_code == 404


@pytest.mark.integration
def test_cancelled_booking_cannot_be_claimed(client, venue, make_booking, make_therapist):
    booking = make_booking(venue, slots=[SLOT_1, SLOT_2])
    alice = make_therapist("Alice", venues=[venue])

    cancelled = client.post(f"/bookings/{booking.id}/cancel")
    again = client.post(f"/bookings/{booking.id}/cancel")
    claim = validate(client, booking.id, 1, alice.id)

    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"
    assert again.status_code == 400
    assert again.json()["code"] == "invalid_state"
    assert claim.status_code == 400
    assert claim.json()["code"] == "invalid_state"
    assert client.post(f"/bookings/{uuid4()}/cancel").status_code == 404
