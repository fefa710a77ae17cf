"""
Shared fixtures: a throwaway SQLite database per test, data factories and
mocked outbound collaborators.
"""
import os

# Must be set before anything imports src.lib.settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("INTERNAL_API_TOKEN", "")
os.environ.setdefault("JSON_LOGS", "false")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import src.models  # noqa: F401  (registers every table on Base.metadata)
from src.lib.db import Base, build_engine
from src.lib.metrics import get_metrics_collector
from src.models.bookings import Booking, BookingStatus
from src.models.proposed_slots import ProposedSlot, ProposedSlotSet
from src.models.therapists import Therapist, TherapistStatus, TherapistVenue
from src.models.venues import Venue
from src.services.payment_links import PaymentLinkDispatcher
from src.services.push_service import PushProvider
from src.services.team_chat import TeamChatNotifier
from tests.helpers import SLOT_1


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several threads/sessions can share it."""
    engine = build_engine(f"sqlite:///{tmp_path / 'bookings.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def venue(db):
    venue = Venue(name="Hotel Lumière", currency="eur", timezone="Europe/Paris", status="active")
    db.add(venue)
    db.commit()
    return venue


@pytest.fixture
def make_therapist(db):
    """Factory: therapist affiliated with the given venues."""

    def _make(
        first_name: str,
        last_name: str = "Martin",
        venues: Optional[list[Venue]] = None,
        status: TherapistStatus = TherapistStatus.ACTIVE,
        with_user: bool = True,
    ) -> Therapist:
        therapist = Therapist(
            first_name=first_name,
            last_name=last_name,
            email=f"{first_name.lower()}@example.com",
            status=status,
            user_id=uuid4() if with_user else None,
        )
        db.add(therapist)
        db.flush()
        for v in venues or []:
            db.add(TherapistVenue(therapist_id=therapist.id, venue_id=v.id))
        db.commit()
        return therapist

    return _make


@pytest.fixture
def make_booking(db):
    """Factory: booking at a venue, with a proposal when slots are given."""
    counter = {"n": 1000}

    def _make(
        venue: Venue,
        status: BookingStatus = BookingStatus.AWAITING_THERAPIST_SELECTION,
        slots: Optional[list[ProposedSlot]] = None,
        therapist: Optional[Therapist] = None,
        declined_by: Optional[list[str]] = None,
        total_price: Optional[Decimal] = Decimal("120.00"),
        expires_at: Optional[datetime] = None,
    ) -> Booking:
        counter["n"] += 1
        first = (slots or [SLOT_1])[0]
        booking = Booking(
            booking_number=counter["n"],
            venue_id=venue.id,
            venue_name=venue.name,
            client_first_name="Claire",
            client_last_name="Dubois",
            client_email="claire@example.com",
            phone="+33612345678",
            language="fr",
            booking_date=first.date,
            booking_time=first.time,
            status=status,
            therapist_id=therapist.id if therapist else None,
            therapist_name=therapist.full_name if therapist else None,
            declined_by=list(declined_by or []),
            total_price=total_price,
            treatments=["Deep tissue massage"],
        )
        db.add(booking)
        db.flush()
        if slots:
            padded = list(slots) + [None] * (3 - len(slots))
            db.add(
                ProposedSlotSet(
                    booking_id=booking.id,
                    slot_1_date=padded[0].date,
                    slot_1_time=padded[0].time,
                    slot_2_date=padded[1].date if padded[1] else None,
                    slot_2_time=padded[1].time if padded[1] else None,
                    slot_3_date=padded[2].date if padded[2] else None,
                    slot_3_time=padded[2].time if padded[2] else None,
                    expires_at=expires_at or datetime.now(timezone.utc) + timedelta(hours=2),
                )
            )
        db.commit()
        return booking

    return _make


@pytest.fixture
def push_provider():
    provider = AsyncMock(spec=PushProvider)
    provider.send.return_value = True
    return provider


@pytest.fixture
def team_chat():
    notifier = AsyncMock(spec=TeamChatNotifier)
    notifier.notify.return_value = True
    return notifier


@pytest.fixture
def payment_links():
    dispatcher = AsyncMock(spec=PaymentLinkDispatcher)
    dispatcher.send.return_value = True
    return dispatcher


@pytest.fixture
def client(session_factory, push_provider, team_chat, payment_links):
    """TestClient wired to the test database and mocked collaborators."""
    from src.api.app import app
    from src.api.dependencies import (
        get_db,
        get_payment_links,
        get_push_provider,
        get_session_factory,
        get_team_chat,
    )

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_push_provider] = lambda: push_provider
    app.dependency_overrides[get_team_chat] = lambda: team_chat
    app.dependency_overrides[get_payment_links] = lambda: payment_links

    yield TestClient(app)

    app.dependency_overrides.clear()
