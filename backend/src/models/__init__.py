"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from src.models.venues import Venue
from src.models.therapists import Therapist, TherapistStatus, TherapistVenue
from src.models.bookings import Booking, BookingStatus
from src.models.proposed_slots import ProposedSlot, ProposedSlotSet
from src.models.notification_logs import NotificationLog

__all__ = [
    "Venue",
    "Therapist",
    "TherapistStatus",
    "TherapistVenue",
    "Booking",
    "BookingStatus",
    "ProposedSlot",
    "ProposedSlotSet",
    "NotificationLog",
]
