"""
Domain errors raised by the booking workflow services.

Each error has a stable `code`; API routes translate them into HTTP
responses (the status code depends on the route, not on the error).
"""
from typing import Optional
from uuid import UUID


class BookingWorkflowError(Exception):
    """Base class for booking workflow failures."""

    code = "booking_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ResourceNotFoundError(BookingWorkflowError):
    code = "not_found"
    resource = "Resource"

    def __init__(self, resource_id: UUID):
        self.resource_id = resource_id
        super().__init__(f"{self.resource} not found")


class BookingNotFoundError(ResourceNotFoundError):
    resource = "Booking"


class TherapistNotFoundError(ResourceNotFoundError):
    resource = "Therapist"


class VenueNotFoundError(ResourceNotFoundError):
    resource = "Venue"


class InvalidBookingStateError(BookingWorkflowError):
    """The booking is not in a status that allows the requested operation."""

    code = "invalid_state"

    def __init__(self, current_status: str, expected: Optional[str] = None):
        self.current_status = current_status
        self.expected = expected
        if expected:
            message = (
                f"Booking is not {expected.replace('_', ' ')} "
                f"(current status: {current_status})"
            )
        else:
            message = f"Booking status {current_status} does not allow this operation"
        super().__init__(message)


class NoProposalError(BookingWorkflowError):
    code = "no_proposal"

    def __init__(self, booking_id: UUID):
        self.booking_id = booking_id
        super().__init__("No proposed slots found for this booking")


class ProposalExistsError(BookingWorkflowError):
    code = "proposal_exists"

    def __init__(self, booking_id: UUID):
        self.booking_id = booking_id
        super().__init__("A slot proposal already exists for this booking")


class SlotUnavailableError(BookingWorkflowError):
    code = "slot_unavailable"

    def __init__(self, slot_number: int):
        self.slot_number = slot_number
        super().__init__(f"Slot {slot_number} is not available")


class SlotAlreadyClaimedError(BookingWorkflowError):
    """Another therapist's conditional update won the claim."""

    code = "already_claimed"

    def __init__(self, booking_id: UUID):
        self.booking_id = booking_id
        super().__init__("This booking has already been validated by another therapist")


class BookingUpdateError(BookingWorkflowError):
    """The slot was claimed but the booking row could not be confirmed."""

    code = "booking_update_failed"

    def __init__(self, booking_id: UUID, reason: str):
        self.booking_id = booking_id
        super().__init__(f"Failed to update booking: {reason}")
