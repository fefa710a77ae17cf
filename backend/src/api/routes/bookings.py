"""
Booking routes.

Endpoints:
- POST /bookings: create a booking (optionally with alternative slots)
- POST /bookings/{booking_id}/decline: a therapist passes on a booking
- POST /bookings/{booking_id}/cancel: cancel an open booking
- GET /bookings/{booking_id}/proposal: proposed slots and claim state
"""
from datetime import date, datetime, time
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.orm import Session

from src.api.dependencies import get_db, get_push_provider, get_session_factory, get_team_chat
from src.api.middleware.error_handler import BadRequestException, NotFoundException
from src.lib.logging import get_logger
from src.models.bookings import Booking
from src.models.proposed_slots import ProposedSlot
from src.services.booking_service import NewBooking, get_booking_service
from src.services.errors import BookingWorkflowError, ResourceNotFoundError
from src.services.notification_fanout import get_notification_fanout_service
from src.services.proposal_store import get_proposal_store
from src.services.push_service import PushProvider
from src.services.team_chat import TeamChatNotifier

logger = get_logger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


# Pydantic schemas
class CreateBookingRequest(BaseModel):
    """New booking. bookingDate/bookingTime is the preferred slot."""
    model_config = ConfigDict(populate_by_name=True)

    venue_id: UUID = Field(..., alias="venueId")
    client_first_name: str = Field(..., alias="clientFirstName", min_length=1)
    client_last_name: str = Field(default="", alias="clientLastName")
    client_email: Optional[str] = Field(default=None, alias="clientEmail")
    phone: str = Field(..., min_length=1)
    language: str = Field(default="en", max_length=5)
    booking_date: date = Field(..., alias="bookingDate")
    booking_time: time = Field(..., alias="bookingTime")
    slot_2_date: Optional[date] = Field(default=None, alias="slot2Date")
    slot_2_time: Optional[time] = Field(default=None, alias="slot2Time")
    slot_3_date: Optional[date] = Field(default=None, alias="slot3Date")
    slot_3_time: Optional[time] = Field(default=None, alias="slot3Time")
    therapist_id: Optional[UUID] = Field(default=None, alias="therapistId")
    total_price: Optional[Decimal] = Field(default=None, alias="totalPrice", ge=0)
    treatments: list[str] = Field(default_factory=list)
    created_by: Literal["admin", "concierge"] = Field(default="admin", alias="createdBy")

    @model_validator(mode="after")
    def check_alternative_slots(self) -> "CreateBookingRequest":
        for n in (2, 3):
            if (getattr(self, f"slot_{n}_date") is None) != (getattr(self, f"slot_{n}_time") is None):
                raise ValueError(f"slot{n}Date and slot{n}Time must be given together")
        if self.slot_3_date is not None and self.slot_2_date is None:
            raise ValueError("slot3 requires slot2")
        return self

    def to_new_booking(self) -> NewBooking:
        return NewBooking(
            venue_id=self.venue_id,
            client_first_name=self.client_first_name,
            client_last_name=self.client_last_name,
            client_email=self.client_email,
            phone=self.phone,
            language=self.language,
            slot_1=ProposedSlot(self.booking_date, self.booking_time),
            slot_2=ProposedSlot(self.slot_2_date, self.slot_2_time) if self.slot_2_date else None,
            slot_3=ProposedSlot(self.slot_3_date, self.slot_3_time) if self.slot_3_date else None,
            therapist_id=self.therapist_id,
            total_price=self.total_price,
            treatments=self.treatments,
        )


class BookingResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    booking_number: int = Field(..., alias="bookingNumber")
    status: str
    booking_date: date = Field(..., alias="bookingDate")
    booking_time: str = Field(..., alias="bookingTime")
    therapist_id: Optional[UUID] = Field(default=None, alias="therapistId")
    therapist_name: Optional[str] = Field(default=None, alias="therapistName")
    declined_by: list[str] = Field(default_factory=list, alias="declinedBy")

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            booking_number=booking.booking_number,
            status=booking.status.value,
            booking_date=booking.booking_date,
            booking_time=booking.booking_time.strftime("%H:%M"),
            therapist_id=booking.therapist_id,
            therapist_name=booking.therapist_name,
            declined_by=list(booking.declined_by or []),
        )


class DeclineRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    therapist_id: UUID = Field(..., alias="therapistId")


class DeclineResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    declined_by: list[str] = Field(..., alias="declinedBy")


class SlotOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    number: int
    slot_date: date = Field(..., alias="date")
    slot_time: str = Field(..., alias="time")


class ProposalResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: UUID = Field(..., alias="bookingId")
    slots: list[SlotOption]
    validated_slot: Optional[int] = Field(default=None, alias="validatedSlot")
    validated_by: Optional[UUID] = Field(default=None, alias="validatedBy")
    validated_at: Optional[datetime] = Field(default=None, alias="validatedAt")
    expires_at: datetime = Field(..., alias="expiresAt")


async def run_new_booking_fanout(
    session_factory,
    booking_id: UUID,
    notify_all: bool,
    push_provider: PushProvider,
    team_chat: TeamChatNotifier,
) -> None:
    """Background fan-out after booking creation; errors are logged only."""
    db = session_factory()
    try:
        service = get_notification_fanout_service(db, push_provider, team_chat)
        await service.notify_new_booking(booking_id, notify_all=notify_all)
    except Exception:
        logger.error(
            "Background new-booking fan-out failed",
            extra={"booking_id": str(booking_id)},
            exc_info=True,
        )
    finally:
        db.close()


# Routes
@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a booking",
)
async def create_booking(
    request: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory=Depends(get_session_factory),
    push_provider: PushProvider = Depends(get_push_provider),
    team_chat: TeamChatNotifier = Depends(get_team_chat),
) -> BookingResponse:
    """
    Create a booking and notify therapists in the background.

    With slot2/slot3 the booking waits for a therapist to claim a slot.
    Concierge bookings are pushed to every eligible therapist; admin bookings
    with a pre-assigned therapist only to that therapist.
    """
    service = get_booking_service(db)
    try:
        booking = service.create_booking(request.to_new_booking())
    except ResourceNotFoundError as e:
        raise NotFoundException(e.resource, str(e.resource_id)) from e
    except ValueError as e:
        raise BadRequestException(str(e), code="invalid_booking") from e
    except BookingWorkflowError as e:
        raise BadRequestException(e.message, code=e.code) from e

    background_tasks.add_task(
        run_new_booking_fanout,
        session_factory,
        booking.id,
        request.created_by == "concierge",
        push_provider,
        team_chat,
    )
    return BookingResponse.from_booking(booking)


@router.post(
    "/{booking_id}/decline",
    response_model=DeclineResponse,
    summary="Decline a booking",
)
def decline_booking(
    booking_id: UUID,
    request: DeclineRequest,
    db: Session = Depends(get_db),
) -> DeclineResponse:
    """Declined therapists are excluded from later fan-outs for this booking."""
    service = get_booking_service(db)
    try:
        booking = service.decline_booking(booking_id, request.therapist_id)
    except ResourceNotFoundError as e:
        raise NotFoundException(e.resource, str(e.resource_id)) from e
    except BookingWorkflowError as e:
        raise BadRequestException(e.message, code=e.code) from e

    return DeclineResponse(success=True, declined_by=list(booking.declined_by or []))


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
)
def cancel_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
) -> BookingResponse:
    service = get_booking_service(db)
    try:
        booking = service.cancel_booking(booking_id)
    except ResourceNotFoundError as e:
        raise NotFoundException(e.resource, str(e.resource_id)) from e
    except BookingWorkflowError as e:
        raise BadRequestException(e.message, code=e.code) from e

    return BookingResponse.from_booking(booking)


@router.get(
    "/{booking_id}/proposal",
    response_model=ProposalResponse,
    summary="Get proposed slots",
)
def get_proposal(
    booking_id: UUID,
    db: Session = Depends(get_db),
) -> ProposalResponse:
    proposal = get_proposal_store(db).get_proposal(booking_id)
    if proposal is None:
        raise NotFoundException("Proposal", str(booking_id))

    return ProposalResponse(
        booking_id=proposal.booking_id,
        slots=[
            SlotOption(number=number, slot_date=slot.date, slot_time=slot.time.strftime("%H:%M"))
            for number, slot in proposal.populated_slots()
        ],
        validated_slot=proposal.validated_slot,
        validated_by=proposal.validated_by,
        validated_at=proposal.validated_at,
        expires_at=proposal.expires_at,
    )
