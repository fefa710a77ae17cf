"""
Slot validation route.

Endpoints:
- POST /bookings/validate-slot: a therapist claims one of a booking's proposed slots
"""
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from src.api.dependencies import get_db, get_payment_links, get_team_chat
from src.api.middleware.error_handler import BadRequestException, fixed_status_route
from src.services.errors import BookingWorkflowError
from src.services.payment_links import PaymentLinkDispatcher
from src.services.slot_validator import get_slot_validator_service
from src.services.team_chat import TeamChatNotifier


# Every failure, malformed bodies included, is a 400 on this router
router = APIRouter(
    prefix="/bookings",
    tags=["Bookings"],
    route_class=fixed_status_route(status.HTTP_400_BAD_REQUEST),
)


class ValidateSlotRequest(BaseModel):
    """A therapist's choice among the proposed slots."""
    model_config = ConfigDict(populate_by_name=True)

    booking_id: UUID = Field(..., alias="bookingId")
    slot_number: int = Field(..., alias="slotNumber", ge=1, le=3)
    therapist_id: UUID = Field(..., alias="therapistId")


class ValidateSlotResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    selected_date: date = Field(..., alias="selectedDate")
    selected_time: str = Field(..., alias="selectedTime", description="HH:MM")
    therapist_name: str = Field(..., alias="therapistName")


@router.post(
    "/validate-slot",
    response_model=ValidateSlotResponse,
    status_code=status.HTTP_200_OK,
    summary="Claim a proposed slot",
)
async def validate_slot(
    request: ValidateSlotRequest,
    db: Session = Depends(get_db),
    payment_links: PaymentLinkDispatcher = Depends(get_payment_links),
    team_chat: TeamChatNotifier = Depends(get_team_chat),
) -> ValidateSlotResponse:
    """
    First therapist to claim wins; the booking is confirmed with the chosen
    slot. Every rejection (unknown booking, wrong status, slot not proposed,
    already claimed) is a 400 whose `code` tells the cases apart.
    """
    service = get_slot_validator_service(db, payment_links, team_chat)
    try:
        result = await service.validate_slot(
            booking_id=request.booking_id,
            slot_number=request.slot_number,
            therapist_id=request.therapist_id,
        )
    except BookingWorkflowError as e:
        raise BadRequestException(e.message, code=e.code) from e

    return ValidateSlotResponse(
        success=True,
        selected_date=result.selected_date,
        selected_time=result.selected_time.strftime("%H:%M"),
        therapist_name=result.therapist_name,
    )
