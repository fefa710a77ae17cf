"""
Notification routes.

Endpoints:
- POST /notifications/new-booking: push a new booking to eligible therapists
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from src.api.dependencies import get_db, get_push_provider, get_team_chat
from src.api.middleware.error_handler import AppException, fixed_status_route
from src.services.errors import BookingWorkflowError
from src.services.notification_fanout import get_notification_fanout_service
from src.services.push_service import PushProvider
from src.services.team_chat import TeamChatNotifier

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    route_class=fixed_status_route(status.HTTP_500_INTERNAL_SERVER_ERROR),
)


class NewBookingNotificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    booking_id: UUID = Field(..., alias="bookingId")
    notify_all: bool = Field(
        default=False,
        alias="notifyAll",
        description="Notify every eligible therapist even if one is already assigned",
    )


class NewBookingNotificationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    notifications_sent: int = Field(..., alias="notificationsSent")
    skipped_duplicates: int = Field(..., alias="skippedDuplicates")
    total_eligible: int = Field(..., alias="totalEligible")


@router.post(
    "/new-booking",
    response_model=NewBookingNotificationResponse,
    status_code=status.HTTP_200_OK,
    summary="Notify therapists about a booking",
)
async def notify_new_booking(
    request: NewBookingNotificationRequest,
    db: Session = Depends(get_db),
    push_provider: PushProvider = Depends(get_push_provider),
    team_chat: TeamChatNotifier = Depends(get_team_chat),
) -> NewBookingNotificationResponse:
    """
    Safe to call repeatedly: therapists already notified about this booking
    are counted in `skippedDuplicates` instead of being pushed again.
    """
    service = get_notification_fanout_service(db, push_provider, team_chat)
    try:
        result = await service.notify_new_booking(request.booking_id, notify_all=request.notify_all)
    except BookingWorkflowError as e:
        raise AppException(e.message, code=e.code) from e

    return NewBookingNotificationResponse(
        success=True,
        notifications_sent=result.notifications_sent,
        skipped_duplicates=result.skipped_duplicates,
        total_eligible=result.total_eligible,
    )
