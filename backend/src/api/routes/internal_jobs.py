"""
Internal API routes for the proposal sweeps.

Trigger points for an external cron when the in-process scheduler is
disabled. Protected by X-Internal-Token when INTERNAL_API_TOKEN is set.

Endpoints:
- POST /internal/jobs/expired-proposals: alert admins about unclaimed proposals
- POST /internal/jobs/reconcile-claims: confirm bookings whose claim was not applied
"""
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from src.api.dependencies import get_db, get_team_chat, verify_internal_token
from src.jobs.proposal_sweeper import reconcile_claimed_bookings, sweep_expired_proposals
from src.lib.logging import get_logger
from src.services.team_chat import TeamChatNotifier

logger = get_logger(__name__)

router = APIRouter(
    prefix="/internal/jobs",
    tags=["Internal Jobs"],
    dependencies=[Depends(verify_internal_token)],
)


class ExpiredSweepResponse(BaseModel):
    expired: int
    notified: int


class ReconcileResponse(BaseModel):
    repaired: int


@router.post(
    "/expired-proposals",
    response_model=ExpiredSweepResponse,
    status_code=status.HTTP_200_OK,
)
async def run_expired_proposals(
    db: Session = Depends(get_db),
    team_chat: TeamChatNotifier = Depends(get_team_chat),
) -> ExpiredSweepResponse:
    logger.info("Internal API: expired proposal sweep triggered")
    result = await sweep_expired_proposals(db, team_chat)
    return ExpiredSweepResponse(**result)


@router.post(
    "/reconcile-claims",
    response_model=ReconcileResponse,
    status_code=status.HTTP_200_OK,
)
def run_reconcile_claims(db: Session = Depends(get_db)) -> ReconcileResponse:
    logger.info("Internal API: claim reconciliation triggered")
    return ReconcileResponse(**reconcile_claimed_bookings(db))
