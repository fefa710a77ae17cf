"""
API dependencies for FastAPI dependency injection.

Provides database sessions, outbound collaborators and the internal token
check. Tests swap any of these through `app.dependency_overrides`.
"""
from typing import Optional

from fastapi import Header

from src.api.middleware.error_handler import UnauthorizedException
from src.lib.db import SessionLocal, get_db as get_db_session
from src.lib.settings import settings
from src.services.payment_links import PaymentLinkDispatcher, get_payment_link_dispatcher
from src.services.push_service import PushProvider, get_push_provider as build_push_provider
from src.services.team_chat import TeamChatNotifier, get_team_chat_notifier


# Re-export get_db for convenience
get_db = get_db_session


def get_session_factory():
    """Session factory for work that outlives the request (background tasks)."""
    return SessionLocal


def get_push_provider() -> PushProvider:
    """Push provider for therapist notifications."""
    return build_push_provider()


def get_team_chat() -> TeamChatNotifier:
    """Slack notifier for booking alerts."""
    return get_team_chat_notifier()


def get_payment_links() -> PaymentLinkDispatcher:
    """Payment link dispatcher."""
    return get_payment_link_dispatcher()


async def verify_internal_token(
    x_internal_token: Optional[str] = Header(
        default=None,
        description="Internal service authentication token",
    ),
) -> None:
    """
    Guard for /internal routes.

    The check is skipped when INTERNAL_API_TOKEN is not configured (local
    development).

    Raises:
        UnauthorizedException: token configured and missing or wrong
    """
    if not settings.internal_api_token:
        return
    if x_internal_token != settings.internal_api_token:
        raise UnauthorizedException("Internal authentication token required")
