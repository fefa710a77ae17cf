"""
Push notification delivery for therapists.

Delivery itself is owned by a separate push service; this module only
builds the message and hands it over. Providers:
- HttpPushProvider: POSTs `{userId, title, body, data}` to PUSH_SERVICE_URL
- ConsolePushProvider: development fallback that logs the push
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from src.lib.logging import get_logger
from src.lib.settings import settings


logger = get_logger(__name__)


@dataclass
class PushMessage:
    """A push notification addressed to one user."""
    user_id: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "title": self.title,
            "body": self.body,
            "data": self.data,
        }


class PushProvider(ABC):
    """
    Abstract base class for push delivery providers.
    """

    @abstractmethod
    async def send(self, message: PushMessage) -> bool:
        """
        Deliver one push notification.

        Returns:
            True if the push service accepted the message, False otherwise
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name used in logs."""
        pass


class HttpPushProvider(PushProvider):
    """
    Sends pushes through the platform push service over HTTP.
    """

    def __init__(
        self,
        url: str,
        service_key: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.service_key = service_key
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "http"

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.service_key:
            headers["Authorization"] = f"Bearer {self.service_key}"
        return headers

    async def send(self, message: PushMessage) -> bool:
        try:
            if self._client is not None:
                response = await self._client.post(
                    self.url, json=message.to_payload(), headers=self._headers()
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self.url, json=message.to_payload(), headers=self._headers()
                    )
        except httpx.HTTPError as e:
            logger.error(
                f"Push request failed: {e}",
                extra={"user_id": message.user_id},
            )
            return False

        if response.is_success:
            logger.info("Push sent", extra={"user_id": message.user_id})
            return True

        logger.warning(
            "Push service rejected notification",
            extra={
                "user_id": message.user_id,
                "status_code": response.status_code,
                "response": response.text[:500],
            },
        )
        return False


class ConsolePushProvider(PushProvider):
    """
    Console push provider for development/testing.
    Logs notifications instead of sending them.
    """

    @property
    def name(self) -> str:
        return "console"

    async def send(self, message: PushMessage) -> bool:
        print("\n" + "=" * 60)
        print(f"🔔 Push Notification to {message.user_id}:")
        print(f"   Title: {message.title}")
        print(f"   Body: {message.body}")
        print("=" * 60 + "\n")
        logger.info("Push notification logged to console", extra={"user_id": message.user_id})
        return True


def get_push_provider() -> PushProvider:
    """
    Get the push provider configured in settings.

    Returns:
        HttpPushProvider when PUSH_SERVICE_URL is set, ConsolePushProvider otherwise
    """
    if settings.push_service_url:
        return HttpPushProvider(
            url=settings.push_service_url,
            service_key=settings.service_role_key,
            timeout=settings.http_timeout_seconds,
        )
    logger.info("Using console push provider (dev mode)")
    return ConsolePushProvider()
