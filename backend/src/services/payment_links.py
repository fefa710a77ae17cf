"""
Payment link dispatcher.

Asks the payment service to send the client a payment link once a booking is
confirmed. Fire-and-forget from the booking workflow's point of view: a
failure here is logged by the caller and recovered by resending manually.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from src.lib.logging import get_logger
from src.lib.settings import settings


logger = get_logger(__name__)


@dataclass
class PaymentLinkRequest:
    """Payment link request for one booking."""
    booking_id: str
    language: str = "en"
    channels: list[str] = field(default_factory=lambda: ["whatsapp"])
    client_phone: Optional[str] = None
    client_email: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "bookingId": self.booking_id,
            "language": self.language,
            "channels": list(self.channels),
            "clientPhone": self.client_phone,
            "clientEmail": self.client_email,
        }


class PaymentLinkDispatcher:
    """
    HTTP client for the payment-link endpoint.
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

    async def send(self, request: PaymentLinkRequest) -> bool:
        """
        Request a payment link for a booking.

        Returns:
            True if the request was accepted, False if no endpoint is configured

        Raises:
            httpx.HTTPError: transport failure or non-2xx response
        """
        if not self.url:
            logger.warning(
                "Payment link endpoint not configured, skipping",
                extra={"booking_id": request.booking_id},
            )
            return False

        headers = {"Authorization": f"Bearer {self.service_key}"} if self.service_key else {}
        if self._client is not None:
            response = await self._client.post(self.url, json=request.to_payload(), headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=request.to_payload(), headers=headers)
        response.raise_for_status()

        logger.info(
            "Payment link requested",
            extra={"booking_id": request.booking_id, "channels": request.channels},
        )
        return True


def get_payment_link_dispatcher() -> PaymentLinkDispatcher:
    """Get a dispatcher for the configured payment-link endpoint."""
    return PaymentLinkDispatcher(
        url=settings.payment_link_url,
        service_key=settings.service_role_key,
        timeout=settings.http_timeout_seconds,
    )
