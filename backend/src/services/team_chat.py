"""
Team chat alerts (Slack incoming webhook) for booking events.

Builds a Block Kit message from a BookingAlert and posts it to the bookings
channel. Transient transport errors are retried; everything else is raised
to the caller, which treats the alert as best-effort.
"""
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from typing import Any, Optional, Union

import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from src.lib.logging import get_logger
from src.lib.settings import settings


logger = get_logger(__name__)


class AlertType:
    """Alert type constants."""
    NEW_BOOKING = "new_booking"
    BOOKING_CONFIRMED = "booking_confirmed"


_ALERT_STYLE = {
    AlertType.NEW_BOOKING: ("🆕", "New booking", "#3498db"),
    AlertType.BOOKING_CONFIRMED: ("✅", "Booking confirmed", "#2ecc71"),
}


@dataclass
class BookingAlert:
    """Structured summary of a booking event."""
    type: str
    booking_id: str
    booking_number: str
    client_name: str
    venue_name: str
    booking_date: date
    booking_time: time
    therapist_name: Optional[str] = None
    total_price: Optional[Union[Decimal, float]] = None
    currency: Optional[str] = None
    treatments: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "bookingId": self.booking_id,
            "bookingNumber": self.booking_number,
            "clientName": self.client_name,
            "venueName": self.venue_name,
            "bookingDate": self.booking_date.isoformat(),
            "bookingTime": self.booking_time.strftime("%H:%M"),
            "therapistName": self.therapist_name,
            "totalPrice": float(self.total_price) if self.total_price is not None else None,
            "currency": self.currency,
            "treatments": list(self.treatments),
        }


def format_price(total_price: Optional[Union[Decimal, float]], currency: Optional[str]) -> str:
    """Render a price for humans; zero or missing means the price is still open."""
    if not total_price:
        return "To be defined"
    amount = Decimal(str(total_price)).quantize(Decimal("0.01"))
    return f"{amount} {currency or settings.default_currency}"


def build_slack_message(alert: BookingAlert, site_url: Optional[str] = None) -> dict[str, Any]:
    """
    Build the Slack webhook body for a booking alert.

    Args:
        alert: Booking alert
        site_url: Base URL for the admin "view booking" button

    Returns:
        JSON-serialisable Slack message
    """
    emoji, title, color = _ALERT_STYLE.get(alert.type, _ALERT_STYLE[AlertType.NEW_BOOKING])
    booking_url = f"{(site_url or settings.site_url).rstrip('/')}/admin/booking?bookingId={alert.booking_id}"
    when = f"{alert.booking_date.strftime('%a %d %b')} at {alert.booking_time.strftime('%H:%M')}"

    price_fields = [{"type": "mrkdwn", "text": f"*Total:*\n{format_price(alert.total_price, alert.currency)}"}]
    if alert.treatments:
        price_fields.append({"type": "mrkdwn", "text": f"*Treatments:*\n{', '.join(alert.treatments)}"})

    return {
        "text": f"{emoji} {title} #{alert.booking_number}",
        "attachments": [
            {
                "color": color,
                "blocks": [
                    {
                        "type": "header",
                        "text": {
                            "type": "plain_text",
                            "text": f"{emoji} {title} #{alert.booking_number}",
                            "emoji": True,
                        },
                    },
                    {
                        "type": "section",
                        "fields": [
                            {"type": "mrkdwn", "text": f"*Client:*\n{alert.client_name}"},
                            {"type": "mrkdwn", "text": f"*Venue:*\n{alert.venue_name}"},
                            {"type": "mrkdwn", "text": f"*Date:*\n{when}"},
                            {"type": "mrkdwn", "text": f"*Therapist:*\n{alert.therapist_name or 'Not assigned'}"},
                        ],
                    },
                    {"type": "section", "fields": price_fields},
                    {
                        "type": "actions",
                        "elements": [
                            {
                                "type": "button",
                                "text": {"type": "plain_text", "text": "View booking", "emoji": True},
                                "url": booking_url,
                                "style": "primary",
                            }
                        ],
                    },
                ],
            }
        ],
    }


class TeamChatNotifier:
    """
    Posts booking alerts to the team's Slack channel.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.webhook_url)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, message: dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.webhook_url, json=message)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.webhook_url, json=message)

    async def notify(self, alert: BookingAlert) -> bool:
        """
        Send one booking alert.

        Returns:
            True if Slack accepted the message, False if no webhook is configured

        Raises:
            httpx.HTTPError: Slack rejected the message or was unreachable
        """
        if not self.is_configured:
            logger.warning(
                "Slack webhook not configured, skipping alert",
                extra={"booking_id": alert.booking_id, "alert_type": alert.type},
            )
            return False

        response = await self._post(build_slack_message(alert))
        response.raise_for_status()
        logger.info(
            "Slack alert sent",
            extra={"booking_id": alert.booking_id, "alert_type": alert.type},
        )
        return True


def get_team_chat_notifier() -> TeamChatNotifier:
    """Get a notifier for the configured bookings webhook."""
    return TeamChatNotifier(
        webhook_url=settings.slack_webhook_bookings,
        timeout=settings.http_timeout_seconds,
    )
