"""
Twilio WhatsApp client for subscription reminders.
"""

import re

import httpx

from app.exceptions import ExternalServiceError
from app.observability.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "twilio"


def ensure_plus_prefix(number: str) -> str:
    """Twilio sender numbers must be E.164 with a leading +."""
    if number.startswith("+"):
        return number
    return "+" + re.sub(r"[^0-9]", "", number)


class TwilioWhatsAppClient:
    """Sends WhatsApp messages through the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not (account_sid and auth_token and from_number):
            raise ExternalServiceError(SERVICE_NAME, "Twilio credentials not configured")
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = ensure_plus_prefix(from_number)
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

    async def send_message(self, to_number: str, body: str) -> str:
        """
        Send a WhatsApp message.

        Returns:
            Twilio message SID

        Raises:
            ExternalServiceError: Transport failure or non-2xx response
        """
        try:
            response = await self.http_client.post(
                self.messages_url,
                auth=(self.account_sid, self.auth_token),
                data={
                    "From": f"whatsapp:{self.from_number}",
                    "To": f"whatsapp:{to_number}",
                    "Body": body,
                },
            )
        except httpx.HTTPError as e:
            logger.error("twilio_request_failed", error=str(e))
            raise ExternalServiceError(SERVICE_NAME, str(e)) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if response.is_error:
            message = payload.get("message") or f"HTTP {response.status_code}"
            logger.warning(
                "twilio_message_rejected", status_code=response.status_code, error=message
            )
            raise ExternalServiceError(SERVICE_NAME, message)

        sid = payload.get("sid")
        if not sid:
            raise ExternalServiceError(SERVICE_NAME, "Response did not include a message SID")
        return str(sid)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
