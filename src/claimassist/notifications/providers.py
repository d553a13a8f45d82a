"""Messaging providers: Twilio over its REST API, and an in-memory mock."""

from __future__ import annotations

import asyncio
from typing import Any

import requests
import structlog

from claimassist.core.config import TwilioConfig
from claimassist.models.notifications import NotificationChannel, NotificationResult

logger = structlog.get_logger(__name__)


class TwilioMessagingProvider:
    """IMessagingProvider backed by the Twilio Messages API.

    Transport and HTTP errors come back as unsuccessful results so the
    notification job can decide whether to retry.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        phone_number: str,
        whatsapp_number: str,
        api_base_url: str = "https://api.twilio.com/2010-04-01",
        timeout: int = 30,
        session: requests.Session | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._phone_number = phone_number
        self._whatsapp_number = whatsapp_number
        self._url = f"{api_base_url.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (account_sid, auth_token)

    def _addresses(self, recipient: str, channel: NotificationChannel) -> tuple[str, str]:
        if channel == NotificationChannel.WHATSAPP:
            return f"whatsapp:{self._whatsapp_number}", f"whatsapp:{recipient}"
        return self._phone_number, recipient

    def _post(self, recipient: str, body: str, channel: NotificationChannel) -> NotificationResult:
        sender, to = self._addresses(recipient, channel)
        try:
            response = self._session.post(
                self._url,
                data={"From": sender, "To": to, "Body": body},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.error("twilio_request_failed", channel=channel.value, error=str(exc))
            return NotificationResult(success=False, error=str(exc))

        if response.status_code >= 400:
            try:
                detail = response.json().get("message", response.text)
            except ValueError:
                detail = response.text
            logger.error(
                "twilio_send_rejected",
                channel=channel.value,
                status_code=response.status_code,
                error=detail,
            )
            return NotificationResult(success=False, error=f"HTTP {response.status_code}: {detail}")

        sid = response.json().get("sid")
        logger.info("notification_sent", channel=channel.value, message_id=sid)
        return NotificationResult(success=True, message_id=sid)

    async def send(
        self, recipient: str, body: str, channel: NotificationChannel
    ) -> NotificationResult:
        return await asyncio.to_thread(self._post, recipient, body, channel)


class MockMessagingProvider:
    """IMessagingProvider that records messages instead of sending them."""

    def __init__(self, fail_with: str | None = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self._fail_with = fail_with
        self._counter = 0

    def set_failure(self, error: str | None) -> None:
        """Make subsequent sends fail with ``error`` (None restores success)."""
        self._fail_with = error

    async def send(
        self, recipient: str, body: str, channel: NotificationChannel
    ) -> NotificationResult:
        if self._fail_with:
            return NotificationResult(success=False, error=self._fail_with)
        self._counter += 1
        message_id = f"mock-{self._counter}"
        self.sent.append({
            "recipient": recipient,
            "body": body,
            "channel": NotificationChannel(channel),
            "message_id": message_id,
        })
        return NotificationResult(success=True, message_id=message_id)


def create_messaging_provider(config: TwilioConfig | None = None):
    """Build the provider selected by ``config.provider``."""
    config = config or TwilioConfig()
    if config.provider == "twilio":
        return TwilioMessagingProvider(
            account_sid=config.account_sid,
            auth_token=config.auth_token,
            phone_number=config.phone_number,
            whatsapp_number=config.whatsapp_number,
            api_base_url=config.api_base_url,
            timeout=config.timeout,
        )
    return MockMessagingProvider()
