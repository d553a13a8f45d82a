"""Tests for NotificationDispatcher routing, templates and phone helpers."""

from __future__ import annotations

import pytest

from claimassist.models.notifications import (
    NotificationChannel,
    NotificationPayload,
    NotificationPriority,
)
from claimassist.notifications.dispatcher import (
    URGENCY_PRIORITY,
    NotificationDispatcher,
    format_phone_number,
    validate_phone_number,
)
from tests.fakes import MockMessagingProvider


@pytest.fixture
def provider():
    return MockMessagingProvider()


@pytest.fixture
def dispatcher(provider):
    return NotificationDispatcher(provider)


class TestSendNotification:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("channel", [NotificationChannel.WHATSAPP, NotificationChannel.SMS])
    async def test_routes_messaging_channels_to_provider(self, dispatcher, provider, channel):
        result = await dispatcher.send_notification(
            NotificationPayload(channel=channel, recipient="+15551234567", message="hi")
        )
        assert result.success is True
        assert provider.sent[0]["channel"] == channel

    @pytest.mark.asyncio
    async def test_email_is_not_implemented(self, dispatcher, provider):
        result = await dispatcher.send_notification(
            NotificationPayload(channel=NotificationChannel.EMAIL, recipient="a@b.c", message="hi")
        )
        assert result.success is False
        assert "not implemented" in result.error.lower()
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_provider_failure_is_returned(self, dispatcher, provider):
        provider.set_failure("HTTP 401: Authenticate")
        result = await dispatcher.send_status_update("+15551234567", "CLM-1", "approved")
        assert result.success is False
        assert result.error == "HTTP 401: Authenticate"


class TestConvenienceSenders:
    @pytest.mark.asyncio
    async def test_claim_confirmation(self, dispatcher, provider):
        await dispatcher.send_claim_confirmation("+15551234567", "CLM-1", "medical", 1234.5)
        body = provider.sent[0]["body"]
        assert "CLM-1" in body
        assert "Medical" in body
        assert "$1,234.50" in body

    @pytest.mark.asyncio
    async def test_escalation_alert(self, dispatcher, provider):
        await dispatcher.send_escalation_notification("+1234567001", "CLM-2", 3, "high", "Fraud suspected")
        body = provider.sent[0]["body"]
        assert "Level 3" in body
        assert "HIGH" in body
        assert "Fraud suspected" in body

    @pytest.mark.asyncio
    async def test_fraud_alert_lists_factors(self, dispatcher, provider):
        await dispatcher.send_fraud_alert("+1234567001", "CLM-3", 87, ["Duplicate bill", "New account"])
        body = provider.sent[0]["body"]
        assert "87/100" in body
        assert "• Duplicate bill" in body

    @pytest.mark.asyncio
    async def test_status_update_known_and_unknown(self, dispatcher, provider):
        await dispatcher.send_status_update("+15551234567", "CLM-4", "approved", "Payout in 2 days")
        await dispatcher.send_status_update("+15551234567", "CLM-4", "on_hold")
        assert "approved" in provider.sent[0]["body"]
        assert "Payout in 2 days" in provider.sent[0]["body"]
        assert "updated to: on_hold" in provider.sent[1]["body"]

    @pytest.mark.asyncio
    async def test_payout(self, dispatcher, provider):
        await dispatcher.send_payout_notification("+15551234567", "CLM-5", 2500, "UPI")
        body = provider.sent[0]["body"]
        assert "$2,500.00" in body
        assert "UPI" in body


class TestPhoneHelpers:
    @pytest.mark.parametrize("phone", ["+15551234567", "+919876543210", "+44"])
    def test_valid_e164(self, phone):
        assert validate_phone_number(phone) is True

    @pytest.mark.parametrize("phone", ["5551234567", "+05551234567", "+1 555 123", "+1234567890123456"])
    def test_invalid_e164(self, phone):
        assert validate_phone_number(phone) is False

    def test_format_adds_country_code(self):
        assert format_phone_number("(555) 123-4567") == "+15551234567"

    def test_format_keeps_existing_country_code(self):
        assert format_phone_number("1-555-123-4567") == "+15551234567"
        assert format_phone_number("98765 43210", "+91") == "+919876543210"


def test_urgency_sets_priority():
    assert URGENCY_PRIORITY["critical"] == NotificationPriority.URGENT
