"""Tests for wiring the service from config and supervising its loops."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from smsxmpp.adapters.sms import NexmoProvider, TwilioProvider
from smsxmpp.config import Config
from smsxmpp.events import SmsMessage, SmsReceived
from smsxmpp.service import Service
from smsxmpp.stanzas import SessionStarted


def make_config(**overrides) -> Config:
    data = {
        "xmpp": {"server": "xmpp.internal:5348", "domain": "sms.example.com", "secret": "s3cret"},
        "http": {"host": "0.0.0.0", "port": 9000},
        "public_url": "https://sms.example.com",
        "receipt_cache_size": 4,
        "providers": {
            "tw": {"type": "twilio", "account_sid": "AC", "key_sid": "SK", "key_secret": "x"},
            "nx": {"type": "nexmo", "api_key": "k", "api_secret": "s"},
        },
        "users": {"alice@example.org": {"phone_number": "+15559998888", "provider": "tw"}},
        "rosters": {"alice@example.org": "https://dav.example/alice"},
    }
    data.update(overrides)
    return Config(data)


async def forever() -> None:
    await asyncio.Event().wait()


class TestFromConfig:
    def test_builds_providers_from_registry(self):
        # Act
        service = Service.from_config(make_config())

        # Assert
        assert isinstance(service.providers["tw"], TwilioProvider)
        assert isinstance(service.providers["nx"], NexmoProvider)
        assert service.providers["tw"].status_callback_url() == "https://sms.example.com/tw/status"

    def test_gateway_settings(self):
        service = Service.from_config(make_config())

        assert service.gateway.receipts.capacity == 4
        assert service.gateway.rosters.users() == ["alice@example.org"]

    def test_transport_settings(self):
        service = Service.from_config(make_config())

        assert service.transport.online is False
        assert service.transport._host == "xmpp.internal"
        assert service.transport._port == 5348
        assert service.transport._jid == "sms.example.com"

    @pytest.mark.asyncio
    async def test_provider_events_reach_gateway(self):
        # Arrange
        service = Service.from_config(make_config())
        evt = SmsReceived(
            provider="tw",
            message=SmsMessage(sender="+15551230000", recipient="+15559998888", body="hi"),
            provider_message_id="SM1",
        )

        # Act
        delivery = asyncio.create_task(service.providers["tw"]._deliver(evt))
        queued, done = await asyncio.wait_for(service.gateway._sms_queue.get(), timeout=1)
        done.set_result(None)
        await delivery

        # Assert
        assert queued is evt


class TestRun:
    def make_service(self) -> Service:
        gateway = MagicMock()
        gateway.run = forever
        gateway.submit_xmpp = AsyncMock()
        transport = MagicMock()
        transport.run = forever
        transport.receive = AsyncMock(side_effect=[SessionStarted(jid="sms.example.com"), asyncio.CancelledError()])
        webhooks = MagicMock()
        webhooks.start = AsyncMock()
        webhooks.stop = AsyncMock()
        return Service(gateway, transport, webhooks, {})

    @pytest.mark.asyncio
    async def test_pump_forwards_inbound(self):
        service = self.make_service()

        with pytest.raises(asyncio.CancelledError):
            await service._pump()

        service.gateway.submit_xmpp.assert_awaited_once_with(SessionStarted(jid="sms.example.com"))

    @pytest.mark.asyncio
    async def test_cancel_stops_everything(self):
        # Arrange
        service = self.make_service()
        service.transport.receive = forever
        task = asyncio.create_task(service.run())
        await asyncio.sleep(0.01)

        # Act
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        # Assert
        service.webhooks.start.assert_awaited_once()
        service.webhooks.stop.assert_awaited_once()
        assert service._tasks == []

    @pytest.mark.asyncio
    async def test_supervise_restarts_crashed_loop(self):
        # Arrange
        service = self.make_service()
        calls = []

        async def flaky() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")

        # Act
        await service._supervise(flaky, name="flaky")

        # Assert
        assert len(calls) == 2
