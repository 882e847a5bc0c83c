"""SMS-side event types (carrier-agnostic)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class SmsMessage:
    """Canonical SMS/MMS unit; numbers are E.164."""

    sender: str
    recipient: str
    body: str
    media_urls: list[str] = field(default_factory=list)


@dataclass
class SmsReceived:
    """Carrier delivered an inbound message to one of our numbers."""

    provider: str
    message: SmsMessage
    provider_message_id: str | None = None  # carrier id, used to drop webhook retries
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class SmsDelivered:
    """Carrier confirmed delivery of a message we sent."""

    provider: str
    provider_message_id: str
    raw: dict[str, Any] = field(default_factory=dict)


SmsEvent = SmsReceived | SmsDelivered


def sms_received(
    provider: str,
    sender: str,
    recipient: str,
    body: str,
    *,
    media_urls: list[str] | None = None,
    provider_message_id: str | None = None,
    raw: dict[str, Any] | None = None,
) -> SmsReceived:
    """Inbound carrier message; media_urls is copied."""
    return SmsReceived(
        provider=provider,
        message=SmsMessage(sender=sender, recipient=recipient, body=body, media_urls=list(media_urls or [])),
        provider_message_id=provider_message_id,
        raw=raw or {},
    )


def sms_delivered(provider: str, provider_message_id: str, *, raw: dict[str, Any] | None = None) -> SmsDelivered:
    return SmsDelivered(provider=provider, provider_message_id=provider_message_id, raw=raw or {})
