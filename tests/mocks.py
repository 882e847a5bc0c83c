"""Fakes for testing the gateway without an XMPP server or carrier accounts."""

from __future__ import annotations

from typing import Any

from aiohttp import web
from slixmpp import JID

from smsxmpp.adapters.sms.base import EventSink, Provider
from smsxmpp.config.schema import UserConfig
from smsxmpp.core.errors import ProviderError
from smsxmpp.events import SmsEvent, SmsMessage
from smsxmpp.gateway import AddressMapper, Gateway, ReceiptTracker, RosterManager
from smsxmpp.stanzas import Stanza

DOMAIN = "gateway.example"
ALICE = "alice@example.org"
ALICE_NUMBER = "+15559998888"
BOB = "bob@example.org"
BOB_NUMBER = "+15557776666"
REMOTE_NUMBER = "+15551230000"
REMOTE = f"{REMOTE_NUMBER}@{DOMAIN}"


class RecordingSender:
    """Stands in for the XMPP transport; records every send call."""

    def __init__(self) -> None:
        self.batches: list[tuple[Stanza, ...]] = []

    async def send(self, *stanzas: Stanza) -> None:
        self.batches.append(stanzas)

    @property
    def sent(self) -> list[Stanza]:
        return [s for batch in self.batches for s in batch]

    def clear(self) -> None:
        self.batches.clear()


class FakeProvider(Provider):
    """Provider that records sends and returns a fixed carrier id."""

    type = "fake"
    supports_delivery_status = True
    supports_media = True

    def __init__(
        self,
        name: str = "fake",
        sink: EventSink | None = None,
        *,
        message_id: str | None = "SM123",
        error: ProviderError | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, sink or _discard, **kwargs)
        self.message_id = message_id
        self.error = error
        self.sent: list[SmsMessage] = []

    async def send(self, message: SmsMessage) -> str | None:
        if self.error:
            raise self.error
        self.sent.append(message)
        return self.message_id

    def routes(self) -> list[web.RouteDef]:
        return []


class TextOnlyProvider(FakeProvider):
    type = "textonly"
    supports_delivery_status = False
    supports_media = False


async def _discard(evt: SmsEvent) -> None:
    return None


def make_users(*entries: tuple[str, str, str]) -> dict[str, UserConfig]:
    return {jid: UserConfig(jid=jid, phone_number=number, provider=provider) for jid, number, provider in entries}


def make_mapper(*, ignore_unmapped: bool = False, default_prefix: str = "", phones: dict[str, str] | None = None):
    users = make_users((ALICE, ALICE_NUMBER, "fake"), (BOB, BOB_NUMBER, "fake"))
    return AddressMapper(
        DOMAIN, users, phones=phones, default_prefix=default_prefix, ignore_unmapped=ignore_unmapped
    )


def make_gateway(
    *,
    provider: Provider | None = None,
    ignore_unmapped: bool = False,
    rosters: list[str] | None = None,
    receipts: ReceiptTracker | None = None,
    vcard_enabled: bool = True,
) -> tuple[Gateway, RecordingSender, Provider]:
    provider = provider or FakeProvider()
    sender = RecordingSender()
    gateway = Gateway(
        make_mapper(ignore_unmapped=ignore_unmapped),
        {provider.name: provider},
        sender,
        receipts=receipts,
        rosters=RosterManager(rosters or []),
        vcard_enabled=vcard_enabled,
    )
    return gateway, sender, provider


def jid(text: str) -> JID:
    return JID(text)


class FakeComponent:
    """Records the lifecycle calls the transport makes on a component."""

    def __init__(self, jid: str, secret: str, server: str, port: int, on_stanza: Any) -> None:
        self.args = (jid, secret, server, port)
        self.on_stanza = on_stanza
        self.handlers: dict[str, list[Any]] = {}
        self.written: list[Stanza] = []
        self.connected = False
        self.disconnected = False
        self.aborted = False
        self.attempt_cancelled = False

    def add_event_handler(self, name: str, handler: Any) -> None:
        self.handlers.setdefault(name, []).append(handler)

    def fire(self, name: str, data: Any = None) -> None:
        for handler in self.handlers.get(name, []):
            handler(data)

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.disconnected = True

    def cancel_connection_attempt(self) -> None:
        self.attempt_cancelled = True

    def abort(self) -> None:
        self.aborted = True

    def send_stanza(self, stanza: Stanza) -> None:
        self.written.append(stanza)
