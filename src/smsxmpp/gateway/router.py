"""Gateway router: XMPP stanzas -> SMS sends, SMS events -> XMPP stanzas.

Two single-consumer loops, one per inbound stream, so each stream is handled
strictly in arrival order. Contact and roster state is touched only from these
loops; the receipt tracker keeps its own lock.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from cachetools import TTLCache
from loguru import logger
from slixmpp import JID

from smsxmpp.adapters.sms.base import Provider
from smsxmpp.config.schema import UserConfig
from smsxmpp.core.constants import (
    DISCO_CATEGORY,
    DISCO_NAME,
    DISCO_TYPE,
    FORWARDED_MESSAGE_TYPES,
    NS_DISCO_INFO,
    NS_OOB,
    NS_RECEIPTS,
    NS_VCARD,
)
from smsxmpp.core.errors import AddressError, GatewayError, InvalidPhoneNumber, ProviderError, UnknownPhoneNumber
from smsxmpp.events import SmsDelivered, SmsEvent, SmsMessage, SmsReceived
from smsxmpp.gateway.contacts import ContactBook
from smsxmpp.gateway.mapper import AddressMapper
from smsxmpp.gateway.receipts import ReceiptTracker
from smsxmpp.gateway.roster import Roster, RosterManager
from smsxmpp.stanzas import (
    ChatMessage,
    DiscoInfo,
    Inbound,
    Iq,
    Presence,
    RosterChange,
    RosterQuery,
    SessionStarted,
    Stanza,
    VCard,
    new_id,
    presence,
)


class StanzaSender(Protocol):
    """Serialized outbound XMPP path (the transport)."""

    async def send(self, *stanzas: Stanza) -> None: ...


class Gateway:
    """Routes between XMPP users and SMS providers."""

    def __init__(
        self,
        mapper: AddressMapper,
        providers: dict[str, Provider],
        sender: StanzaSender,
        *,
        receipts: ReceiptTracker | None = None,
        contacts: ContactBook | None = None,
        rosters: RosterManager | None = None,
        vcard_enabled: bool = True,
        dedupe_ttl: float = 3600.0,
    ) -> None:
        self._mapper = mapper
        self._providers = dict(providers)
        self._sender = sender
        self._receipts = receipts if receipts is not None else ReceiptTracker()
        self._contacts = contacts if contacts is not None else ContactBook()
        self._rosters = rosters if rosters is not None else RosterManager()
        self._vcard_enabled = vcard_enabled
        self._component_jid = JID(mapper.domain)
        self._xmpp_queue: asyncio.Queue[Inbound] = asyncio.Queue()
        self._sms_queue: asyncio.Queue[tuple[SmsEvent, asyncio.Future[None]]] = asyncio.Queue()
        # Carrier webhook retries of an already-relayed message: (provider, carrier id)
        self._seen_sms: TTLCache[tuple[str, str], None] = TTLCache(maxsize=1000, ttl=dedupe_ttl)

    @property
    def receipts(self) -> ReceiptTracker:
        return self._receipts

    @property
    def contacts(self) -> ContactBook:
        return self._contacts

    @property
    def rosters(self) -> RosterManager:
        return self._rosters

    def add_provider(self, provider: Provider) -> None:
        """Route SMS for users configured with provider.name through provider."""
        self._providers[provider.name] = provider

    # -- queues -----------------------------------------------------------

    async def submit_xmpp(self, stanza: Inbound) -> None:
        """Queue an inbound stanza for the XMPP loop."""
        await self._xmpp_queue.put(stanza)

    async def submit_sms(self, evt: SmsEvent) -> None:
        """Queue an SMS event and wait until the SMS loop has processed it.

        Raises whatever processing raised, so the webhook can answer 500.
        """
        done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        await self._sms_queue.put((evt, done))
        await done

    async def run(self) -> None:
        """Run both consumer loops until cancelled."""
        await asyncio.gather(self._xmpp_loop(), self._sms_loop())

    async def _xmpp_loop(self) -> None:
        while True:
            stanza = await self._xmpp_queue.get()
            try:
                await self.handle_xmpp(stanza)
            except Exception as exc:
                logger.exception("Failed to handle inbound {}: {}", type(stanza).__name__, exc)
            finally:
                self._xmpp_queue.task_done()

    async def _sms_loop(self) -> None:
        while True:
            evt, done = await self._sms_queue.get()
            try:
                await self.handle_sms(evt)
            except Exception as exc:
                if isinstance(exc, GatewayError):
                    logger.warning("Failed to handle {} from {}: {}", type(evt).__name__, evt.provider, exc)
                else:
                    logger.exception("Failed to handle {} from {}: {}", type(evt).__name__, evt.provider, exc)
                if not done.done():
                    done.set_exception(exc)
            else:
                if not done.done():
                    done.set_result(None)
            finally:
                self._sms_queue.task_done()

    # -- XMPP -> SMS ------------------------------------------------------

    async def handle_xmpp(self, stanza: Inbound) -> None:
        if isinstance(stanza, ChatMessage):
            await self._handle_message(stanza)
        elif isinstance(stanza, Presence):
            await self._handle_presence(stanza)
        elif isinstance(stanza, Iq):
            await self._handle_iq(stanza)
        elif isinstance(stanza, SessionStarted):
            await self.on_session_start()
        else:
            logger.info("Ignoring unrecognized stanza {}", type(stanza).__name__)

    async def _handle_message(self, msg: ChatMessage) -> None:
        if msg.from_jid is None or msg.to_jid is None:
            logger.warning("Dropping malformed message {}: from and to not set", msg.id)
            return
        if msg.type not in FORWARDED_MESSAGE_TYPES:
            logger.debug("Not forwarding {} message from {}", msg.type, msg.from_jid)
            return
        if not msg.body and not msg.oob_url:
            # chat states, receipts and other content-free messages
            return
        if not msg.to_jid.user:
            logger.info("Ignoring message to the gateway itself from {}", msg.from_jid)
            return

        try:
            to_number = self._mapper.address_to_phone(msg.to_jid)
            from_number = self._mapper.address_to_phone(msg.from_jid)
        except AddressError as exc:
            logger.info("Rejecting message {} -> {}: {}", msg.from_jid, msg.to_jid, exc)
            await self._sender.send(_error_reply(msg, str(exc)))
            return
        if to_number is None or from_number is None:
            logger.info("Ignoring message {} -> {}: address not mapped", msg.from_jid.bare, msg.to_jid.bare)
            return

        provider = self._provider_for(self._mapper.user(msg.from_jid))
        if provider is None:
            await self._sender.send(_error_reply(msg, f"No SMS provider configured for {msg.from_jid.bare}"))
            return

        sms = SmsMessage(sender=from_number, recipient=to_number, body=msg.body)
        if msg.oob_url:
            sms.media_urls.append(msg.oob_url)
            # Clients repeat the link in the body; the attachment carries it.
            if msg.body.strip() == msg.oob_url:
                sms.body = ""
        if sms.media_urls and not provider.supports_media:
            await self._sender.send(_error_reply(msg, f"Sending SMS failed: {provider.type} doesn't support media"))
            return

        try:
            provider_id = await provider.send(sms)
        except ProviderError as exc:
            logger.warning("{}: sending SMS {} -> {} failed: {}", provider.name, from_number, to_number, exc)
            await self._sender.send(_error_reply(msg, f"Sending SMS failed: {exc}"))
            return

        if msg.receipt_request and provider_id and provider.supports_delivery_status:
            receipt = ChatMessage(
                from_jid=msg.to_jid,
                to_jid=msg.from_jid,
                type="",
                id=new_id(),
                receipt_ack=msg.id,
            )
            self._receipts.register(provider_id, receipt)

        subscribe = self._contacts.on_chat_from_remote(msg.to_jid, msg.from_jid)
        if subscribe:
            await self._sender.send(*subscribe)

    def _provider_for(self, user: UserConfig | None) -> Provider | None:
        if user is not None:
            return self._providers.get(user.provider)
        if len(self._providers) == 1:
            return next(iter(self._providers.values()))
        return None

    async def _handle_presence(self, pres: Presence) -> None:
        if pres.from_jid is None or pres.to_jid is None:
            logger.warning("Dropping malformed presence {}: from and to not set", pres.id)
            return
        if not self._mapper.is_user(pres.from_jid):
            logger.info("Rejecting presence {} from non-user {}", pres.type or "available", pres.from_jid.bare)
            return
        if pres.to_jid.domain != self._mapper.domain:
            logger.warning("Rejecting presence addressed outside {}: {}", self._mapper.domain, pres.to_jid)
            return

        local, remote = JID(pres.to_jid.bare), JID(pres.from_jid.bare)
        if not local.user:
            out: list[Stanza] = []
            if pres.type == "subscribe":
                out = [presence(local, remote, "subscribed"), presence(local, remote)]
            elif pres.type == "probe":
                out = [presence(local, remote)]
            if out:
                await self._sender.send(*out)
            return

        if pres.type in ("subscribe", "probe"):
            try:
                self._mapper.contact_number(local)
            except InvalidPhoneNumber as exc:
                await self._sender.send(presence(local, remote, "error", status=f"Invalid phone number: {exc}"))
                return

        replies = self._contacts.on_presence(local, remote, pres.type)
        if replies:
            await self._sender.send(*replies)

    async def _handle_iq(self, iq: Iq) -> None:
        if iq.from_jid is None or iq.to_jid is None:
            logger.warning("Dropping malformed iq {}: from and to not set", iq.id)
            return
        payload = iq.payload
        if isinstance(payload, DiscoInfo) and iq.type == "get":
            await self._sender.send(_iq_result(iq, self.disco_info()))
        elif isinstance(payload, VCard) and iq.type == "get" and self._vcard_enabled:
            contact = self._contacts.get(iq.to_jid, iq.from_jid)
            await self._sender.send(_iq_result(iq, VCard(full_name=contact.local_name if contact else "")))
        elif isinstance(payload, RosterQuery) and iq.type in ("result", "set"):
            await self._handle_roster(iq, payload)
        else:
            logger.debug("Ignoring iq type={} from {} ({})", iq.type, iq.from_jid, type(payload).__name__)

    def disco_info(self) -> DiscoInfo:
        features = [NS_DISCO_INFO, NS_RECEIPTS, NS_OOB]
        if self._vcard_enabled:
            features.append(NS_VCARD)
        return DiscoInfo(identities=[(DISCO_CATEGORY, DISCO_TYPE, DISCO_NAME)], features=features)

    async def _handle_roster(self, iq: Iq, query: RosterQuery) -> None:
        user = iq.from_jid
        if user is None or not self._rosters.manages(user):
            logger.debug("Ignoring roster {} from unmanaged {}", iq.type, user)
            return
        if iq.type == "result":
            roster = self._rosters.on_result(user, query.items)
            self._learn_names(user, roster)
        else:
            self._rosters.on_push(user, query.items)
            self._learn_names(user, {c.jid.bare: c for c in query.items if c.subscription != "remove"})
            await self._sender.send(Iq(from_jid=iq.to_jid, to_jid=iq.from_jid, type="result", id=iq.id))

    def _learn_names(self, user: JID, items: Roster | dict[str, RosterChange]) -> None:
        for jid, item in items.items():
            contact = JID(jid)
            if contact.domain == self._mapper.domain and contact.user and item.name:
                self._contacts.set_local_name(contact, user, item.name)

    async def on_session_start(self) -> None:
        """New XMPP session: drop per-connection state and ask for managed rosters."""
        logger.info("XMPP session started; resetting {} contacts", len(self._contacts))
        self._contacts.clear()
        self._rosters.reset()
        for user in self._rosters.users():
            query = Iq(from_jid=self._component_jid, to_jid=JID(user), type="get", id=new_id(), payload=RosterQuery())
            await self._sender.send(query)

    async def set_roster(self, user: JID, roster: Roster) -> None:
        """Push the difference between roster and the user's current roster to the server.

        Raises RosterNotInitialized before the server has answered our roster get.
        """
        if not self._rosters.manages(user):
            raise GatewayError(f"no such roster user {user.bare}", code="unknown_roster_user")
        changes = self._rosters.replace(user, roster)
        self._learn_names(user, roster)
        for change in changes:
            await self._sender.send(
                Iq(
                    from_jid=self._component_jid,
                    to_jid=JID(user.bare),
                    type="set",
                    id=new_id(),
                    payload=RosterQuery(items=[change]),
                )
            )
        logger.info("Roster for {}: {} changes pushed", user.bare, len(changes))

    # -- SMS -> XMPP ------------------------------------------------------

    async def handle_sms(self, evt: SmsEvent) -> None:
        if isinstance(evt, SmsReceived):
            await self._handle_received(evt)
        elif isinstance(evt, SmsDelivered):
            await self._handle_delivered(evt)
        else:
            logger.warning("Ignoring unrecognized SMS event {}", type(evt).__name__)

    async def _handle_received(self, evt: SmsReceived) -> None:
        key = (evt.provider, evt.provider_message_id) if evt.provider_message_id else None
        if key and key in self._seen_sms:
            logger.info("{}: message {} already relayed; ignoring retry", evt.provider, evt.provider_message_id)
            return
        sms = evt.message

        user = self._mapper.phone_to_address(sms.recipient)
        if user is None:
            logger.info("Ignoring SMS to unmapped number {}", sms.recipient)
            return
        if not self._mapper.is_user(user):
            if self._mapper.ignore_unmapped:
                logger.info("Ignoring SMS to {}: not a user's number", sms.recipient)
                return
            raise UnknownPhoneNumber(
                f"Unknown phone number {sms.recipient}", code="unknown_phone_number", details={"number": sms.recipient}
            )
        try:
            contact = self._mapper.contact_address(sms.sender)
        except AddressError:
            if self._mapper.ignore_unmapped:
                logger.info("Ignoring SMS from unaddressable sender {!r}", sms.sender)
                return
            raise

        known = self._contacts.get(contact, user)
        nick = known.local_name if known and known.local_name else sms.sender
        out: list[Stanza] = list(self._contacts.on_chat_to_remote(contact, user, nick))
        if sms.body or not sms.media_urls:
            out.append(ChatMessage(from_jid=contact, to_jid=user, body=sms.body, type="chat", id=new_id()))
        for url in sms.media_urls:
            out.append(ChatMessage(from_jid=contact, to_jid=user, body=url, type="chat", id=new_id(), oob_url=url))

        await self._sender.send(*out)
        if key:
            self._seen_sms[key] = None
        logger.info("{}: relayed SMS {} -> {}", evt.provider, sms.sender, user.bare)

    async def _handle_delivered(self, evt: SmsDelivered) -> None:
        receipt = self._receipts.resolve(evt.provider_message_id)
        if receipt is None:
            logger.debug("{}: no pending receipt for {}", evt.provider, evt.provider_message_id)
            return
        await self._sender.send(receipt)
        logger.info("Sent receipt for {} to {}", evt.provider_message_id, receipt.to_jid)


def _error_reply(msg: ChatMessage, text: str) -> ChatMessage:
    return ChatMessage(from_jid=msg.to_jid, to_jid=msg.from_jid, body=text, type="error", id=msg.id or new_id(), error=text)


def _iq_result(iq: Iq, payload: DiscoInfo | VCard) -> Iq:
    return Iq(from_jid=iq.to_jid, to_jid=iq.from_jid, type="result", id=iq.id, payload=payload)
