"""XMPP component (XEP-0114): translates between slixmpp stanzas and smsxmpp.stanzas."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger
from slixmpp import JID
from slixmpp.componentxmpp import ComponentXMPP
from slixmpp.jid import InvalidJID
from slixmpp.plugins.xep_0030.stanza import DiscoInfo as DiscoInfoStanza
from slixmpp.plugins.xep_0054.stanza import VCardTemp
from slixmpp.plugins.xep_0066.stanza import OOB
from slixmpp.plugins.xep_0172.stanza import UserNick
from slixmpp.plugins.xep_0184.stanza import Received, Request
from slixmpp.stanza import Iq as IqStanza
from slixmpp.stanza import Message as MessageStanza
from slixmpp.stanza import Presence as PresenceStanza
from slixmpp.stanza.roster import Roster
from slixmpp.xmlstream import register_stanza_plugin
from slixmpp.xmlstream.handler import Callback
from slixmpp.xmlstream.matcher import StanzaPath

from smsxmpp.stanzas import (
    ChatMessage,
    DiscoInfo,
    Iq,
    IqPayload,
    Presence,
    RosterChange,
    RosterQuery,
    Stanza,
    VCard,
)

StanzaCallback = Callable[[Stanza], None]

# Payload stanzas only. The matching xep_0030/xep_0054/xep_0184 plugins would
# answer disco, vCard and receipts on their own; the gateway answers those itself.
register_stanza_plugin(MessageStanza, Request)
register_stanza_plugin(MessageStanza, Received)
register_stanza_plugin(MessageStanza, OOB)
register_stanza_plugin(PresenceStanza, UserNick)
register_stanza_plugin(IqStanza, DiscoInfoStanza)
register_stanza_plugin(IqStanza, VCardTemp)
register_stanza_plugin(IqStanza, Roster)


class SMSComponent(ComponentXMPP):
    """External component that plays every phone number as ``<number>@<domain>``.

    All message, presence and iq traffic is handed to on_stanza as typed
    stanzas; nothing is answered here.
    """

    def __init__(self, jid: str, secret: str, server: str, port: int, on_stanza: StanzaCallback):
        ComponentXMPP.__init__(self, jid, secret, server, port)
        self._on_stanza = on_stanza

        # Subscriptions are decided by the gateway, never by slixmpp's roster.
        self.auto_authorize = None
        self.auto_subscribe = False
        self.remove_handler("Presence")

        self.register_handler(Callback("SMS Message", StanzaPath("message"), self._on_message))
        self.register_handler(Callback("SMS Presence", StanzaPath("presence"), self._on_presence))
        self.register_handler(Callback("SMS Iq", StanzaPath("iq"), self._on_iq))

    # -- inbound ----------------------------------------------------------

    def _on_message(self, msg: Any) -> None:
        self._on_stanza(self.parse_message(msg))

    def _on_presence(self, pres: Any) -> None:
        self._on_stanza(self.parse_presence(pres))

    def _on_iq(self, iq: Any) -> None:
        self._on_stanza(self.parse_iq(iq))

    @staticmethod
    def parse_message(msg: Any) -> ChatMessage:
        oob = msg.get_plugin("oob", check=True)
        oob_url = oob["url"].strip() if oob is not None else ""
        return ChatMessage(
            from_jid=_jid(msg, "from"),
            to_jid=_jid(msg, "to"),
            body=msg["body"] or "",
            type=msg.xml.get("type", ""),
            id=msg["id"],
            receipt_request=msg["request_receipt"],
            receipt_ack=msg["receipt"] or None,
            oob_url=oob_url or None,
        )

    @staticmethod
    def parse_presence(pres: Any) -> Presence:
        nick = pres.get_plugin("nick", check=True)
        return Presence(
            from_jid=_jid(pres, "from"),
            to_jid=_jid(pres, "to"),
            type=pres.xml.get("type", ""),
            status=pres["status"] or "",
            nick=nick["nick"] if nick is not None else None,
            id=pres["id"],
        )

    @staticmethod
    def parse_iq(iq: Any) -> Iq:
        return Iq(
            from_jid=_jid(iq, "from"),
            to_jid=_jid(iq, "to"),
            type=iq["type"],
            id=iq["id"],
            payload=_parse_payload(iq),
        )

    # -- outbound ---------------------------------------------------------

    def send_stanza(self, stanza: Stanza) -> None:
        """Render a typed stanza and write it to the stream."""
        if isinstance(stanza, ChatMessage):
            out = self.render_message(stanza)
        elif isinstance(stanza, Presence):
            out = self.render_presence(stanza)
        elif isinstance(stanza, Iq):
            out = self.render_iq(stanza)
        else:
            raise TypeError(f"cannot send {type(stanza).__name__}")
        self.send(out)

    def render_message(self, m: ChatMessage) -> Any:
        msg = self.make_message(mto=m.to_jid, mfrom=m.from_jid, mbody=m.body or None, mtype=m.type or None)
        if m.id:
            msg["id"] = m.id
        if m.receipt_request:
            msg["request_receipt"] = True
        if m.receipt_ack:
            msg["receipt"] = m.receipt_ack
        if m.oob_url:
            msg["oob"]["url"] = m.oob_url
        if m.type == "error":
            msg["error"]["type"] = "cancel"
            msg["error"]["condition"] = "undefined-condition"
            msg["error"]["text"] = m.error or m.body
        return msg

    def render_presence(self, p: Presence) -> Any:
        pres = self.make_presence(pto=p.to_jid, pfrom=p.from_jid, ptype=p.type or None, pstatus=p.status or None)
        if p.id:
            pres["id"] = p.id
        if p.nick:
            pres["nick"]["nick"] = p.nick
        return pres

    def render_iq(self, i: Iq) -> Any:
        iq = self.Iq(stype=i.type, sto=i.to_jid, sfrom=i.from_jid)
        if i.id:
            iq["id"] = i.id
        payload = i.payload
        if isinstance(payload, DiscoInfo):
            disco = iq["disco_info"]
            for category, itype, name in payload.identities:
                disco.add_identity(category, itype, name=name)
            for feature in payload.features:
                disco.add_feature(feature)
        elif isinstance(payload, VCard):
            vcard = iq.enable("vcard_temp")
            if payload.full_name:
                vcard["FN"] = payload.full_name
        elif isinstance(payload, RosterQuery):
            items: dict[str, dict[str, Any]] = {}
            for item in payload.items:
                values: dict[str, Any] = {"groups": item.groups}
                if item.name:
                    values["name"] = item.name
                if item.subscription:
                    values["subscription"] = item.subscription
                items[item.jid.bare] = values
            iq["roster"]["items"] = items
        return iq


def _parse_payload(iq: Any) -> IqPayload | None:
    if iq.get_plugin("disco_info", check=True) is not None:
        return DiscoInfo()
    if iq.get_plugin("vcard_temp", check=True) is not None:
        return VCard()
    roster = iq.get_plugin("roster", check=True)
    if roster is None:
        return None
    # Items with an unparseable jid are dropped by slixmpp.
    return RosterQuery(
        items=[
            RosterChange(
                jid=item_jid,
                name=values.get("name", ""),
                groups=[g for g in values.get("groups", []) if g],
                subscription=values.get("subscription", ""),
            )
            for item_jid, values in roster["items"].items()
        ]
    )


def _jid(stanza: Any, attr: str) -> JID | None:
    try:
        jid = stanza[attr]
    except InvalidJID:
        logger.debug("Ignoring invalid JID {!r}", stanza.xml.get(attr))
        return None
    return jid if jid.full else None
