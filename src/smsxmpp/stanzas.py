"""Typed XMPP stanzas exchanged between the router and the transport.

The router never touches slixmpp stanza objects; the component translates
between these dataclasses and the wire.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from slixmpp import JID

from smsxmpp.core.constants import PresenceType


def new_id() -> str:
    """Unique stanza id."""
    return f"sms-{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}"


@dataclass
class ChatMessage:
    """``<message/>`` stanza. type "" means no type attribute."""

    from_jid: JID | None
    to_jid: JID | None
    body: str = ""
    type: str = "chat"
    id: str = ""
    receipt_request: bool = False  # XEP-0184 <request/>
    receipt_ack: str | None = None  # XEP-0184 <received id=.../>
    oob_url: str | None = None  # XEP-0066 jabber:x:oob
    error: str | None = None  # human-readable error text when type == "error"


@dataclass
class Presence:
    """``<presence/>`` stanza. type "" is available."""

    from_jid: JID | None
    to_jid: JID | None
    type: PresenceType = ""
    status: str = ""
    nick: str | None = None  # XEP-0172
    id: str = ""


@dataclass
class DiscoInfo:
    """XEP-0030 disco#info payload."""

    identities: list[tuple[str, str, str]] = field(default_factory=list)  # (category, type, name)
    features: list[str] = field(default_factory=list)


@dataclass
class VCard:
    """XEP-0054 vcard-temp payload; empty full_name means unknown."""

    full_name: str = ""


@dataclass
class RosterItem:
    """Roster entry: display name and groups for one contact."""

    name: str = ""
    groups: list[str] = field(default_factory=list)


@dataclass
class RosterChange:
    """One ``<item/>`` of a roster query."""

    jid: JID
    name: str = ""
    groups: list[str] = field(default_factory=list)
    subscription: str = ""


@dataclass
class RosterQuery:
    """jabber:iq:roster payload."""

    items: list[RosterChange] = field(default_factory=list)


IqPayload = DiscoInfo | VCard | RosterQuery


@dataclass
class Iq:
    """``<iq/>`` stanza with at most one recognised payload."""

    from_jid: JID | None
    to_jid: JID | None
    type: str = "get"
    id: str = ""
    payload: IqPayload | None = None


Stanza = ChatMessage | Presence | Iq


@dataclass
class SessionStarted:
    """Component handshake completed; queued ahead of the session's first stanza."""

    jid: str


Inbound = Stanza | SessionStarted


def presence(from_jid: JID, to_jid: JID, ptype: PresenceType = "", *, status: str = "", nick: str | None = None) -> Presence:
    """Build an outbound presence with a fresh id."""
    return Presence(from_jid=from_jid, to_jid=to_jid, type=ptype, status=status, nick=nick, id=new_id())
