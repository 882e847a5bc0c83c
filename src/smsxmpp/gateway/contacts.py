"""ContactState: per (phone contact, XMPP user) presence-subscription state.

The gateway plays the part of every phone number as an XMPP contact. For each
pair it remembers whether it receives the user's presence (``sub_to``), whether
the user receives its presence (``sub_from``) and the display name the user
gave the contact. Transition methods mutate the state and return the presence
stanzas to emit, in order. State is in memory only and owned by the router.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger
from slixmpp import JID

from smsxmpp.stanzas import Presence, presence


class Sub(Enum):
    NO = "no"
    PENDING = "pending"
    YES = "yes"


@dataclass
class Contact:
    local_name: str = ""
    sub_to: Sub = Sub.NO
    sub_from: Sub = Sub.NO
    messaged: bool = False

    @property
    def known(self) -> bool:
        """True once any subscription or message history exists."""
        return self.sub_to is not Sub.NO or self.sub_from is not Sub.NO or self.messaged


class ContactBook:
    """Get-or-create table of Contact keyed by (local bare, remote bare)."""

    def __init__(self) -> None:
        self._contacts: dict[tuple[str, str], Contact] = {}

    def __len__(self) -> int:
        return len(self._contacts)

    def contact(self, local: JID, remote: JID) -> Contact:
        key = (local.bare, remote.bare)
        found = self._contacts.get(key)
        if found is None:
            found = Contact()
            self._contacts[key] = found
        return found

    def get(self, local: JID, remote: JID) -> Contact | None:
        """Lookup without creating."""
        return self._contacts.get((local.bare, remote.bare))

    def set_local_name(self, local: JID, remote: JID, name: str) -> None:
        self.contact(local, remote).local_name = name

    def clear(self) -> None:
        self._contacts.clear()

    def on_presence(self, local: JID, remote: JID, ptype: str) -> list[Presence]:
        """Apply an inbound presence of ptype from remote to local."""
        handler = {
            "subscribe": self.on_subscribe,
            "unsubscribe": self.on_unsubscribe,
            "subscribed": self.on_subscribed,
            "unsubscribed": self.on_unsubscribed,
            "probe": self.on_probe,
        }.get(ptype)
        if handler is None:
            logger.debug("Presence {} from {} to {}: no state change", ptype or "available", remote, local)
            return []
        return handler(local, remote)

    def on_subscribe(self, local: JID, remote: JID) -> list[Presence]:
        c = self.contact(local, remote)
        if c.sub_from is Sub.NO:
            c.sub_from = Sub.PENDING
        out = [presence(local, remote, "subscribed"), presence(local, remote)]
        if c.sub_to is Sub.NO:
            # Reciprocal request so the user shows up on our side too.
            out.append(presence(local, remote, "subscribe"))
            c.sub_to = Sub.PENDING
        return out

    def on_unsubscribe(self, local: JID, remote: JID) -> list[Presence]:
        c = self.contact(local, remote)
        out: list[Presence] = []
        if c.sub_from is not Sub.NO:
            out = [presence(local, remote, "unavailable"), presence(local, remote, "unsubscribed")]
        c.sub_from = Sub.NO
        return out

    def on_subscribed(self, local: JID, remote: JID) -> list[Presence]:
        c = self.contact(local, remote)
        if c.sub_to is Sub.PENDING:
            c.sub_to = Sub.YES
        # Repeated <subscribed/> repeats the availability reply.
        return [presence(local, remote)]

    def on_unsubscribed(self, local: JID, remote: JID) -> list[Presence]:
        self.contact(local, remote).sub_to = Sub.NO
        return []

    def on_probe(self, local: JID, remote: JID) -> list[Presence]:
        self.contact(local, remote)
        return [presence(local, remote)]

    def on_chat_from_remote(self, local: JID, remote: JID) -> list[Presence]:
        """User messaged a phone contact: ask for their presence if we never did."""
        c = self.contact(local, remote)
        out: list[Presence] = []
        if c.sub_to is Sub.NO:
            out.append(presence(local, remote, "subscribe"))
            c.sub_to = Sub.PENDING
        c.messaged = True
        return out

    def on_chat_to_remote(self, local: JID, remote: JID, nick: str | None) -> list[Presence]:
        """SMS arriving for remote: subscription request to precede the chat, if needed.

        The XEP-0172 nickname only rides along on a first introduction.
        """
        c = self.contact(local, remote)
        out: list[Presence] = []
        if c.sub_to is Sub.NO:
            out.append(presence(local, remote, "subscribe", nick=None if c.known else nick))
            c.sub_to = Sub.PENDING
        c.messaged = True
        return out
