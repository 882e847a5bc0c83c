"""Routing core: address mapping, contact and roster state, delivery receipts."""

from smsxmpp.gateway.contacts import Contact, ContactBook, Sub
from smsxmpp.gateway.mapper import AddressMapper
from smsxmpp.gateway.receipts import ReceiptTracker
from smsxmpp.gateway.roster import Roster, RosterManager
from smsxmpp.gateway.router import Gateway, StanzaSender

__all__ = [
    "AddressMapper",
    "Contact",
    "ContactBook",
    "Gateway",
    "ReceiptTracker",
    "Roster",
    "RosterManager",
    "StanzaSender",
    "Sub",
]
