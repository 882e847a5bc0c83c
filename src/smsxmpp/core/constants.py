"""Protocol constants: namespaces and service discovery identity."""

from __future__ import annotations

from typing import Literal

NS_DISCO_INFO = "http://jabber.org/protocol/disco#info"
NS_RECEIPTS = "urn:xmpp:receipts"
NS_VCARD = "vcard-temp"
NS_OOB = "jabber:x:oob"

DISCO_CATEGORY = "gateway"
DISCO_TYPE = "sms"
DISCO_NAME = "SMS over XMPP"

PresenceType = Literal["", "unavailable", "subscribe", "subscribed", "unsubscribe", "unsubscribed", "probe", "error"]

# Message types forwarded to SMS; others (groupchat, headline, error) are dropped.
FORWARDED_MESSAGE_TYPES = ("", "chat", "normal")

DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 9677
DEFAULT_COMPONENT_PORT = 5347
DEFAULT_RECEIPT_CAPACITY = 10
DEFAULT_SEND_TIMEOUT = 5.0
DEFAULT_RECONNECT_DELAY = 1.0
