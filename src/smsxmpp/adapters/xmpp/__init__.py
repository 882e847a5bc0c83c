"""XMPP side: XEP-0114 component and its connection-managing transport."""

from smsxmpp.adapters.xmpp.component import SMSComponent
from smsxmpp.adapters.xmpp.transport import XMPPTransport

__all__ = ["SMSComponent", "XMPPTransport"]
