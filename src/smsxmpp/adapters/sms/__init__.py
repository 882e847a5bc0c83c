"""SMS provider adapters and the webhook server."""

from smsxmpp.adapters.sms.base import EventSink, Provider
from smsxmpp.adapters.sms.nexmo import NexmoProvider
from smsxmpp.adapters.sms.registry import ProviderRegistry, default_registry
from smsxmpp.adapters.sms.twilio import SignalWireProvider, TwilioProvider
from smsxmpp.adapters.sms.voipms import VoipMsProvider
from smsxmpp.adapters.sms.webhooks import WebhookServer, build_app

__all__ = [
    "EventSink",
    "NexmoProvider",
    "Provider",
    "ProviderRegistry",
    "SignalWireProvider",
    "TwilioProvider",
    "VoipMsProvider",
    "WebhookServer",
    "build_app",
    "default_registry",
]
