"""Twilio (and SignalWire, which speaks the same LaML API) provider."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote, urlsplit, urlunsplit

from aiohttp import web
from loguru import logger

from smsxmpp import phone
from smsxmpp.adapters.sms.base import EventSink, Provider, read_form, require
from smsxmpp.core.errors import GatewayConfigurationError, ProviderError
from smsxmpp.events import SmsMessage, sms_delivered, sms_received

TWILIO_API_URL = "https://api.twilio.com"
MAX_MEDIA = 10
# SignalWire needs exactly this document (declaration, non-self-closing Response); Twilio accepts it too.
EMPTY_RESPONSE = '<?xml version="1.0" encoding="UTF-8"?>\n<Response></Response>\n'


class TwilioProvider(Provider):
    """Messages resource of the 2010-04-01 API; webhooks ``/message`` and ``/status``."""

    type = "twilio"
    supports_delivery_status = True
    supports_media = True

    def __init__(
        self,
        name: str,
        sink: EventSink,
        *,
        account_sid: str,
        key_sid: str,
        key_secret: str,
        api_url: str = TWILIO_API_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, sink, **kwargs)
        self._api_url = api_url.rstrip("/")
        self._account_sid = account_sid
        self._key_sid = key_sid
        self._key_secret = key_secret

    @classmethod
    def from_params(cls, name: str, params: dict[str, str], sink: EventSink, **kwargs: Any) -> TwilioProvider:
        missing = [k for k in ("account_sid", "key_sid", "key_secret") if not params.get(k)]
        if missing:
            raise GatewayConfigurationError(
                f"provider {name}: missing {', '.join(missing)}", code="missing_provider_params", details={"provider": name}
            )
        return cls(
            name,
            sink,
            account_sid=params["account_sid"],
            key_sid=params["key_sid"],
            key_secret=params["key_secret"],
            http_password=params.get("http_password"),
            **kwargs,
        )

    @property
    def messages_url(self) -> str:
        return f"{self._api_url}/2010-04-01/Accounts/{self._account_sid}/Messages.json"

    def status_callback_url(self) -> str | None:
        """Where the carrier should post delivery status; None without a public URL."""
        if not self._public_url:
            return None
        parts = urlsplit(f"{self._public_url}/{self._name}/status")
        if self._http_password:
            netloc = f"{self.type}:{quote(self._http_password, safe='')}@{parts.netloc}"
            parts = parts._replace(netloc=netloc)
        return urlunsplit(parts)

    async def send(self, message: SmsMessage) -> str | None:
        if len(message.media_urls) > MAX_MEDIA:
            raise ProviderError(
                f"Too many media URLs ({self.type} only supports {MAX_MEDIA} per message)", code="too_much_media"
            )
        form: dict[str, Any] = {"To": message.recipient, "From": message.sender, "Body": message.body}
        if message.media_urls:
            form["MediaUrl"] = list(message.media_urls)
        callback = self.status_callback_url()
        if callback:
            form["StatusCallback"] = callback

        resp = await self._request(self.messages_url, form, auth=(self._key_sid, self._key_secret))
        data = self._decode(resp)
        if data.get("status") != "queued":
            raise ProviderError(
                f"Message could not be queued: {data.get('status')}: {data.get('message', '')}",
                code="not_queued",
                details={"status": data.get("status")},
            )
        sid = data.get("sid") or None
        logger.info("{}: sent SMS {} -> {} (sid={})", self._name, message.sender, message.recipient, sid)
        return sid

    def routes(self) -> list[web.RouteDef]:
        return [
            web.post("/message", self.handle_message),
            web.post("/status", self.handle_status),
        ]

    async def handle_message(self, request: web.Request) -> web.Response:
        form = await read_form(request)
        sender, recipient = require(form, "From", "To")
        evt = sms_received(
            self._name,
            phone.normalize(sender),
            phone.normalize(recipient),
            form.get("Body", ""),
            media_urls=_media_urls(form),
            provider_message_id=form.get("MessageSid") or None,
            raw=form,
        )
        await self._deliver(evt)
        return web.Response(text=EMPTY_RESPONSE, content_type="text/xml")

    async def handle_status(self, request: web.Request) -> web.Response:
        form = await read_form(request)
        sid, status = require(form, "MessageSid", "MessageStatus")
        logger.debug("{}: message {} status {}", self._name, sid, status)
        if status == "delivered":
            evt = sms_delivered(self._name, sid, raw=form)
            await self._deliver(evt)
        return web.Response(text=EMPTY_RESPONSE, content_type="text/xml")


class SignalWireProvider(TwilioProvider):
    """SignalWire LaML endpoint; project id doubles as account and key sid."""

    type = "signalwire"

    @classmethod
    def from_params(cls, name: str, params: dict[str, str], sink: EventSink, **kwargs: Any) -> TwilioProvider:
        missing = [k for k in ("domain", "project_id", "auth_token") if not params.get(k)]
        if missing:
            raise GatewayConfigurationError(
                f"provider {name}: missing {', '.join(missing)}", code="missing_provider_params", details={"provider": name}
            )
        return cls(
            name,
            sink,
            account_sid=params["project_id"],
            key_sid=params["project_id"],
            key_secret=params["auth_token"],
            api_url=f"https://{params['domain']}/api/laml",
            http_password=params.get("http_password"),
            **kwargs,
        )


def _media_urls(form: dict[str, str]) -> list[str]:
    try:
        count = int(form.get("NumMedia", "0") or 0)
    except ValueError:
        return []
    return [form[f"MediaUrl{i}"] for i in range(count) if form.get(f"MediaUrl{i}")]
