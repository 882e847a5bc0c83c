"""Nexmo (Vonage SMS API) provider."""

from __future__ import annotations

from typing import Any

from aiohttp import web
from loguru import logger

from smsxmpp import phone
from smsxmpp.adapters.sms.base import EventSink, Provider, read_json, require
from smsxmpp.core.errors import GatewayConfigurationError, ProviderError
from smsxmpp.events import SmsMessage, sms_delivered, sms_received

NEXMO_SEND_URL = "https://rest.nexmo.com/sms/json"

SEND_STATUSES = {
    "0": "Success",
    "1": "Throttled",
    "2": "Missing Parameters",
    "3": "Invalid Parameters",
    "4": "Invalid Credentials",
    "5": "Internal Error",
    "6": "Invalid Message",
    "7": "Number Barred",
    "8": "Partner Account Barred",
    "9": "Partner Quota Violation",
    "10": "Too Many Existing Binds",
    "11": "Account Not Enabled For HTTP",
    "12": "Message Too Long",
    "14": "Invalid Signature",
    "15": "Invalid Sender Address",
    "22": "Invalid Network Code",
    "23": "Invalid Callback URL",
    "29": "Non-Whitelisted Destination",
    "32": "Signature And API Secret Disallowed",
    "33": "Number De-activated",
}


class NexmoProvider(Provider):
    """Webhooks ``/inbound-sms`` and ``/delivery-receipt`` (JSON)."""

    type = "nexmo"
    supports_delivery_status = True

    def __init__(
        self,
        name: str,
        sink: EventSink,
        *,
        api_key: str,
        api_secret: str,
        send_url: str = NEXMO_SEND_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, sink, **kwargs)
        self._api_key = api_key
        self._api_secret = api_secret
        self._send_url = send_url

    @classmethod
    def from_params(cls, name: str, params: dict[str, str], sink: EventSink, **kwargs: Any) -> NexmoProvider:
        missing = [k for k in ("api_key", "api_secret") if not params.get(k)]
        if missing:
            raise GatewayConfigurationError(
                f"provider {name}: missing {', '.join(missing)}", code="missing_provider_params", details={"provider": name}
            )
        return cls(
            name,
            sink,
            api_key=params["api_key"],
            api_secret=params["api_secret"],
            http_password=params.get("http_password"),
            **kwargs,
        )

    async def send(self, message: SmsMessage) -> str | None:
        if message.media_urls:
            raise ProviderError("Nexmo doesn't support media", code="media_unsupported")
        form = {
            "api_key": self._api_key,
            "api_secret": self._api_secret,
            "from": message.sender.removeprefix("+"),
            "to": message.recipient.removeprefix("+"),
            "text": message.body,
        }
        if not message.body.isascii():
            form["type"] = "unicode"

        data = self._decode(await self._request(self._send_url, form))
        parts = data.get("messages") or []
        for part in parts:
            status = str(part.get("status", ""))
            if status != "0":
                raise ProviderError(
                    f"Error sending SMS ({status}): {SEND_STATUSES.get(status, part.get('error-text', 'Unknown'))}",
                    code="send_status",
                    details={"status": status},
                )
        message_id = parts[0].get("message-id") if parts else None
        logger.info("{}: sent SMS {} -> {} (id={})", self._name, message.sender, message.recipient, message_id)
        return message_id or None

    def routes(self) -> list[web.RouteDef]:
        return [
            web.post("/inbound-sms", self.handle_inbound_sms),
            web.post("/delivery-receipt", self.handle_delivery_receipt),
        ]

    async def handle_inbound_sms(self, request: web.Request) -> web.Response:
        data = await read_json(request)
        msisdn, to = require(data, "msisdn", "to")
        evt = sms_received(
            self._name,
            phone.normalize(msisdn),
            phone.normalize(to),
            str(data.get("text", "")),
            provider_message_id=str(data.get("messageId") or "") or None,
            raw=data,
        )
        await self._deliver(evt)
        return web.Response(status=204)

    async def handle_delivery_receipt(self, request: web.Request) -> web.Response:
        data = await read_json(request)
        (message_id,) = require(data, "messageId")
        status = str(data.get("status", ""))
        logger.debug("{}: message {} status {}", self._name, message_id, status)
        if status == "delivered":
            evt = sms_delivered(self._name, message_id, raw=data)
            await self._deliver(evt)
        return web.Response(status=204)
