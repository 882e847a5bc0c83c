"""voip.ms provider (North American numbers only)."""

from __future__ import annotations

from typing import Any

from aiohttp import web
from loguru import logger

from smsxmpp import phone
from smsxmpp.adapters.sms.base import EventSink, Provider, read_json
from smsxmpp.core.errors import GatewayConfigurationError, MalformedPayload, ProviderError
from smsxmpp.events import SmsMessage, sms_received

VOIPMS_API_URL = "https://voip.ms/api/v1/rest.php"
MAX_SMS_LENGTH = 160
MAX_MMS_LENGTH = 2048
MAX_MEDIA = 3


class VoipMsProvider(Provider):
    """REST sendSMS/sendMMS; webhook ``/sms`` (JSON)."""

    type = "voipms"
    supports_media = True

    def __init__(
        self,
        name: str,
        sink: EventSink,
        *,
        api_username: str,
        api_password: str,
        api_url: str = VOIPMS_API_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, sink, **kwargs)
        self._api_username = api_username
        self._api_password = api_password
        self._api_url = api_url

    @classmethod
    def from_params(cls, name: str, params: dict[str, str], sink: EventSink, **kwargs: Any) -> VoipMsProvider:
        missing = [k for k in ("api_username", "api_password") if not params.get(k)]
        if missing:
            raise GatewayConfigurationError(
                f"provider {name}: missing {', '.join(missing)}", code="missing_provider_params", details={"provider": name}
            )
        return cls(
            name,
            sink,
            api_username=params["api_username"],
            api_password=params["api_password"],
            http_password=params.get("http_password"),
            **kwargs,
        )

    async def send(self, message: SmsMessage) -> str | None:
        did = _strip_nanp(message.sender, "from")
        dst = _strip_nanp(message.recipient, "to")
        form = {
            "api_username": self._api_username,
            "api_password": self._api_password,
            "content_type": "json",
            "did": did,
            "dst": dst,
            "message": message.body,
        }
        for i, url in enumerate(message.media_urls[:MAX_MEDIA], start=1):
            form[f"media{i}"] = url

        body_len = len(message.body.encode())
        if body_len <= MAX_SMS_LENGTH and not message.media_urls:
            form["method"] = "sendSMS"
        elif body_len <= MAX_MMS_LENGTH and len(message.media_urls) <= MAX_MEDIA:
            form["method"] = "sendMMS"
        else:
            raise ProviderError(
                f"Message too long (voip.ms messages must be <= {MAX_MMS_LENGTH} bytes long "
                f"and have <= {MAX_MEDIA} attachments)",
                code="too_long",
            )

        resp = await self._request(self._api_url, form)
        content_type = resp.headers.get("Content-Type", "")
        if not content_type.startswith("application/json"):
            raise ProviderError(f"received non-JSON response {content_type!r} from voip.ms", code="bad_response")
        status = self._decode(resp).get("status")
        if status != "success":
            raise ProviderError(f"sending SMS failed with status {status!r}", code="send_status")
        logger.info("{}: sent {} {} -> {}", self._name, form["method"], message.sender, message.recipient)
        return None

    def routes(self) -> list[web.RouteDef]:
        return [web.post("/sms", self.handle_sms)]

    async def handle_sms(self, request: web.Request) -> web.Response:
        data = await read_json(request)
        envelope = data.get("data")
        payload = envelope.get("payload") if isinstance(envelope, dict) else None
        if not isinstance(payload, dict):
            raise MalformedPayload("missing data.payload", code="missing_fields")
        to = payload.get("to") or []
        if not isinstance(to, list) or len(to) != 1:
            raise MalformedPayload(
                "number of destination phone numbers is not 1",
                code="bad_destinations",
                details={"count": len(to) if isinstance(to, list) else 0},
            )
        sender = _phone_number(payload.get("from"))
        recipient = _phone_number(to[0])
        if not sender or not recipient:
            raise MalformedPayload("missing from/to phone_number", code="missing_fields")
        media = [m["url"] for m in payload.get("media") or [] if isinstance(m, dict) and m.get("url")]
        evt = sms_received(
            self._name,
            phone.normalize(f"+1{sender}"),
            phone.normalize(f"+1{recipient}"),
            str(payload.get("text") or ""),
            media_urls=media,
            provider_message_id=str(payload.get("id") or "") or None,
            raw=data,
        )
        await self._deliver(evt)
        # voip.ms requires exactly this response
        return web.Response(text="ok\n", content_type="text/plain")


def _phone_number(party: Any) -> str | None:
    return party.get("phone_number") if isinstance(party, dict) else None


def _strip_nanp(number: str, which: str) -> str:
    if not number.startswith("+1"):
        raise ProviderError(
            f"voip.ms cannot send SMS {which} {number!r} - only phone numbers with +1 country code are supported",
            code="unsupported_number",
        )
    return number[2:]
