"""SMS provider contract: outbound send, inbound webhook routes, capability flags."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, ClassVar

import httpx
from aiohttp import web
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from smsxmpp.core.errors import MalformedPayload, ProviderError
from smsxmpp.events import SmsEvent, SmsMessage

EventSink = Callable[[SmsEvent], Awaitable[None]]

# Only retry when the request never reached the carrier; anything later may have sent the SMS.
SEND_RETRY = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
    reraise=True,
)


class Provider(ABC):
    """One configured carrier account.

    ``send`` returns the carrier's message id when it has one. Providers that
    post delivery notices set ``supports_delivery_status`` so the router knows
    receipts are worth tracking.
    """

    type: ClassVar[str]
    supports_delivery_status: ClassVar[bool] = False
    supports_media: ClassVar[bool] = False

    def __init__(
        self,
        name: str,
        sink: EventSink,
        *,
        http_password: str | None = None,
        public_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._name = name
        self._sink = sink
        self._http_password = http_password or None
        self._public_url = public_url
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return self._name

    @property
    def http_password(self) -> str | None:
        """Password required on this provider's webhooks (HTTP Basic), or None."""
        return self._http_password

    @abstractmethod
    async def send(self, message: SmsMessage) -> str | None:
        """Send message through the carrier. Raises ProviderError on failure."""
        ...

    @abstractmethod
    def routes(self) -> list[web.RouteDef]:
        """Webhook routes, mounted under ``/<name>``."""
        ...

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    @SEND_RETRY
    async def _post_form(
        self,
        url: str,
        data: dict[str, Any],
        *,
        auth: tuple[str, str] | None = None,
    ) -> httpx.Response:
        async with self._client() as client:
            return await client.post(url, data=data, auth=auth)

    async def _request(
        self,
        url: str,
        data: dict[str, Any],
        *,
        auth: tuple[str, str] | None = None,
    ) -> httpx.Response:
        """POST form data; transport failures and non-2xx become ProviderError."""
        try:
            resp = await self._post_form(url, data, auth=auth)
        except httpx.HTTPError as exc:
            raise ProviderError(
                f"HTTP request to {self.type} failed: {exc}",
                code="http_error",
                details={"provider": self._name},
                original_error=exc,
            ) from exc
        if not resp.is_success:
            raise ProviderError(
                f"HTTP error from {self.type}: {resp.status_code} {resp.reason_phrase}: {resp.text}",
                code="http_status",
                details={"provider": self._name, "status": resp.status_code},
            )
        return resp

    def _decode(self, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except json.JSONDecodeError as exc:
            raise ProviderError(
                f"Malformed response from {self.type}: {exc}", code="bad_response", original_error=exc
            ) from exc
        if not isinstance(data, dict):
            raise ProviderError(f"Malformed response from {self.type}: expected object", code="bad_response")
        return data

    async def _deliver(self, evt: SmsEvent) -> None:
        logger.debug("{}: handing {} to gateway", self._name, type(evt).__name__)
        await self._sink(evt)


async def read_form(request: web.Request) -> dict[str, str]:
    """Decoded form body; MalformedPayload when it cannot be parsed."""
    try:
        form = await request.post()
    except ValueError as exc:
        raise MalformedPayload(f"Parsing form failed: {exc}", code="bad_form", original_error=exc) from exc
    return {k: v for k, v in form.items() if isinstance(v, str)}


async def read_json(request: web.Request) -> dict[str, Any]:
    """Decoded JSON object body; MalformedPayload when it is not one."""
    try:
        data = await request.json()
    except json.JSONDecodeError as exc:
        raise MalformedPayload("malformed JSON", code="bad_json", original_error=exc) from exc
    if not isinstance(data, dict):
        raise MalformedPayload("malformed JSON: expected object", code="bad_json")
    return data


def require(fields: dict[str, Any], *names: str) -> list[str]:
    """Values of names in fields as strings; MalformedPayload naming any that are missing or empty."""
    missing = [n for n in names if not fields.get(n)]
    if missing:
        raise MalformedPayload(f"missing field(s): {', '.join(missing)}", code="missing_fields", details={"fields": missing})
    return [str(fields[n]) for n in names]
