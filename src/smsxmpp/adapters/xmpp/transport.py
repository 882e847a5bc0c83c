"""XMPP transport: component connection lifecycle, inbound queue, serialized outbound writes."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, wait_fixed

from smsxmpp.adapters.xmpp.component import SMSComponent, StanzaCallback
from smsxmpp.core.constants import DEFAULT_RECONNECT_DELAY, DEFAULT_SEND_TIMEOUT
from smsxmpp.core.errors import ConnectionLost, SendTimeout
from smsxmpp.stanzas import Inbound, SessionStarted, Stanza

ComponentFactory = Callable[[str, str, str, int, StanzaCallback], Any]


def _log_reconnect(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning("XMPP connection lost ({}); reconnecting (attempt {})", exc, state.attempt_number)


class XMPPTransport:
    """Owns the component connection.

    Inbound stanzas are queued in arrival order, preceded by SessionStarted on
    every successful handshake. Outbound writes are serialized; a write waits
    for an open session at most send_timeout seconds.
    """

    def __init__(
        self,
        jid: str,
        secret: str,
        host: str,
        port: int,
        *,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        component_factory: ComponentFactory = SMSComponent,
    ) -> None:
        self._jid = jid
        self._secret = secret
        self._host = host
        self._port = port
        self._send_timeout = send_timeout
        self._reconnect_delay = reconnect_delay
        self._component_factory = component_factory
        self._component: Any = None
        self._inbound: asyncio.Queue[Inbound] = asyncio.Queue()
        self._send_lock = asyncio.Lock()
        self._online = asyncio.Event()

    @property
    def online(self) -> bool:
        return self._online.is_set()

    async def receive(self) -> Inbound:
        """Next inbound stanza (or SessionStarted marker)."""
        return await self._inbound.get()

    async def send(self, *stanzas: Stanza) -> None:
        """Write stanzas back to back; no other send interleaves.

        Raises SendTimeout if no session is available within the send timeout.
        """
        try:
            await asyncio.wait_for(self._send_serialized(stanzas), timeout=self._send_timeout)
        except asyncio.TimeoutError as exc:
            raise SendTimeout(
                f"timed out sending {len(stanzas)} stanza(s) after {self._send_timeout}s",
                code="send_timeout",
                details={"count": len(stanzas)},
                original_error=exc,
            ) from exc

    async def _send_serialized(self, stanzas: tuple[Stanza, ...]) -> None:
        async with self._send_lock:
            await self._online.wait()
            for stanza in stanzas:
                self._component.send_stanza(stanza)

    async def run(self) -> None:
        """Connect, and reconnect after reconnect_delay whenever the stream closes. Runs until cancelled."""
        async for attempt in AsyncRetrying(
            wait=wait_fixed(self._reconnect_delay),
            retry=retry_if_exception_type(ConnectionLost),
            before_sleep=_log_reconnect,
            reraise=True,
        ):
            with attempt:
                await self._run_once()

    async def _run_once(self) -> None:
        loop = asyncio.get_running_loop()
        closed: asyncio.Future[str] = loop.create_future()
        component = self._component_factory(self._jid, self._secret, self._host, self._port, self._inbound.put_nowait)

        def on_session_start(_: Any) -> None:
            self._component = component
            self._online.set()
            self._inbound.put_nowait(SessionStarted(jid=self._jid))
            logger.info("XMPP component {} connected to {}:{}", self._jid, self._host, self._port)

        def on_closed(reason: str) -> Callable[[Any], None]:
            def handler(_: Any) -> None:
                if not closed.done():
                    closed.set_result(reason)

            return handler

        component.add_event_handler("session_start", on_session_start)
        component.add_event_handler("disconnected", on_closed("disconnected"))
        component.add_event_handler("connection_failed", on_closed("connection failed"))

        logger.info("Connecting XMPP component {} to {}:{}", self._jid, self._host, self._port)
        component.connect()
        try:
            reason = await closed
        except asyncio.CancelledError:
            component.disconnect()
            raise
        finally:
            self._online.clear()
            self._component = None
            # slixmpp reschedules failed connects on its own; this loop owns retries.
            component.cancel_connection_attempt()
            component.abort()
        raise ConnectionLost(f"XMPP stream {reason}", code="connection_lost", details={"reason": reason})
