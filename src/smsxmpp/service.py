"""Service supervisor: builds every component from Config and runs them until cancelled."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, wait_exponential

from smsxmpp.adapters.sms import Provider, ProviderRegistry, WebhookServer, build_app, default_registry
from smsxmpp.adapters.xmpp import XMPPTransport
from smsxmpp.config import Config
from smsxmpp.gateway import AddressMapper, Gateway, ReceiptTracker, RosterManager


def _restart_logger(name: str) -> Callable[[RetryCallState], None]:
    def log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.error("{} crashed ({}); restarting (attempt {})", name, exc, state.attempt_number)

    return log


class Service:
    """Gateway, XMPP transport and webhook server wired together."""

    def __init__(
        self,
        gateway: Gateway,
        transport: XMPPTransport,
        webhooks: WebhookServer,
        providers: dict[str, Provider],
    ) -> None:
        self.gateway = gateway
        self.transport = transport
        self.webhooks = webhooks
        self.providers = providers
        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_config(cls, config: Config, registry: ProviderRegistry | None = None) -> Service:
        registry = registry or default_registry()
        mapper = AddressMapper(
            config.xmpp_domain,
            config.users,
            phones=config.phones,
            default_prefix=config.default_prefix,
            ignore_unmapped=config.ignore_unmapped,
        )
        transport = XMPPTransport(
            config.xmpp_domain,
            config.xmpp_secret,
            config.xmpp_host,
            config.xmpp_port,
            send_timeout=config.send_timeout_seconds,
            reconnect_delay=config.reconnect_delay_seconds,
        )
        gateway = Gateway(
            mapper,
            {},
            transport,
            receipts=ReceiptTracker(config.receipt_cache_size),
            rosters=RosterManager(list(config.rosters)),
            vcard_enabled=config.vcard_enabled,
        )
        providers: dict[str, Provider] = {}
        for name, pc in config.providers.items():
            providers[name] = registry.create(pc, gateway.submit_sms, public_url=config.public_url)
            gateway.add_provider(providers[name])
        webhooks = WebhookServer(build_app(list(providers.values())), config.http_host, config.http_port)
        logger.info(
            "Gateway for {}: {} users, {} providers ({})",
            config.xmpp_domain,
            len(config.users),
            len(providers),
            ", ".join(f"{p.name}={p.type}" for p in providers.values()) or "none",
        )
        return cls(gateway, transport, webhooks, providers)

    async def _pump(self) -> None:
        """Move inbound stanzas from the transport to the gateway's XMPP queue."""
        while True:
            stanza = await self.transport.receive()
            await self.gateway.submit_xmpp(stanza)

    async def _supervise(self, run: Callable[[], Awaitable[None]], *, name: str) -> None:
        async for attempt in AsyncRetrying(
            wait=wait_exponential(multiplier=1, max=30),
            retry=retry_if_exception_type(Exception),
            before_sleep=_restart_logger(name),
            reraise=True,
        ):
            with attempt:
                await run()

    async def run(self) -> None:
        """Start the webhook listener, then run all loops until cancelled.

        Raises GatewayError if the webhook listener cannot bind.
        """
        await self.webhooks.start()
        self._tasks = [
            asyncio.create_task(self._supervise(self.transport.run, name="xmpp transport")),
            asyncio.create_task(self._supervise(self._pump, name="stanza pump")),
            asyncio.create_task(self._supervise(self.gateway.run, name="gateway")),
        ]
        try:
            await asyncio.gather(*self._tasks)
        finally:
            await self.stop()

    async def stop(self) -> None:
        logger.info("Gateway shutting down")
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        await self.webhooks.stop()
