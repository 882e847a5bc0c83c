"""Provider registry: type name -> factory, built once at startup and passed in."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from smsxmpp.adapters.sms.base import EventSink, Provider
from smsxmpp.adapters.sms.nexmo import NexmoProvider
from smsxmpp.adapters.sms.twilio import SignalWireProvider, TwilioProvider
from smsxmpp.adapters.sms.voipms import VoipMsProvider
from smsxmpp.config.schema import ProviderConfig
from smsxmpp.core.errors import GatewayConfigurationError, GatewayError

ProviderFactory = Callable[..., Provider]


class ProviderRegistry:
    """Explicit table of provider constructors."""

    def __init__(self) -> None:
        self._factories: dict[str, ProviderFactory] = {}

    def register(self, type_name: str, factory: ProviderFactory) -> None:
        if type_name in self._factories:
            raise GatewayError(f"provider type {type_name!r} registered twice", code="duplicate_provider_type")
        self._factories[type_name] = factory

    def types(self) -> list[str]:
        return sorted(self._factories)

    def create(self, config: ProviderConfig, sink: EventSink, **kwargs: Any) -> Provider:
        """Build the provider named in config; unknown types are a configuration error."""
        factory = self._factories.get(config.type)
        if factory is None:
            raise GatewayConfigurationError(
                f"{config.name}: unknown provider type {config.type!r} (known: {', '.join(self.types())})",
                code="unknown_provider_type",
                details={"provider": config.name, "type": config.type},
            )
        return factory(config.name, config.params, sink, **kwargs)


def default_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register(TwilioProvider.type, TwilioProvider.from_params)
    registry.register(SignalWireProvider.type, SignalWireProvider.from_params)
    registry.register(NexmoProvider.type, NexmoProvider.from_params)
    registry.register(VoipMsProvider.type, VoipMsProvider.from_params)
    return registry
