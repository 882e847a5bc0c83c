"""Gateway domain exceptions."""

from __future__ import annotations


class GatewayError(Exception):
    """Base for gateway domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class GatewayConfigurationError(GatewayError):
    """Config validation or load failure."""


class InvalidPhoneNumber(GatewayError):
    """String cannot be canonicalized to an E.164 number."""


class AddressError(GatewayError):
    """Address or number cannot be mapped; reported back to the sender."""


class UnknownPhoneNumber(AddressError):
    """Inbound SMS addressed to a number that belongs to no configured user."""


class ProviderError(GatewayError):
    """Carrier API rejected or failed an outbound send."""


class MalformedPayload(GatewayError):
    """Webhook body is undecodable or missing required fields (HTTP 400)."""


class SendTimeout(GatewayError):
    """Outbound stanza could not be written within the send timeout."""


class ConnectionLost(GatewayError):
    """XMPP stream closed; the connection process restarts."""


class RosterNotInitialized(GatewayError):
    """Roster replace attempted before the server returned the initial roster."""
