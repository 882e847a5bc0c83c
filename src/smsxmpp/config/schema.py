"""Config schema and accessor."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from typing import Any

from slixmpp import JID
from slixmpp.jid import InvalidJID

from smsxmpp import phone
from smsxmpp.core.constants import (
    DEFAULT_COMPONENT_PORT,
    DEFAULT_HTTP_HOST,
    DEFAULT_HTTP_PORT,
    DEFAULT_RECEIPT_CAPACITY,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_SEND_TIMEOUT,
)
from smsxmpp.core.errors import GatewayConfigurationError, InvalidPhoneNumber

# Env keys that override config
_ENV_OVERRIDE_KEYS = (
    "SMSXMPP_XMPP_SERVER",
    "SMSXMPP_XMPP_SECRET",
    "SMSXMPP_IGNORE_UNMAPPED",
)


def _load_env_overrides() -> dict[str, str]:
    return {k: os.environ.get(k, "") for k in _ENV_OVERRIDE_KEYS}


def _parse_bool(val: str) -> bool | None:
    """Parse "true"/"yes"/"1" style strings; None if not a recognized bool."""
    v = val.strip().lower()
    if v in ("1", "true", "yes"):
        return True
    if v in ("0", "false", "no"):
        return False
    return None


@dataclass(frozen=True)
class UserConfig:
    """A local XMPP user and the SMS number they send from."""

    jid: str  # bare
    phone_number: str
    provider: str


@dataclass(frozen=True)
class ProviderConfig:
    """A named carrier account."""

    name: str
    type: str
    params: dict[str, str] = field(default_factory=dict)


class Config:
    """Config accessor with attribute-style access for nested keys."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data = data or {}
        self._env: dict[str, str] = _load_env_overrides()
        self._validate()

    def _validate(self) -> None:
        """Validate config structure; raise GatewayConfigurationError on failure."""
        if not self.xmpp_domain:
            raise GatewayConfigurationError("xmpp.domain is required", code="missing_xmpp_domain")
        if not self.xmpp_secret:
            raise GatewayConfigurationError("xmpp.secret is required", code="missing_xmpp_secret")
        if not self.xmpp_host:
            raise GatewayConfigurationError("xmpp.server is required", code="missing_xmpp_server")
        try:
            _ = (self.xmpp_port, self.http_port)
        except ValueError as exc:
            raise GatewayConfigurationError(f"Invalid port: {exc}", code="invalid_port", original_error=exc) from exc
        _ = (
            self.receipt_cache_size,
            self.send_timeout_seconds,
            self.reconnect_delay_seconds,
            self.vcard_enabled,
            self.ignore_unmapped,
        )

        if self.default_prefix:
            try:
                phone.validate(self.default_prefix)
            except InvalidPhoneNumber as exc:
                raise GatewayConfigurationError(
                    f"default_prefix {self.default_prefix!r} {exc}",
                    code="invalid_default_prefix",
                    original_error=exc,
                ) from exc

        for section in ("providers", "users", "phones", "rosters"):
            value = self._data.get(section)
            if value is not None and not isinstance(value, dict):
                raise GatewayConfigurationError(
                    f"{section} must be a mapping",
                    code=f"invalid_{section}",
                    details={"type": type(value).__name__},
                )

        for name, params in self._section("providers").items():
            if not isinstance(params, dict) or not params.get("type"):
                raise GatewayConfigurationError(
                    f"provider {name} lacks type parameter",
                    code="missing_provider_type",
                    details={"provider": name},
                )

        providers = self.providers
        for jid, entry in self._section("users").items():
            self._check_jid(jid, "users")
            if not isinstance(entry, dict):
                raise GatewayConfigurationError(
                    f"users[{jid}] must be a mapping", code="invalid_user", details={"jid": jid}
                )
            provider = str(entry.get("provider", ""))
            if provider not in providers:
                raise GatewayConfigurationError(
                    f"User {jid} references unknown provider {provider!r}",
                    code="unknown_provider",
                    details={"jid": jid, "provider": provider},
                )
            self._check_number(str(entry.get("phone_number", "")), f"users[{jid}]")

        for number, jid in self._section("phones").items():
            self._check_number(str(number), "phones")
            self._check_jid(str(jid), "phones")

        for jid in self._section("rosters"):
            self._check_jid(jid, "rosters")
            if jid not in self.users:
                raise GatewayConfigurationError(
                    f"Roster user {jid} is not a configured user", code="unknown_roster_user", details={"jid": jid}
                )

    def _check_jid(self, jid: str, where: str) -> None:
        try:
            parsed = JID(jid)
        except InvalidJID as exc:
            raise GatewayConfigurationError(
                f"{where}: {jid} has malformed JID: {exc}", code="malformed_jid", details={"jid": jid}, original_error=exc
            ) from exc
        if not parsed.domain:
            raise GatewayConfigurationError(f"{where}: {jid} has no domain", code="malformed_jid", details={"jid": jid})

    def _check_number(self, number: str, where: str) -> None:
        try:
            phone.canonicalize(number, self.default_prefix)
        except InvalidPhoneNumber as exc:
            raise GatewayConfigurationError(
                f"{where}: phone number {number!r} {exc}",
                code="invalid_phone_number",
                details={"number": number},
                original_error=exc,
            ) from exc

    def _section(self, key: str) -> dict[str, Any]:
        value = self._data.get(key)
        return value if isinstance(value, dict) else {}

    @property
    def raw(self) -> dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Get value by dot-separated path."""
        parts = key.split(".")
        obj: Any = self._data
        for part in parts:
            if isinstance(obj, dict) and part in obj:
                obj = obj[part]
            else:
                return default
        return obj

    @property
    def xmpp_domain(self) -> str:
        return str(self.get("xmpp.domain", "") or "")

    @property
    def xmpp_secret(self) -> str:
        return self._env.get("SMSXMPP_XMPP_SECRET") or str(self.get("xmpp.secret", "") or "")

    @property
    def _xmpp_server(self) -> str:
        return self._env.get("SMSXMPP_XMPP_SERVER") or str(self.get("xmpp.server", "") or "")

    @property
    def xmpp_host(self) -> str:
        host, sep, port = self._xmpp_server.rpartition(":")
        return host if sep and port.isdigit() else self._xmpp_server

    @property
    def xmpp_port(self) -> int:
        host, sep, port = self._xmpp_server.rpartition(":")
        if sep and port.isdigit():
            return int(port)
        return int(self.get("xmpp.port", DEFAULT_COMPONENT_PORT))

    @property
    def http_host(self) -> str:
        return str(self.get("http.host", DEFAULT_HTTP_HOST) or DEFAULT_HTTP_HOST)

    @property
    def http_port(self) -> int:
        return int(self.get("http.port", DEFAULT_HTTP_PORT) or DEFAULT_HTTP_PORT)

    @property
    def public_url(self) -> str | None:
        val = self._data.get("public_url")
        if val and isinstance(val, str) and val.strip():
            return val.strip().rstrip("/")
        return None

    @property
    def default_prefix(self) -> str:
        return str(self._data.get("default_prefix", "") or "")

    @property
    def ignore_unmapped(self) -> bool:
        parsed = _parse_bool(self._env.get("SMSXMPP_IGNORE_UNMAPPED", ""))
        if parsed is not None:
            return parsed
        return self._flag("ignore_unmapped", False)

    @property
    def vcard_enabled(self) -> bool:
        return self._flag("vcard", True)

    @property
    def receipt_cache_size(self) -> int:
        value = self._data.get("receipt_cache_size", DEFAULT_RECEIPT_CAPACITY)
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise _invalid("receipt_cache_size", value, "must be a positive integer")
        return value

    @property
    def send_timeout_seconds(self) -> float:
        seconds = self._seconds("send_timeout_seconds", DEFAULT_SEND_TIMEOUT)
        if seconds == 0:
            raise _invalid("send_timeout_seconds", seconds, "must be greater than zero")
        return seconds

    @property
    def reconnect_delay_seconds(self) -> float:
        return self._seconds("reconnect_delay_seconds", DEFAULT_RECONNECT_DELAY)

    def _flag(self, key: str, default: bool) -> bool:
        value = self._data.get(key, default)
        if isinstance(value, bool):
            return value
        parsed = _parse_bool(value) if isinstance(value, str) else None
        if parsed is None:
            raise _invalid(key, value, "must be true or false")
        return parsed

    def _seconds(self, key: str, default: float) -> float:
        value = self._data.get(key, default)
        try:
            if isinstance(value, bool):
                raise TypeError("boolean")
            seconds = float(value)
        except (TypeError, ValueError) as exc:
            raise _invalid(key, value, "must be a number of seconds", exc) from exc
        if not math.isfinite(seconds) or seconds < 0:
            raise _invalid(key, value, "must be a non-negative number of seconds")
        return seconds

    @property
    def providers(self) -> dict[str, ProviderConfig]:
        result: dict[str, ProviderConfig] = {}
        for name, params in self._section("providers").items():
            if not isinstance(params, dict):
                continue
            params = {str(k): str(v) for k, v in params.items()}
            ptype = params.pop("type", "")
            result[str(name)] = ProviderConfig(name=str(name), type=ptype, params=params)
        return result

    @property
    def users(self) -> dict[str, UserConfig]:
        """Bare JID -> user, phone numbers canonicalized."""
        result: dict[str, UserConfig] = {}
        for jid, entry in self._section("users").items():
            if not isinstance(entry, dict):
                continue
            bare = JID(jid).bare
            number = phone.canonicalize(str(entry.get("phone_number", "")), self.default_prefix)
            result[bare] = UserConfig(jid=bare, phone_number=number, provider=str(entry.get("provider", "")))
        return result

    @property
    def phones(self) -> dict[str, str]:
        """Explicit number -> bare JID table."""
        return {
            phone.canonicalize(str(number), self.default_prefix): JID(str(jid)).bare
            for number, jid in self._section("phones").items()
        }

    @property
    def rosters(self) -> dict[str, str]:
        """Bare JID -> address book URL for users whose roster the gateway manages."""
        return {JID(jid).bare: str(url) for jid, url in self._section("rosters").items()}


def _invalid(key: str, value: Any, problem: str, exc: Exception | None = None) -> GatewayConfigurationError:
    return GatewayConfigurationError(
        f"{key} {problem}, got {value!r}",
        code=f"invalid_{key}",
        details={"key": key, "value": value},
        original_error=exc,
    )
