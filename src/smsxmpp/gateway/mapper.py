"""AddressMapper: XMPP bare addresses <-> E.164 phone numbers."""

from __future__ import annotations

from slixmpp import JID
from slixmpp.jid import InvalidJID

from smsxmpp import phone
from smsxmpp.config.schema import UserConfig
from smsxmpp.core.errors import AddressError, InvalidPhoneNumber


class AddressMapper:
    """Static lookup tables plus the component domain.

    Lookups are pure. ``None`` means "ignore" (only when ignore_unmapped is set);
    otherwise unmappable input raises AddressError.
    """

    def __init__(
        self,
        domain: str,
        users: dict[str, UserConfig],
        *,
        phones: dict[str, str] | None = None,
        default_prefix: str = "",
        ignore_unmapped: bool = False,
    ) -> None:
        self._domain = domain
        self._users = dict(users)
        self._phones = dict(phones or {})
        self._default_prefix = default_prefix
        self._ignore_unmapped = ignore_unmapped

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def ignore_unmapped(self) -> bool:
        return self._ignore_unmapped

    def user(self, addr: JID) -> UserConfig | None:
        """Configured user for addr (bare match), or None."""
        return self._users.get(addr.bare)

    def is_user(self, addr: JID) -> bool:
        return addr.bare in self._users

    def address_to_phone(self, addr: JID) -> str | None:
        """Phone number for addr: configured user first, then the local part of a gateway address."""
        user = self._users.get(addr.bare)
        if user:
            return user.phone_number
        if addr.domain != self._domain:
            if self._ignore_unmapped:
                return None
            raise AddressError(
                f"{addr.bare} is not a known user; please add them to the users config",
                code="unknown_user",
                details={"jid": addr.bare},
            )
        try:
            return phone.canonicalize(addr.user, self._default_prefix)
        except InvalidPhoneNumber as exc:
            if self._ignore_unmapped:
                return None
            raise AddressError(
                f"Invalid phone number '{addr.user}': {exc} (example: +12125551212)",
                code="invalid_phone_number",
                details={"jid": addr.bare},
                original_error=exc,
            ) from exc

    def contact_number(self, addr: JID) -> str:
        """Canonical number in a gateway address's local part. Raises InvalidPhoneNumber."""
        return phone.canonicalize(addr.user, self._default_prefix)

    def phone_to_address(self, number: str) -> JID | None:
        """Address for number: explicit phones table, then inverse users scan, then number@domain."""
        try:
            number = phone.canonicalize(number, self._default_prefix)
        except InvalidPhoneNumber as exc:
            if self._ignore_unmapped:
                return None
            raise AddressError(
                f"Invalid phone number '{number}': {exc}",
                code="invalid_phone_number",
                details={"number": number},
                original_error=exc,
            ) from exc
        jid = self._phones.get(number)
        if jid:
            return JID(jid)
        # Duplicate numbers across users are not validated; first configured wins.
        for user in self._users.values():
            if user.phone_number == number:
                return JID(user.jid)
        return self.contact_address(number)

    def contact_address(self, number: str) -> JID:
        """Gateway-domain address that represents a remote phone number."""
        local = phone.friendly(number, self._default_prefix)
        try:
            return JID(f"{local}@{self._domain}")
        except InvalidJID as exc:
            raise AddressError(
                f"Cannot form an address for {number}: {exc}",
                code="invalid_address",
                details={"number": number},
                original_error=exc,
            ) from exc
