"""E.164 phone number helpers.

Numbers travel through the gateway as ``+`` followed by digits. ``normalize`` is
the lenient cleanup applied to numbers arriving in carrier webhooks; ``canonicalize``
is the strict form applied to addresses typed by XMPP users and to config values.
"""

from __future__ import annotations

import re

from smsxmpp.core.errors import InvalidPhoneNumber

_MAX_DIGITS = 15
# Punctuation people put in numbers; removed before validation.
_FORMATTING = re.compile(r"[\s().\-/]")


def normalize(raw: str) -> str:
    """Strip a leading international ``011`` dialing prefix and all non-digits; prepend ``+``."""
    raw = raw.strip()
    if raw.startswith("011"):
        raw = raw[3:]
    return "+" + "".join(c for c in raw if c.isascii() and c.isdigit())


def validate(number: str) -> None:
    """Raise InvalidPhoneNumber unless number is ``+`` followed by 1-15 digits."""
    if not number.startswith("+"):
        raise InvalidPhoneNumber(
            "does not start with + (please prefix number with + and a country code, "
            "or configure the default_prefix option)",
            code="missing_plus",
            details={"number": number},
        )
    digits = number[1:]
    if not digits:
        raise InvalidPhoneNumber("has no digits", code="empty", details={"number": number})
    if not (digits.isascii() and digits.isdigit()):
        raise InvalidPhoneNumber(
            "contains characters other than digits",
            code="non_digit",
            details={"number": number},
        )
    if len(digits) > _MAX_DIGITS:
        raise InvalidPhoneNumber(
            f"has more than {_MAX_DIGITS} digits",
            code="too_long",
            details={"number": number},
        )


def canonicalize(number: str, default_prefix: str = "") -> str:
    """Return the E.164 form of number, prefixing default_prefix when it lacks ``+``.

    Raises InvalidPhoneNumber when the result is not a valid E.164 number.
    """
    number = _FORMATTING.sub("", number)
    if not number.startswith("+") and default_prefix:
        number = default_prefix + number
    validate(number)
    return number


def friendly(number: str, default_prefix: str = "") -> str:
    """Drop default_prefix so numbers in the home country read naturally as JID local parts."""
    if default_prefix and number.startswith(default_prefix):
        return number[len(default_prefix) :]
    return number
