"""Input validation utilities.

Provides validation for:
- Port numbers typed by the user for single rules
- Remote host syntax for forwarding rules
- Panel URLs

All validators return the validated value or raise ValidationError.
"""

import re
from typing import Callable
from urllib.parse import urlparse

from realmctl.core.exceptions import (
    InvalidAddressError,
    InvalidPortError,
    ValidationError,
)


MIN_PORT = 1
MAX_PORT = 65535

# ASCII digits only; str.isdigit() would also accept other scripts
PORT_PATTERN = re.compile(r"\d+", re.ASCII)

# Syntactic filters only. 999.1.1.1 and "abc" both pass; the panel's
# own check is authoritative.
IPV4_PATTERN = re.compile(r"(\d{1,3}\.){3}\d{1,3}", re.ASCII)
IPV6_PATTERN = re.compile(r"[0-9a-fA-F:]+")

AddressValidator = Callable[[str], bool]


def parse_port(value: str, field_name: str = "port") -> int:
    """Parse a user-supplied port string.

    Args:
        value: Raw text, already stripped
        field_name: Name used in the error message

    Returns:
        The port as an integer

    Raises:
        InvalidPortError: If the text is not all digits or out of range
    """
    if not PORT_PATTERN.fullmatch(value):
        raise InvalidPortError(
            f"Invalid {field_name}: '{value}'",
            hint=f"Ports must be numbers between {MIN_PORT} and {MAX_PORT}",
        )

    # Longer digit strings are out of range; int() refuses very long ones
    if len(value.lstrip("0")) > len(str(MAX_PORT)):
        raise InvalidPortError(
            f"Invalid {field_name}: '{value[:12]}...'",
            hint=f"Ports must be numbers between {MIN_PORT} and {MAX_PORT}",
        )

    port = int(value)
    if not MIN_PORT <= port <= MAX_PORT:
        raise InvalidPortError(
            f"Invalid {field_name}: {port}",
            hint=f"Ports must be numbers between {MIN_PORT} and {MAX_PORT}",
        )
    return port


def is_loose_ip_address(value: str) -> bool:
    """Return True if value looks like an IPv4 dotted quad or an IPv6 literal."""
    return bool(IPV4_PATTERN.fullmatch(value) or IPV6_PATTERN.fullmatch(value))


def validate_remote_host(
    value: str,
    address_validator: AddressValidator = is_loose_ip_address,
) -> str:
    """Validate the host part of a remote address.

    Raises:
        InvalidAddressError: If the validator rejects the host
    """
    if not value or not address_validator(value):
        raise InvalidAddressError(
            f"Invalid IP address: '{value}'",
            hint="Use an IPv4 address like 10.0.0.5 or an IPv6 address like 2001:db8::1",
        )
    return value


def validate_url(value: str) -> str:
    """Validate the panel base URL.

    Raises:
        ValidationError: If the scheme is not http(s) or the host is missing
    """
    value = value.strip()
    parsed = urlparse(value)

    if parsed.scheme.lower() not in ("http", "https"):
        raise ValidationError(
            f"Panel URL must use http or https: {value}",
            hint="Use a URL like https://panel.example.com:8081",
        )

    if not parsed.netloc:
        raise ValidationError(
            f"Panel URL must include a host: {value}",
            hint="Use a URL like https://panel.example.com:8081",
        )

    return value.rstrip("/")
