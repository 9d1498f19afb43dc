"""Human-readable booking reference ids with a checksum character."""

import re
import secrets
from datetime import date

from ..core.clock import utcnow

PREFIX = "BKG"

# Base36 without characters that are easily misread
ALPHABET = "".join(c for c in "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789" if c not in "OI10")

_REFERENCE_PATTERN = re.compile(r"^([A-Z]{3})-(\d{6})-([A-Z0-9]{4})([A-Z0-9])$")


def compute_checksum(base: str) -> str:
    """Sum of character codes modulo 36, rendered as one base36 digit."""
    value = sum(ord(char) for char in base) % 36
    return str(value) if value < 10 else chr(ord("A") + value - 10)


def generate_reference_id(today: date | None = None) -> str:
    """
    Generate a booking reference such as ``BKG-260118-K7QXC``.

    Args:
        today: Date stamped into the reference (defaults to the current UTC date)
    """
    date_part = (today or utcnow().date()).strftime("%y%m%d")
    random_part = "".join(secrets.choice(ALPHABET) for _ in range(4))
    checksum = compute_checksum(f"{PREFIX}{date_part}{random_part}")
    return f"{PREFIX}-{date_part}-{random_part}{checksum}"


def validate_reference_id(reference_id: str) -> tuple[bool, str | None]:
    """
    Check the format and checksum of a reference id.

    Returns:
        (True, None) when valid, otherwise (False, reason)
    """
    match = _REFERENCE_PATTERN.match(reference_id)
    if not match:
        return False, "Invalid format"

    prefix, date_part, random_part, checksum = match.groups()
    if prefix != PREFIX:
        return False, "Invalid prefix"
    if any(char not in ALPHABET for char in random_part):
        return False, "Invalid random part"
    if compute_checksum(f"{prefix}{date_part}{random_part}") != checksum:
        return False, "Checksum validation failed"
    return True, None
