"""ULID and booking reference helpers."""

from datetime import datetime
import secrets
import string
from typing import Optional

import ulid

BOOKING_REF_PREFIX = "BK"
_BOOKING_REF_ALPHABET = string.ascii_uppercase + string.digits


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.ULID())


def parse_ulid(ulid_str: str) -> Optional[ulid.ULID]:
    """Parse and validate a ULID string."""
    try:
        return ulid.ULID.from_str(ulid_str)
    except (ValueError, TypeError, AttributeError):
        return None


def get_timestamp_from_ulid(ulid_str: str) -> Optional[datetime]:
    """Extract timestamp from ULID."""
    parsed = parse_ulid(ulid_str)
    if parsed:
        return parsed.datetime
    return None


def is_valid_ulid(ulid_str: str) -> bool:
    """Check if a string is a valid ULID."""
    return parse_ulid(ulid_str) is not None


def generate_booking_ref() -> str:
    """Customer-facing booking reference, e.g. ``BK7Q2M0ZXA``."""
    suffix = "".join(secrets.choice(_BOOKING_REF_ALPHABET) for _ in range(8))
    return f"{BOOKING_REF_PREFIX}{suffix}"
