"""
Core Utilities.

Shared utility functions used across the fabric.
"""

from datetime import datetime, timezone
from uuid import uuid4


def utc_now() -> datetime:
    """
    Return current UTC time as a timezone-aware datetime.

    Wire timestamps cross service boundaries, so they always carry an
    explicit offset.
    """
    return datetime.now(timezone.utc)


def to_iso(value: datetime | str | None) -> str | None:
    """Normalise a datetime (or ISO string) to an ISO 8601 UTC string."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def new_id() -> str:
    """Return a random 128-bit identifier as a UUID string."""
    return str(uuid4())
