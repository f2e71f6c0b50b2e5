"""
Credential validity check.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Union

from .errors import ParseError
from .types import REQUIRED_FIELDS, CredentialRecord, parse_expiration


# Refresh credentials this long before they actually expire
DEFAULT_BUFFER_SECONDS = 300


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_valid(
    record: Union[CredentialRecord, Mapping[str, Any], None],
    buffer_seconds: float = DEFAULT_BUFFER_SECONDS,
    now: Optional[datetime] = None,
) -> bool:
    """
    Check whether a credential can still be used.

    Args:
        record: Credential record, raw stored document, or None
        buffer_seconds: Safety margin before expiration
        now: Current time (defaults to the system clock)

    Returns:
        True if every field is present and now + buffer is before expiration
    """
    if record is None:
        return False

    if isinstance(record, CredentialRecord):
        values = (
            record.access_key_id,
            record.secret_access_key,
            record.session_token,
            record.expiration,
        )
        if any(value is None for value in values):
            return False
        expiration = record.expiration
    else:
        if any(record.get(name) is None for name in REQUIRED_FIELDS):
            return False
        try:
            expiration = parse_expiration(record["expiration"])
        except ParseError:
            return False

    current = as_utc(now if now is not None else utc_now())
    return current + timedelta(seconds=buffer_seconds) < as_utc(expiration)
