"""
CredVend Type Definitions

Credential record, client configuration and the key-value store interface.
"""

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

from .errors import ConfigError, ParseError


# Placeholder the parameter store emits for optional settings left blank
NOT_DEFINED = "not-defined"

# Epoch values at or above this are taken as milliseconds
EPOCH_MILLIS_THRESHOLD = 1e11

DEFAULT_STORAGE_KEY = "awsCredentials"

REQUIRED_FIELDS = ("accessKeyId", "secretAccessKey", "sessionToken", "expiration")


@runtime_checkable
class KeyValueStore(Protocol):
    """Key-value store interface for custom implementations."""

    def get(self, key: str) -> Optional[bytes]:
        """Get the bytes stored under key, or None."""
        ...

    def set(self, key: str, value: bytes) -> None:
        """Store bytes under key."""
        ...

    def delete(self, key: str) -> None:
        """Remove key (no-op when absent)."""
        ...


def parse_expiration(value: Any) -> datetime:
    """
    Parse an expiration value into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings and epoch numbers (seconds, or
    milliseconds when the magnitude is 1e11 or more).

    Raises:
        ParseError: If the value cannot be interpreted as a point in time
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, bool):
        raise ParseError(f"Invalid expiration: {value!r}")
    elif isinstance(value, (int, float)):
        try:
            seconds = value / 1000 if abs(value) >= EPOCH_MILLIS_THRESHOLD else value
            result = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ParseError(f"Invalid expiration: {value!r}", {"reason": str(e)})
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError as e:
            raise ParseError(f"Invalid expiration: {value!r}", {"reason": str(e)})
    else:
        raise ParseError(f"Invalid expiration: {value!r}")

    if result.tzinfo is None:
        return result.replace(tzinfo=timezone.utc)
    return result.astimezone(timezone.utc)


def format_expiration(value: datetime) -> str:
    """Format expiration as ISO-8601 with a Z suffix."""
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CredentialRecord:
    """Temporary credential tuple issued by the vending endpoint."""

    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase document stored and returned by the API."""
        return {
            "accessKeyId": self.access_key_id,
            "secretAccessKey": self.secret_access_key,
            "sessionToken": self.session_token,
            "expiration": format_expiration(self.expiration),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CredentialRecord":
        """
        Create from an API response or stored document.

        Raises:
            ParseError: If any field is missing or the expiration is invalid
        """
        if not isinstance(data, Mapping):
            raise ParseError("Credential payload is not a JSON object")
        missing = [name for name in REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            raise ParseError(
                "Credential payload is missing required fields",
                {"missing": missing},
            )
        return cls(
            access_key_id=str(data["accessKeyId"]),
            secret_access_key=str(data["secretAccessKey"]),
            session_token=str(data["sessionToken"]),
            expiration=parse_expiration(data["expiration"]),
        )

    def to_client_kwargs(self, region: Optional[str] = None) -> Dict[str, Any]:
        """Keyword arguments accepted by AWS service client constructors."""
        kwargs: Dict[str, Any] = {
            "aws_access_key_id": self.access_key_id,
            "aws_secret_access_key": self.secret_access_key,
            "aws_session_token": self.session_token,
        }
        if region:
            kwargs["region_name"] = region
        return kwargs

    def __repr__(self) -> str:
        # Secrets stay out of reprs and log lines
        return (
            f"CredentialRecord(access_key_id={self.access_key_id!r}, "
            f"expiration={format_expiration(self.expiration)!r})"
        )


@dataclass
class CredVendConfig:
    """Client configuration options."""

    # Credential vending endpoint (POST), required for fetches
    endpoint_url: Optional[str] = None
    # Backend region handed to credential consumers
    region: Optional[str] = None
    # Request timeout in seconds (default: 30)
    timeout: float = 30.0
    # Safety margin before expiration in seconds (default: 300)
    buffer_seconds: float = 300
    # Scheduler delay in seconds when no credential is stored (default: 2)
    fallback_delay: float = 2.0
    # Store key holding the serialized credential
    storage_key: str = DEFAULT_STORAGE_KEY
    # Custom key-value store (default: None, uses MemoryStorage)
    storage: Optional[KeyValueStore] = None
    # Custom headers to include in requests
    headers: Optional[Dict[str, str]] = None
    # Called after logout so the application can restart its session
    on_logout: Optional[Callable[[], None]] = None
    # Called with each error swallowed by the refresh scheduler
    on_error: Optional[Callable[[Exception], None]] = None
    # Enable debug logging (default: False)
    debug: bool = False

    @classmethod
    def from_env(cls, prefix: str = "CREDVEND_", **overrides: Any) -> "CredVendConfig":
        """
        Build configuration from environment variables.

        Reads ``<prefix>API_URL``, ``<prefix>REGION``, ``<prefix>TIMEOUT`` and
        ``<prefix>BUFFER_SECONDS``. Empty values and the "not-defined"
        placeholder are treated as unset.
        """
        values: Dict[str, Any] = {
            "endpoint_url": get_param_value(os.environ.get(f"{prefix}API_URL")),
            "region": get_param_value(os.environ.get(f"{prefix}REGION")),
        }
        for name, field_name in (("TIMEOUT", "timeout"), ("BUFFER_SECONDS", "buffer_seconds")):
            raw = get_param_value(os.environ.get(f"{prefix}{name}"))
            if raw is None:
                continue
            try:
                values[field_name] = float(raw)
            except ValueError:
                raise ConfigError(f"{prefix}{name} must be a number", {"value": raw})
        values.update(overrides)
        return cls(**values)


def get_param_value(value: Optional[str]) -> Optional[str]:
    """Normalize a raw setting, mapping blanks and placeholders to None."""
    if value is None:
        return None
    value = value.strip()
    if not value or value == NOT_DEFINED:
        return None
    return value


def validate_config(config: CredVendConfig, require_endpoint: bool = False) -> None:
    """
    Validate configuration.

    Raises:
        ConfigError: If a setting is malformed, or the endpoint is missing
            while ``require_endpoint`` is set
    """
    if config.endpoint_url:
        parsed = urlparse(config.endpoint_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(
                "Invalid endpoint_url. Expected an http(s) URL",
                {"endpoint_url": config.endpoint_url},
            )
    elif require_endpoint:
        raise ConfigError("endpoint_url is not configured")
    if config.timeout <= 0:
        raise ConfigError("timeout must be positive", {"timeout": config.timeout})
    if config.buffer_seconds < 0:
        raise ConfigError("buffer_seconds must not be negative", {"buffer_seconds": config.buffer_seconds})
    if config.fallback_delay < 0:
        raise ConfigError("fallback_delay must not be negative", {"fallback_delay": config.fallback_delay})
    if not config.storage_key:
        raise ConfigError("storage_key is required")
