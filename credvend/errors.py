"""
CredVend Error Classes

Error taxonomy for the credential vending client. Configuration problems,
transport/HTTP failures and undecodable payloads each have their own class
so callers can tell them apart.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class CredVendError(Exception):
    """Base error class for the credential vending client."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "name": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
            "timestamp": self.timestamp,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ConfigError(CredVendError):
    """Configuration error (missing or malformed settings)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, 0, details)


class NetworkError(CredVendError):
    """Network error (connection issues, timeouts, non-2xx responses)."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        status_text: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__("NETWORK_ERROR", message, status_code, details)
        self.status_text = status_text

    @classmethod
    def from_status(cls, status_code: int, status_text: str) -> "NetworkError":
        """Create error for a non-success HTTP status."""
        return cls(
            f"Credential vending API returned {status_code}: {status_text}",
            status_code=status_code,
            status_text=status_text,
        )


class ParseError(CredVendError):
    """Payload could not be decoded into a credential record."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("PARSE_ERROR", message, 0, details)


def is_credvend_error(error: Any) -> bool:
    """Check if error is a CredVendError."""
    return isinstance(error, CredVendError)
