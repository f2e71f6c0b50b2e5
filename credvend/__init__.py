"""
CredVend Python Client

Client-side cache for temporary cloud credentials issued by a credential
vending endpoint, with validity checking and a self-rearming refresh timer
that renews credentials before they expire.
"""

from .client import (
    CredentialClient,
    AsyncCredentialClient,
    create_credential_client,
    create_async_credential_client,
)
from .types import (
    CredVendConfig,
    CredentialRecord,
    KeyValueStore,
    parse_expiration,
    validate_config,
)
from .errors import (
    CredVendError,
    ConfigError,
    NetworkError,
    ParseError,
    is_credvend_error,
)
from .scheduler import RefreshScheduler, SchedulerState
from .storage import CredentialStore, FileStorage, MemoryStorage
from .validity import is_valid

__version__ = "0.1.0"
__all__ = [
    # Clients
    "CredentialClient",
    "AsyncCredentialClient",
    "create_credential_client",
    "create_async_credential_client",
    # Types
    "CredVendConfig",
    "CredentialRecord",
    "KeyValueStore",
    "parse_expiration",
    "validate_config",
    # Errors
    "CredVendError",
    "ConfigError",
    "NetworkError",
    "ParseError",
    "is_credvend_error",
    # Scheduling
    "RefreshScheduler",
    "SchedulerState",
    "is_valid",
    # Storage
    "CredentialStore",
    "MemoryStorage",
    "FileStorage",
]
