"""
CredVend Client

Main client classes for the credential vending endpoint. Both clients serve
the stored credential while it is valid and fetch a new one otherwise. The
async client also owns the refresh scheduler that renews credentials ahead
of expiration.

No locking is done around the fetch path: concurrent callers that all see a
stale record each fetch, and the last write to the store wins.
"""

import logging
from typing import Any, Callable, Optional

import httpx

from .fetcher import AsyncCredentialFetcher, CredentialFetcher
from .scheduler import RefreshScheduler
from .storage import CredentialStore, MemoryStorage
from .types import CredentialRecord, CredVendConfig, KeyValueStore, validate_config
from .validity import is_valid, utc_now


logger = logging.getLogger("credvend")


class CredentialClient:
    """
    Credential vending client - synchronous entry point.

    Has no refresh scheduler; credentials are fetched on demand.
    """

    def __init__(
        self,
        config: CredVendConfig,
        http_client: Optional[httpx.Client] = None,
        clock: Optional[Callable[[], Any]] = None,
    ) -> None:
        """Initialize the client."""
        validate_config(config)

        self._config = config
        self._buffer_seconds = config.buffer_seconds
        self._debug = config.debug
        self._clock = clock or utc_now
        self._storage: KeyValueStore = config.storage if config.storage is not None else MemoryStorage()
        self._store = CredentialStore(self._storage, config.storage_key)
        self._fetcher = CredentialFetcher(config, self._store, http_client)

        self._log(f"CredentialClient initialized (endpoint={config.endpoint_url})")

    def _log(self, message: str, *args: Any) -> None:
        """Log debug message."""
        if self._debug:
            logger.debug(f"[CredVend] {message}", *args)

    @property
    def region(self) -> Optional[str]:
        return self._config.region

    @property
    def store(self) -> CredentialStore:
        return self._store

    def get_valid_credential(self) -> CredentialRecord:
        """
        Get a valid credential, fetching a new one if the stored one is stale.

        Raises:
            ConfigError: If no endpoint is configured
            NetworkError: If the vending API call fails
            ParseError: If the vending API response is malformed
        """
        try:
            record = self._store.get()
            if record is not None and is_valid(record, self._buffer_seconds, now=self._clock()):
                self._log("Serving stored credentials")
                return record
            self._log("Stored credentials missing or stale, fetching")
            return self._fetcher.fetch()
        except Exception as error:
            logger.error(f"[CredVend] get_valid_credential - Error getting credentials: {error}")
            raise

    def has_valid_credential(self) -> bool:
        """Check if the stored credential is usable, without fetching."""
        return is_valid(self._store.get(), self._buffer_seconds, now=self._clock())

    def logout(self) -> None:
        """Clear the stored credential and signal the session to restart."""
        self._log("Logout")
        self._store.delete()
        if self._config.on_logout is not None:
            self._config.on_logout()

    def close(self) -> None:
        """Close the HTTP client."""
        self._fetcher.close()

    def __enter__(self) -> "CredentialClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class AsyncCredentialClient:
    """
    Credential vending client - asynchronous entry point.

    Ideal for asyncio services. ``start_refresh_scheduler()`` keeps the stored
    credential renewed without caller-driven fetches.
    """

    def __init__(
        self,
        config: CredVendConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Callable[[], Any]] = None,
    ) -> None:
        """Initialize the async client."""
        validate_config(config)

        self._config = config
        self._buffer_seconds = config.buffer_seconds
        self._debug = config.debug
        self._clock = clock or utc_now
        self._storage: KeyValueStore = config.storage if config.storage is not None else MemoryStorage()
        self._store = CredentialStore(self._storage, config.storage_key)
        self._fetcher = AsyncCredentialFetcher(config, self._store, http_client)
        # The scheduler reports its own failures, so it bypasses the logging wrapper
        self._scheduler = RefreshScheduler(
            self._get_valid_credential,
            self._store,
            buffer_seconds=config.buffer_seconds,
            fallback_delay=config.fallback_delay,
            clock=self._clock,
            on_error=config.on_error,
        )

        self._log(f"AsyncCredentialClient initialized (endpoint={config.endpoint_url})")

    def _log(self, message: str, *args: Any) -> None:
        """Log debug message."""
        if self._debug:
            logger.debug(f"[CredVend] {message}", *args)

    @property
    def region(self) -> Optional[str]:
        return self._config.region

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def scheduler(self) -> RefreshScheduler:
        return self._scheduler

    async def get_valid_credential(self) -> CredentialRecord:
        """
        Get a valid credential, fetching a new one if the stored one is stale.

        This is the entry point credential consumers call.

        Raises:
            ConfigError: If no endpoint is configured
            NetworkError: If the vending API call fails
            ParseError: If the vending API response is malformed
        """
        try:
            return await self._get_valid_credential()
        except Exception as error:
            logger.error(f"[CredVend] get_valid_credential - Error getting credentials: {error}")
            raise

    async def _get_valid_credential(self) -> CredentialRecord:
        record = self._store.get()
        if record is not None and is_valid(record, self._buffer_seconds, now=self._clock()):
            self._log("Serving stored credentials")
            return record
        self._log("Stored credentials missing or stale, fetching")
        return await self._fetcher.fetch()

    def has_valid_credential(self) -> bool:
        """Check if the stored credential is usable, without fetching."""
        return is_valid(self._store.get(), self._buffer_seconds, now=self._clock())

    def start_refresh_scheduler(self) -> float:
        """
        Start (or restart) automatic refresh. Must be called with a running loop.

        Returns:
            Seconds until the scheduler fires
        """
        return self._scheduler.start()

    def logout(self) -> None:
        """Clear the stored credential, stop refreshing and signal the session to restart."""
        self._log("Logout")
        self._store.delete()
        self._scheduler.cancel()
        if self._config.on_logout is not None:
            self._config.on_logout()

    async def close(self) -> None:
        """Stop the scheduler, including any in-flight refresh, and close the HTTP client."""
        await self._scheduler.stop()
        await self._fetcher.close()

    async def __aenter__(self) -> "AsyncCredentialClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


# =============================================================================
# Factory Functions
# =============================================================================

def create_credential_client(config: CredVendConfig) -> CredentialClient:
    """Create a new synchronous credential client."""
    return CredentialClient(config)


def create_async_credential_client(config: CredVendConfig) -> AsyncCredentialClient:
    """Create a new asynchronous credential client."""
    return AsyncCredentialClient(config)
