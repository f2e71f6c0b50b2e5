"""
CredVend Credential Fetchers

One POST to the credential vending endpoint per fetch. The response is
normalized into a CredentialRecord and persisted before it is returned.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .errors import ConfigError, NetworkError, ParseError
from .storage import CredentialStore
from .types import CredentialRecord, CredVendConfig, format_expiration


logger = logging.getLogger("credvend")


def _build_headers(config: CredVendConfig) -> Dict[str, str]:
    return {
        **(config.headers or {}),
        "Content-Type": "application/json",
    }


def _require_endpoint(config: CredVendConfig) -> str:
    if not config.endpoint_url:
        raise ConfigError("endpoint_url is not configured")
    return config.endpoint_url


def _handle_response(response: httpx.Response) -> CredentialRecord:
    """Convert an HTTP response into a credential record or raise."""
    if not response.is_success:
        raise NetworkError.from_status(response.status_code, response.reason_phrase)

    try:
        data: Any = response.json()
    except ValueError as e:
        raise ParseError("Credential vending API returned invalid JSON", {"reason": str(e)})

    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        data = data["data"]

    return CredentialRecord.from_dict(data)


def _log_obtained(record: CredentialRecord) -> None:
    logger.info(
        f"[CredVend] fetch_credentials - Credentials obtained, "
        f"expire at {format_expiration(record.expiration)}"
    )


class CredentialFetcher:
    """Synchronous fetcher backed by httpx.Client."""

    def __init__(
        self,
        config: CredVendConfig,
        store: CredentialStore,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._http_client = http_client or httpx.Client(timeout=config.timeout)

    def fetch(self) -> CredentialRecord:
        """
        Fetch a new credential and store it.

        Raises:
            ConfigError: If no endpoint is configured
            NetworkError: On transport failure or a non-2xx response
            ParseError: If the response is not a credential document
        """
        url = _require_endpoint(self._config)

        try:
            response = self._http_client.post(
                url,
                headers=_build_headers(self._config),
                json={},
            )
        except httpx.TimeoutException:
            raise NetworkError("Request timeout", details={"timeout": self._config.timeout})
        except httpx.RequestError as e:
            raise NetworkError(str(e))

        record = _handle_response(response)
        _log_obtained(record)
        self._store.set(record)
        return record

    def close(self) -> None:
        """Close the HTTP client."""
        self._http_client.close()


class AsyncCredentialFetcher:
    """Asynchronous fetcher backed by httpx.AsyncClient."""

    def __init__(
        self,
        config: CredVendConfig,
        store: CredentialStore,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._store = store
        # Created lazily so construction does not need a running loop
        self._http_client = http_client

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._config.timeout)
        return self._http_client

    async def fetch(self) -> CredentialRecord:
        """
        Fetch a new credential and store it.

        Raises:
            ConfigError: If no endpoint is configured
            NetworkError: On transport failure or a non-2xx response
            ParseError: If the response is not a credential document
        """
        url = _require_endpoint(self._config)

        try:
            response = await self._get_client().post(
                url,
                headers=_build_headers(self._config),
                json={},
            )
        except httpx.TimeoutException:
            raise NetworkError("Request timeout", details={"timeout": self._config.timeout})
        except httpx.RequestError as e:
            raise NetworkError(str(e))

        record = _handle_response(response)
        _log_obtained(record)
        self._store.set(record)
        return record

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
