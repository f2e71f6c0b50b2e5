"""
Tests for credential storage, types and errors.
"""

import json
import os
import stat
from datetime import datetime, timezone

import pytest

from credvend import (
    CredentialRecord,
    CredentialStore,
    CredVendConfig,
    FileStorage,
    KeyValueStore,
    MemoryStorage,
    parse_expiration,
    validate_config,
)
from credvend.errors import ConfigError, CredVendError, NetworkError, ParseError, is_credvend_error


EXPIRATION = datetime(2026, 1, 1, 13, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.fixture
def record() -> CredentialRecord:
    return CredentialRecord(
        access_key_id="ASIA_TEST",
        secret_access_key="secret",
        session_token="token",
        expiration=EXPIRATION,
    )


# =============================================================================
# Storage Tests
# =============================================================================

class TestStorage:
    """Tests for key-value storage implementations."""

    def test_memory_storage(self):
        """Test memory storage."""
        storage = MemoryStorage()

        assert storage.get("key") is None

        storage.set("key", b"value")
        assert storage.get("key") == b"value"

        storage.delete("key")
        assert storage.get("key") is None

        # Deleting a missing key is a no-op
        storage.delete("key")

    def test_file_storage(self, tmp_path):
        """Test file storage."""
        storage = FileStorage(str(tmp_path))

        assert storage.get("awsCredentials") is None

        storage.set("awsCredentials", b'{"a": 1}')

        file_path = tmp_path / "awsCredentials.json"
        assert file_path.exists()
        assert storage.get("awsCredentials") == b'{"a": 1}'
        assert stat.S_IMODE(os.stat(file_path).st_mode) == 0o600

        storage.delete("awsCredentials")

        assert storage.get("awsCredentials") is None
        assert not file_path.exists()

    def test_file_storage_failed_write_leaves_no_temp_file(self, tmp_path, monkeypatch):
        """Test a failed write cleans up and keeps the previous value."""
        storage = FileStorage(str(tmp_path))
        storage.set("awsCredentials", b"old")

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)

        with pytest.raises(OSError):
            storage.set("awsCredentials", b"new")

        assert sorted(p.name for p in tmp_path.iterdir()) == ["awsCredentials.json"]
        assert storage.get("awsCredentials") == b"old"

    def test_storages_satisfy_protocol(self, tmp_path):
        """Test shipped storages implement KeyValueStore."""
        assert isinstance(MemoryStorage(), KeyValueStore)
        assert isinstance(FileStorage(str(tmp_path)), KeyValueStore)


class TestCredentialStore:
    """Tests for the single-record store adapter."""

    def test_round_trip(self, record: CredentialRecord):
        """Test a stored record reads back field for field."""
        store = CredentialStore(MemoryStorage())

        store.set(record)

        assert store.get() == record

    def test_round_trip_file(self, tmp_path, record: CredentialRecord):
        """Test records survive a new FileStorage instance."""
        CredentialStore(FileStorage(str(tmp_path))).set(record)

        assert CredentialStore(FileStorage(str(tmp_path))).get() == record

    def test_stored_document_shape(self, record: CredentialRecord):
        """Test the record is stored as camelCase JSON under the key."""
        storage = MemoryStorage()
        CredentialStore(storage).set(record)

        document = json.loads(storage.get("awsCredentials"))

        assert document == {
            "accessKeyId": "ASIA_TEST",
            "secretAccessKey": "secret",
            "sessionToken": "token",
            "expiration": "2026-01-01T13:00:00.123456Z",
        }

    def test_custom_key(self, record: CredentialRecord):
        """Test a custom key is used."""
        storage = MemoryStorage()
        store = CredentialStore(storage, "other")

        store.set(record)

        assert storage.get("awsCredentials") is None
        assert storage.get("other") is not None

    @pytest.mark.parametrize("raw", [
        b"{not json",
        b"\xff\xfe",
        b"[]",
        b'"string"',
        b'{"accessKeyId": "ASIA_TEST"}',
        b'{"accessKeyId": "a", "secretAccessKey": "b", "sessionToken": "c", "expiration": null}',
        b'{"accessKeyId": "a", "secretAccessKey": "b", "sessionToken": "c", "expiration": "never"}',
        b'{"accessKeyId": "a", "secretAccessKey": "b", "sessionToken": "c", "expiration": 1' + b"0" * 400 + b"}",
    ])
    def test_unreadable_contents_read_as_absent(self, raw: bytes):
        """Test malformed or partial documents are treated as no credential."""
        storage = MemoryStorage()
        storage.set("awsCredentials", raw)

        assert CredentialStore(storage).get() is None

    def test_delete(self, record: CredentialRecord):
        """Test delete removes the record."""
        store = CredentialStore(MemoryStorage())
        store.set(record)

        store.delete()

        assert store.get() is None


# =============================================================================
# Type Tests
# =============================================================================

class TestTypes:
    """Tests for records, expiration parsing and configuration."""

    def test_parse_iso_z(self):
        assert parse_expiration("2026-01-01T13:00:00Z") == datetime(2026, 1, 1, 13, tzinfo=timezone.utc)

    def test_parse_iso_offset(self):
        parsed = parse_expiration("2026-01-01T15:00:00+02:00")
        assert parsed == datetime(2026, 1, 1, 13, tzinfo=timezone.utc)
        assert parsed.tzinfo == timezone.utc

    def test_parse_naive_is_utc(self):
        assert parse_expiration("2026-01-01T13:00:00").tzinfo == timezone.utc

    def test_parse_epoch_seconds_and_millis(self):
        expected = datetime(2026, 1, 1, 13, tzinfo=timezone.utc)
        seconds = int(expected.timestamp())
        assert parse_expiration(seconds) == expected
        assert parse_expiration(seconds * 1000) == expected

    @pytest.mark.parametrize("value", [None, "", "tomorrow", True, [], {}, 10 ** 400, float("inf"), float("nan")])
    def test_parse_invalid(self, value):
        with pytest.raises(ParseError):
            parse_expiration(value)

    def test_record_repr_hides_secrets(self, record: CredentialRecord):
        text = repr(record)
        assert "ASIA_TEST" in text
        assert "secret" not in text
        assert "token" not in text

    def test_to_client_kwargs(self, record: CredentialRecord):
        assert record.to_client_kwargs("eu-west-1") == {
            "aws_access_key_id": "ASIA_TEST",
            "aws_secret_access_key": "secret",
            "aws_session_token": "token",
            "region_name": "eu-west-1",
        }
        assert "region_name" not in record.to_client_kwargs()

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("CREDVEND_API_URL", "https://creds.example.com/credentials")
        monkeypatch.setenv("CREDVEND_REGION", "not-defined")
        monkeypatch.setenv("CREDVEND_BUFFER_SECONDS", "120")
        monkeypatch.delenv("CREDVEND_TIMEOUT", raising=False)

        config = CredVendConfig.from_env(debug=True)

        assert config.endpoint_url == "https://creds.example.com/credentials"
        assert config.region is None
        assert config.buffer_seconds == 120.0
        assert config.timeout == 30.0
        assert config.debug is True

    def test_config_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("CREDVEND_TIMEOUT", "soon")
        with pytest.raises(ConfigError):
            CredVendConfig.from_env()

    def test_validate_requires_endpoint(self):
        validate_config(CredVendConfig())
        with pytest.raises(ConfigError) as exc_info:
            validate_config(CredVendConfig(), require_endpoint=True)
        assert "endpoint_url is not configured" in exc_info.value.message

    @pytest.mark.parametrize("overrides", [
        {"endpoint_url": "not a url"},
        {"timeout": -1},
        {"buffer_seconds": -1},
        {"fallback_delay": -0.5},
        {"storage_key": ""},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ConfigError):
            validate_config(CredVendConfig(**overrides))


# =============================================================================
# Error Tests
# =============================================================================

class TestErrors:
    """Tests for error handling."""

    def test_error_to_dict(self):
        """Test error serialization."""
        error = NetworkError.from_status(503, "Service Unavailable")

        error_dict = error.to_dict()

        assert error_dict["name"] == "NetworkError"
        assert error_dict["code"] == "NETWORK_ERROR"
        assert error_dict["status_code"] == 503
        assert error_dict["message"] == "Credential vending API returned 503: Service Unavailable"
        assert error_dict["timestamp"].endswith("Z")

    def test_error_kinds_are_distinct(self):
        """Test each error kind has its own code and shared base."""
        errors = [ConfigError("c"), NetworkError("n"), ParseError("p")]

        assert [e.code for e in errors] == ["CONFIGURATION_ERROR", "NETWORK_ERROR", "PARSE_ERROR"]
        assert all(isinstance(e, CredVendError) for e in errors)
        assert all(is_credvend_error(e) for e in errors)
        assert not is_credvend_error(ValueError("x"))

    def test_repr(self):
        assert repr(ParseError("bad")) == "ParseError(code='PARSE_ERROR', message='bad')"
