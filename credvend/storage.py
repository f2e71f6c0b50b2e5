"""
CredVend Storage Implementations

Key-value backends for credential persistence, and the adapter that keeps
one credential record under a named key.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from .errors import ParseError
from .types import DEFAULT_STORAGE_KEY, CredentialRecord, KeyValueStore


logger = logging.getLogger("credvend")


class MemoryStorage:
    """In-memory key-value storage (default, non-persistent)."""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        """Get the bytes stored under key."""
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        """Store bytes under key."""
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        """Remove key."""
        with self._lock:
            self._data.pop(key, None)


class FileStorage:
    """File-based key-value storage (persistent across restarts)."""

    def __init__(self, directory: Optional[str] = None) -> None:
        """
        Initialize file storage.

        Args:
            directory: Directory holding one file per key. Defaults to ~/.credvend
        """
        if directory:
            self._directory = Path(directory)
        else:
            self._directory = Path.home() / ".credvend"

        self._lock = threading.Lock()
        self._directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def get(self, key: str) -> Optional[bytes]:
        """Read the bytes stored under key."""
        with self._lock:
            path = self._path(key)
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

    def set(self, key: str, value: bytes) -> None:
        """Write bytes under key, readable by the owner only."""
        with self._lock:
            path = self._path(key)
            tmp_path = path.with_suffix(".tmp")
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(value)
                os.replace(tmp_path, path)
            except BaseException:
                try:
                    tmp_path.unlink()
                except FileNotFoundError:
                    pass
                raise

    def delete(self, key: str) -> None:
        """Remove the file for key."""
        with self._lock:
            try:
                self._path(key).unlink()
            except FileNotFoundError:
                pass


class CredentialStore:
    """Reads and writes the single credential record held under one key."""

    def __init__(self, storage: KeyValueStore, key: str = DEFAULT_STORAGE_KEY) -> None:
        self._storage = storage
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def get(self) -> Optional[CredentialRecord]:
        """Return the stored record, or None when absent or unreadable."""
        raw = self._storage.get(self._key)
        if raw is None:
            return None
        try:
            return CredentialRecord.from_dict(json.loads(raw.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"[CredVend] Discarding malformed stored credential: {e}")
            return None
        except ParseError as e:
            logger.debug(f"[CredVend] Discarding incomplete stored credential: {e.message}")
            return None

    def set(self, record: CredentialRecord) -> None:
        """Persist record, replacing any previous one."""
        self._storage.set(self._key, json.dumps(record.to_dict()).encode("utf-8"))

    def delete(self) -> None:
        """Remove the stored record."""
        self._storage.delete(self._key)
