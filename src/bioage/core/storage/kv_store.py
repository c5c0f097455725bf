"""Key-value persistence for small string preferences.

The engine never touches storage; callers inject a :class:`KeyValueStore`.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

from bioage.core.storage.database import PreferencesDatabase
from bioage.core.storage.encryption import EncryptionError, ValueEncryptor

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String keys to string values; ``get`` returns ``None`` when unset."""

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class InMemoryKeyValueStore:
    """Process-local store; the default when no encryption key is configured."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value


class EncryptedKeyValueStore:
    """SQLite-backed store with Fernet-encrypted values.

    Usage::

        db = PreferencesDatabase("~/.bioage/profile.db")
        db.initialize()
        store = EncryptedKeyValueStore(db, ValueEncryptor(key))
        store.set("sex", "male")
    """

    def __init__(self, database: PreferencesDatabase, encryptor: ValueEncryptor) -> None:
        self._db = database
        self._enc = encryptor
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self._db.connection.execute(
                "SELECT value_enc FROM preferences WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        try:
            return self._enc.decrypt(row["value_enc"])
        except EncryptionError:
            logger.warning("Stored preference %r could not be decrypted; ignoring it", key)
            return None

    def set(self, key: str, value: str) -> None:
        token = self._enc.encrypt(value)
        with self._lock:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO preferences (key, value_enc, updated_at)
                   VALUES (?, ?, datetime('now'))
                   ON CONFLICT(key) DO UPDATE SET
                       value_enc = excluded.value_enc,
                       updated_at = excluded.updated_at""",
                (key, token),
            )
            conn.commit()
