"""
Key/value persistence.
Uses SQLite so that the app and a companion display surface (widget) can
share a file without any extra service running.
"""
import json
import logging
import sqlite3
import threading
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger(__name__)

_MISSING = object()


class SqliteKeyValueStore:
    """A single ``key -> value`` table in a SQLite file."""

    table_name = "key_value"
    value_type = "TEXT"

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self.initialize()

    def get_db_connection(self) -> sqlite3.Connection:
        """Establishes a connection to the SQLite database."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row  # Access columns by name
        return conn

    def initialize(self) -> None:
        """Creates the database file and table if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._lock, closing(self.get_db_connection()) as conn:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.table_name} (
                        key TEXT PRIMARY KEY,
                        value {self.value_type} NOT NULL,
                        updated_at TEXT NOT NULL  -- ISO 8601 format, UTC
                    )
                """)
                conn.commit()
            log.debug(f"Key/value store '{self.table_name}' ready at {self.db_path}")
        except (sqlite3.Error, OSError) as e:
            log.error(f"Error initializing key/value store at {self.db_path}: {e}", exc_info=True)
            raise

    def _read(self, key: str) -> Any:
        try:
            with self._lock, closing(self.get_db_connection()) as conn:
                row = conn.execute(
                    f"SELECT value FROM {self.table_name} WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as e:
            log.error(f"Error reading '{key}' from {self.db_path}: {e}", exc_info=True)
            return _MISSING
        return row["value"] if row else _MISSING

    def _write(self, key: str, value: Any) -> bool:
        now_utc_iso = datetime.now(timezone.utc).isoformat()
        try:
            with self._lock, closing(self.get_db_connection()) as conn:
                conn.execute(
                    f"""
                    INSERT INTO {self.table_name} (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                    """,
                    (key, value, now_utc_iso),
                )
                conn.commit()
            return True
        except sqlite3.Error as e:
            log.error(f"Error writing '{key}' to {self.db_path}: {e}", exc_info=True)
            return False

    def remove(self, key: str) -> bool:
        try:
            with self._lock, closing(self.get_db_connection()) as conn:
                conn.execute(f"DELETE FROM {self.table_name} WHERE key = ?", (key,))
                conn.commit()
            return True
        except sqlite3.Error as e:
            log.error(f"Error removing '{key}' from {self.db_path}: {e}", exc_info=True)
            return False

    def __contains__(self, key: str) -> bool:
        return self._read(key) is not _MISSING


class PreferenceStore(SqliteKeyValueStore):
    """Simple scalar and blob preferences, stored as JSON text."""

    table_name = "preferences"

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._read(key)
        if raw is _MISSING:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            log.error(f"Error decoding preference '{key}': {e}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        return bool(self.get(key, default))

    def set(self, key: str, value: Any) -> bool:
        return self._write(key, json.dumps(value))


class SharedBlobStore(SqliteKeyValueStore):
    """Raw bytes readable by another process (e.g. a widget renderer)."""

    table_name = "shared_blobs"
    value_type = "BLOB"

    def get(self, key: str) -> Optional[bytes]:
        raw = self._read(key)
        return None if raw is _MISSING else bytes(raw)

    def set(self, key: str, value: bytes) -> bool:
        return self._write(key, sqlite3.Binary(value))
