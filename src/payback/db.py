"""SQLite key-value persistence for PayBack."""

import sqlite3
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from .exceptions import PersistenceError
from .models import StoreSnapshot

APP_DATA_KEY = "app_data"


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Key-value operations
    # ========================================================================

    def get(self, key: str) -> str | None:
        """Get a value by key."""
        cursor = self.conn.cursor()
        cursor.execute("SELECT value FROM kv WHERE key = ?", (key,))
        row = cursor.fetchone()
        return str(row["value"]) if row else None

    def set(self, key: str, value: str):
        """Set a value."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO kv (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, datetime.now().isoformat()),
        )
        self.conn.commit()

    def delete(self, key: str):
        """Delete a key if present."""
        cursor = self.conn.cursor()
        cursor.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.conn.commit()

    # ========================================================================
    # Store snapshot operations
    # ========================================================================

    def save_snapshot(self, snapshot: StoreSnapshot):
        """Persist the full store state."""
        self.set(APP_DATA_KEY, snapshot.model_dump_json())

    def load_snapshot(self) -> StoreSnapshot | None:
        """Load the persisted store state, if any."""
        raw = self.get(APP_DATA_KEY)
        if raw is None:
            return None
        try:
            return StoreSnapshot.model_validate_json(raw)
        except ValidationError as e:
            raise PersistenceError(f"Stored app data is corrupt: {e}") from e
