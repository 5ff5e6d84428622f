"""
Repository pattern for data access.

Durable key-value store backing every persisted entity.
"""

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Optional, Set

from .db import DEFAULT_DB_PATH, get_connection

logger = logging.getLogger(__name__)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the kv_state table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


class StateRepository:
    """Durable key-value store for process state.

    Values are stored JSON-encoded. Every mutation is a single statement,
    so each key write is atomic even when refreshes overlap.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository and make sure the schema exists.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        initialize_schema(db_path)

    def get(self, key: str) -> Optional[Any]:
        """Read a value.

        Args:
            key: State key

        Returns:
            Decoded value, or None if absent or undecodable
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT value FROM kv_state WHERE key = ?", (key,)
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"Discarding undecodable state value for key '{key}'")
            return None

    def set(self, key: str, value: Any) -> None:
        """Write a value, replacing any previous one.

        Args:
            key: State key
            value: JSON-serializable value
        """
        encoded = json.dumps(value)
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                INSERT INTO kv_state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (key, encoded, datetime.now().isoformat()))
            conn.commit()
        finally:
            conn.close()

    def delete(self, key: str) -> None:
        """Delete a key. Deleting an absent key is a no-op."""
        self.delete_many([key])

    def delete_many(self, keys: Iterable[str]) -> None:
        """Delete several keys in one transaction.

        Args:
            keys: Keys to delete; absent keys are ignored
        """
        keys = list(keys)
        if not keys:
            return

        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            conn.executemany(
                "DELETE FROM kv_state WHERE key = ?", [(key,) for key in keys]
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def keys(self, prefix: Optional[str] = None) -> Set[str]:
        """List stored keys.

        Args:
            prefix: Optional key prefix filter

        Returns:
            Set of matching keys
        """
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("SELECT key FROM kv_state").fetchall()
        finally:
            conn.close()

        all_keys = {row[0] for row in rows}
        if prefix is None:
            return all_keys
        return {key for key in all_keys if key.startswith(prefix)}
