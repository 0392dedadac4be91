"""SQLite key-value store holding the persisted snapshot."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from inbox_cleaner import constants
from inbox_cleaner.classifier import derive_categories
from inbox_cleaner.models import Sender, Snapshot

KEY_SENDERS = "senders"
KEY_CLASSIFICATIONS = "classifications"
KEY_CATEGORIES = "categories"
KEY_LAST_SCAN = "lastScan"

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


class SnapshotStore:
    """Persistent key-value store; values are JSON documents.

    The snapshot lives under the keys ``senders``, ``classifications``,
    ``categories`` and ``lastScan`` and is always written as a whole.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = Path(db_path or constants.STORE_DB_PATH)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(_CREATE_TABLES_SQL)

    # --- key-value API ---

    def get(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set_many(self, values: dict[str, Any]) -> None:
        """Write several keys in a single transaction."""
        with self._conn:
            self._conn.executemany(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                [(key, json.dumps(value)) for key, value in values.items()],
            )

    # --- snapshot API ---

    def save_snapshot(self, snapshot: Snapshot) -> None:
        """Overwrite the stored snapshot in a single transaction."""
        self.set_many(
            {
                KEY_SENDERS: [s.to_dict() for s in snapshot.senders],
                KEY_CLASSIFICATIONS: snapshot.classifications,
                KEY_CATEGORIES: snapshot.categories,
                KEY_LAST_SCAN: snapshot.last_scan,
            }
        )

    def load_snapshot(self) -> Snapshot | None:
        """Load the stored snapshot, or None if nothing was ever saved."""
        senders = self.get(KEY_SENDERS)
        if senders is None:
            return None

        classifications = self.get(KEY_CLASSIFICATIONS, {})
        categories = self.get(KEY_CATEGORIES)
        if categories is None:
            categories = derive_categories(classifications)

        return Snapshot(
            senders=[Sender.from_dict(s) for s in senders],
            classifications=classifications,
            categories=categories,
            last_scan=int(self.get(KEY_LAST_SCAN, 0) or 0),
        )

    def clear(self) -> None:
        """Drop and recreate all tables."""
        self._conn.executescript("DROP TABLE IF EXISTS kv;")
        self._create_tables()

    def get_info(self) -> dict:
        """Return store statistics."""
        file_size = self.db_path.stat().st_size if self.db_path.exists() else 0
        snapshot = self.load_snapshot()
        return {
            "db_file_size": file_size,
            "last_scan": snapshot.last_scan if snapshot else None,
            "sender_count": len(snapshot.senders) if snapshot else 0,
            "message_count": snapshot.total_messages if snapshot else 0,
            "category_count": len(snapshot.categories) if snapshot else 0,
        }

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- context manager ---

    def __enter__(self) -> SnapshotStore:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.close()
