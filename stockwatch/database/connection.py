"""
SQLite database connection and schema management.
"""

import sqlite3
import threading
from pathlib import Path
from typing import Optional


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        # The monitor engine reaches the store from worker threads
        self.lock = threading.RLock()
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        # Enable foreign keys
        self._connection.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        with self.lock:
            cursor = self.connection.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS monitors (
                    id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    code TEXT NOT NULL,
                    name TEXT NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_reset_date TEXT,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS monitor_metrics (
                    row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL,
                    monitor_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    condition TEXT NOT NULL,
                    threshold REAL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    has_fired INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (monitor_id) REFERENCES monitors(id) ON DELETE CASCADE,
                    UNIQUE (monitor_id, id)
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_monitors_owner ON monitors(owner_id)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_metrics_monitor ON monitor_metrics(monitor_id)
            """)

            self.connection.commit()

    def close(self) -> None:
        """Close the database connection."""
        with self.lock:
            if self._connection:
                self._connection.close()
                self._connection = None
