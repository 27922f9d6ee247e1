"""
Monitor store backed by SQLite.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from stockwatch.data.codes import normalize_code
from .connection import Database
from .models import Condition, Metric, MetricKind, Monitor
from .validation import validate_monitor, validate_updates

logger = logging.getLogger(__name__)


class MonitorRepository:
    """CRUD operations for monitors and their metrics."""

    def __init__(self, db: Database):
        self.db = db

    def load_all(self, owner_id: str) -> list[Monitor]:
        """Load every monitor of an owner, most recently updated first."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                """
                SELECT * FROM monitors
                WHERE owner_id = ?
                ORDER BY updated_at DESC, created_at DESC
                """,
                (owner_id,),
            )
            rows = cursor.fetchall()
            return self._rows_to_monitors(rows)

    def list_owners(self) -> list[str]:
        """List owners that have at least one monitor."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT DISTINCT owner_id FROM monitors ORDER BY owner_id")
            return [row["owner_id"] for row in cursor.fetchall()]

    def get_by_id(self, monitor_id: str) -> Optional[Monitor]:
        """Get monitor by ID."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute("SELECT * FROM monitors WHERE id = ?", (monitor_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            monitors = self._rows_to_monitors([row])
            return monitors[0] if monitors else None

    def find_by_code(self, owner_id: str, code: str) -> Optional[Monitor]:
        """Get an owner's monitor for a code."""
        with self.db.lock:
            cursor = self.db.connection.cursor()
            cursor.execute(
                "SELECT * FROM monitors WHERE owner_id = ? AND code = ? LIMIT 1",
                (owner_id, normalize_code(code)),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            monitors = self._rows_to_monitors([row])
            return monitors[0] if monitors else None

    def insert(self, monitor: Monitor) -> Monitor:
        """
        Validate and store a new monitor.

        Args:
            monitor: Monitor to create; an ID is assigned if missing

        Returns:
            The stored monitor

        Raises:
            MonitorValidationError: If the monitor is invalid
        """
        validate_monitor(monitor)

        now = datetime.now()
        monitor.code = normalize_code(monitor.code)
        monitor.name = monitor.name.strip()
        monitor.id = monitor.id or uuid.uuid4().hex
        monitor.created_at = monitor.created_at or now
        monitor.updated_at = now

        with self.db.lock, self.db.connection:
            self.db.connection.execute(
                """
                INSERT INTO monitors
                (id, owner_id, code, name, is_active, last_reset_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    monitor.id,
                    monitor.owner_id,
                    monitor.code,
                    monitor.name,
                    1 if monitor.is_active else 0,
                    monitor.last_reset_date,
                    monitor.created_at.isoformat(),
                    monitor.updated_at.isoformat(),
                ),
            )
            self._write_metrics(monitor.id, monitor.metrics)

        return monitor

    def replace(self, monitor_id: str, fields: dict[str, Any]) -> Optional[Monitor]:
        """
        Replace some fields of a monitor.

        ``metrics`` is replaced as a whole. ``updated_at`` is always touched.

        Args:
            monitor_id: Monitor to update
            fields: Any of code, name, is_active, last_reset_date, metrics

        Returns:
            Updated monitor, or None if no monitor has this ID

        Raises:
            MonitorValidationError: If the update is invalid
        """
        validate_updates(fields)

        columns = {}
        if "code" in fields:
            columns["code"] = normalize_code(fields["code"])
        if "name" in fields:
            columns["name"] = fields["name"].strip()
        if "is_active" in fields:
            columns["is_active"] = 1 if fields["is_active"] else 0
        if "last_reset_date" in fields:
            columns["last_reset_date"] = fields["last_reset_date"]
        columns["updated_at"] = datetime.now().isoformat()

        assignments = ", ".join(f"{name} = ?" for name in columns)

        with self.db.lock:
            with self.db.connection:
                cursor = self.db.connection.execute(
                    f"UPDATE monitors SET {assignments} WHERE id = ?",
                    (*columns.values(), monitor_id),
                )
                if cursor.rowcount == 0:
                    return None

                if "metrics" in fields:
                    self.db.connection.execute(
                        "DELETE FROM monitor_metrics WHERE monitor_id = ?", (monitor_id,)
                    )
                    self._write_metrics(monitor_id, fields["metrics"])

            return self.get_by_id(monitor_id)

    def delete(self, monitor_id: str) -> bool:
        """Delete a monitor and its metrics."""
        with self.db.lock, self.db.connection:
            cursor = self.db.connection.execute(
                "DELETE FROM monitors WHERE id = ?", (monitor_id,)
            )
            return cursor.rowcount > 0

    def _write_metrics(self, monitor_id: str, metrics: list[Metric]) -> None:
        self.db.connection.executemany(
            """
            INSERT INTO monitor_metrics
            (id, monitor_id, kind, condition, threshold, is_active, has_fired)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    m.id,
                    monitor_id,
                    m.kind.value,
                    m.condition.value,
                    m.threshold,
                    1 if m.is_active else 0,
                    1 if m.has_fired else 0,
                )
                for m in metrics
            ],
        )

    def _rows_to_monitors(self, rows) -> list[Monitor]:
        """Convert monitor rows, dropping rows whose metrics are corrupt."""
        monitors = []
        for row in rows:
            cursor = self.db.connection.cursor()
            cursor.execute(
                "SELECT * FROM monitor_metrics WHERE monitor_id = ? ORDER BY row_id",
                (row["id"],),
            )
            try:
                metrics = [self._row_to_metric(m) for m in cursor.fetchall()]
            except ValueError as e:
                logger.warning(f"Skipping corrupt monitor {row['id']}: {e}")
                continue
            monitors.append(self._row_to_monitor(row, metrics))
        return monitors

    def _row_to_metric(self, row) -> Metric:
        """Convert database row to Metric."""
        return Metric(
            id=row["id"],
            kind=MetricKind(row["kind"]),
            condition=Condition(row["condition"]),
            threshold=row["threshold"],
            is_active=bool(row["is_active"]),
            has_fired=bool(row["has_fired"]),
        )

    def _row_to_monitor(self, row, metrics: list[Metric]) -> Monitor:
        """Convert database row to Monitor."""
        return Monitor(
            id=row["id"],
            owner_id=row["owner_id"],
            code=row["code"],
            name=row["name"],
            metrics=metrics,
            is_active=bool(row["is_active"]),
            last_reset_date=row["last_reset_date"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
