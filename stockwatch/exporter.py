"""
JSON export and import of monitors.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

from stockwatch.database.migration import migrate_records
from stockwatch.database.repository import MonitorRepository
from stockwatch.database.validation import MonitorValidationError

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"


@dataclass
class ImportResult:
    """Outcome of an import."""

    success: bool
    message: str
    imported_count: int = 0
    skipped_count: int = 0


def export_monitors(store: MonitorRepository, owner_id: str) -> dict[str, Any]:
    """Build an export document of an owner's monitors."""
    monitors = store.load_all(owner_id)
    return {
        "version": EXPORT_VERSION,
        "exportDate": datetime.now().isoformat(),
        "monitors": [m.to_dict() for m in monitors],
    }


def write_export(store: MonitorRepository, owner_id: str, path: str) -> int:
    """
    Write an export file.

    Returns:
        Number of monitors written
    """
    data = export_monitors(store, owner_id)
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    return len(data["monitors"])


def import_monitors(
    store: MonitorRepository,
    owner_id: str,
    data: Any,
    today: date,
) -> ImportResult:
    """
    Import an export document.

    Legacy single-rule records are migrated on the way in. A monitor whose
    code the owner already watches replaces the existing one.

    Args:
        store: Monitor store
        owner_id: Owner receiving the monitors
        data: Decoded export document
        today: Current trading date

    Returns:
        ImportResult with counts
    """
    if (
        not isinstance(data, dict)
        or not data.get("version")
        or not isinstance(data.get("monitors"), list)
    ):
        return ImportResult(success=False, message="Invalid file format")

    if data["version"] != EXPORT_VERSION:
        return ImportResult(
            success=False,
            message=f"Incompatible version {data['version']} (expected {EXPORT_VERSION})",
        )

    raw_records = data["monitors"]
    monitors = migrate_records(raw_records, today)
    skipped = len(raw_records) - len(monitors)
    imported = 0

    for monitor in monitors:
        monitor.owner_id = owner_id
        try:
            existing = store.find_by_code(owner_id, monitor.code)
            if existing:
                store.replace(
                    existing.id,
                    {
                        "code": monitor.code,
                        "name": monitor.name,
                        "is_active": monitor.is_active,
                        "last_reset_date": monitor.last_reset_date,
                        "metrics": monitor.metrics,
                    },
                )
            else:
                monitor.id = None
                store.insert(monitor)
        except MonitorValidationError as e:
            logger.warning(f"Skipping invalid monitor {monitor.code}: {e}")
            skipped += 1
            continue
        imported += 1

    return ImportResult(
        success=True,
        message=f"Imported {imported} monitors",
        imported_count=imported,
        skipped_count=skipped,
    )


def read_import(store: MonitorRepository, owner_id: str, path: str, today: date) -> ImportResult:
    """Import monitors from a JSON file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        return ImportResult(success=False, message=f"Invalid JSON: {e}")
    except UnicodeDecodeError as e:
        return ImportResult(success=False, message=f"File is not UTF-8 text: {e}")
    except OSError as e:
        logger.error(f"Could not read import file {path}: {e}")
        return ImportResult(success=False, message=f"Could not read {path}: {e.strerror or e}")
    return import_monitors(store, owner_id, data, today)
