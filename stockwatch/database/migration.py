"""
Migration of stored monitor records into the current Monitor shape.

Records come in two shapes: current records carry a ``metrics`` list, legacy
records carry a single rule inline. Both are converted here, once, when they
are loaded; nothing downstream ever sees a legacy record.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Iterable, Optional

from .models import Condition, LegacyMonitorRecord, Metric, MetricKind, Monitor, THRESHOLD_KEYS

logger = logging.getLogger(__name__)


class MalformedRecordError(ValueError):
    """Raised when a stored record cannot be coerced."""

    pass


def _parse_kind(value: Any, default: Optional[MetricKind] = None) -> MetricKind:
    if value in (None, "") and default is not None:
        return default
    for kind in MetricKind:
        if value == kind.value or value == kind.name.lower():
            return kind
    raise MalformedRecordError(f"Unknown metric type: {value!r}")


def _parse_condition(value: Any) -> Condition:
    if value in (None, ""):
        return Condition.ABOVE
    try:
        return Condition(str(value).lower())
    except ValueError:
        raise MalformedRecordError(f"Unknown condition: {value!r}")


def _parse_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise MalformedRecordError(f"Not a number: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedRecordError(f"Not a number: {value!r}")


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_date_string(value: Any) -> Optional[str]:
    """Reduce a date or timestamp to YYYY-MM-DD."""
    if not value:
        return None
    text = str(value)[:10]
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        return None


def _require_text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedRecordError(f"Record is missing {key}")
    return value.strip()


def parse_metric(raw: dict[str, Any], fallback_id: str) -> Metric:
    """Parse one serialized metric."""
    if not isinstance(raw, dict):
        raise MalformedRecordError("Metric is not an object")

    kind = _parse_kind(raw.get("type"))
    threshold_key = THRESHOLD_KEYS[kind]
    threshold = raw.get(threshold_key, raw.get("threshold"))

    return Metric(
        id=str(raw.get("id") or fallback_id),
        kind=kind,
        condition=_parse_condition(raw.get("condition")),
        threshold=_parse_float(threshold),
        is_active=_parse_bool(raw.get("isActive"), True),
        has_fired=_parse_bool(raw.get("notificationSent"), False),
    )


def parse_legacy_record(raw: dict[str, Any]) -> LegacyMonitorRecord:
    """Parse a single-rule legacy record."""
    return LegacyMonitorRecord(
        id=raw.get("id"),
        code=_require_text(raw, "code"),
        name=_require_text(raw, "name"),
        monitor_type=_parse_kind(raw.get("monitorType"), default=MetricKind.PRICE),
        condition=_parse_condition(raw.get("condition")),
        target_price=_parse_float(raw.get("targetPrice")),
        premium_threshold=_parse_float(raw.get("premiumThreshold")),
        change_percent_threshold=_parse_float(raw.get("changePercentThreshold")),
        is_active=_parse_bool(raw.get("isActive"), True),
        notification_sent=_parse_bool(raw.get("notificationSent"), False),
        created_at=_parse_datetime(raw.get("createdAt")),
        updated_at=_parse_datetime(raw.get("updatedAt")),
    )


def lift_legacy(legacy: LegacyMonitorRecord, today: date) -> Monitor:
    """
    Wrap a legacy record's inline rule into a one-metric Monitor.

    A legacy record that already notified gets ``today`` as its reset date
    so the next cycle does not clear it straight away.
    """
    monitor_id = legacy.id or uuid.uuid4().hex
    metric = Metric(
        id=f"{monitor_id}-0",
        kind=legacy.monitor_type,
        condition=legacy.condition,
        threshold=legacy.threshold,
        is_active=True,
        has_fired=legacy.notification_sent,
    )
    return Monitor(
        id=legacy.id,
        code=legacy.code,
        name=legacy.name,
        metrics=[metric],
        is_active=legacy.is_active,
        last_reset_date=today.isoformat() if legacy.notification_sent else None,
        created_at=legacy.created_at,
        updated_at=legacy.updated_at,
    )


def parse_current_record(raw: dict[str, Any]) -> Monitor:
    """Parse a record that already carries a metrics list."""
    raw_metrics = raw.get("metrics")
    if not isinstance(raw_metrics, list):
        raise MalformedRecordError("metrics is not a list")

    record_id = raw.get("id")
    metrics = [
        parse_metric(item, fallback_id=f"{record_id or 'metric'}-{index}")
        for index, item in enumerate(raw_metrics)
    ]
    last_reset = raw.get("lastResetDate", raw.get("lastNotificationDate"))

    return Monitor(
        id=record_id,
        code=_require_text(raw, "code"),
        name=_require_text(raw, "name"),
        metrics=metrics,
        is_active=_parse_bool(raw.get("isActive"), True),
        last_reset_date=_parse_date_string(last_reset),
        created_at=_parse_datetime(raw.get("createdAt")),
        updated_at=_parse_datetime(raw.get("updatedAt")),
    )


def migrate_record(raw: Any, today: date) -> Optional[Monitor]:
    """
    Convert one stored record into a Monitor.

    Args:
        raw: Decoded JSON record in either shape
        today: Current trading date, used to seed legacy fired state

    Returns:
        Monitor, or None if the record is malformed
    """
    if not isinstance(raw, dict):
        logger.warning(f"Dropping non-object monitor record: {raw!r}")
        return None

    try:
        if "metrics" in raw:
            return parse_current_record(raw)
        return lift_legacy(parse_legacy_record(raw), today)
    except MalformedRecordError as e:
        logger.warning(f"Dropping malformed monitor record {raw.get('id')}: {e}")
        return None


def migrate_records(raws: Iterable[Any], today: date) -> list[Monitor]:
    """Migrate a batch, dropping records that cannot be coerced."""
    monitors = []
    for raw in raws:
        monitor = migrate_record(raw, today)
        if monitor is not None:
            monitors.append(monitor)
    return monitors
