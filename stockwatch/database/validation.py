"""
Validation of monitors and metrics before they are written.
"""

import math
from typing import Any

from .models import Metric, MetricKind, Monitor


class MonitorValidationError(ValueError):
    """Raised when a monitor or metric is invalid."""

    pass


UPDATABLE_FIELDS = {"code", "name", "is_active", "last_reset_date", "metrics"}


def validate_metric(metric: Metric) -> None:
    """
    Validate a single metric.

    Raises:
        MonitorValidationError: If the threshold is missing or out of range
    """
    threshold = metric.threshold
    label = metric.kind.value

    if threshold is None:
        raise MonitorValidationError(f"Metric {metric.id}: {label} monitor requires a threshold")

    if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
        raise MonitorValidationError(f"Metric {metric.id}: threshold must be a number")

    if not math.isfinite(threshold):
        raise MonitorValidationError(f"Metric {metric.id}: threshold must be finite")

    if metric.kind == MetricKind.CHANGE_PERCENT:
        if threshold == 0:
            raise MonitorValidationError(
                f"Metric {metric.id}: change percent threshold must be non-zero"
            )
    elif threshold <= 0:
        raise MonitorValidationError(
            f"Metric {metric.id}: {label} threshold must be greater than zero"
        )


def validate_metrics(metrics: list[Metric]) -> None:
    """Validate a metric collection (non-empty, unique ids, each valid)."""
    if not metrics:
        raise MonitorValidationError("Monitor requires at least one metric")

    seen = set()
    for metric in metrics:
        if not metric.id:
            raise MonitorValidationError("Metric ID cannot be empty")
        if metric.id in seen:
            raise MonitorValidationError(f"Duplicate metric ID: {metric.id}")
        seen.add(metric.id)
        validate_metric(metric)


def validate_monitor(monitor: Monitor) -> None:
    """
    Validate a whole monitor.

    Raises:
        MonitorValidationError: With the reason the monitor was rejected
    """
    if not monitor.code or not monitor.code.strip():
        raise MonitorValidationError("Stock code cannot be empty")
    if not monitor.name or not monitor.name.strip():
        raise MonitorValidationError("Stock name cannot be empty")
    validate_metrics(monitor.metrics)


def validate_updates(fields: dict[str, Any]) -> None:
    """Validate a partial update before it is applied."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise MonitorValidationError(f"Unknown monitor fields: {', '.join(sorted(unknown))}")

    if "code" in fields and (not fields["code"] or not str(fields["code"]).strip()):
        raise MonitorValidationError("Stock code cannot be empty")
    if "name" in fields and (not fields["name"] or not str(fields["name"]).strip()):
        raise MonitorValidationError("Stock name cannot be empty")
    if "metrics" in fields:
        validate_metrics(fields["metrics"])
