"""
Rule evaluation against a single snapshot.
"""

import math
from typing import Optional

from stockwatch.data.fetcher import Snapshot
from stockwatch.database.models import Condition, Metric, MetricKind


def observed_value(metric: Metric, snapshot: Snapshot) -> Optional[float]:
    """Snapshot field a metric compares against; None if the source lacks it."""
    if metric.kind == MetricKind.PRICE:
        return snapshot.current_price
    elif metric.kind == MetricKind.PREMIUM:
        return snapshot.premium
    return snapshot.change_percent


def _as_number(value) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def evaluate(metric: Metric, snapshot: Snapshot) -> bool:
    """
    Decide whether a metric's condition holds.

    Both directions are inclusive. A missing or unusable threshold never
    triggers.

    Args:
        metric: Rule to check
        snapshot: Latest quote for the metric's instrument

    Returns:
        True if the condition holds
    """
    threshold = _as_number(metric.threshold)
    value = _as_number(observed_value(metric, snapshot))
    if threshold is None or value is None:
        return False

    if metric.condition == Condition.ABOVE:
        return value >= threshold
    elif metric.condition == Condition.BELOW:
        return value <= threshold
    return False
