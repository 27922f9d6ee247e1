"""
Data models for stockwatch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class MetricKind(Enum):
    """What a metric compares against."""

    PRICE = "price"
    PREMIUM = "premium"
    CHANGE_PERCENT = "changePercent"


class Condition(Enum):
    """Comparison direction of a metric."""

    ABOVE = "above"
    BELOW = "below"


# Serialized threshold key for each metric kind
THRESHOLD_KEYS = {
    MetricKind.PRICE: "targetPrice",
    MetricKind.PREMIUM: "premiumThreshold",
    MetricKind.CHANGE_PERCENT: "changePercentThreshold",
}


@dataclass
class Metric:
    """One threshold rule of a monitor."""

    id: str
    kind: MetricKind
    condition: Condition
    threshold: Optional[float] = None
    is_active: bool = True
    has_fired: bool = False

    @property
    def threshold_key(self) -> str:
        return THRESHOLD_KEYS[self.kind]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape used by export files."""
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "condition": self.condition.value,
            "isActive": self.is_active,
            "notificationSent": self.has_fired,
        }
        data[self.threshold_key] = self.threshold
        return data


@dataclass
class Monitor:
    """A user's watch configuration for one instrument."""

    code: str
    name: str
    metrics: list[Metric] = field(default_factory=list)
    owner_id: str = "default"
    is_active: bool = True
    last_reset_date: Optional[str] = None  # YYYY-MM-DD
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def metric(self, metric_id: str) -> Optional[Metric]:
        """Get metric by ID."""
        for metric in self.metrics:
            if metric.id == metric_id:
                return metric
        return None

    def active_metrics(self) -> list[Metric]:
        return [m for m in self.metrics if m.is_active]

    def pending_metrics(self) -> list[Metric]:
        """Active metrics that have not fired yet."""
        return [m for m in self.active_metrics() if not m.has_fired]

    def clear_fired(self) -> bool:
        """
        Clear every fired flag.

        Returns:
            True if at least one flag was set
        """
        changed = False
        for metric in self.metrics:
            if metric.has_fired:
                metric.has_fired = False
                changed = True
        return changed

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the camelCase shape used by export files."""
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "metrics": [m.to_dict() for m in self.metrics],
            "isActive": self.is_active,
            "lastNotificationDate": self.last_reset_date,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class LegacyMonitorRecord:
    """Single-rule monitor shape written before monitors held several metrics."""

    code: str
    name: str
    monitor_type: MetricKind = MetricKind.PRICE
    condition: Condition = Condition.ABOVE
    target_price: Optional[float] = None
    premium_threshold: Optional[float] = None
    change_percent_threshold: Optional[float] = None
    is_active: bool = True
    notification_sent: bool = False
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def threshold(self) -> Optional[float]:
        """Threshold relevant to ``monitor_type``."""
        if self.monitor_type == MetricKind.PRICE:
            return self.target_price
        elif self.monitor_type == MetricKind.PREMIUM:
            return self.premium_threshold
        return self.change_percent_threshold
