"""
Trigger events emitted by the monitor engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from stockwatch.data.fetcher import Snapshot
from stockwatch.database.models import Condition, Metric, MetricKind, Monitor

CONDITION_TEXT = {
    Condition.ABOVE: "高于",
    Condition.BELOW: "低于",
}

TITLES = {
    MetricKind.PRICE: "股票价格提醒",
    MetricKind.PREMIUM: "股票溢价提醒",
    MetricKind.CHANGE_PERCENT: "股票涨跌幅提醒",
}


def format_percent(value: Optional[float]) -> str:
    """Two-decimal percentage, or "--" when the value is unavailable."""
    if value is None:
        return "--"
    return f"{value:.2f}%"


@dataclass(frozen=True)
class TriggerEvent:
    """A metric crossing its threshold for the first time today."""

    monitor: Monitor
    metric: Metric
    snapshot: Snapshot
    triggered_at: datetime = field(default_factory=datetime.now)

    @property
    def code(self) -> str:
        return self.monitor.code

    @property
    def title(self) -> str:
        return TITLES[self.metric.kind]

    @property
    def body(self) -> str:
        """Notification text describing the crossing."""
        monitor = self.monitor
        condition = CONDITION_TEXT[self.metric.condition]
        threshold = self.metric.threshold or 0.0
        label = f"{monitor.name}({monitor.code})"

        if self.metric.kind == MetricKind.PRICE:
            return (
                f"{label} 当前价格 {self.snapshot.current_price:.3f} "
                f"已{condition}目标价格 {threshold:.3f}"
            )
        elif self.metric.kind == MetricKind.PREMIUM:
            return (
                f"{label} 当前溢价 {format_percent(self.snapshot.premium)} "
                f"已{condition}阈值 {threshold:.2f}%"
            )
        return (
            f"{label} 当前涨跌幅 {self.snapshot.change_percent:.2f}% "
            f"已{condition}阈值 {threshold:.2f}%"
        )
