"""
Health check - summarises monitors, market status and quote feed reachability.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import requests

from stockwatch.data.calendar import TradingCalendar
from stockwatch.data.fetcher import QuoteSource
from stockwatch.database.repository import MonitorRepository

logger = logging.getLogger(__name__)


@dataclass
class HealthReport:
    """Snapshot of service health."""

    owner_id: str
    monitor_count: int
    active_count: int
    fired_count: int
    market_status: str
    quotes_requested: int
    quotes_received: int
    missing_codes: list[str] = field(default_factory=list)

    @property
    def feed_ok(self) -> bool:
        return self.quotes_requested == 0 or self.quotes_received > 0

    def lines(self) -> list[str]:
        lines = [
            f"Owner: {self.owner_id}",
            f"Monitors: {self.monitor_count} ({self.active_count} active, {self.fired_count} fired today)",
            f"Market: {self.market_status}",
            f"Quote feed: {self.quotes_received}/{self.quotes_requested} codes",
        ]
        if self.missing_codes:
            lines.append(f"Missing: {', '.join(self.missing_codes)}")
        return lines


def collect_health(
    store: MonitorRepository,
    quote_source: QuoteSource,
    calendar: TradingCalendar,
    owner_id: str,
) -> HealthReport:
    """Gather a health report for one owner."""
    monitors = store.load_all(owner_id)
    active = [m for m in monitors if m.is_active]
    fired = [m for m in monitors if any(metric.has_fired for metric in m.metrics)]

    codes = sorted({m.code for m in active})
    snapshots = quote_source.fetch_snapshots(codes) if codes else {}

    return HealthReport(
        owner_id=owner_id,
        monitor_count=len(monitors),
        active_count=len(active),
        fired_count=len(fired),
        market_status=calendar.status(),
        quotes_requested=len(codes),
        quotes_received=len(snapshots),
        missing_codes=[c for c in codes if c not in snapshots],
    )


def send_healthcheck(report: HealthReport, webhook_url: Optional[str] = None) -> Optional[int]:
    """Post the report to Discord.

    Args:
        report: Report to send
        webhook_url: Webhook URL, defaults to DISCORD_WEBHOOK_URL

    Returns:
        HTTP status code, or None if no webhook is configured or the post failed
    """
    webhook_url = webhook_url or os.getenv("DISCORD_WEBHOOK_URL")
    if not webhook_url:
        return None

    payload = {
        "embeds": [{
            "title": "stockwatch Health Check",
            "description": "\n".join(report.lines()),
            "color": 0x2ECC71 if report.feed_ok else 0xE74C3C,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }]
    }

    try:
        response = requests.post(webhook_url, json=payload, timeout=10)
    except requests.RequestException as e:
        logger.error(f"Failed to send health check: {e}")
        return None
    return response.status_code
