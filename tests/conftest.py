"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from typing import Iterable

import pytest

from stockwatch.data.calendar import TradingCalendar
from stockwatch.data.fetcher import QuoteSource, Snapshot
from stockwatch.database.connection import Database
from stockwatch.database.models import Condition, Metric, MetricKind, Monitor
from stockwatch.database.repository import MonitorRepository

# Monday 2024-06-03, 10:00 in Shanghai
OPEN_INSTANT = datetime(2024, 6, 3, 2, 0, tzinfo=timezone.utc)
# Same day, 12:00 in Shanghai (lunch break)
CLOSED_INSTANT = datetime(2024, 6, 3, 4, 0, tzinfo=timezone.utc)
TODAY = "2024-06-03"
YESTERDAY = "2024-06-02"


class FakeQuoteSource(QuoteSource):
    """Quote source returning canned snapshots and recording requests."""

    def __init__(self, snapshots: dict[str, Snapshot] = None, error: Exception = None):
        self.snapshots = snapshots or {}
        self.error = error
        self.calls: list[set[str]] = []

    def fetch_snapshots(self, codes: Iterable[str]) -> dict[str, Snapshot]:
        codes = set(codes)
        self.calls.append(codes)
        if self.error is not None:
            raise self.error
        return {c: s for c, s in self.snapshots.items() if c in codes}


def make_snapshot(code="sz159509", price=1.52, change_percent=0.0, premium=0.0) -> Snapshot:
    return Snapshot(
        code=code,
        current_price=price,
        change_percent=change_percent,
        premium=premium,
        timestamp_millis=1717380000000,
        name="纳指科技ETF",
    )


def make_monitor(
    code="sz159509",
    kind=MetricKind.PRICE,
    condition=Condition.ABOVE,
    threshold=1.50,
    last_reset_date=TODAY,
    has_fired=False,
    name="纳指科技ETF",
) -> Monitor:
    return Monitor(
        code=code,
        name=name,
        metrics=[
            Metric(
                id="m1",
                kind=kind,
                condition=condition,
                threshold=threshold,
                has_fired=has_fired,
            )
        ],
        last_reset_date=last_reset_date,
    )


def tencent_line(code="sz159509", price="1.520", change="0.012", change_percent="0.80", premium="1.25", name="纳指科技ETF") -> str:
    """Build one qt.gtimg.cn response line."""
    fields = ["0"] * 80
    fields[0] = "51"
    fields[1] = name
    fields[2] = code[2:]
    fields[3] = price
    fields[5] = "1.505"
    fields[6] = "123456"
    fields[31] = change
    fields[32] = change_percent
    fields[33] = "1.530"
    fields[34] = "1.500"
    fields[77] = premium
    return f'v_{code}="{"~".join(fields)}";\n'


@pytest.fixture
def db():
    """Create in-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def repo(db):
    """Monitor repository over the in-memory database."""
    return MonitorRepository(db)


@pytest.fixture
def calendar():
    """Calendar without holiday lookups."""
    return TradingCalendar(holidays=None)


@pytest.fixture
def sample_discord_webhook_url():
    """Sample Discord webhook URL for testing."""
    return "https://discord.com/api/webhooks/123456789/abcdefghijklmnop"


@pytest.fixture
def sample_smtp_config():
    """Sample SMTP configuration for testing."""
    return {
        "smtp_host": "smtp.gmail.com",
        "smtp_port": 587,
        "smtp_user": "test@gmail.com",
        "smtp_password": "test-app-password",
        "from_address": "alerts@example.com",
        "to_addresses": ["recipient@example.com"],
    }
