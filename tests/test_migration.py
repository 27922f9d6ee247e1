"""
Record migration tests.
Tests for lifting legacy single-rule records into multi-metric monitors.
"""

from datetime import date

from stockwatch.database.migration import migrate_record, migrate_records
from stockwatch.database.models import Condition, MetricKind

TODAY = date(2024, 6, 3)


class TestLegacyRecords:
    """Test legacy record migration."""

    def test_lift_price_record(self):
        """A legacy record becomes a monitor with one metric."""
        monitor = migrate_record(
            {
                "id": "abc",
                "code": "sz159509",
                "name": "纳指科技ETF",
                "monitorType": "price",
                "condition": "above",
                "targetPrice": 1.5,
                "isActive": True,
                "notificationSent": False,
            },
            TODAY,
        )

        assert monitor is not None
        assert monitor.id == "abc"
        assert len(monitor.metrics) == 1
        metric = monitor.metrics[0]
        assert metric.id == "abc-0"
        assert metric.kind == MetricKind.PRICE
        assert metric.condition == Condition.ABOVE
        assert metric.threshold == 1.5
        assert metric.has_fired is False
        assert monitor.last_reset_date is None

    def test_sent_record_is_seeded_with_today(self):
        """A record that already notified keeps its fired state for today."""
        monitor = migrate_record(
            {
                "id": "abc",
                "code": "sz159509",
                "name": "ETF",
                "monitorType": "premium",
                "condition": "below",
                "premiumThreshold": 2.0,
                "notificationSent": True,
            },
            TODAY,
        )

        assert monitor.metrics[0].has_fired is True
        assert monitor.metrics[0].kind == MetricKind.PREMIUM
        assert monitor.metrics[0].threshold == 2.0
        assert monitor.last_reset_date == "2024-06-03"

    def test_missing_type_defaults_to_price(self):
        """Records from before monitor types existed are price monitors."""
        monitor = migrate_record(
            {"code": "sz159509", "name": "ETF", "targetPrice": 1.2}, TODAY
        )
        assert monitor.metrics[0].kind == MetricKind.PRICE
        assert monitor.metrics[0].threshold == 1.2

    def test_change_percent_record(self):
        """Change percent records read changePercentThreshold."""
        monitor = migrate_record(
            {
                "code": "sh510300",
                "name": "沪深300ETF",
                "monitorType": "changePercent",
                "condition": "below",
                "changePercentThreshold": -3,
            },
            TODAY,
        )
        assert monitor.metrics[0].kind == MetricKind.CHANGE_PERCENT
        assert monitor.metrics[0].threshold == -3.0


class TestCurrentRecords:
    """Test records that already carry metrics."""

    def test_parse_current_record(self):
        """Metrics, flags and reset date are kept."""
        monitor = migrate_record(
            {
                "id": "xyz",
                "code": "sz159509",
                "name": "ETF",
                "isActive": False,
                "lastNotificationDate": "2024-06-02T08:00:00.000Z",
                "metrics": [
                    {"id": "p", "type": "price", "condition": "above", "targetPrice": 1.5},
                    {
                        "id": "c",
                        "type": "changePercent",
                        "condition": "below",
                        "changePercentThreshold": -2,
                        "notificationSent": True,
                    },
                ],
            },
            TODAY,
        )

        assert monitor.is_active is False
        assert monitor.last_reset_date == "2024-06-02"
        assert [m.id for m in monitor.metrics] == ["p", "c"]
        assert monitor.metrics[1].has_fired is True

    def test_metric_without_id_gets_fallback(self):
        """Metrics missing an ID are numbered after their monitor."""
        monitor = migrate_record(
            {
                "id": "xyz",
                "code": "sz159509",
                "name": "ETF",
                "metrics": [{"type": "premium", "premiumThreshold": 1}],
            },
            TODAY,
        )
        assert monitor.metrics[0].id == "xyz-0"


class TestMalformedRecords:
    """Test that unusable records are dropped."""

    def test_non_object_dropped(self):
        """Non-dict records are dropped."""
        assert migrate_record("not a record", TODAY) is None

    def test_unknown_type_dropped(self):
        """Unknown metric types are dropped."""
        assert migrate_record(
            {"code": "sz159509", "name": "ETF", "monitorType": "volume"}, TODAY
        ) is None

    def test_missing_code_dropped(self):
        """Records need a code."""
        assert migrate_record({"name": "ETF", "targetPrice": 1}, TODAY) is None

    def test_non_numeric_threshold_dropped(self):
        """Thresholds that are not numbers are dropped."""
        assert migrate_record(
            {"code": "sz159509", "name": "ETF", "targetPrice": "abc"}, TODAY
        ) is None

    def test_batch_keeps_good_records(self):
        """A bad record does not take the batch down."""
        monitors = migrate_records(
            [
                {"code": "sz159509", "name": "ETF", "targetPrice": 1.5},
                None,
                {"code": "sh510300", "name": "300ETF", "targetPrice": 4.0},
            ],
            TODAY,
        )
        assert [m.code for m in monitors] == ["sz159509", "sh510300"]
