"""
Trading calendar tests.
Tests for session windows, holiday lookups and status text.
"""

import threading
import time
from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from stockwatch.data.calendar import (
    HolidayProvider,
    TradingCalendar,
    TradingSession,
)


def _utc(year, month, day, hour, minute=0, second=0):
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)


class StaticHolidays(HolidayProvider):
    """Holiday provider with a fixed list and no network."""

    def __init__(self, off_days):
        super().__init__()
        self.off_days = set(off_days)

    def is_off_day(self, day: date) -> bool:
        return day.isoformat() in self.off_days


class TestTradingSession:
    """Test session parsing and bounds."""

    def test_parse(self):
        session = TradingSession.parse("09:30-11:30")
        assert session.start.hour == 9
        assert session.end.minute == 30

    @pytest.mark.parametrize("text", ["09:30", "9h30-11h30", "11:30-09:30"])
    def test_parse_invalid(self, text):
        with pytest.raises(ValueError):
            TradingSession.parse(text)


class TestTradingCalendar:
    """Test session gating."""

    @pytest.fixture
    def calendar(self):
        return TradingCalendar(holidays=None)

    @pytest.mark.parametrize(
        "instant,expected",
        [
            (_utc(2024, 6, 3, 1, 29, 59), False),  # 09:29:59
            (_utc(2024, 6, 3, 1, 30), True),  # 09:30 opens
            (_utc(2024, 6, 3, 3, 29, 59), True),  # 11:29:59
            (_utc(2024, 6, 3, 3, 30), False),  # 11:30 closes
            (_utc(2024, 6, 3, 5, 0), True),  # 13:00
            (_utc(2024, 6, 3, 6, 59), True),  # 14:59
            (_utc(2024, 6, 3, 7, 0), False),  # 15:00
        ],
    )
    def test_session_bounds(self, calendar, instant, expected):
        """Start is inclusive, end is exclusive."""
        assert calendar.is_within_session(instant) is expected

    @pytest.mark.parametrize(
        "day,expected",
        [
            (date(2024, 6, 3), True),  # Monday
            (date(2024, 6, 7), True),  # Friday
            (date(2024, 6, 8), False),  # Saturday
            (date(2024, 6, 9), False),  # Sunday
            (date(2024, 6, 10), False),  # Dragon Boat Festival
            (date(2024, 6, 11), True),
        ],
    )
    def test_is_trading_day(self, day, expected):
        """Weekdays trade unless the holiday list marks them off."""
        calendar = TradingCalendar(holidays=StaticHolidays({"2024-06-10"}))
        assert calendar.is_trading_day(day) is expected

    def test_is_trading_day_without_holidays(self, calendar):
        """Without a holiday source only weekends are closed."""
        assert calendar.is_trading_day(date(2024, 6, 10)) is True
        assert calendar.is_trading_day(date(2024, 6, 8)) is False

    def test_weekend_closed(self, calendar):
        """Saturday mid-morning is closed."""
        assert calendar.is_within_session(_utc(2024, 6, 1, 2, 0)) is False

    def test_holiday_closed(self):
        """Off days from the holiday list are closed."""
        calendar = TradingCalendar(holidays=StaticHolidays({"2024-06-10"}))
        assert calendar.is_within_session(_utc(2024, 6, 10, 2, 0)) is False
        assert calendar.is_within_session(_utc(2024, 6, 11, 2, 0)) is True

    def test_trading_date_uses_exchange_timezone(self, calendar):
        """17:00 UTC on Sunday is already Monday in Shanghai."""
        assert calendar.trading_date(_utc(2024, 6, 2, 17, 0)) == date(2024, 6, 3)

    def test_naive_instants_are_utc(self, calendar):
        """Naive datetimes are read as UTC."""
        assert calendar.is_within_session(datetime(2024, 6, 3, 2, 0)) is True

    def test_next_session_start_lunch(self, calendar):
        """During lunch the next start is the afternoon session."""
        next_start = calendar.next_session_start(_utc(2024, 6, 3, 4, 0))
        assert next_start.strftime("%Y-%m-%d %H:%M") == "2024-06-03 13:00"

    def test_next_session_start_skips_weekend_and_holiday(self):
        """Friday evening rolls over to the next trading day."""
        calendar = TradingCalendar(holidays=StaticHolidays({"2024-06-10"}))
        next_start = calendar.next_session_start(_utc(2024, 6, 7, 10, 0))
        assert next_start.strftime("%Y-%m-%d %H:%M") == "2024-06-11 09:30"

    def test_status(self, calendar):
        """Status text names the next session when closed."""
        assert calendar.status(_utc(2024, 6, 3, 2, 0)) == "交易中"
        assert calendar.status(_utc(2024, 6, 3, 4, 0)) == "非交易时间，下次交易时间：2024-06-03 13:00:00"

    def test_custom_sessions(self):
        """Sessions can be configured."""
        calendar = TradingCalendar(sessions=[TradingSession.parse("20:00-21:00")])
        assert calendar.is_within_session(_utc(2024, 6, 3, 12, 30)) is True
        assert calendar.is_within_session(_utc(2024, 6, 3, 2, 0)) is False


class TestHolidayProvider:
    """Test holiday fetching and caching."""

    @pytest.fixture
    def payload(self):
        return {
            "2024-06-10": {"date": "2024-06-10", "name": "端午节", "isOffDay": True},
            "2024-02-04": {"date": "2024-02-04", "name": "春节", "isOffDay": False},
        }

    def test_is_off_day(self, payload):
        """Days are off only when the API says so."""
        with patch("requests.get") as mock_get:
            mock_get.return_value.json.return_value = payload
            provider = HolidayProvider()

            assert provider.is_off_day(date(2024, 6, 10)) is True
            assert provider.is_off_day(date(2024, 2, 4)) is False
            assert provider.is_off_day(date(2024, 6, 11)) is False

        mock_get.assert_called_once()
        assert mock_get.call_args.args[0].endswith("/2024")

    def test_years_cached_separately(self, payload):
        """Each year is fetched once."""
        with patch("requests.get") as mock_get:
            mock_get.return_value.json.return_value = payload
            provider = HolidayProvider()
            provider.holidays_for(2024)
            provider.holidays_for(2024)
            provider.holidays_for(2025)

        assert mock_get.call_count == 2

    def test_failure_cached_for_ttl(self):
        """A failed year is not refetched until the TTL passes."""
        now = [0.0]
        provider = HolidayProvider(failure_ttl=300, clock=lambda: now[0])

        with patch("requests.get", side_effect=requests.ConnectionError("down")) as mock_get:
            assert provider.holidays_for(2024) == {}
            now[0] = 100.0
            assert provider.holidays_for(2024) == {}
            assert mock_get.call_count == 1

            now[0] = 301.0
            provider.holidays_for(2024)
            assert mock_get.call_count == 2

    def test_failure_treats_days_as_open(self):
        """Weekdays trade when holidays are unknown."""
        with patch("requests.get", side_effect=requests.Timeout("slow")):
            calendar = TradingCalendar(holidays=HolidayProvider())
            assert calendar.is_within_session(_utc(2024, 6, 10, 2, 0)) is True

    def test_concurrent_callers_share_one_request(self, payload):
        """Parallel lookups of an uncached year issue a single request."""
        started = threading.Event()

        def slow_get(*args, **kwargs):
            started.set()
            time.sleep(0.2)
            response = MagicMock()
            response.json.return_value = payload
            return response

        provider = HolidayProvider()
        results = []

        with patch("requests.get", side_effect=slow_get) as mock_get:
            first = threading.Thread(target=lambda: results.append(provider.holidays_for(2024)))
            first.start()
            started.wait(1)
            others = [
                threading.Thread(target=lambda: results.append(provider.holidays_for(2024)))
                for _ in range(4)
            ]
            for t in others:
                t.start()
            for t in [first, *others]:
                t.join(2)

        assert mock_get.call_count == 1
        assert len(results) == 5
        assert all(r == {"2024-06-10": True, "2024-02-04": False} for r in results)
