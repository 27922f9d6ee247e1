"""
Trading calendar for the Shanghai and Shenzhen exchanges.

Trading happens on weekdays that are not public holidays, in a morning and
an afternoon session. Holidays are fetched per calendar year from a public
holiday API and cached in memory.
"""

import logging
import threading
import time as _time
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional, Sequence
from zoneinfo import ZoneInfo

import requests

logger = logging.getLogger(__name__)

HOLIDAY_API_URL = "https://api.jiejiariapi.com/v1/holidays/{year}"
EXCHANGE_TIMEZONE = "Asia/Shanghai"


@dataclass(frozen=True)
class TradingSession:
    """One continuous trading window. Start inclusive, end exclusive."""

    start: time
    end: time

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end

    @classmethod
    def parse(cls, text: str) -> "TradingSession":
        """
        Parse ``"HH:MM-HH:MM"``.

        Raises:
            ValueError: If the text is malformed or the window is empty
        """
        try:
            start_text, end_text = text.split("-")
            start = time.fromisoformat(start_text.strip())
            end = time.fromisoformat(end_text.strip())
        except ValueError:
            raise ValueError(f"Invalid session: {text!r}")
        if start >= end:
            raise ValueError(f"Session must end after it starts: {text!r}")
        return cls(start=start, end=end)


DEFAULT_SESSIONS = (
    TradingSession(start=time(9, 30), end=time(11, 30)),
    TradingSession(start=time(13, 0), end=time(15, 0)),
)


class HolidayProvider:
    """Fetches and caches the holiday list of each year."""

    def __init__(
        self,
        api_url: str = HOLIDAY_API_URL,
        timeout: float = 10.0,
        failure_ttl: float = 300.0,
        clock: Callable[[], float] = _time.monotonic,
    ):
        """
        Initialize holiday provider.

        Args:
            api_url: URL template with a ``{year}`` placeholder
            timeout: Request timeout in seconds
            failure_ttl: Seconds to wait before retrying a failed year
            clock: Monotonic clock, replaceable in tests
        """
        self.api_url = api_url
        self.timeout = timeout
        self.failure_ttl = failure_ttl
        self._clock = clock
        self._cache: dict[int, dict[str, bool]] = {}
        self._failed_at: dict[int, float] = {}
        self._inflight: dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    def holidays_for(self, year: int) -> dict[str, bool]:
        """
        Get the holiday map of a year.

        Concurrent callers asking for the same uncached year share a single
        request.

        Args:
            year: Calendar year

        Returns:
            Dictionary mapping YYYY-MM-DD to whether the day is off
        """
        while True:
            with self._lock:
                if year in self._cache:
                    return self._cache[year]

                failed_at = self._failed_at.get(year)
                if failed_at is not None and self._clock() - failed_at < self.failure_ttl:
                    return {}

                event = self._inflight.get(year)
                owner = event is None
                if owner:
                    event = threading.Event()
                    self._inflight[year] = event

            if not owner:
                event.wait()
                continue

            holidays = None
            try:
                holidays = self._fetch(year)
            finally:
                with self._lock:
                    if holidays is None:
                        self._failed_at[year] = self._clock()
                    else:
                        self._cache[year] = holidays
                        self._failed_at.pop(year, None)
                    del self._inflight[year]
                event.set()
            return holidays if holidays is not None else {}

    def is_off_day(self, day: date) -> bool:
        """Check whether the holiday list marks a day as off."""
        return self.holidays_for(day.year).get(day.isoformat(), False)

    def _fetch(self, year: int) -> Optional[dict[str, bool]]:
        url = self.api_url.format(year=year)
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching holidays for {year}: {e}")
            return None

        if not isinstance(payload, dict):
            logger.error(f"Unexpected holiday payload for {year}")
            return None

        holidays = {}
        for day, entry in payload.items():
            if isinstance(entry, dict):
                holidays[day] = bool(entry.get("isOffDay", False))
        logger.info(f"Loaded {len(holidays)} holiday entries for {year}")
        return holidays


class TradingCalendar:
    """Answers whether the exchange is trading at a given moment."""

    def __init__(
        self,
        holidays: Optional[HolidayProvider] = None,
        sessions: Sequence[TradingSession] = DEFAULT_SESSIONS,
        timezone_name: str = EXCHANGE_TIMEZONE,
    ):
        """
        Initialize trading calendar.

        Args:
            holidays: Holiday source; None means only weekends are closed
            sessions: Daily trading windows in exchange-local time
            timezone_name: IANA timezone of the exchange
        """
        self.holidays = holidays
        self.sessions = tuple(sorted(sessions, key=lambda s: s.start))
        self.tz = ZoneInfo(timezone_name)

    def localize(self, instant: Optional[datetime] = None) -> datetime:
        """Convert an instant to exchange-local time. Naive instants are UTC."""
        if instant is None:
            return datetime.now(self.tz)
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(self.tz)

    def trading_date(self, instant: Optional[datetime] = None) -> date:
        """Exchange-local calendar date of an instant."""
        return self.localize(instant).date()

    def is_trading_day(self, day: date) -> bool:
        """Weekday that the holiday list does not mark as off."""
        if day.weekday() >= 5:
            return False
        if self.holidays is not None and self.holidays.is_off_day(day):
            return False
        return True

    def is_within_session(self, instant: Optional[datetime] = None) -> bool:
        """Check whether an instant falls inside a trading session."""
        local = self.localize(instant)
        if not any(session.contains(local.time()) for session in self.sessions):
            return False
        return self.is_trading_day(local.date())

    def next_session_start(self, instant: Optional[datetime] = None, horizon_days: int = 30) -> Optional[datetime]:
        """
        Find the next session opening strictly after an instant.

        Returns:
            Exchange-local datetime, or None if nothing opens within the horizon
        """
        local = self.localize(instant)
        for offset in range(horizon_days + 1):
            day = local.date() + timedelta(days=offset)
            if not self.is_trading_day(day):
                continue
            for session in self.sessions:
                start = datetime.combine(day, session.start, tzinfo=self.tz)
                if start > local:
                    return start
        return None

    def status(self, instant: Optional[datetime] = None) -> str:
        """Human-readable trading status."""
        if self.is_within_session(instant):
            return "交易中"
        next_start = self.next_session_start(instant)
        if next_start is None:
            return "非交易时间"
        return f"非交易时间，下次交易时间：{next_start.strftime('%Y-%m-%d %H:%M:%S')}"
