"""
Quote sources producing live snapshots.
"""

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

import requests
import yfinance as yf

from .codes import normalize_code, to_yahoo_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time quote for one instrument."""

    code: str
    current_price: float
    change_percent: float
    premium: Optional[float]  # None when the source has no premium
    timestamp_millis: int
    name: str = ""
    change: float = 0.0
    open_price: float = 0.0
    high: float = 0.0
    low: float = 0.0
    volume: float = 0.0


def _now_millis() -> int:
    return int(time.time() * 1000)


class QuoteSource(ABC):
    """Fetches snapshots for a set of codes."""

    @abstractmethod
    def fetch_snapshots(self, codes: Iterable[str]) -> dict[str, Snapshot]:
        """
        Fetch the latest snapshot for each code.

        Codes that fail are left out of the result; the call itself does
        not raise for upstream failures.

        Args:
            codes: Prefixed instrument codes

        Returns:
            Dictionary mapping code to Snapshot
        """
        pass


class TencentQuoteSource(QuoteSource):
    """Quote source for the qt.gtimg.cn tilde-delimited feed."""

    BASE_URL = "https://qt.gtimg.cn/q="
    LINE_PATTERN = re.compile(r'v_([^=\s]+)="([^"]*)"')

    # Field positions in the tilde-delimited payload
    FIELD_NAME = 1
    FIELD_PRICE = 3
    FIELD_OPEN = 5
    FIELD_VOLUME = 6
    FIELD_CHANGE = 31
    FIELD_CHANGE_PCT = 32
    FIELD_HIGH = 33
    FIELD_LOW = 34
    FIELD_PREMIUM = 77
    MIN_FIELDS = FIELD_CHANGE_PCT + 1

    def __init__(self, base_url: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout

    def fetch_snapshots(self, codes: Iterable[str]) -> dict[str, Snapshot]:
        """Fetch all codes in one request."""
        wanted = sorted({normalize_code(c) for c in codes})
        if not wanted:
            return {}

        url = f"{self.base_url}{','.join(wanted)}"
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
            response.encoding = "gbk"
            text = response.text
        except requests.RequestException as e:
            logger.warning(f"Quote request failed for {len(wanted)} codes: {e}")
            return {}

        snapshots = self.parse_response(text)
        missing = set(wanted) - set(snapshots)
        if missing:
            logger.debug(f"No quote for: {', '.join(sorted(missing))}")
        return {code: snap for code, snap in snapshots.items() if code in wanted}

    def parse_response(self, text: str) -> dict[str, Snapshot]:
        """Parse every ``v_<code>="..."`` line of a response."""
        snapshots = {}
        timestamp = _now_millis()
        for match in self.LINE_PATTERN.finditer(text):
            code = match.group(1)
            snapshot = self.parse_fields(code, match.group(2).split("~"), timestamp)
            if snapshot is not None:
                snapshots[code] = snapshot
        return snapshots

    def parse_fields(
        self, code: str, fields: list[str], timestamp: int
    ) -> Optional[Snapshot]:
        """Build a Snapshot from split fields, or None if they are unusable."""
        if len(fields) < self.MIN_FIELDS:
            logger.warning(f"Quote for {code} has {len(fields)} fields, skipping")
            return None

        try:
            price = float(fields[self.FIELD_PRICE])
        except ValueError:
            logger.warning(f"Quote for {code} has no usable price")
            return None

        def number(index: int, default: Optional[float] = 0.0) -> Optional[float]:
            if index >= len(fields):
                return default
            try:
                return float(fields[index])
            except ValueError:
                return default

        return Snapshot(
            code=code,
            name=fields[self.FIELD_NAME],
            current_price=price,
            change=number(self.FIELD_CHANGE),
            change_percent=number(self.FIELD_CHANGE_PCT),
            open_price=number(self.FIELD_OPEN),
            high=number(self.FIELD_HIGH),
            low=number(self.FIELD_LOW),
            volume=number(self.FIELD_VOLUME),
            premium=number(self.FIELD_PREMIUM, default=None),
            timestamp_millis=timestamp,
        )


class YahooQuoteSource(QuoteSource):
    """Quote source backed by Yahoo Finance. Yahoo reports no premium."""

    def fetch_snapshots(self, codes: Iterable[str]) -> dict[str, Snapshot]:
        results = {}
        for code in {normalize_code(c) for c in codes}:
            try:
                results[code] = self.get_snapshot(code)
            except Exception as e:
                logger.warning(f"Yahoo quote failed for {code}: {e}")
                continue
        return results

    def get_snapshot(self, code: str) -> Snapshot:
        """
        Fetch one snapshot.

        Raises:
            ValueError: If Yahoo has no price for the code
        """
        info = yf.Ticker(to_yahoo_symbol(code)).info

        current_price = (info or {}).get("regularMarketPrice")
        if current_price is None:
            raise ValueError(f"Invalid symbol or no data available: {code}")

        previous_close = info.get("previousClose") or current_price
        change = current_price - previous_close
        change_percent = (change / previous_close) * 100 if previous_close else 0.0

        return Snapshot(
            code=code,
            name=info.get("shortName", ""),
            current_price=float(current_price),
            change=float(change),
            change_percent=float(change_percent),
            open_price=float(info.get("open") or current_price),
            high=float(info.get("dayHigh") or current_price),
            low=float(info.get("dayLow") or current_price),
            volume=float(info.get("volume") or 0),
            premium=None,
            timestamp_millis=_now_millis(),
        )


def create_quote_source(provider: str, base_url: Optional[str] = None, timeout: float = 10.0) -> QuoteSource:
    """
    Create a quote source by provider name.

    Raises:
        ValueError: If provider is unknown
    """
    if provider == "tencent":
        return TencentQuoteSource(base_url=base_url, timeout=timeout)
    elif provider == "yahoo_finance":
        return YahooQuoteSource()
    raise ValueError(f"Unknown quote provider: {provider}")
