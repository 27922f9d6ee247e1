"""
Major market index quotes.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .calendar import TradingCalendar
from .fetcher import QuoteSource

logger = logging.getLogger(__name__)

MAJOR_INDICES = (
    ("sh000001", "上证指数"),
    ("sz399001", "深证成指"),
    ("sz399006", "创业板指"),
)


@dataclass(frozen=True)
class IndexQuote:
    """Latest level of one index."""

    code: str
    name: str
    price: float
    change: float
    change_percent: float

    @property
    def trend(self) -> str:
        if self.change_percent > 0:
            return "▲"
        elif self.change_percent < 0:
            return "▼"
        return "-"

    def format(self) -> str:
        return (
            f"{self.name}({self.code})  {format_index_price(self.price)}  "
            f"{self.trend} {self.change:+.2f}  {self.change_percent:+.2f}%"
        )


def format_index_price(price: float) -> str:
    """Fewer decimals for larger index levels."""
    if price >= 10000:
        return f"{price:.0f}"
    elif price >= 1000:
        return f"{price:.1f}"
    return f"{price:.2f}"


def fetch_indices(
    quote_source: QuoteSource,
    calendar: TradingCalendar,
    instant: Optional[datetime] = None,
) -> Optional[list[IndexQuote]]:
    """
    Fetch the major indices in one batch.

    Args:
        quote_source: Source used for the batched fetch
        calendar: Trading calendar gating the fetch
        instant: Moment to check against the sessions (now if None)

    Returns:
        Quotes in display order, or None outside trading sessions.
        Indices the source did not return are left out.
    """
    if not calendar.is_within_session(instant):
        logger.debug("Outside trading sessions, skipping index fetch")
        return None

    snapshots = quote_source.fetch_snapshots([code for code, _ in MAJOR_INDICES])

    quotes = []
    for code, name in MAJOR_INDICES:
        snapshot = snapshots.get(code)
        if snapshot is None:
            logger.warning(f"No quote for index {name} ({code})")
            continue
        quotes.append(
            IndexQuote(
                code=code,
                name=name,
                price=snapshot.current_price,
                change=snapshot.change,
                change_percent=snapshot.change_percent,
            )
        )
    return quotes
