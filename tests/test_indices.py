"""
Index quote tests.
Tests for the session-gated major index fetch.
"""

from unittest.mock import MagicMock, patch

import pytest

from stockwatch.data.fetcher import TencentQuoteSource
from stockwatch.data.indices import IndexQuote, fetch_indices, format_index_price

from conftest import CLOSED_INSTANT, OPEN_INSTANT, tencent_line


def _index_response(*lines: str) -> MagicMock:
    response = MagicMock()
    response.text = "".join(lines)
    response.raise_for_status.return_value = None
    return response


SHANGHAI = tencent_line("sh000001", price="3086.81", change="12.30", change_percent="0.40", name="上证指数")
SHENZHEN = tencent_line("sz399001", price="10456.22", change="-20.10", change_percent="-0.19", name="深证成指")
CHINEXT = tencent_line("sz399006", price="2001.50", change="0.00", change_percent="0.00", name="创业板指")


class TestFetchIndices:
    """Test fetching the major indices."""

    def test_one_batched_request(self, calendar):
        """All three indices come from a single feed request."""
        with patch("requests.get", return_value=_index_response(SHANGHAI, SHENZHEN, CHINEXT)) as mock_get:
            quotes = fetch_indices(TencentQuoteSource(), calendar, OPEN_INSTANT)

        mock_get.assert_called_once()
        assert mock_get.call_args.args[0] == "https://qt.gtimg.cn/q=sh000001,sz399001,sz399006"
        assert [q.name for q in quotes] == ["上证指数", "深证成指", "创业板指"]
        assert quotes[0].price == pytest.approx(3086.81)
        assert quotes[0].change == pytest.approx(12.3)
        assert quotes[1].change_percent == pytest.approx(-0.19)

    def test_closed_market_skips_fetch(self, calendar):
        """Outside sessions nothing is fetched."""
        with patch("requests.get") as mock_get:
            assert fetch_indices(TencentQuoteSource(), calendar, CLOSED_INSTANT) is None
        mock_get.assert_not_called()

    def test_missing_index_left_out(self, calendar):
        """Indices the feed did not return are dropped."""
        with patch("requests.get", return_value=_index_response(SHENZHEN)):
            quotes = fetch_indices(TencentQuoteSource(), calendar, OPEN_INSTANT)
        assert [q.code for q in quotes] == ["sz399001"]

    def test_empty_feed_gives_empty_list(self, calendar):
        """An empty response during a session yields no quotes."""
        with patch("requests.get", return_value=_index_response("")):
            assert fetch_indices(TencentQuoteSource(), calendar, OPEN_INSTANT) == []


class TestIndexQuote:
    """Test index display text."""

    @pytest.mark.parametrize(
        "price,expected",
        [(10456.22, "10456"), (3086.81, "3086.8"), (999.456, "999.46")],
    )
    def test_price_precision(self, price, expected):
        assert format_index_price(price) == expected

    def test_format(self):
        quote = IndexQuote("sh000001", "上证指数", 3086.81, 12.3, 0.4)
        assert quote.format() == "上证指数(sh000001)  3086.8  ▲ +12.30  +0.40%"

    def test_trend(self):
        assert IndexQuote("sz399001", "深证成指", 1.0, -1.0, -0.19).trend == "▼"
        assert IndexQuote("sz399006", "创业板指", 1.0, 0.0, 0.0).trend == "-"
