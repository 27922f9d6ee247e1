"""
Monitor engine: one polling cycle plus the daily re-arm of fired metrics.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from stockwatch.data.calendar import TradingCalendar
from stockwatch.data.codes import normalize_code
from stockwatch.data.fetcher import QuoteSource, Snapshot
from stockwatch.database.models import Monitor
from stockwatch.database.repository import MonitorRepository
from .evaluator import evaluate
from .types import TriggerEvent

# Re-export for convenience
__all__ = ["MonitorEngine", "TriggerEvent"]

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MonitorEngine:
    """
    Evaluates monitors against live quotes.

    Each metric fires at most once per trading day. The first cycle that sees
    a monitor on a new trading day only re-arms it; evaluation resumes on the
    following cycle.
    """

    def __init__(
        self,
        quote_source: QuoteSource,
        calendar: TradingCalendar,
        store: MonitorRepository,
        clock: Callable[[], datetime] = _utc_now,
        call_timeout: float = 10.0,
        persist_retries: int = 0,
        persist_retry_delay: float = 0.5,
    ):
        """
        Initialize monitor engine.

        Args:
            quote_source: Source of batch snapshots
            calendar: Trading calendar deciding when cycles run
            store: Monitor store receiving state write-backs
            clock: Returns the current instant
            call_timeout: Seconds allowed for each external call
            persist_retries: Extra attempts for a failed state write
            persist_retry_delay: Seconds between write attempts
        """
        self.quote_source = quote_source
        self.calendar = calendar
        self.store = store
        self.clock = clock
        self.call_timeout = call_timeout
        self.persist_retries = persist_retries
        self.persist_retry_delay = persist_retry_delay
        self._lock = asyncio.Lock()

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking collaborator call off the event loop, bounded by the timeout."""
        return await asyncio.wait_for(
            asyncio.to_thread(func, *args), timeout=self.call_timeout
        )

    def today(self, now: Optional[datetime] = None) -> str:
        """Current trading date as YYYY-MM-DD."""
        return self.calendar.trading_date(now or self.clock()).isoformat()

    async def run_cycle(self, monitors: list[Monitor]) -> list[TriggerEvent]:
        """
        Run one polling cycle.

        Args:
            monitors: Monitors to evaluate; fired state is updated in place

        Returns:
            Trigger events for metrics that crossed their threshold
        """
        async with self._lock:
            return await self._run_cycle(monitors)

    async def _run_cycle(self, monitors: list[Monitor]) -> list[TriggerEvent]:
        now = self.clock()

        try:
            in_session = await self._call(self.calendar.is_within_session, now)
        except Exception as e:
            logger.error(f"Trading calendar unavailable, skipping cycle: {e}")
            return []

        if not in_session:
            logger.debug("Outside trading session, skipping cycle")
            return []

        active = [m for m in monitors if m.is_active]
        codes = {normalize_code(m.code) for m in active}
        if not codes:
            return []

        snapshots = await self._fetch_snapshots(codes)
        today = self.today(now)

        events: list[TriggerEvent] = []
        changed: list[Monitor] = []

        for monitor in active:
            snapshot = snapshots.get(normalize_code(monitor.code))
            if snapshot is None:
                logger.debug(f"No snapshot for {monitor.code} this cycle")
                continue

            if self.apply_daily_reset(monitor, today):
                logger.info(f"Re-armed {monitor.code} for {today}")
                changed.append(monitor)
                continue

            fired = self.evaluate_monitor(monitor, snapshot, today)
            if fired:
                events.extend(fired)
                changed.append(monitor)

        for monitor in changed:
            await self._persist(monitor)

        return events

    async def _fetch_snapshots(self, codes: set[str]) -> dict[str, Snapshot]:
        try:
            return await self._call(self.quote_source.fetch_snapshots, codes)
        except asyncio.TimeoutError:
            logger.warning(f"Quote fetch timed out after {self.call_timeout}s")
        except Exception as e:
            logger.error(f"Quote fetch failed: {e}")
        return {}

    def apply_daily_reset(self, monitor: Monitor, today: str) -> bool:
        """
        Re-arm a monitor when a new trading day starts.

        Args:
            monitor: Monitor to check
            today: Current trading date

        Returns:
            True if the monitor was reset, False if it was already current
        """
        if monitor.last_reset_date == today:
            return False
        monitor.clear_fired()
        monitor.last_reset_date = today
        return True

    def evaluate_monitor(
        self, monitor: Monitor, snapshot: Snapshot, today: str
    ) -> list[TriggerEvent]:
        """Evaluate every armed metric of a monitor and mark the ones that fire."""
        events = []
        for metric in monitor.pending_metrics():
            if not evaluate(metric, snapshot):
                continue
            metric.has_fired = True
            monitor.last_reset_date = today
            logger.info(
                f"{monitor.code} metric {metric.id} triggered "
                f"({metric.kind.value} {metric.condition.value} {metric.threshold})"
            )
            events.append(TriggerEvent(monitor=monitor, metric=metric, snapshot=snapshot))
        return events

    async def _persist(self, monitor: Monitor) -> bool:
        """
        Write fired state back to the store.

        A failed write leaves the in-memory state as is, so the event is
        still delivered.
        """
        if monitor.id is None:
            logger.warning(f"Monitor {monitor.code} has no ID, state not saved")
            return False

        fields = {"metrics": monitor.metrics, "last_reset_date": monitor.last_reset_date}
        attempts = self.persist_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                result = await self._call(self.store.replace, monitor.id, fields)
            except Exception as e:
                logger.warning(
                    f"Saving monitor {monitor.id} failed (attempt {attempt}/{attempts}): {e}"
                )
                if attempt < attempts:
                    await asyncio.sleep(self.persist_retry_delay)
                continue

            if result is None:
                logger.warning(f"Monitor {monitor.id} no longer exists, state not saved")
                return False
            return True

        logger.error(f"Giving up saving monitor {monitor.id}; in-memory state kept")
        return False

    async def reset_rule(self, monitor_id: str, metric_id: str) -> Optional[Monitor]:
        """
        Re-arm one metric immediately.

        Returns:
            Updated monitor, or None if monitor or metric is unknown
        """
        async with self._lock:
            monitor = await self._call(self.store.get_by_id, monitor_id)
            if monitor is None:
                return None
            metric = monitor.metric(metric_id)
            if metric is None:
                return None
            metric.has_fired = False
            return await self._call(
                self.store.replace, monitor_id, {"metrics": monitor.metrics}
            )

    async def reset_monitor(self, monitor_id: str) -> Optional[Monitor]:
        """Re-arm every metric of a monitor and stamp today's date."""
        async with self._lock:
            monitor = await self._call(self.store.get_by_id, monitor_id)
            if monitor is None:
                return None
            monitor.clear_fired()
            return await self._call(
                self.store.replace,
                monitor_id,
                {"metrics": monitor.metrics, "last_reset_date": self.today()},
            )

    async def set_monitor_active(self, monitor_id: str, active: bool) -> Optional[Monitor]:
        """Pause or resume a monitor. Fired flags are cleared either way."""
        async with self._lock:
            monitor = await self._call(self.store.get_by_id, monitor_id)
            if monitor is None:
                return None
            monitor.clear_fired()
            return await self._call(
                self.store.replace,
                monitor_id,
                {"is_active": active, "metrics": monitor.metrics},
            )
