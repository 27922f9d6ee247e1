"""
Fixed-interval polling loop driving the monitor engine.
"""

import asyncio
import logging
from typing import Callable, Optional

from stockwatch.database.repository import MonitorRepository
from stockwatch.notifiers.base import Notifier
from stockwatch.rules.engine import MonitorEngine, TriggerEvent

logger = logging.getLogger(__name__)


class MonitorPoller:
    """
    Runs engine cycles on a timer.

    Only one cycle is in flight at a time; a tick that fires while the
    previous cycle is still running is dropped rather than queued.
    """

    def __init__(
        self,
        engine: MonitorEngine,
        store: MonitorRepository,
        notifiers: list[Notifier],
        owner_id: str = "default",
        interval_provider: Optional[Callable[[], float]] = None,
        dry_run: bool = False,
    ):
        """
        Initialize poller.

        Args:
            engine: Monitor engine running each cycle
            store: Store the monitors are loaded from every tick
            notifiers: Channels receiving trigger events
            owner_id: Owner whose monitors are polled
            interval_provider: Returns the current interval in seconds, read every tick
            dry_run: Evaluate without delivering notifications
        """
        self.engine = engine
        self.store = store
        self.notifiers = notifiers
        self.owner_id = owner_id
        self.interval_provider = interval_provider or (lambda: 10.0)
        self.dry_run = dry_run
        self._cycle_running = False
        self._stop_requested = False
        self._stop_event: Optional[asyncio.Event] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def cycle_running(self) -> bool:
        return self._cycle_running

    @property
    def is_running(self) -> bool:
        """Whether run() is currently looping."""
        return self._stop_event is not None

    async def tick(self) -> list[TriggerEvent]:
        """
        Run one cycle unless another is still in flight.

        Returns:
            Events produced by this tick; empty when the tick was dropped
        """
        if self._cycle_running:
            logger.debug("Previous cycle still running, dropping tick")
            return []

        self._cycle_running = True
        try:
            monitors = await asyncio.wait_for(
                asyncio.to_thread(self.store.load_all, self.owner_id),
                timeout=self.engine.call_timeout,
            )
            events = await self.engine.run_cycle(monitors)
            if events and not self.dry_run:
                await asyncio.to_thread(self.dispatch, events)
            return events
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Polling cycle failed: {e}")
            return []
        finally:
            self._cycle_running = False

    def dispatch(self, events: list[TriggerEvent]) -> None:
        """Forward events to every notifier; delivery failures are only logged."""
        for notifier in self.notifiers:
            try:
                results = notifier.send_batch(events)
            except Exception as e:
                logger.error(f"Notifier {notifier.channel} raised: {e}")
                continue
            for event, result in zip(events, results):
                if not result.success:
                    logger.warning(
                        f"Notification via {result.channel} failed for {event.code}: {result.error}"
                    )

    def _interval(self) -> float:
        try:
            interval = float(self.interval_provider())
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid polling interval, using 10s: {e}")
            return 10.0
        return interval if interval > 0 else 10.0

    async def run(self, max_ticks: Optional[int] = None) -> None:
        """
        Poll until stopped.

        Args:
            max_ticks: Stop after this many ticks (None runs until stop())
        """
        self._stop_event = asyncio.Event()
        if self._stop_requested:
            self._stop_event.set()

        ticks = 0
        try:
            while not self._stop_event.is_set():
                task = asyncio.create_task(self.tick())
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)

                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval())
                except asyncio.TimeoutError:
                    pass
        finally:
            pending = list(self._tasks)
            if self._stop_event.is_set():
                for task in pending:
                    task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._stop_event = None
            self._stop_requested = False
            logger.info("Poller stopped")

    def stop(self) -> None:
        """Ask a running loop to stop; in-flight cycles are abandoned."""
        self._stop_requested = True
        if self._stop_event is not None:
            self._stop_event.set()
