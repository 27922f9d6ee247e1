"""
Main application entry point.
"""

import asyncio
import logging
import signal
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from stockwatch.config import AppConfig, load_config
from stockwatch.data.calendar import HolidayProvider, TradingCalendar
from stockwatch.data.fetcher import QuoteSource, create_quote_source
from stockwatch.database.connection import Database
from stockwatch.database.repository import MonitorRepository
from stockwatch.notifiers.base import Notifier, build_notifiers
from stockwatch.poller import MonitorPoller
from stockwatch.rules.engine import MonitorEngine

logger = logging.getLogger(__name__)


class StockWatchApp:
    """Wires configuration into the store, engine and poller."""

    def __init__(
        self,
        config: AppConfig,
        db: Database,
        quote_source: Optional[QuoteSource] = None,
        calendar: Optional[TradingCalendar] = None,
        notifiers: Optional[list[Notifier]] = None,
        dry_run: bool = False,
    ):
        """
        Initialize app.

        Args:
            config: Loaded configuration
            db: Database instance (already initialized)
            quote_source: Override the configured quote source
            calendar: Override the configured trading calendar
            notifiers: Override the configured notifiers
            dry_run: Evaluate without delivering notifications
        """
        self.config = config
        self.db = db
        self.store = MonitorRepository(db)

        self.quote_source = quote_source or create_quote_source(
            config.data_source.provider,
            base_url=config.data_source.base_url,
            timeout=config.data_source.timeout_seconds,
        )
        self.calendar = calendar or TradingCalendar(
            holidays=HolidayProvider(
                api_url=config.calendar.holiday_api_url,
                timeout=config.calendar.holiday_timeout_seconds,
            ),
            sessions=config.calendar.trading_sessions(),
            timezone_name=config.calendar.timezone,
        )
        if notifiers is None:
            notifiers = build_notifiers(config.notifications.notifier_configs())
        self.notifiers = notifiers

        self.engine = MonitorEngine(
            quote_source=self.quote_source,
            calendar=self.calendar,
            store=self.store,
            call_timeout=config.advanced.call_timeout_seconds,
            persist_retries=config.advanced.max_retries,
            persist_retry_delay=config.advanced.retry_delay_seconds,
        )
        self.poller = MonitorPoller(
            engine=self.engine,
            store=self.store,
            notifiers=self.notifiers,
            owner_id=config.schedule.owner_id,
            interval_provider=lambda: self.config.schedule.update_interval_seconds,
            dry_run=dry_run,
        )

    async def run_once(self):
        """Run a single cycle."""
        return await self.poller.tick()

    async def run_forever(self) -> None:
        """Poll until interrupted."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.poller.stop)
            except (NotImplementedError, RuntimeError):
                # Signal handlers are unavailable on some platforms
                pass

        logger.info(
            f"Polling monitors of {self.config.schedule.owner_id} every "
            f"{self.config.schedule.update_interval_seconds}s"
        )
        await self.poller.run()


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="stockwatch monitor service")
    parser.add_argument(
        "--config", default="config.yaml", help="Path to config file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument(
        "--dry-run", action="store_true", help="Run without sending notifications"
    )

    args = parser.parse_args()

    # Load config
    config = load_config(args.config)

    # Setup logging
    log_level = logging.DEBUG if args.debug else getattr(
        logging, config.advanced.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Initialize database
    db = Database(config.database.path)
    db.initialize()

    app = StockWatchApp(config=config, db=db, dry_run=args.dry_run)

    if args.dry_run:
        logger.info("Dry run mode - no notifications will be sent")

    try:
        if args.once:
            events = asyncio.run(app.run_once())
            logger.info(f"Cycle finished with {len(events)} trigger(s)")
        else:
            asyncio.run(app.run_forever())
    finally:
        db.close()


if __name__ == "__main__":
    main()
