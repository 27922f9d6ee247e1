"""
CLI commands for stockwatch.
"""

import argparse
import asyncio
import sys
import uuid
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from stockwatch.data.calendar import HolidayProvider, TradingCalendar
from stockwatch.data.codes import SymbolResolver, normalize_code
from stockwatch.data.fetcher import create_quote_source
from stockwatch.data.indices import fetch_indices
from stockwatch.database.connection import Database
from stockwatch.database.models import Condition, Metric, MetricKind, Monitor
from stockwatch.database.repository import MonitorRepository
from stockwatch.database.validation import MonitorValidationError
from stockwatch.exporter import read_import, write_export
from stockwatch.healthcheck import collect_health, send_healthcheck
from stockwatch.rules.engine import MonitorEngine

KIND_ALIASES = {
    "price": MetricKind.PRICE,
    "premium": MetricKind.PREMIUM,
    "change": MetricKind.CHANGE_PERCENT,
    "changepercent": MetricKind.CHANGE_PERCENT,
    "change_percent": MetricKind.CHANGE_PERCENT,
}


def parse_metric_arg(text: str) -> Metric:
    """
    Parse ``kind:condition:threshold``, e.g. ``price:above:1.5``.

    Raises:
        MonitorValidationError: If the argument is malformed
    """
    parts = text.split(":")
    if len(parts) != 3:
        raise MonitorValidationError(f"Metric must look like kind:condition:threshold, got {text!r}")

    kind_text, condition_text, threshold_text = (p.strip().lower() for p in parts)
    kind = KIND_ALIASES.get(kind_text)
    if kind is None:
        raise MonitorValidationError(f"Unknown metric type: {kind_text}")
    try:
        condition = Condition(condition_text)
    except ValueError:
        raise MonitorValidationError(f"Condition must be above or below, got {condition_text}")
    try:
        threshold = float(threshold_text)
    except ValueError:
        raise MonitorValidationError(f"Threshold is not a number: {threshold_text}")

    return Metric(id=uuid.uuid4().hex[:8], kind=kind, condition=condition, threshold=threshold)


def add_monitor(
    store: MonitorRepository,
    owner_id: str,
    code: str,
    metric_args: list[str],
    name: Optional[str] = None,
    resolver: Optional[SymbolResolver] = None,
) -> Monitor:
    """Create a monitor, looking the name up when none is given."""
    code = normalize_code(code)
    if not name:
        name = (resolver or SymbolResolver()).lookup_name(code)
        if not name:
            raise MonitorValidationError(f"Could not look up a name for {code}; pass --name")

    monitor = Monitor(
        code=code,
        name=name,
        owner_id=owner_id,
        metrics=[parse_metric_arg(a) for a in metric_args],
    )
    return store.insert(monitor)


def edit_monitor(
    store: MonitorRepository,
    monitor_id: str,
    name: Optional[str] = None,
    code: Optional[str] = None,
    metric_args: Optional[list[str]] = None,
) -> Optional[Monitor]:
    """
    Change a monitor's name, code or metrics.

    Given metrics replace the existing ones as a whole and start armed.

    Returns:
        Updated monitor, or None if no monitor has this ID

    Raises:
        MonitorValidationError: If nothing is given or the edit is invalid
    """
    fields = {}
    if name is not None:
        fields["name"] = name
    if code is not None:
        fields["code"] = code
    if metric_args:
        fields["metrics"] = [parse_metric_arg(a) for a in metric_args]
    if not fields:
        raise MonitorValidationError("Nothing to edit; pass --name, --code or --metric")
    return store.replace(monitor_id, fields)


def format_monitor(monitor: Monitor) -> str:
    """One line per monitor plus one per metric."""
    state = "active" if monitor.is_active else "paused"
    lines = [f"{monitor.id}  {monitor.code}  {monitor.name}  [{state}]  reset: {monitor.last_reset_date or '-'}"]
    for m in monitor.metrics:
        flags = []
        if not m.is_active:
            flags.append("off")
        if m.has_fired:
            flags.append("fired")
        suffix = f" ({', '.join(flags)})" if flags else ""
        lines.append(f"    {m.id}  {m.kind.value} {m.condition.value} {m.threshold}{suffix}")
    return "\n".join(lines)


def _build_engine(store: MonitorRepository, calendar: TradingCalendar) -> MonitorEngine:
    return MonitorEngine(
        quote_source=create_quote_source("tencent"),
        calendar=calendar,
        store=store,
    )


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="stockwatch CLI")
    parser.add_argument("--db", default="data/stockwatch.db", help="Database path")
    parser.add_argument("--owner", default="default", help="Owner ID")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # Monitor commands
    monitor_parser = subparsers.add_parser("monitor", help="Monitor management")
    monitor_subparsers = monitor_parser.add_subparsers(dest="action")

    add_parser = monitor_subparsers.add_parser("add", help="Add monitor")
    add_parser.add_argument("--code", required=True, help="Stock code, e.g. 159509 or sz159509")
    add_parser.add_argument("--name", help="Display name (looked up if omitted)")
    add_parser.add_argument(
        "--metric",
        action="append",
        required=True,
        help="kind:condition:threshold, e.g. price:above:1.5 (repeatable)",
    )

    edit_parser = monitor_subparsers.add_parser("edit", help="Edit monitor")
    edit_parser.add_argument("--id", required=True, help="Monitor ID")
    edit_parser.add_argument("--name", help="New display name")
    edit_parser.add_argument("--code", help="New stock code")
    edit_parser.add_argument(
        "--metric",
        action="append",
        help="Replace all metrics, kind:condition:threshold (repeatable)",
    )

    monitor_subparsers.add_parser("list", help="List monitors")

    for action in ("remove", "pause", "resume"):
        p = monitor_subparsers.add_parser(action, help=f"{action.title()} monitor")
        p.add_argument("--id", required=True, help="Monitor ID")

    reset_parser = monitor_subparsers.add_parser("reset", help="Re-arm notifications")
    reset_parser.add_argument("--id", required=True, help="Monitor ID")
    reset_parser.add_argument("--metric", help="Only re-arm this metric")

    # Export / import
    export_parser = subparsers.add_parser("export", help="Export monitors to JSON")
    export_parser.add_argument("--out", required=True, help="Output file")

    import_parser = subparsers.add_parser("import", help="Import monitors from JSON")
    import_parser.add_argument("--file", required=True, help="Input file")

    # Calendar
    calendar_parser = subparsers.add_parser("calendar", help="Trading calendar")
    calendar_subparsers = calendar_parser.add_subparsers(dest="action")
    calendar_subparsers.add_parser("status", help="Show trading status")

    # Indices
    subparsers.add_parser("indices", help="Show major index quotes during trading sessions")

    # Health
    health_parser = subparsers.add_parser("health", help="Health check")
    health_parser.add_argument("--send", action="store_true", help="Post report to Discord")
    health_parser.add_argument("--all", action="store_true", help="Report every owner")

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("init", help="Create schema")

    args = parser.parse_args()

    # Initialize database
    db = Database(args.db)
    db.initialize()
    store = MonitorRepository(db)
    calendar = TradingCalendar(holidays=HolidayProvider())

    exit_code = 0
    try:
        if args.command == "monitor" and args.action is None:
            monitor_parser.print_help()

        elif args.command == "monitor":
            exit_code = _handle_monitor(args, store, calendar)

        elif args.command == "export":
            count = write_export(store, args.owner, args.out)
            print(f"Exported {count} monitors to {args.out}")

        elif args.command == "import":
            result = read_import(store, args.owner, args.file, calendar.trading_date())
            print(result.message)
            if result.skipped_count:
                print(f"Skipped {result.skipped_count} invalid records")
            if not result.success:
                exit_code = 1

        elif args.command == "calendar":
            print(calendar.status())

        elif args.command == "indices":
            quotes = fetch_indices(create_quote_source("tencent"), calendar)
            if quotes is None:
                print(calendar.status())
            elif not quotes:
                print("No index quotes available", file=sys.stderr)
                exit_code = 1
            else:
                for quote in quotes:
                    print(quote.format())

        elif args.command == "health":
            owners = store.list_owners() if args.all else [args.owner]
            source = create_quote_source("tencent")
            for owner in owners:
                report = collect_health(store, source, calendar, owner)
                for line in report.lines():
                    print(line)
                if args.send:
                    status = send_healthcheck(report)
                    print("Health check not sent" if status is None else f"Sent (status: {status})")

        elif args.command == "db":
            print("Database initialized")

        else:
            parser.print_help()

    except MonitorValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        exit_code = 1
    finally:
        db.close()

    sys.exit(exit_code)


def _handle_monitor(args, store: MonitorRepository, calendar: TradingCalendar) -> int:
    if args.action == "add":
        monitor = add_monitor(store, args.owner, args.code, args.metric, name=args.name)
        print(f"Created monitor with ID: {monitor.id}")
        return 0

    if args.action == "edit":
        updated = edit_monitor(store, args.id, name=args.name, code=args.code, metric_args=args.metric)
        if updated is None:
            print(f"Monitor not found: {args.id}", file=sys.stderr)
            return 1
        print(format_monitor(updated))
        return 0

    if args.action == "list":
        for monitor in store.load_all(args.owner):
            print(format_monitor(monitor))
        return 0

    if args.action == "remove":
        if store.delete(args.id):
            print(f"Removed monitor {args.id}")
            return 0
        print(f"Monitor not found: {args.id}", file=sys.stderr)
        return 1

    engine = _build_engine(store, calendar)
    if args.action in ("pause", "resume"):
        updated = asyncio.run(engine.set_monitor_active(args.id, args.action == "resume"))
    elif args.action == "reset" and args.metric:
        updated = asyncio.run(engine.reset_rule(args.id, args.metric))
    elif args.action == "reset":
        updated = asyncio.run(engine.reset_monitor(args.id))
    else:
        return 1

    if updated is None:
        print(f"Monitor or metric not found: {args.id}", file=sys.stderr)
        return 1
    print(format_monitor(updated))
    return 0


if __name__ == "__main__":
    main()
