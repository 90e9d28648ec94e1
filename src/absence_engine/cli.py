"""Absence engine command line interface.

Provides operational tools for:
- Working-day previews
- Schema creation
- Quota balance queries

Usage:
    python -m absence_engine.cli working-days --start 2025-03-03 --end 2025-03-14
    python -m absence_engine.cli init-db --database-url sqlite:///absence.db
    python -m absence_engine.cli quota --employee-id emp-1 --year 2025
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from absence_engine.calculators import WorkingDaysCalculator
from absence_engine.config import AbsencePolicy, configure_logging, get_settings
from absence_engine.database import get_engine, make_session_factory
from absence_engine.domain import AbsenceType
from absence_engine.errors import AbsenceEngineError
from absence_engine.models import Base
from absence_engine.services import RequestLifecycleService
from absence_engine.store import SqlAbsenceStore, SqlNotificationSink


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


class AbsenceCli:
    """Absence engine command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m absence_engine.cli",
            description="Absence engine operational tools",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            default=None,
            help="Logging level (default: LOG_LEVEL or INFO)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # working-days command
        working_days = subparsers.add_parser(
            "working-days",
            help="Count working days in a date range",
        )
        working_days.add_argument(
            "--start",
            type=parse_date,
            required=True,
            help="First day of the range (YYYY-MM-DD)",
        )
        working_days.add_argument(
            "--end",
            type=parse_date,
            required=True,
            help="Last day of the range (YYYY-MM-DD)",
        )
        working_days.add_argument(
            "--holiday",
            type=parse_date,
            action="append",
            default=[],
            help="Holiday to exclude; may be repeated",
        )
        working_days.add_argument(
            "--half-day",
            action="store_true",
            help="Count a half-day request",
        )
        working_days.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format",
        )

        # init-db command
        init_db = subparsers.add_parser(
            "init-db",
            help="Create the absence tables",
        )
        init_db.add_argument(
            "--database-url",
            type=str,
            help="Database URL (or set DATABASE_URL)",
        )

        # quota command
        quota = subparsers.add_parser(
            "quota",
            help="Show a quota balance",
        )
        quota.add_argument(
            "--employee-id",
            type=str,
            required=True,
            help="Employee to query",
        )
        quota.add_argument(
            "--year",
            type=int,
            required=True,
            help="Quota year",
        )
        quota.add_argument(
            "--type",
            dest="absence_type",
            choices=[t.value for t in AbsenceType],
            default=AbsenceType.VACATION.value,
            help="Absence type (default: vacation)",
        )
        quota.add_argument(
            "--database-url",
            type=str,
            help="Database URL (or set DATABASE_URL)",
        )
        quota.add_argument(
            "--format",
            choices=["text", "json"],
            default="text",
            help="Output format",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level)

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "working-days": self._cmd_working_days,
            "init-db": self._cmd_init_db,
            "quota": self._cmd_quota,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except AbsenceEngineError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 2
        except SQLAlchemyError as e:
            print(f"ERROR: database failure: {e}", file=sys.stderr)
            return 2

    def _cmd_working_days(self, args: argparse.Namespace) -> int:
        """Count working days."""
        calculator = WorkingDaysCalculator(args.holiday)
        days = calculator.count(args.start, args.end, half_day=args.half_day)

        if args.format == "json":
            print(
                json.dumps(
                    {
                        "start_date": args.start.isoformat(),
                        "end_date": args.end.isoformat(),
                        "half_day": args.half_day,
                        "holidays": sorted(h.isoformat() for h in args.holiday),
                        "working_days": str(days),
                    }
                )
            )
        else:
            print(f"{args.start.isoformat()} .. {args.end.isoformat()}: {days} working day(s)")
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create tables."""
        url = args.database_url or get_settings().database_url
        engine = get_engine(url)
        try:
            Base.metadata.create_all(engine)
        finally:
            engine.dispose()
        print(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")
        return 0

    def _cmd_quota(self, args: argparse.Namespace) -> int:
        """Show a quota balance."""
        settings = get_settings()
        engine = get_engine(args.database_url or settings.database_url)
        try:
            session_factory = make_session_factory(engine)
            service = RequestLifecycleService(
                store=SqlAbsenceStore(session_factory),
                sink=SqlNotificationSink(session_factory),
                policy=AbsencePolicy.from_settings(settings),
            )
            balance = service.quota_balance(
                args.employee_id, args.year, AbsenceType(args.absence_type)
            )
        finally:
            engine.dispose()

        if args.format == "json":
            print(
                json.dumps(
                    {
                        "employee_id": balance.employee_id,
                        "absence_type": balance.absence_type.value,
                        "year": balance.year,
                        "entitlement": str(balance.entitlement),
                        "used": str(balance.used),
                        "planned": str(balance.planned),
                        "remaining": str(balance.remaining),
                    }
                )
            )
            return 0

        print(f"Quota for {balance.employee_id} ({balance.absence_type.value}, {balance.year})")
        print("=" * 40)
        print(f"  Entitlement: {balance.entitlement}")
        print(f"  Used:        {balance.used}")
        print(f"  Planned:     {balance.planned}")
        print(f"  Remaining:   {balance.remaining}")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = AbsenceCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
