#!/usr/bin/env python3
"""Command-line interface for reconciliation tools.

Reconciles a bank statement file against the payments database.

Usage:
    university-payments-reconcile reconcile --file statement.csv
    university-payments-reconcile reconcile --file statement.json --start 2024-01-01 --end 2024-01-31 --output report.json
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timedelta
from typing import Optional

from ..config import Settings, configure_logging
from ..database import DatabaseManager
from ..errors import PaymentsError
from .service import REPORT_FORMATS, ReconciliationService
from .statements import get_statement_loader

logger = logging.getLogger(__name__)


def parse_datetime(dt_string: str) -> datetime:
    """Parse datetime string in various formats.

    Args:
        dt_string: Datetime string in ISO format or date format.

    Returns:
        Parsed datetime object.

    Raises:
        ValueError: If the string cannot be parsed.
    """
    formats = [
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(dt_string, fmt)
        except ValueError:
            continue

    raise ValueError(
        f"Unable to parse datetime: {dt_string}. "
        f"Expected formats: YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS"
    )


async def run_reconciliation_async(
    statement_file: str,
    settings: Settings,
    statement_format: Optional[str] = None,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    output_file: Optional[str] = None,
    output_format: str = "json",
    include_details: bool = True,
    validate: bool = False,
) -> int:
    """Run reconciliation asynchronously.

    Returns:
        Exit code: 0 when everything reconciles, 1 when discrepancies were
        found, 2 when reconciliation could not run.
    """
    try:
        loader = get_statement_loader(statement_format, statement_file)
        bank_records = loader.load(statement_file)
    except (OSError, ValueError, PaymentsError) as e:
        logger.error(str(e))
        return 2

    db = DatabaseManager(settings.database_url, settings.database_echo)
    await db.initialize()

    try:
        async with db.session() as session:
            service = ReconciliationService(session, settings.validation)
            result = await service.reconcile(
                bank_records,
                start=start_time,
                end=end_time,
                validate=validate,
            )
            output = service.generate_report(
                result,
                format=output_format,
                include_details=include_details,
            )
    except PaymentsError as e:
        logger.error(e.message)
        for error in e.errors:
            logger.error(f"  {error}")
        return 2
    finally:
        await db.shutdown()

    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
        logger.info(f"Report written to {output_file}")
    else:
        print(output)

    if not result.reconciliation_successful:
        logger.warning(
            f"Reconciliation completed with issues: "
            f"{len(result.unmatched_bank_records)} unmatched, "
            f"{len(result.missing_payments)} missing, "
            f"{result.total_discrepancies} discrepancies"
        )
        return 1
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="university-payments-reconcile",
        description="Reconcile bank statements against stored student payments.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Reconcile a bank statement file",
    )
    reconcile_parser.add_argument(
        "--file", "-i",
        required=True,
        help="Bank statement file (CSV or JSON)",
    )
    reconcile_parser.add_argument(
        "--statement-format",
        choices=["csv", "json"],
        help="Statement format (default: from file extension)",
    )
    reconcile_parser.add_argument(
        "--start", "-s",
        help="Start of the missing-payment window (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS)",
    )
    reconcile_parser.add_argument(
        "--end", "-e",
        help="End of the missing-payment window (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS)",
    )
    reconcile_parser.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)",
    )
    reconcile_parser.add_argument(
        "--format", "-f",
        choices=list(REPORT_FORMATS),
        default="json",
        help="Output format (default: json)",
    )
    reconcile_parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Only include summary statistics, not detailed records",
    )
    reconcile_parser.add_argument(
        "--validate",
        action="store_true",
        help="Reject the statement if any record breaks the field rules",
    )

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    settings = Settings()
    configure_logging(settings.log_level)

    if parsed_args.command == "reconcile":
        try:
            start_time = parse_datetime(parsed_args.start) if parsed_args.start else None
            end_time = parse_datetime(parsed_args.end) if parsed_args.end else None
        except ValueError as e:
            logger.error(str(e))
            return 1

        # A bare end date covers the whole day
        if end_time is not None and "T" not in parsed_args.end and " " not in parsed_args.end:
            end_time = end_time + timedelta(days=1) - timedelta(microseconds=1)

        return asyncio.run(run_reconciliation_async(
            statement_file=parsed_args.file,
            settings=settings,
            statement_format=parsed_args.statement_format,
            start_time=start_time,
            end_time=end_time,
            output_file=parsed_args.output,
            output_format=parsed_args.format,
            include_details=not parsed_args.summary_only,
            validate=parsed_args.validate,
        ))

    return 0


if __name__ == "__main__":
    sys.exit(main())
