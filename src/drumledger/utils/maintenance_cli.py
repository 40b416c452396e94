"""
Maintenance CLI Utility

Command-line interface for the admin recovery actions. Privilege checks are
the operator's concern; this tool performs whatever it is asked.

Usage Examples:
    # Recalculate one drum from its usage ledger
    python -m drumledger.utils.maintenance_cli recalculate 12

    # Recalculate every drum and reconcile catalog stock
    python -m drumledger.utils.maintenance_cli recalculate-all

    # Undo a month's catalog deductions (run recalculate-all afterwards)
    python -m drumledger.utils.maintenance_cli reset-month 3 2025

    # Show a drum's audit trail
    python -m drumledger.utils.maintenance_cli history DR-001 --limit 20

    # Check a drum's audit trail replays to its current quantity
    python -m drumledger.utils.maintenance_cli verify-trail DR-001

    # Show a month's usage per item
    python -m drumledger.utils.maintenance_cli monthly-summary 3 2025
"""

import argparse
import sys

from drumledger.services import (
    consumption_service,
    drum_history_service,
    drum_registry_service,
    monthly_usage_service,
)
from drumledger.services.database import initialize_app_database
from drumledger.services.exceptions import ServiceError
from drumledger.utils.constants import DEFAULT_HISTORY_LIMIT
from drumledger.utils.validators import format_meters


def recalculate_cmd(drum_id: int):
    """Recalculate a single drum."""
    print(f"Recalculating drum {drum_id}...")
    try:
        result = consumption_service.recalculate(drum_id)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    if result.adjusted:
        print(
            f"Drum {result.drum_number}: {format_meters(result.previous_quantity)}m -> "
            f"{format_meters(result.new_quantity)}m "
            f"({result.usage_count} usage record(s), {result.total_wastage:.2f}m wastage)"
        )
    else:
        print(f"Drum {result.drum_number}: already consistent at {format_meters(result.new_quantity)}m")
    return 0


def recalculate_all_cmd():
    """Recalculate every drum."""
    print("Recalculating all drums...")
    batch = consumption_service.recalculate_all()

    print(f"Processed: {batch.processed}")
    print(f"Adjusted: {batch.adjusted}")
    print(f"Items reconciled: {batch.items_reconciled}")

    if batch.failures:
        print(f"Failures: {len(batch.failures)}")
        for drum_id, message in batch.failures.items():
            print(f"  drum {drum_id}: {message}")
        return 1
    return 0


def reset_month_cmd(month: int, year: int):
    """Reset a month's rollups."""
    print(f"Resetting usage for {month:02d}/{year}...")
    try:
        result = monthly_usage_service.reset_month(month, year)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Summary rows reset: {result['items_reset']}")
    print(f"Items restored: {result['inventory_restored']}")
    print(f"Quantity restored: {format_meters(result['quantity_restored'])}")
    print("Run 'recalculate-all' to reconcile drum quantities with catalog stock.")
    return 0


def history_cmd(drum_number: str, limit: int):
    """Print a drum's audit trail, newest first."""
    try:
        drum = drum_registry_service.get_drum_by_number(drum_number)
        entries = drum_history_service.get_drum_history(drum.id, limit=limit)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"History for drum {drum.drum_number} ({len(entries)} entries)")
    for entry in entries:
        previous = (
            format_meters(entry["previous_quantity"])
            if entry["previous_quantity"] is not None
            else "-"
        )
        print(
            f"  {entry['created_at']}  {entry['action']:<18} "
            f"{previous} -> {format_meters(entry['new_quantity'])} "
            f"({entry['quantity_change']:+.2f})  {entry['notes'] or ''}"
        )
    return 0


def verify_trail_cmd(drum_number: str):
    """Check that a drum's audit trail accounts for its quantity."""
    try:
        drum = drum_registry_service.get_drum_by_number(drum_number)
        report = drum_history_service.verify_trail(drum.id)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    if report["consistent"]:
        print(f"Drum {drum.drum_number}: trail consistent at {format_meters(report['current_quantity'])}m")
        return 0

    print(
        f"Drum {drum.drum_number}: trail replays to {report['replayed_quantity']}, "
        f"drum holds {format_meters(report['current_quantity'])}m"
    )
    if report["breaks"]:
        print(f"  Discontinuous entries: {', '.join(str(b) for b in report['breaks'])}")
    return 1


def monthly_summary_cmd(month: int, year: int):
    """Print a month's usage per item."""
    try:
        rows = monthly_usage_service.get_monthly_summary(month, year)
    except ServiceError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Usage for {month:02d}/{year}")
    if not rows:
        print("  (no usage recorded)")
    for row in rows:
        print(
            f"  {row['item_name']:<30} used {format_meters(row['total_used'])} {row['unit']}, "
            f"stock {format_meters(row['current_stock'])}"
        )
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Maintenance utility for the Drum Ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Recalculate one drum:
    python -m drumledger.utils.maintenance_cli recalculate 12

  Month reset followed by reconciliation:
    python -m drumledger.utils.maintenance_cli reset-month 3 2025
    python -m drumledger.utils.maintenance_cli recalculate-all
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    recalculate_parser = subparsers.add_parser(
        "recalculate", help="Recalculate a drum from its usage ledger"
    )
    recalculate_parser.add_argument("drum_id", type=int, help="Drum ID")

    subparsers.add_parser(
        "recalculate-all", help="Recalculate all drums and reconcile catalog stock"
    )

    reset_parser = subparsers.add_parser(
        "reset-month", help="Restore a month's usage to catalog stock and clear it"
    )
    reset_parser.add_argument("month", type=int, help="Month (1-12)")
    reset_parser.add_argument("year", type=int, help="Year")

    history_parser = subparsers.add_parser("history", help="Show a drum's audit trail")
    history_parser.add_argument("drum_number", help="Drum number (e.g. DR-001)")
    history_parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_HISTORY_LIMIT,
        help=f"Maximum entries to show (default: {DEFAULT_HISTORY_LIMIT})",
    )

    verify_parser = subparsers.add_parser(
        "verify-trail", help="Check a drum's audit trail against its quantity"
    )
    verify_parser.add_argument("drum_number", help="Drum number (e.g. DR-001)")

    summary_parser = subparsers.add_parser("monthly-summary", help="Show a month's usage per item")
    summary_parser.add_argument("month", type=int, help="Month (1-12)")
    summary_parser.add_argument("year", type=int, help="Year")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    initialize_app_database()

    if args.command == "recalculate":
        return recalculate_cmd(args.drum_id)
    elif args.command == "recalculate-all":
        return recalculate_all_cmd()
    elif args.command == "reset-month":
        return reset_month_cmd(args.month, args.year)
    elif args.command == "history":
        return history_cmd(args.drum_number, args.limit)
    elif args.command == "verify-trail":
        return verify_trail_cmd(args.drum_number)
    elif args.command == "monthly-summary":
        return monthly_summary_cmd(args.month, args.year)
    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
