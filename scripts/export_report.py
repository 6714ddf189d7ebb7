"""CLI script to export a bandwidth report view from a payload file to CSV.

Usage:
    python scripts/export_report.py --data report_data.json --output report.csv
        [--view overview|monthly|quarterly|user] [--user NAME]
        [--preset week|month|3months|6months | --start YYYY-MM-DD --end YYYY-MM-DD]
        [--name-mapping names.json] [--exclude ID ...]

This script loads the exported payload, selects the requested view and date
range the same way the interactive report does, and writes the
semicolon-separated, BOM-prefixed CSV export of that view.
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path

# Ensure project root is in the Python path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from bandwidth_report.schemas import RangePreset, ViewKind
from bandwidth_report.services.advisory import AdvisoryNotifier
from bandwidth_report.services.ingestion import load_dataset, load_name_mapping
from bandwidth_report.services.report_state import ApplyDateRange, SelectPreset, SelectView
from bandwidth_report.services.session import ReportSession

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}': expected YYYY-MM-DD")


def main(args=None):
    """Main entry point for the export CLI script.

    Args:
        args: Command-line arguments (defaults to sys.argv if None).

    Returns:
        Exit code (0 for success, 1 for failure).
    """
    parser = argparse.ArgumentParser(
        description="Export a bandwidth usage report view to CSV"
    )
    parser.add_argument(
        "--data",
        type=str,
        required=True,
        help="Path to the exported report payload (JSON or reportData script)",
    )
    parser.add_argument(
        "--output",
        type=str,
        required=True,
        help="Path of the CSV file to write",
    )
    parser.add_argument(
        "--view",
        choices=[kind.value for kind in ViewKind],
        default=ViewKind.OVERVIEW.value,
        help="Report view to export (default: overview)",
    )
    parser.add_argument(
        "--user",
        type=str,
        default=None,
        help="Display name of the user (required with --view user)",
    )
    parser.add_argument(
        "--preset",
        choices=[preset.value for preset in RangePreset],
        default=None,
        help="Predefined Shamsi range ending today",
    )
    parser.add_argument("--start", type=_iso_date, default=None, help="Range start (YYYY-MM-DD)")
    parser.add_argument("--end", type=_iso_date, default=None, help="Range end (YYYY-MM-DD)")
    parser.add_argument(
        "--name-mapping",
        type=str,
        default=None,
        help="JSON file mapping user ids to display names",
    )
    parser.add_argument(
        "--exclude",
        nargs="*",
        default=[],
        help="User ids or display names to leave out",
    )

    parsed_args = parser.parse_args(args)

    data_path = Path(parsed_args.data)
    if not data_path.exists():
        logger.error("Report payload not found: %s", data_path)
        return 1
    if parsed_args.view == ViewKind.USER.value and not parsed_args.user:
        logger.error("--user is required with --view user")
        return 1

    notifier = AdvisoryNotifier(timeout_seconds=0)
    try:
        mapping = load_name_mapping(parsed_args.name_mapping) if parsed_args.name_mapping else None
        dataset = load_dataset(data_path, mapping, parsed_args.exclude)
        session = ReportSession(dataset, notifier)

        if parsed_args.preset:
            session.dispatch(SelectPreset(preset=RangePreset(parsed_args.preset)))
        if parsed_args.start or parsed_args.end:
            session.dispatch(
                ApplyDateRange(
                    start=parsed_args.start or dataset.date_range.start_date,
                    end=parsed_args.end or dataset.date_range.end_date,
                )
            )
        session.dispatch(SelectView(view=ViewKind(parsed_args.view), user_name=parsed_args.user))

        result = session.export()
        if result is None:
            logger.error("Nothing to export for the selected view and range")
            return 1

        output = Path(parsed_args.output)
        output.write_text(result.content, encoding="utf-8", newline="")
        logger.info("Wrote %s (%s)", output, result.filename)
        return 0

    except FileNotFoundError as e:
        logger.error("File not found: %s", e)
        return 1
    except ValueError as e:
        logger.error("Data validation error: %s", e)
        return 1
    except Exception as e:
        logger.error("Unexpected error during export: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
