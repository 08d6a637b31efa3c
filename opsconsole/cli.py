"""Command line helpers for the batch jobs operators run outside the console."""
import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from opsconsole.clients.http import build_session
from opsconsole.clients.supabase import SupabaseClient
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.logging import configure_logging
from opsconsole.core.settings import load_settings
from opsconsole.core.store import LocalStore
from opsconsole.core.utils import read_file
from opsconsole.processing.aggregation import frequency_table
from opsconsole.processing.manifest import MANIFEST_HEADERS, build_manifest
from opsconsole.processing.slips import SlipRecord
from opsconsole.processing.tracking_csv import parse_tracking_csv
from opsconsole.reporting.sinks import SINKS, emit_rows
from opsconsole.reporting.templates import NDR_EXPORT_HEADERS, ndr_export_rows
from opsconsole.services.ndr import NdrService
from opsconsole.services.orders import OrderService

logger = logging.getLogger(__name__)

CATEGORY_HEADERS = ["label", "count", "percentage"]


def _add_sink_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", type=Path, required=True, help="File to write (suffix becomes .xlsx for --sink=excel)")
    parser.add_argument("--sink", choices=SINKS, default="csv", help="Where to write the rows")
    parser.add_argument("--spreadsheet-id", help="Google Sheets spreadsheet ID for the sheets sink")
    parser.add_argument("--worksheet", default="Sheet1", help="Worksheet title inside the Google Sheets document")
    parser.add_argument(
        "--service-account",
        type=Path,
        help="Path to a Google service account JSON key used for Sheets pushes",
    )


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with one subcommand per job."""

    parser = argparse.ArgumentParser(prog="opsconsole", description="Operations console batch jobs")
    commands = parser.add_subparsers(dest="command", required=True)

    tracking = commands.add_parser("tracking-upload", help="Send tracking numbers from a CSV export")
    tracking.add_argument("file", type=Path, help="CSV with Order and Tracking columns (Date and Phone optional)")
    tracking.add_argument("--dry-run", action="store_true", help="Parse and list the rows without sending them")

    categories = commands.add_parser("categories", help="Category frequency table for a feedback field")
    categories.add_argument("file", type=Path, help="JSON list of feedback records")
    categories.add_argument("--field", required=True, help="Feedback field to categorize, e.g. liked_features")
    categories.add_argument("--start", help="First day to include (YYYY-MM-DD)")
    categories.add_argument("--end", help="Last day to include (YYYY-MM-DD)")
    categories.add_argument("--groups", type=Path, help="JSON object mapping category labels to group names")
    categories.add_argument("--date-field", default="created_at", help="Record field holding the submission time")

    ndr = commands.add_parser("ndr-export", help="Export the NDR queue")
    _add_sink_options(ndr)

    manifest = commands.add_parser("manifest", help="Build a dispatch manifest from slip rows")
    manifest.add_argument("file", type=Path, help="CSV of slip rows (Order ID, Address, Shipping, Tracking, ...)")
    manifest.add_argument("--courier", help="Only include shipments for this courier")
    manifest.add_argument("--date", help="Only include orders dated this day")
    _add_sink_options(manifest)
    return parser


def _load_records(path: Path) -> List[Dict[str, Any]]:
    data = json.loads(read_file(path))
    if isinstance(data, dict):
        data = data.get("list") or data.get("records") or []
    if not isinstance(data, list):
        raise ValueError(f"{path} must hold a JSON list of records")
    return [row for row in data if isinstance(row, dict)]


def _load_groups(path: Optional[Path]) -> Dict[str, str]:
    if not path:
        return {}
    groups = json.loads(read_file(path))
    if not isinstance(groups, dict):
        raise ValueError(f"{path} must hold a JSON object of label -> group")
    return {str(k): str(v) for k, v in groups.items()}


def _sink_kwargs(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "sink": args.sink,
        "spreadsheet_id": args.spreadsheet_id,
        "worksheet_title": args.worksheet,
        "service_account_path": args.service_account,
    }


def run_tracking_upload(args: argparse.Namespace) -> None:
    entries = parse_tracking_csv(read_file(args.file))
    if not entries:
        raise ValueError(f"No valid tracking rows found in {args.file}")
    if args.dry_run:
        for entry in entries:
            print(f"{entry.order_number}\t{entry.tracking_code}\t{entry.timestamp}\t{entry.phone_number or ''}")
        print(f"Parsed {len(entries)} rows (dry run, nothing sent)")
        return
    settings = load_settings()
    orders = OrderService(WebhookClient(settings, build_session()), LocalStore(settings.state_file))
    sent = orders.submit_tracking_batch(entries)
    print(f"Submitted {sent} tracking updates")


def run_categories(args: argparse.Namespace) -> None:
    records = _load_records(args.file)
    table = frequency_table(
        records,
        args.field,
        args.start,
        args.end,
        date_field=args.date_field,
        groups=_load_groups(args.groups),
    )
    if not table:
        print(f"No records carry the field {args.field!r}")
        return
    writer = csv.writer(sys.stdout, lineterminator="\n")
    writer.writerow(CATEGORY_HEADERS)
    for row in table:
        writer.writerow([row.label, row.count, f"{row.percentage:.1f}"])


def run_ndr_export(args: argparse.Namespace) -> None:
    settings = load_settings()
    service = NdrService(SupabaseClient.from_settings(settings, build_session()), LocalStore(settings.state_file))
    service.load()
    rows = ndr_export_rows(service.enriched())
    path = emit_rows(rows, args.output, NDR_EXPORT_HEADERS, **_sink_kwargs(args))
    print(f"Wrote {path}")


def run_manifest(args: argparse.Namespace) -> None:
    with args.file.open(newline="", encoding="utf-8-sig") as handle:
        records = [SlipRecord.from_row(row) for row in csv.DictReader(handle)]
    rows, skipped = build_manifest(records, courier=args.courier, dispatch_date=args.date)
    if not rows:
        raise ValueError("No shipments with an AWB matched the manifest filters")
    path = emit_rows(rows, args.output, MANIFEST_HEADERS, **_sink_kwargs(args))
    if skipped:
        print(f"Skipped {len(skipped)} orders without an AWB: {', '.join(skipped)}")
    print(f"Wrote {path}")


COMMANDS = {
    "tracking-upload": run_tracking_upload,
    "categories": run_categories,
    "ndr-export": run_ndr_export,
    "manifest": run_manifest,
}


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entrypoint for ``opsconsole`` on the command line."""

    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        COMMANDS[args.command](args)
    except (RemoteRequestError, ValueError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main()
