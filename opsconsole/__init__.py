"""Operations console for order fulfillment, NDR resolution and repeat-customer outreach."""
from opsconsole.core import (
    LocalStore,
    NdrRecord,
    RemoteRequestError,
    Settings,
    TrackingEntry,
    configure_logging,
    load_settings,
)
from opsconsole.processing.aggregation import drill_down, frequency_table
from opsconsole.processing.buckets import effective_bucket, to_bucket
from opsconsole.processing.tracking_csv import parse_tracking_csv
from opsconsole.reporting.sinks import emit_rows, push_to_google_sheets, write_csv, write_excel

__all__ = [
    "LocalStore",
    "NdrRecord",
    "RemoteRequestError",
    "Settings",
    "TrackingEntry",
    "configure_logging",
    "drill_down",
    "effective_bucket",
    "emit_rows",
    "frequency_table",
    "load_settings",
    "parse_tracking_csv",
    "push_to_google_sheets",
    "to_bucket",
    "write_csv",
    "write_excel",
]
