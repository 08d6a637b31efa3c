"""Shaping NDR rows for the dashboard: enrichment, filters, tiles and tabs."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from opsconsole.core.models import EddStatus, NdrNotes, NdrRecord
from opsconsole.processing.buckets import (
    ADDRESS_ISSUE,
    CNA,
    DELIVERED,
    courier_name,
    edd_status,
    effective_bucket,
)
from opsconsole.processing.filters import day_bounds, parse_date_flexible

ALL = "All"
COLUMN_KEYS = ("order", "awb", "status", "courier", "email", "call", "edd")


@dataclass
class EnrichedNdr:
    """An NDR row plus the values derived from it for display and filtering."""

    record: NdrRecord
    notes: NdrNotes
    bucket: str
    edd: EddStatus

    @property
    def phone(self) -> str:
        return self.notes.phone or ""

    @property
    def call_status(self) -> str:
        return self.notes.call_status or ""

    @property
    def courier(self) -> str:
        return courier_name(self.record.courier_account)

    def column_value(self, key: str) -> str:
        record = self.record
        values = {
            "order": record.order_id,
            "awb": record.waybill,
            "status": record.delivery_status or "",
            "courier": self.courier,
            "email": "Yes" if record.email_sent else "No",
            "call": self.call_status,
            "edd": self.edd.label or "—",
        }
        return str(values[key])


@dataclass
class NdrFilter:
    search: str = ""
    courier: str = ALL
    bucket: str = ALL
    remark: str = ALL
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    stat: str = "all"
    my_only: bool = False
    current_user: str = ""
    columns: Dict[str, List[str]] = field(default_factory=dict)


def enrich(records: Iterable[NdrRecord], today: Optional[date] = None) -> List[EnrichedNdr]:
    enriched = []
    for record in records:
        notes = record.parsed_notes
        enriched.append(
            EnrichedNdr(
                record=record,
                notes=notes,
                bucket=effective_bucket(record, notes),
                edd=edd_status(record.partner_edd, today),
            )
        )
    return enriched


def _matches_stat(row: EnrichedNdr, stat: str) -> bool:
    if stat == "edd_overdue":
        return row.edd.tone == "late"
    if stat == "due_today":
        return row.edd.tone == "warn"
    if stat == "cna_addr":
        return row.bucket in (CNA, ADDRESS_ISSUE)
    if stat == "resolved":
        return (row.record.status or "").lower() == "resolved"
    if stat == "delivered":
        return row.bucket == DELIVERED
    return True


def _haystack(row: EnrichedNdr) -> str:
    record = row.record
    parts = [
        record.order_id,
        record.waybill,
        record.delivery_status,
        record.remark,
        record.location,
        row.phone,
        row.notes.customer_issue,
        row.notes.action_taken,
    ]
    return " ".join(str(part or "") for part in parts).lower()


def filter_rows(rows: Sequence[EnrichedNdr], criteria: NdrFilter) -> List[EnrichedNdr]:
    """Apply toolbar, stat-tile, column, date-range and search filters in turn.

    The date range is inclusive on ``event_time``; rows with no event time
    are dropped while a range is active.
    """

    needle = criteria.search.strip().lower()
    lower, upper = day_bounds(criteria.date_from, criteria.date_to)
    result = []
    for row in rows:
        record = row.record
        if criteria.my_only and criteria.current_user and (record.assigned_to or "") != criteria.current_user:
            continue
        if criteria.courier != ALL and row.courier != criteria.courier:
            continue
        if criteria.bucket != ALL and row.bucket != criteria.bucket:
            continue
        if criteria.remark != ALL and (record.remark or "") != criteria.remark:
            continue
        if not _matches_stat(row, criteria.stat):
            continue
        if any(values and row.column_value(key) not in values for key, values in criteria.columns.items()):
            continue
        if lower or upper:
            moment = parse_date_flexible(record.event_time)
            if moment is None:
                continue
            if (lower and moment < lower) or (upper and moment > upper):
                continue
        if needle and needle not in _haystack(row):
            continue
        result.append(row)
    return result


def stats(rows: Sequence[EnrichedNdr]) -> Dict[str, int]:
    """Counters for the stat tiles, computed over the filtered rows."""

    return {
        "total": len(rows),
        "late": sum(1 for r in rows if r.edd.tone == "late"),
        "today": sum(1 for r in rows if r.edd.tone == "warn"),
        "cna": sum(1 for r in rows if r.bucket == CNA),
        "addr": sum(1 for r in rows if r.bucket == ADDRESS_ISSUE),
        "delivered": sum(1 for r in rows if r.bucket == DELIVERED),
        "resolved": sum(1 for r in rows if (r.record.status or "").lower() == "resolved"),
    }


def remark_tabs(rows: Iterable[EnrichedNdr], top: int = 6) -> Tuple[List[str], List[str]]:
    """Most common remarks as tabs (prefixed with "All"), the rest as overflow."""

    counts = Counter((row.record.remark or "").strip() for row in rows)
    counts.pop("", None)
    ordered = [remark for remark, _ in sorted(counts.items(), key=lambda item: -item[1])]
    return [ALL, *ordered[:top]], ordered[top:]


def courier_options(rows: Iterable[EnrichedNdr]) -> List[str]:
    seen: List[str] = []
    for row in rows:
        if row.courier and row.courier not in seen:
            seen.append(row.courier)
    return seen


def column_uniques(rows: Iterable[EnrichedNdr], key: str) -> List[str]:
    return sorted({row.column_value(key) for row in rows})


def needs_refresh(loaded_at: Optional[datetime], now: datetime, interval_seconds: int = 300) -> bool:
    """Whether the cached NDR list is older than the polling interval."""

    if loaded_at is None:
        return True
    return (now - loaded_at).total_seconds() >= interval_seconds
