"""Agent analytics over NocoDB call tables, pivots, segmentation and batch edits."""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from opsconsole.clients.nocodb import NocoDBClient
from opsconsole.clients.supabase import SupabaseClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.processing.filters import parse_date_flexible, to_ymd, within_range
from opsconsole.processing.segmentation import segment_counts

logger = logging.getLogger(__name__)

UNASSIGNED = "(Unassigned)"
EMPTY = "(Empty)"

DATE_KEY_CANDIDATES = ("created_at", "Created At", "createdAt", "date", "Date", "timestamp", "updated_at", "Updated At")
STATUS_COLUMNS = ("Call Status", "Status", "Call status")
REASON_COLUMNS = ("Call reason", "Reason", "call_reason")
EMAIL_STATUS_COLUMNS = ("Call status", "Call Status", "Status")
ISSUE_COLUMNS = ("Issue Type", "Issue type", "Issue")
FINAL_STATUS_COLUMNS = ("Final status", "Final Status", "final_status")

ORDERS_TABLE_CANDIDATES = ("orders_all", "orders_all_rows", "orders_all_view")
SEGMENT_COLUMNS = "address,state,city,pincode,area,order_date,status"


@dataclass
class AgentAggregate:
    agent: str
    total: int = 0
    last_activity: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_activity"] = self.last_activity.isoformat() if self.last_activity else ""
        return data


@dataclass
class Pivot:
    """Day-by-value counts; ``column`` is None when no candidate column exists."""

    column: Optional[str]
    days: List[str] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    matrix: List[Tuple[str, List[int], int]] = field(default_factory=list)
    grand_totals: List[int] = field(default_factory=list)
    grand_total: int = 0


def detect_date_key(row: Mapping[str, Any], prefer_date_column: bool = False) -> Optional[str]:
    """First populated date-like column; missed-call tables prefer ``Date``."""

    if prefer_date_column:
        for key in ("Date", "date"):
            if row.get(key):
                return key
    for key in DATE_KEY_CANDIDATES:
        if row.get(key):
            return key
    return None


def filter_rows_by_range(
    rows: Iterable[Mapping[str, Any]],
    start: Any = None,
    end: Any = None,
    prefer_date_column: bool = False,
) -> List[Mapping[str, Any]]:
    """Keep rows inside the inclusive day range; undated rows are kept."""

    rows = list(rows)
    if not start and not end:
        return rows
    kept = []
    for row in rows:
        key = detect_date_key(row, prefer_date_column)
        if key is None or within_range(row.get(key), start, end, keep_undated=True):
            kept.append(row)
    return kept


def _cell(row: Mapping[str, Any], column: str, blank: str) -> str:
    value = row.get(column)
    text = "" if value is None else str(value).strip()
    return text or blank


def agent_aggregates(
    rows: Iterable[Mapping[str, Any]],
    agent_field: str = "Agent",
    query: str = "",
    min_total: Optional[int] = None,
    sort_key: str = "total",
    descending: bool = True,
) -> List[AgentAggregate]:
    by_agent: Dict[str, AgentAggregate] = {}
    for row in rows:
        name = _cell(row, agent_field, UNASSIGNED)
        agg = by_agent.setdefault(name, AgentAggregate(agent=name))
        agg.total += 1
        key = detect_date_key(row)
        when = parse_date_flexible(row.get(key)) if key else None
        if when is not None and (agg.last_activity is None or when > agg.last_activity):
            agg.last_activity = when

    result = list(by_agent.values())
    needle = query.strip().lower()
    if needle:
        result = [a for a in result if needle in a.agent.lower()]
    if min_total is not None:
        result = [a for a in result if a.total >= min_total]

    if sort_key == "agent":
        result.sort(key=lambda a: a.agent.lower(), reverse=descending)
    elif sort_key == "lastActivity":
        result.sort(key=lambda a: a.last_activity or datetime.min, reverse=descending)
    else:
        result.sort(key=lambda a: a.total, reverse=descending)
    return result


def pick_column(rows: Sequence[Mapping[str, Any]], candidates: Sequence[str]) -> Optional[str]:
    if not rows:
        return None
    return next((c for c in candidates if c in rows[0]), None)


def build_pivot(rows: Sequence[Mapping[str, Any]], date_key: str, candidates: Sequence[str]) -> Pivot:
    """Count rows per day and per value of the first candidate column present."""

    column = pick_column(rows, candidates)
    by_day: Dict[str, Counter] = defaultdict(Counter)
    for row in rows:
        day = to_ymd(row.get(date_key))
        if not day:
            continue
        by_day[day][_cell(row, column, EMPTY) if column else ""] += 1

    days = sorted(by_day)
    columns = sorted({value for counts in by_day.values() for value in counts}) if column else []
    matrix = []
    for day in days:
        counts = by_day[day]
        cells = [counts.get(c, 0) for c in columns]
        matrix.append((day, cells, sum(cells)))
    grand = [sum(row[1][i] for row in matrix) for i in range(len(columns))]
    return Pivot(column, days, columns, matrix, grand, sum(row[2] for row in matrix))


def pivot_drill(
    rows: Iterable[Mapping[str, Any]],
    column: Optional[str],
    value: Optional[str] = None,
    date_key: Optional[str] = None,
    day: Optional[str] = None,
) -> List[Mapping[str, Any]]:
    """Rows behind a pivot cell, column total or day total."""

    result = []
    for row in rows:
        if day and date_key and to_ymd(row.get(date_key)) != day:
            continue
        if value is not None and column and _cell(row, column, EMPTY) != value:
            continue
        result.append(row)
    return result


def table_pivots(rows: Sequence[Mapping[str, Any]], date_key: str, agent_field: str, email_table: bool = False) -> Dict[str, Pivot]:
    """The standard pivot set: status, agent and reason, plus final status for email."""

    if email_table:
        return {
            "status": build_pivot(rows, date_key, EMAIL_STATUS_COLUMNS),
            "agent": build_pivot(rows, date_key, (agent_field, "Agent", "agent")),
            "reason": build_pivot(rows, date_key, ISSUE_COLUMNS),
            "final": build_pivot(rows, date_key, FINAL_STATUS_COLUMNS),
        }
    return {
        "status": build_pivot(rows, date_key, STATUS_COLUMNS),
        "agent": build_pivot(rows, date_key, (agent_field, "Agent", "agent")),
        "reason": build_pivot(rows, date_key, REASON_COLUMNS),
    }


def batch_update_by_order_number(
    nocodb: NocoDBClient,
    table_id: str,
    order_field: str,
    updates: Mapping[str, Mapping[str, Any]],
) -> Dict[str, str]:
    """PATCH fields on the rows matching each order number.

    Returns ``{order_number: outcome}`` where the outcome is ``"updated N"``,
    ``"not found"`` or the error text.
    """

    if not order_field:
        raise ValueError("Choose the order number column")
    outcomes: Dict[str, str] = {}
    for order_number, fields in updates.items():
        order_number = str(order_number).strip()
        if not order_number:
            continue
        if not fields:
            outcomes[order_number] = "nothing to update"
            continue
        try:
            matches = nocodb.find_records(table_id, order_field, order_number)
            if not matches:
                outcomes[order_number] = "not found"
                continue
            nocodb.patch_records(table_id, [{"Id": row.get("Id"), **fields} for row in matches])
        except (RemoteRequestError, ValueError) as exc:
            logger.warning("Batch update failed for %s: %s", order_number, exc)
            outcomes[order_number] = str(exc)
            continue
        outcomes[order_number] = f"updated {len(matches)}"
    logger.info("Batch update finished for %d orders", len(outcomes))
    return outcomes


def parse_batch_updates(rows: Iterable[Mapping[str, Any]], order_field: str) -> Dict[str, Dict[str, Any]]:
    """Turn uploaded rows into ``{order_number: {field: value}}``; blank cells are ignored."""

    updates: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        order_number = str(row.get(order_field) or "").strip()
        if not order_number:
            continue
        fields = {k: v for k, v in row.items() if k != order_field and k and str(v or "").strip()}
        updates.setdefault(order_number, {}).update(fields)
    return updates


def load_segment_rows(supabase: SupabaseClient, start: str = "", end: str = "", status: str = "") -> List[Dict[str, Any]]:
    """Read order locations from the first orders table that exists."""

    params: Dict[str, Any] = {"select": SEGMENT_COLUMNS}
    bounds = []
    if start:
        bounds.append(f"order_date.gte.{start}T00:00:00")
    if end:
        bounds.append(f"order_date.lte.{end}T23:59:59.999")
    if bounds:
        params["and"] = f"({','.join(bounds)})"
    if status:
        params["status"] = f"ilike.*{status}*"

    last_error: Optional[RemoteRequestError] = None
    for table in ORDERS_TABLE_CANDIDATES:
        try:
            return supabase.select(table, params)
        except RemoteRequestError as exc:
            if exc.status_code not in (400, 404):
                raise
            last_error = exc
            logger.info("Orders table %s not available", table)
    raise RemoteRequestError(
        "Segmentation",
        last_error.status_code if last_error else None,
        f"orders table not found (tried {', '.join(ORDERS_TABLE_CANDIDATES)})",
    )


def load_segmentation(
    supabase: SupabaseClient,
    dims: Sequence[str] = ("state",),
    start: str = "",
    end: str = "",
    status: str = "",
) -> List[Dict[str, Any]]:
    rows = load_segment_rows(supabase, start, end, status)
    return segment_counts(rows, dims)
