"""Parse bulk tracking-number uploads exported from courier portals or sheets."""
from __future__ import annotations

import csv
import io
import logging
from typing import Dict, List, Optional, Sequence

from opsconsole.core.models import TrackingEntry
from opsconsole.core.utils import now_iso
from opsconsole.processing.filters import parse_date_flexible

logger = logging.getLogger(__name__)

ORDER_HEADERS = ("order", "order_number", "order id", "orderid", "ordernumber")
TRACKING_HEADERS = (
    "tracking",
    "tracking_code",
    "awb",
    "tracking code",
    "awb number",
    "consignment no",
    "consignment number",
)
TIMESTAMP_HEADERS = ("timestamp", "date", "updated_at")
PHONE_HEADERS = ("phone", "mobile", "customer_phone", "phone number", "contact", "contact number")


def _column(headers: Sequence[str], aliases: Sequence[str]) -> Optional[int]:
    for index, header in enumerate(headers):
        if header in aliases:
            return index
    return None


def _cell(row: Sequence[str], index: Optional[int]) -> str:
    if index is None or index >= len(row):
        return ""
    return row[index].strip()


def _timestamp(raw: str, fallback: str) -> str:
    parsed = parse_date_flexible(raw) if raw else None
    return parsed.isoformat() if parsed else fallback


def parse_tracking_csv(text: str, now: Optional[str] = None) -> List[TrackingEntry]:
    """Read entries from CSV text with a header row.

    Headers are matched case-insensitively against known aliases. Quoted
    cells may contain commas. Blank lines are ignored and rows without an
    order number or tracking code are dropped. Missing or unreadable
    timestamps become ``now``.
    """

    rows = [row for row in csv.reader(io.StringIO(text.strip().lstrip("\ufeff"))) if any(cell.strip() for cell in row)]
    if not rows:
        return []

    headers = [cell.strip().lower() for cell in rows[0]]
    order_col = _column(headers, ORDER_HEADERS)
    tracking_col = _column(headers, TRACKING_HEADERS)
    if order_col is None or tracking_col is None:
        raise ValueError("CSV needs an order column and a tracking column (e.g. Order, Tracking)")
    time_col = _column(headers, TIMESTAMP_HEADERS)
    phone_col = _column(headers, PHONE_HEADERS)

    fallback = now or now_iso()
    entries: List[TrackingEntry] = []
    skipped = 0
    for row in rows[1:]:
        order = _cell(row, order_col)
        tracking = _cell(row, tracking_col)
        if not order or not tracking:
            skipped += 1
            continue
        entries.append(
            TrackingEntry(
                order_number=order,
                tracking_code=tracking,
                timestamp=_timestamp(_cell(row, time_col), fallback),
                phone_number=_cell(row, phone_col) or None,
            )
        )
    if skipped:
        logger.info("Skipped %d CSV rows without order or tracking", skipped)
    return entries


def entries_to_rows(entries: Sequence[TrackingEntry]) -> List[Dict[str, str]]:
    return [entry.to_payload() for entry in entries]
