"""Dispatch manifests handed to the courier at pickup."""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from opsconsole.processing.filters import to_ymd
from opsconsole.processing.segmentation import parse_from_address
from opsconsole.processing.slips import PACKET_WEIGHT_GRAMS, SlipRecord, parse_ship_to

logger = logging.getLogger(__name__)

MANIFEST_HEADERS = [
    "S.No",
    "Order ID",
    "AWB",
    "Customer",
    "Phone",
    "City",
    "Pincode",
    "Qty",
    "Weight (KG)",
    "Courier",
]


def group_by_courier(records: Iterable[SlipRecord]) -> "OrderedDict[str, List[SlipRecord]]":
    groups: "OrderedDict[str, List[SlipRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(record.shipping or "Unassigned", []).append(record)
    return groups


def build_manifest(
    records: Iterable[SlipRecord],
    courier: Optional[str] = None,
    dispatch_date: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], List[str]]:
    """Rows for one manifest plus the order ids left out for lacking an AWB.

    ``courier`` and ``dispatch_date`` narrow the records when given.
    """

    wanted_day = to_ymd(dispatch_date) if dispatch_date else ""
    rows: List[Dict[str, Any]] = []
    skipped: List[str] = []
    for record in records:
        if courier and record.shipping.lower() != courier.lower():
            continue
        if wanted_day and to_ymd(record.date) != wanted_day:
            continue
        if not record.tracking:
            skipped.append(record.order_id)
            continue
        name, _, _ = parse_ship_to(record.address)
        location = parse_from_address(record.address)
        rows.append(
            {
                "S.No": len(rows) + 1,
                "Order ID": record.order_id,
                "AWB": record.tracking,
                "Customer": name,
                "Phone": record.phone,
                "City": location["city"] or "",
                "Pincode": location["pincode"] or "",
                "Qty": record.quantity,
                "Weight (KG)": f"{record.quantity * PACKET_WEIGHT_GRAMS / 1000:.2f}",
                "Courier": record.shipping,
            }
        )
    if skipped:
        logger.warning("Left %d orders off the manifest without an AWB: %s", len(skipped), ", ".join(skipped))
    return rows, skipped


def manifest_summary(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "shipments": len(rows),
        "packets": sum(int(row["Qty"]) for row in rows),
        "weight_kg": round(sum(float(row["Weight (KG)"]) for row in rows), 2),
    }
