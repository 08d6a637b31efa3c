"""Filters, status tallies and form validation for manually entered orders."""
from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from opsconsole.core.models import ManualOrder
from opsconsole.processing.filters import IST, to_ymd, within_range

STATUS_OPTIONS = ("New", "Packed", "Dispatched", "Delivered", "RTO", "NDR", "Pincode Not Service", "Cancelled")
SOURCE_OPTIONS = (
    "Amazon",
    "Website",
    "WhatsApp",
    "Incoming Call",
    "RTO Calls",
    "Resend",
    "Bluedart",
    "ST Courier",
    "Delhivery",
    "India Post",
    "Other",
)
NOTE_CHANNELS = ("Incoming Call", "RTO Calls", "WhatsApp", "Email", "System")
KPI_STATUSES = ("New", "Packed", "Dispatched", "Delivered", "RTO", "NDR")

_PHONE = re.compile(r"^\+?\d{10,15}$")


@dataclass
class ManualOrderFilter:
    search: str = ""
    statuses: Sequence[str] = ()
    sources: Sequence[str] = ()
    partners: Sequence[str] = ()
    created_by: str = ""
    start: Any = None
    end: Any = None


def _haystack(order: ManualOrder) -> str:
    parts = (
        order.customer_name,
        order.phone_number,
        order.order_id,
        order.tracking_code,
        order.address,
        order.source,
    )
    return " ".join("" if part is None else str(part) for part in parts).lower()


def filter_manual_orders(orders: Iterable[ManualOrder], criteria: ManualOrderFilter) -> List[ManualOrder]:
    """Apply search, multi-select and order-date filters; a date range drops undated rows."""

    needle = criteria.search.strip().lower()
    dated = bool(criteria.start or criteria.end)
    kept = []
    for order in orders:
        if needle and needle not in _haystack(order):
            continue
        if criteria.statuses and order.status not in criteria.statuses:
            continue
        if criteria.sources and order.source not in criteria.sources:
            continue
        if criteria.partners and (order.shipping_partner or "") not in criteria.partners:
            continue
        if criteria.created_by and order.created_by != criteria.created_by:
            continue
        if dated and not within_range(order.order_date, criteria.start, criteria.end):
            continue
        kept.append(order)
    return kept


def kpi_key(status: str) -> str:
    """Tally key for a status; statuses outside the known set count as ``New``."""

    if status == "Pincode Not Service":
        return "PNS"
    return status if status in STATUS_OPTIONS else "New"


def status_kpis(orders: Iterable[ManualOrder], today: Optional[date] = None) -> Dict[str, Counter]:
    """Status counts over all orders, today's orders and the last seven days."""

    today = today or datetime.now(IST).date()
    week_start = (today - timedelta(days=7)).isoformat()
    tallies = {"all": Counter(), "today": Counter(), "week": Counter()}
    for order in orders:
        key = kpi_key(order.status)
        tallies["all"][key] += 1
        day = to_ymd(order.order_date)
        if not day:
            continue
        if day >= today.isoformat():
            tallies["today"][key] += 1
        if day >= week_start:
            tallies["week"][key] += 1
    return tallies


def unique_values(values: Iterable[Optional[str]]) -> List[str]:
    return sorted({str(value) for value in values if value})


def validate_manual_order(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Check a create form and return the cleaned phone and quantity."""

    phone = re.sub(r"\s+", "", str(form.get("phone_number") or ""))
    if not form.get("source"):
        raise ValueError("Source is required")
    if not form.get("status"):
        raise ValueError("Status is required")
    if not str(form.get("customer_name") or "").strip():
        raise ValueError("Customer name is required")
    if not _PHONE.match(phone):
        raise ValueError("Phone must be 10-15 digits (can start with +)")
    try:
        quantity = int(form.get("quantity") or 0)
    except (TypeError, ValueError) as exc:
        raise ValueError("Quantity must be a whole number") from exc
    if quantity < 1:
        raise ValueError("Quantity must be at least 1")
    if form.get("status") == "Dispatched" and not (form.get("shipping_partner") and form.get("tracking_code")):
        raise ValueError("Shipping partner and tracking code are required for Dispatched")
    return {"phone_number": phone, "quantity": quantity}


def manual_order_payload(form: Mapping[str, Any], actor: str, today: Optional[date] = None) -> Dict[str, Any]:
    """Row body for a new ``manual_orders`` insert, dated today."""

    cleaned = validate_manual_order(form)
    today = today or datetime.now(IST).date()
    external = str(form.get("order_id") or "").strip()
    servicable = form.get("servicable")
    return {
        "created_by": actor,
        "source": str(form.get("source")),
        "order_date": today.isoformat(),
        "order_id": int(external) if external.isdigit() else None,
        "status": str(form.get("status") or "New"),
        "quantity": cleaned["quantity"],
        "shipping_partner": str(form.get("shipping_partner") or "") or None,
        "servicable": servicable if isinstance(servicable, bool) else True,
        "tracking_code": str(form.get("tracking_code") or "") or None,
        "customer_name": str(form.get("customer_name")).strip(),
        "address": str(form.get("address") or ""),
        "phone_number": cleaned["phone_number"],
        "notes": str(form.get("notes") or "") or None,
    }
