"""NDR bucket classification and the small display helpers around it.

Buckets are derived from the courier's free-text fields with a fixed
priority order. An agent can pin a row to a bucket by storing
``bucket_override`` in the row's notes.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from opsconsole.core.models import EddStatus, NdrNotes, NdrRecord
from opsconsole.processing.filters import IST, parse_date_flexible

logger = logging.getLogger(__name__)

DELIVERED = "Delivered"
CNA = "CNA"
PREMISES_CLOSED = "Premises Closed"
ADDRESS_ISSUE = "Address Issue"
PENDING = "Pending"
RTO = "RTO"
OTHER = "Other"

BUCKETS = (DELIVERED, CNA, PREMISES_CLOSED, ADDRESS_ISSUE, PENDING, RTO, OTHER)
# Order used for the bucket tabs in the dashboard.
BUCKET_TABS = (PENDING, CNA, PREMISES_CLOSED, ADDRESS_ISSUE, RTO, DELIVERED, OTHER)

ACTION_OPTIONS = (
    "Requested reattempt",
    "Address updated",
    "Asked customer to collect from hub",
    "Asked courier to reattempt tomorrow",
    "Raised ticket with courier",
    "Requested RTO",
    "Left voicemail/SMS",
    "Wrong address - requested confirmation",
    "Other",
)

CALL_STATUS_OPTIONS = (
    "Yes",
    "No",
    "Didn't Pick",
    "Busy",
    "Asked to call later",
    "Wrong Number",
    "Invalid Number",
)

FINAL_STATUS_OPTIONS = (
    "Delivered",
    "Fake delivery",
    "Returned",
    "Refund",
    "Damage",
    "Invalid Number",
    "Address/Number issue",
)

DEFAULT_TRACKING_PAGE = "https://aurawill.clickpost.ai/en?waybill="


def to_bucket(record: NdrRecord) -> str:
    """Classify a row from its remark, delivery status, NDR description and RTO AWB."""

    remark = (record.remark or "").upper()
    status = (record.delivery_status or "").upper()
    description = (record.ndr_desc or "").lower()

    if "DELIVERED" in remark:
        return DELIVERED
    if "CONSIGNEE NOT AVAILABLE" in status:
        return CNA
    if "PREMISES CLOSED" in status:
        return PREMISES_CLOSED
    if "ADDRESS" in status or "NEED DEPARTMENT" in status:
        return ADDRESS_ISSUE
    if "PENDING" in status or "no attempt" in description:
        return PENDING
    if record.rto_awb:
        return RTO
    return OTHER


def effective_bucket(record: NdrRecord, notes: Optional[NdrNotes] = None) -> str:
    """The manual override when one is stored, else the derived bucket."""

    notes = notes if notes is not None else record.parsed_notes
    if notes.bucket_override:
        return notes.bucket_override
    return to_bucket(record)


def with_bucket_override(notes_text: Optional[str], bucket: str) -> str:
    """Return the notes JSON with ``bucket_override`` set to ``bucket``."""

    if bucket not in BUCKETS:
        raise ValueError(f"Unknown bucket {bucket!r}; expected one of {', '.join(BUCKETS)}")
    notes = NdrNotes.parse(notes_text)
    notes.bucket_override = bucket
    return notes.to_json()


def courier_name(account: Any) -> str:
    """Collapse courier account names such as ``bluedart_surface_2`` to a brand."""

    if account in (None, ""):
        return "—"
    text = str(account)
    lowered = text.lower()
    if "bluedart" in lowered:
        return "Bluedart"
    if "delhivery" in lowered:
        return "Delhivery"
    return text


def tracking_url(waybill: Any, base: str = DEFAULT_TRACKING_PAGE) -> str:
    if not waybill:
        return ""
    return f"{base}{waybill}"


def edd_status(edd: Any, today: Optional[date] = None) -> EddStatus:
    """Compare the partner's EDD against today: overdue, due today, or upcoming."""

    parsed = parse_date_flexible(edd)
    if parsed is None:
        return EddStatus(label="—", tone="na")

    today = today or datetime.now(IST).date()
    diff = (parsed.date() - today).days
    if diff < 0:
        return EddStatus(label=f"{abs(diff)}d overdue", tone="late", diff=diff)
    if diff == 0:
        return EddStatus(label="Due today", tone="warn", diff=0)
    return EddStatus(label=f"In {diff}d", tone="ok", diff=diff)
