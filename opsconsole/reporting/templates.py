"""Column layouts and row mappers for the console's CSV/Excel/Sheets exports."""
from typing import Any, Dict, Iterable, List

from opsconsole.core.models import ManualOrder, RepeatLead
from opsconsole.processing.filters import fmt_ist
from opsconsole.processing.ndr import EnrichedNdr

NDR_EXPORT_HEADERS = [
    "Date (IST)",
    "Order ID",
    "AWB",
    "Current Status",
    "Courier",
    "Mobile",
    "Call Status",
    "Issue (Customer)",
    "Action Taken",
    "EDD",
    "Remarks",
    "Location",
    "Final Status",
]

REPEAT_EXPORT_HEADERS = [
    "email",
    "phone",
    "order_count",
    "order_numbers",
    "first_order",
    "last_order",
    "assigned_to",
    "call_status",
    "team_id",
]

AGENT_EXPORT_HEADERS = ["Agent", "Total", "Last Activity"]

TRACKING_HISTORY_HEADERS = ["orderNumber", "trackingCode", "timestamp", "phoneNumber"]


def _call_status(row: EnrichedNdr) -> str:
    if row.call_status:
        return row.call_status
    if row.record.called is None:
        return ""
    return "Yes" if row.record.called else "No"


def ndr_to_export_row(row: EnrichedNdr) -> Dict[str, Any]:
    record = row.record
    return {
        "Date (IST)": fmt_ist(record.event_time),
        "Order ID": record.order_id,
        "AWB": record.waybill,
        "Current Status": record.delivery_status or "",
        "Courier": row.courier,
        "Mobile": row.phone,
        "Call Status": _call_status(row),
        "Issue (Customer)": row.notes.customer_issue or "",
        "Action Taken": row.notes.action_taken or "",
        "EDD": row.edd.label,
        "Remarks": record.remark or "",
        "Location": record.location or "",
        "Final Status": record.final_status or "",
    }


def ndr_export_rows(rows: Iterable[EnrichedNdr]) -> List[Dict[str, Any]]:
    return [ndr_to_export_row(row) for row in rows]


def lead_to_export_row(lead: RepeatLead) -> Dict[str, Any]:
    return {
        "email": lead.email,
        "phone": lead.phone or "",
        "order_count": lead.order_count,
        "order_numbers": "|".join(lead.order_numbers),
        "first_order": lead.first_order or "",
        "last_order": lead.last_order or "",
        "assigned_to": lead.assigned_to or "",
        "call_status": lead.call_status or "",
        "team_id": "" if lead.team_id is None else str(lead.team_id),
    }


def lead_export_rows(leads: Iterable[RepeatLead]) -> List[Dict[str, Any]]:
    return [lead_to_export_row(lead) for lead in leads]


def agent_export_rows(aggregates: Iterable[Any]) -> List[Dict[str, Any]]:
    return [
        {
            "Agent": agg.agent,
            "Total": agg.total,
            "Last Activity": agg.last_activity.isoformat() if agg.last_activity else "",
        }
        for agg in aggregates
    ]


MANUAL_ORDER_EXPORT_HEADERS = [
    "id",
    "order_date",
    "order_id",
    "status",
    "quantity",
    "shipping_partner",
    "servicable",
    "tracking_code",
    "customer_name",
    "phone_number",
    "source",
    "created_by",
    "created_at",
]

ASSIGNMENT_REPORT_HEADERS = ["assigned_to", "assigned_at", "courier_account", "email_sent", "notes"]


def manual_order_export_rows(orders: Iterable[ManualOrder]) -> List[Dict[str, Any]]:
    rows = []
    for order in orders:
        data = order.to_dict()
        rows.append({key: "" if data.get(key) is None else data[key] for key in MANUAL_ORDER_EXPORT_HEADERS})
    return rows


def assignment_report_rows(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{key: "" if row.get(key) is None else row[key] for key in ASSIGNMENT_REPORT_HEADERS} for row in rows]
