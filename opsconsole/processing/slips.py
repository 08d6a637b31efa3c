"""Courier slips: reading slip rows, filtering them and rendering printable HTML."""
from __future__ import annotations

import html
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from opsconsole.core.utils import pick_field
from opsconsole.processing.filters import format_date_display, to_ymd

PACKET_WEIGHT_GRAMS = 450
INDIA_POST = "india post"
INDIA_POST_NOTE = "Speed Post Booked Under Advance Customer ID: 1790889211 @coimbatore HPO"
CUSTOMER_ID_NOTE = "Speed post booked under the customer id 1790889211"
FROM_ADDRESS = (
    "TSMC Creations India\n"
    "14/5 2nd Floor, Sri Saara Towers,\n"
    "Balasundaram Road, Paapanaickenpalayam,\n"
    "Coimbatore, TN - 641037"
)

AGENT_KEYS = ("Agent", "agent", "Agent Name", "agent_name")
DATE_KEYS = ("Date", "date", "Order date", "Order Date", "order_date", "status")
SLIP_FIELDS = ["Id", "Date", "Order ID", "Quanity", "Shipping", "Address", "Phone number", "Notes", "Agent", "Order status", "Tracking"]


@dataclass
class SlipRecord:
    """One shipment ready for a slip, from NocoDB or the slip webhook."""

    order_id: str
    address: str = ""
    phone: str = ""
    quantity: int = 1
    shipping: str = ""
    tracking: str = ""
    date: str = ""
    agent: str = ""
    status: str = ""
    row_id: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SlipRecord":
        qty = pick_field(row, ["Quanity", "Quantity", "qty", "Qty"], 1)
        try:
            quantity = max(1, int(float(qty)))
        except (TypeError, ValueError):
            quantity = 1
        row_id = row.get("Id")
        return cls(
            order_id=str(pick_field(row, ["Order ID", "order_id", "Order", "orderNumber"])).strip(),
            address=str(pick_field(row, ["Address", "address", "Shipping Address"])),
            phone=str(pick_field(row, ["Phone number", "phone", "Phone", "mobile"])),
            quantity=quantity,
            shipping=str(pick_field(row, ["Shipping", "courier_partner", "Courier"])).strip(),
            tracking=str(pick_field(row, ["Tracking", "tracking", "AWB", "awb"])).strip(),
            date=str(pick_field(row, DATE_KEYS)),
            agent=str(pick_field(row, AGENT_KEYS)),
            status=str(pick_field(row, ["Order status", "order_status"])),
            row_id=int(row_id) if isinstance(row_id, (int, float)) or str(row_id or "").isdigit() else None,
            raw=dict(row),
        )

    @property
    def is_india_post(self) -> bool:
        return self.shipping.lower() == INDIA_POST

    @property
    def weight(self) -> str:
        return package_weight(self.quantity)


def package_weight(quantity: int) -> str:
    """Shipping weight at 450 g per packet, e.g. ``"0.90 KG"``."""

    return f"{quantity * PACKET_WEIGHT_GRAMS / 1000:.2f} KG"


def parse_ship_to(address: str) -> Tuple[str, List[str], str]:
    """Split a slip address into name, street lines and the city/state line."""

    parts = [part.strip() for part in (address or "").split(",")]
    name = parts[0] if parts else ""
    street = [p for p in parts[1:-1] if p]
    city_state = parts[-1] if len(parts) > 1 else ""
    return name, street, city_state


def filter_slip_records(
    records: Iterable[SlipRecord],
    date: str = "",
    agent: str = "",
    status: str = "",
    shipping: str = "",
    search: str = "",
    only_with_tracking: bool = False,
) -> List[SlipRecord]:
    """Client-side filters of the slip screen; empty arguments are ignored."""

    wanted_date = to_ymd(date) if date else ""
    needle = search.strip().lower()
    result = []
    for record in records:
        if wanted_date and to_ymd(record.date) != wanted_date:
            continue
        if agent and record.agent != agent:
            continue
        if status and record.status != status:
            continue
        if shipping and record.shipping.lower() != shipping.lower():
            continue
        if needle and needle not in record.order_id.lower():
            continue
        if only_with_tracking and not record.tracking:
            continue
        result.append(record)
    return result


def parse_bulk_orders(text: str) -> List[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def validate_webhook_records(
    requested: Sequence[str],
    records: Iterable[Mapping[str, Any]],
    failures: Optional[Mapping[str, str]] = None,
) -> Tuple[List[SlipRecord], Dict[str, str]]:
    """Keep records carrying both an order id and tracking; explain the rest.

    Requested orders with no valid record and no earlier failure get
    ``"No valid Tracking returned"``.
    """

    valid = [SlipRecord.from_row(r) for r in records if r.get("Order ID") and r.get("Tracking")]
    valid_ids = {r.order_id for r in valid}
    merged = dict(failures or {})
    for order in (o.strip() for o in requested):
        if order and order not in valid_ids and order not in merged:
            merged[order] = "No valid Tracking returned"
    return valid, merged


SLIP_CSS = """
@page { size: auto; margin: 0; }
body { font-family: Arial, sans-serif; margin: 0; padding: 0; }
.slip { border: 2px solid #000; page-break-after: always; padding: 6px; }
.ship-to-label, .from-label { background: #000; color: #fff; padding: 3px 5px; font-weight: bold; display: inline-block; }
.address { font-size: 20px; line-height: 1.25; padding: 5px; }
.to-name { font-weight: 700; }
.detail-row { display: flex; gap: 8px; font-size: 16px; }
.detail-label { font-weight: 700; }
.india-post-note, .customer-id-note { font-weight: 700; }
.from-address { font-size: 12px; line-height: 1.4; white-space: pre-line; }
"""


def _slip_html(record: SlipRecord, from_address: str, customer_id_note: bool) -> str:
    esc = html.escape
    name, street, city_state = parse_ship_to(record.address)
    lines = ['<div class="slip">', '<div class="slip-header">', '<div class="ship-to-label">SHIP TO:</div>']
    if record.is_india_post:
        lines.append(f'<div class="detail-row india-post-note">{esc(INDIA_POST_NOTE)}</div>')
    lines.append('<div class="address">')
    if name:
        lines.append(f'<div class="to-name">{esc(name)}</div>')
    if street:
        lines.append(f"<div>{esc(', '.join(street))}</div>")
    if city_state:
        lines.append(f"<div>{esc(city_state)}</div>")
    lines.append("<div>India</div>")
    if record.phone:
        lines.append(f'<div class="phone-highlight">Phone: {esc(record.phone)}</div>')
    lines.extend(["</div>", "</div>", '<div class="order-details">'])

    details = [
        ("ORDER:", record.order_id),
        ("WEIGHT:", record.weight),
        ("DATE:", format_date_display(record.date) or "-"),
        ("SHIPPING:", f"{record.shipping} | Qty: {record.quantity}"),
    ]
    if record.tracking:
        details.append(("TRACKING:", record.tracking))
    for label, value in details:
        lines.append(
            f'<div class="detail-row"><div class="detail-label">{label}</div>'
            f'<div class="detail-value">{esc(str(value))}</div></div>'
        )
    if customer_id_note:
        lines.append(f'<div class="detail-row customer-id-note">{esc(CUSTOMER_ID_NOTE)}</div>')
    lines.append("</div>")
    lines.append(f'<div class="barcode" data-value="{esc(record.tracking or record.order_id)}"></div>')
    lines.append('<div class="from-section"><div class="from-label">FROM:</div>')
    lines.append(f'<div class="from-address">{esc(from_address)}</div></div>')
    lines.append("</div>")
    return "\n".join(lines)


def render_slips_html(
    records: Sequence[SlipRecord],
    from_address: str = FROM_ADDRESS,
    customer_id_notes: Iterable[str] = (),
) -> str:
    """A printable HTML document with one slip per record."""

    noted = set(customer_id_notes)
    body = "\n".join(_slip_html(r, from_address, r.order_id in noted) for r in records)
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"><title>Courier Slips</title>"
        f"<style>{SLIP_CSS}</style></head><body>\n{body}\n</body></html>"
    )
