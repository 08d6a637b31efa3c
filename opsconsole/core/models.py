"""Data models for the remote rows the console reads and edits.

Each ``from_row`` constructor is the single place where loosely named
backend columns are resolved into typed fields.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from opsconsole.core.utils import pick_field


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_optional_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _as_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "1")
    return None


@dataclass
class Order:
    """A storefront order as returned by the order webhooks."""

    order_number: str
    order_id: Optional[str] = None
    status: Optional[str] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    product: Optional[str] = None
    variant: Optional[str] = None
    quantity: int = 1
    price: Optional[float] = None
    tracking_company: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    expected_delivery: Optional[str] = None
    order_date: Optional[str] = None
    call_status: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Order":
        return cls(
            order_number=str(pick_field(row, ["order_number", "orderNumber", "Order Number", "Order"])),
            order_id=_as_text(pick_field(row, ["order_id", "orderId", "Order ID", "id"], None)),
            status=_as_text(pick_field(row, ["status", "Status"], None)),
            customer_name=_as_text(pick_field(row, ["customer_name", "customerName", "Customer Name", "customer"], None)),
            phone=_as_text(pick_field(row, ["phone", "Phone", "customer_phone", "mobile"], None)),
            email=_as_text(pick_field(row, ["email", "Email"], None)),
            address=_as_text(pick_field(row, ["address", "Address", "shipping_address"], None)),
            product=_as_text(pick_field(row, ["product", "productName", "Product", "product_name"], None)),
            variant=_as_text(pick_field(row, ["variant", "Variant"], None)),
            quantity=_as_int(pick_field(row, ["quantity", "Quantity", "qty", "Qty"], 1), 1),
            price=_as_float(pick_field(row, ["price", "Price", "total_price"], None)),
            tracking_company=_as_text(pick_field(row, ["tracking_company", "Tracking Company", "courier"], None)),
            tracking_number=_as_text(pick_field(row, ["tracking_number", "trackingNumber", "Tracking", "awb"], None)),
            tracking_url=_as_text(pick_field(row, ["tracking_url", "trackingUrl"], None)),
            expected_delivery=_as_text(pick_field(row, ["expected_delivery", "Expected Delivery"], None)),
            order_date=_as_text(pick_field(row, ["order_date", "Date", "date", "created_at"], None)),
            call_status=_as_text(pick_field(row, ["call_status", "Call Status"], None)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ManualOrder:
    """A row of the ``manual_orders`` table kept by the support desk.

    Older rows were imported from a sheet, so several columns have legacy
    spellings (``ordernumber``, ``Quanity``, ``Agent Name``).
    """

    id: str
    created_at: str = ""
    created_by: str = ""
    source: str = ""
    order_date: str = ""
    order_id: Optional[int] = None
    status: str = ""
    quantity: int = 1
    shipping_partner: Optional[str] = None
    servicable: Optional[bool] = None
    tracking_code: Optional[str] = None
    customer_name: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], default_actor: str = "") -> "ManualOrder":
        order_date = row.get("order_date") or str(row.get("date") or "")[:10]
        servicable = row.get("servicable")
        return cls(
            id=str(pick_field(row, ["id", "ID", "pk"])),
            created_at=str(row.get("created_at") or row.get("updated_at") or ""),
            created_by=str(pick_field(row, ["created_by", "Agent Name", "agent"], default_actor)),
            source=str(pick_field(row, ["source", "Source", "Order type"])),
            order_date=str(order_date or "")[:10],
            order_id=_as_optional_int(pick_field(row, ["order_id", "ordernumber"], None)),
            status=str(pick_field(row, ["status", "Status"])),
            quantity=_as_int(pick_field(row, ["quantity", "Quanity"], 1), 1) or 1,
            shipping_partner=_as_text(pick_field(row, ["shipping_partner", "shipping"], None)),
            servicable=servicable if isinstance(servicable, bool) else _as_flag(row.get("Servicable")),
            tracking_code=_as_text(pick_field(row, ["tracking_code", "trackingnumber", "Tracking code"], None)),
            customer_name=_as_text(pick_field(row, ["customer_name", "customername", "Customer Name"], None)),
            address=_as_text(pick_field(row, ["address", "Address"], None)),
            phone_number=_as_text(pick_field(row, ["phone_number", "phone", "Phone number"], None)),
            notes=_as_text(pick_field(row, ["notes", "Notes"], None)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrackingEntry:
    """One tracking-number update pushed to the tracking webhook."""

    order_number: str
    tracking_code: str
    timestamp: str
    phone_number: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "orderNumber": self.order_number,
            "trackingCode": self.tracking_code,
            "timestamp": self.timestamp,
            "phoneNumber": self.phone_number or "",
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TrackingEntry":
        return cls(
            order_number=str(payload.get("orderNumber", "")),
            tracking_code=str(payload.get("trackingCode", "")),
            timestamp=str(payload.get("timestamp", "")),
            phone_number=_as_text(payload.get("phoneNumber")),
        )


NOTE_FIELDS = (
    "phone",
    "customer_issue",
    "action_taken",
    "action_to_be_taken",
    "bucket_override",
    "call_status",
)


@dataclass
class NdrNotes:
    """Agent notes stored as a JSON blob in the ``notes`` column of an NDR row."""

    phone: Optional[str] = None
    customer_issue: Optional[str] = None
    action_taken: Optional[str] = None
    action_to_be_taken: Optional[str] = None
    bucket_override: Optional[str] = None
    call_status: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: Optional[str]) -> "NdrNotes":
        """Decode the blob; null, malformed or non-object JSON gives empty notes.

        Keys other than the editor fields land in ``extra`` and are written
        back untouched by ``to_json``.
        """

        if not text:
            return cls()
        try:
            data = json.loads(text)
        except (TypeError, ValueError):
            return cls()
        if not isinstance(data, dict):
            return cls()
        extra = {key: value for key, value in data.items() if key not in NOTE_FIELDS}
        return cls(**{name: _as_text(data.get(name)) for name in NOTE_FIELDS}, extra=extra)

    def to_json(self) -> str:
        data = dict(self.extra)
        data.update({name: getattr(self, name) for name in NOTE_FIELDS if getattr(self, name)})
        return json.dumps(data)


@dataclass
class NdrRecord:
    """A non-delivery-report row from the ``ndr`` table."""

    id: int
    order_id: str = ""
    waybill: str = ""
    created_at: Optional[str] = None
    courier_account: Optional[str] = None
    delivery_status: Optional[str] = None
    ndr_desc: Optional[str] = None
    remark: Optional[str] = None
    location: Optional[str] = None
    event_time: Optional[str] = None
    rto_awb: Optional[str] = None
    called: Optional[bool] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    partner_edd: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_at: Optional[str] = None
    final_status: Optional[str] = None
    email_sent: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NdrRecord":
        return cls(
            id=_as_int(row.get("id")),
            order_id=str(row.get("order_id") or ""),
            waybill=str(row.get("waybill") or ""),
            created_at=row.get("created_at"),
            courier_account=row.get("courier_account"),
            delivery_status=row.get("delivery_status"),
            ndr_desc=row.get("ndr_desc"),
            remark=row.get("remark"),
            location=row.get("location"),
            event_time=row.get("event_time"),
            rto_awb=_as_text(row.get("rto_awb")),
            called=None if row.get("called") is None else bool(row.get("called")),
            notes=row.get("notes"),
            status=row.get("status"),
            partner_edd=row.get("Partner_EDD") or row.get("partner_edd"),
            assigned_to=_as_text(row.get("assigned_to")),
            assigned_at=row.get("assigned_at"),
            final_status=row.get("final_status"),
            email_sent=bool(row.get("email_sent")),
        )

    @property
    def parsed_notes(self) -> NdrNotes:
        return NdrNotes.parse(self.notes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RepeatLead:
    """A repeat customer aggregated by the ``get_repeat_orders_with_assignments`` RPC."""

    email: str
    phone: Optional[str] = None
    order_count: int = 0
    order_ids: List[str] = field(default_factory=list)
    order_numbers: List[str] = field(default_factory=list)
    first_order: Optional[str] = None
    last_order: Optional[str] = None
    call_status: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_at: Optional[str] = None
    team_id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RepeatLead":
        team = row.get("team_id")
        return cls(
            email=str(row.get("email") or ""),
            phone=_as_text(row.get("phone")),
            order_count=_as_int(row.get("order_count")),
            order_ids=[str(v) for v in row.get("order_ids") or []],
            order_numbers=[str(v) for v in row.get("order_numbers") or []],
            first_order=row.get("first_order"),
            last_order=row.get("last_order"),
            call_status=_as_text(row.get("call_status")),
            assigned_to=_as_text(row.get("assigned_to")),
            assigned_at=row.get("assigned_at"),
            team_id=_as_int(team) if team not in (None, "") else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CategoryCount:
    """One row of a frequency table."""

    label: str
    count: int
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EddStatus:
    """Display state of a courier's estimated delivery date."""

    label: str
    tone: str
    diff: Optional[int] = None
