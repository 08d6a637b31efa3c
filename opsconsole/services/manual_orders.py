"""Manual orders with their note log and status history."""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from opsconsole.clients.supabase import SupabaseClient
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.models import ManualOrder
from opsconsole.core.store import NDR_USER, LocalStore
from opsconsole.processing.manual_orders import manual_order_payload

logger = logging.getLogger(__name__)

ORDERS_TABLE = "manual_orders"
NOTES_TABLE = "order_notes"
HISTORY_TABLE = "status_history"
SYSTEM = "System"


def _row_id(order_id: str) -> Union[int, str]:
    return int(order_id) if order_id.isdigit() else order_id


class ManualOrderService:
    def __init__(self, supabase: SupabaseClient, store: LocalStore, webhooks: Optional[WebhookClient] = None) -> None:
        self.supabase = supabase
        self.store = store
        self.webhooks = webhooks
        self.orders: List[ManualOrder] = []

    @property
    def actor(self) -> str:
        return (self.store.get(NDR_USER, "") or "").strip() or "system"

    def load(self) -> List[ManualOrder]:
        rows = self.supabase.select(ORDERS_TABLE, {"order": "created_at.desc"})
        current = (self.store.get(NDR_USER, "") or "").strip()
        self.orders = [ManualOrder.from_row(row, default_actor=current) for row in rows]
        logger.info("Loaded %d manual orders", len(self.orders))
        return self.orders

    def get(self, order_id: str) -> ManualOrder:
        for order in self.orders:
            if order.id == str(order_id):
                return order
        raise KeyError(f"Manual order {order_id} is not loaded")

    def detail(self, order_id: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Notes and status history, newest first; an unreadable log reads as empty."""

        logs = []
        for table, column in ((NOTES_TABLE, "created_at"), (HISTORY_TABLE, "changed_at")):
            try:
                logs.append(self.supabase.select(table, {"order_id": f"eq.{order_id}", "order": f"{column}.desc"}))
            except RemoteRequestError as exc:
                logger.warning("Could not read %s for manual order %s: %s", table, order_id, exc)
                logs.append([])
        return logs[0], logs[1]

    def prefill(self, order_number: str, form: Mapping[str, Any]) -> Dict[str, Any]:
        """Fill the create form from the storefront order, keeping what is already typed."""

        if not order_number.strip():
            raise ValueError("Enter an order number")
        if self.webhooks is None:
            raise ValueError("Order lookup webhook is not configured")
        order = self.webhooks.lookup_order(order_number)
        return {
            **form,
            "customer_name": order.customer_name or form.get("customer_name") or "",
            "phone_number": order.phone or form.get("phone_number") or "",
            "address": order.address or form.get("address") or "",
            "quantity": order.quantity or form.get("quantity") or 1,
            "shipping_partner": order.tracking_company or form.get("shipping_partner") or "",
            "tracking_code": order.tracking_number or form.get("tracking_code") or "",
        }

    def _log(self, table: str, body: Dict[str, Any]) -> None:
        try:
            self.supabase.insert(table, body)
        except RemoteRequestError as exc:
            logger.warning("Could not write %s for manual order %s: %s", table, body.get("order_id"), exc)

    def create(self, form: Mapping[str, Any]) -> ManualOrder:
        """Insert the order, then log an initial note and status entry."""

        actor = self.actor
        payload = manual_order_payload(form, actor)
        result = self.supabase.insert(ORDERS_TABLE, payload, prefer="return=representation")
        row = result[0] if isinstance(result, list) and result else payload
        order = ManualOrder.from_row(row, default_actor=actor)
        self._log(NOTES_TABLE, {"order_id": _row_id(order.id), "agent": actor, "channel": SYSTEM, "remark": "Order created"})
        self._log(
            HISTORY_TABLE,
            {"order_id": _row_id(order.id), "old_status": None, "new_status": order.status, "changed_by": actor},
        )
        self.orders.insert(0, order)
        logger.info("%s created manual order %s for %s", actor, order.id, order.customer_name)
        return order

    def add_note(self, order_id: str, remark: str, channel: str = SYSTEM) -> None:
        remark = (remark or "").strip()
        if not remark:
            raise ValueError("Remark required")
        self.supabase.insert(
            NOTES_TABLE,
            {"order_id": _row_id(str(order_id)), "agent": self.actor, "channel": channel or SYSTEM, "remark": remark},
        )

    def change_status(
        self,
        order_id: str,
        status: str = "",
        shipping_partner: str = "",
        tracking_code: str = "",
        remark: str = "",
    ) -> ManualOrder:
        """Patch status (and courier details), then record the change and any remark."""

        order = self.get(order_id)
        changes = {
            "status": status or order.status,
            "shipping_partner": shipping_partner or order.shipping_partner or None,
            "tracking_code": tracking_code or order.tracking_code or None,
        }
        self.supabase.patch(ORDERS_TABLE, {"id": f"eq.{order.id}"}, changes)
        actor = self.actor
        self._log(
            HISTORY_TABLE,
            {"order_id": _row_id(order.id), "old_status": order.status, "new_status": changes["status"], "changed_by": actor},
        )
        if remark.strip():
            self._log(NOTES_TABLE, {"order_id": _row_id(order.id), "agent": actor, "channel": SYSTEM, "remark": remark.strip()})

        updated = dataclasses.replace(order, **changes)
        self.orders = [updated if o.id == order.id else o for o in self.orders]
        return updated
