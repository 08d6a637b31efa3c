"""Order lookup, manual order entry and tracking-number updates."""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence

from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.models import Order, TrackingEntry
from opsconsole.core.store import REPEAT_ORDER_NUMBER, TRACKING_HISTORY, LocalStore
from opsconsole.core.utils import digits, now_iso
from opsconsole.processing.filters import to_ymd

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
REQUIRED_ORDER_FIELDS = ("customer_name", "phone", "address", "product", "quantity")


class OrderService:
    def __init__(self, webhooks: WebhookClient, store: LocalStore) -> None:
        self.webhooks = webhooks
        self.store = store

    def lookup(self, order_number: str) -> Order:
        order = self.webhooks.lookup_order(order_number)
        self.store.set(REPEAT_ORDER_NUMBER, order_number.strip())
        return order

    def last_order_number(self) -> str:
        return self.store.get(REPEAT_ORDER_NUMBER, "") or ""

    def create(self, form: Mapping[str, Any]) -> Any:
        """Validate a manual order form and submit it."""

        missing = [name for name in REQUIRED_ORDER_FIELDS if not str(form.get(name) or "").strip()]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")
        phone = digits(form.get("phone"))
        if len(phone) < 10:
            raise ValueError("Phone number must have at least 10 digits")
        try:
            quantity = int(form.get("quantity"))
        except (TypeError, ValueError) as exc:
            raise ValueError("Quantity must be a whole number") from exc
        if quantity <= 0:
            raise ValueError("Quantity must be positive")

        payload = {key: value for key, value in form.items() if value not in (None, "")}
        payload.update({"phone": phone, "quantity": quantity, "submitted_at": now_iso()})
        result = self.webhooks.create_order(payload)
        logger.info("Submitted manual order for %s", payload.get("customer_name"))
        return result

    def list_orders(self, search: str = "", day: str = "", status: str = "") -> List[Order]:
        orders = [Order.from_row(row) for row in self.webhooks.list_orders()]
        needle = search.strip().lower()
        wanted_day = to_ymd(day) if day else ""
        result = []
        for order in orders:
            if wanted_day and to_ymd(order.order_date) != wanted_day:
                continue
            if status and (order.status or "").lower() != status.lower():
                continue
            if needle:
                haystack = " ".join(
                    str(v or "") for v in (order.order_number, order.customer_name, order.phone, order.tracking_number)
                ).lower()
                if needle not in haystack:
                    continue
            result.append(order)
        return result

    def history(self) -> List[TrackingEntry]:
        raw = self.store.get_json(TRACKING_HISTORY, [])
        return [TrackingEntry.from_payload(item) for item in raw if isinstance(item, dict)]

    def _remember(self, entries: Sequence[TrackingEntry]) -> None:
        merged = [entry.to_payload() for entry in reversed(entries)]
        merged.extend(item.to_payload() for item in self.history())
        self.store.set_json(TRACKING_HISTORY, merged[:HISTORY_LIMIT])

    def clear_history(self) -> None:
        self.store.remove(TRACKING_HISTORY)

    def update_tracking(self, order_number: str, tracking_code: str, phone: str = "") -> TrackingEntry:
        order_number, tracking_code = order_number.strip(), tracking_code.strip()
        if not order_number or not tracking_code:
            raise ValueError("Order number and tracking code are both required")
        entry = TrackingEntry(order_number, tracking_code, now_iso(), phone.strip() or None)
        self.webhooks.update_tracking(entry)
        self._remember([entry])
        logger.info("Tracking %s saved for order %s", tracking_code, order_number)
        return entry

    def submit_tracking_batch(
        self,
        entries: Sequence[TrackingEntry],
        progress: Optional[Callable[[float], None]] = None,
    ) -> int:
        """Send entries in order and stop at the first failure.

        Entries sent before the failure stay in the history. The raised error
        names the failing row (1-based).
        """

        sent: List[TrackingEntry] = []
        try:
            for index, entry in enumerate(entries, start=1):
                try:
                    self.webhooks.update_tracking(entry)
                except RemoteRequestError as exc:
                    raise RemoteRequestError(f"Row {index} ({entry.order_number})", exc.status_code, exc.body) from exc
                sent.append(entry)
                if progress:
                    progress(index / len(entries))
        finally:
            if sent:
                self._remember(sent)
        logger.info("Submitted %d tracking updates", len(sent))
        return len(sent)
