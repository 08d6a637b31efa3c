"""Clients for the n8n workflow webhooks behind orders, tracking, slips and mail."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from opsconsole.clients.http import build_session, request_json
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.models import Order, TrackingEntry
from opsconsole.core.settings import Settings

logger = logging.getLogger(__name__)


class WebhookClient:
    """Thin wrappers that POST or GET a webhook and return its JSON."""

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or build_session()

    def _call(self, method: str, setting: str, context: str, **kwargs: Any) -> Any:
        url = self.settings.require(setting)
        return request_json(self.session, method, url, context, timeout=self.settings.http_timeout, **kwargs)

    def lookup_order(self, order_number: str) -> Order:
        order_number = (order_number or "").strip()
        if not order_number:
            raise ValueError("Please enter an order number")
        data = self._call("POST", "order_lookup_url", "Order lookup", json={"Order": order_number})
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise RemoteRequestError("Order lookup", body=f"No order found for {order_number}")
        logger.info("Looked up order %s", order_number)
        return Order.from_row(data)

    def create_order(self, payload: Mapping[str, Any]) -> Any:
        return self._call("POST", "order_create_url", "Order creation", json=dict(payload))

    def list_orders(self) -> List[Dict[str, Any]]:
        data = self._call("GET", "order_list_url", "Order list")
        if isinstance(data, dict):
            data = data.get("data") or data.get("orders") or [data]
        return list(data or [])

    def update_tracking(self, entry: TrackingEntry) -> Any:
        return self._call("POST", "tracking_update_url", "Tracking update", json=entry.to_payload())

    def fetch_slip_records(
        self,
        order_ids: Sequence[str],
        dispatch_date: str = "",
        courier_partner: str = "",
        agent_name: str = "",
    ) -> Tuple[List[Dict[str, Any]], Dict[str, str]]:
        """Ask the slip webhook for each order; failures are collected per order."""

        records: List[Dict[str, Any]] = []
        failures: Dict[str, str] = {}
        for raw in order_ids:
            order = raw.strip()
            if not order:
                continue
            payload = {
                "Order": order,
                "dispatch_date": dispatch_date or "",
                "courier_partner": courier_partner or "",
                "agent_name": agent_name or "",
            }
            try:
                data = self._call("POST", "slip_lookup_url", "Slip lookup", json=payload)
            except RemoteRequestError as exc:
                logger.warning("Slip lookup failed for %s: %s", order, exc)
                failures[order] = str(exc)
                continue
            if isinstance(data, list):
                records.extend(item for item in data if isinstance(item, dict))
            elif isinstance(data, dict):
                records.append(data)
            else:
                failures[order] = "Unexpected response (not an object/array)"
        return records, failures

    def send_mail(self, payload: Mapping[str, Any], headers: Optional[Mapping[str, str]] = None) -> Any:
        extra = {"headers": dict(headers)} if headers else {}
        return self._call("POST", "ndr_mailer_url", "Mail dispatch", json=dict(payload), **extra)

    def submit_feedback(self, payload: Mapping[str, Any]) -> Any:
        return self._call("POST", "feedback_url", "Feedback submission", json=dict(payload))
