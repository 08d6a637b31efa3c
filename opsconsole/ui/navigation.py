"""Sidebar tab registry and cross-view navigation."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, MutableMapping, Optional

import streamlit as st

from opsconsole.core.store import REPEAT_ORDER_NUMBER, LocalStore

ACTIVE_TAB = "active_tab"
REPEAT_INITIAL_ORDER = "repeat_initial_order"


@dataclass(frozen=True)
class Tab:
    key: str
    label: str
    description: str


TABS = (
    Tab("order", "Order Form", "Look up an order or create a new one"),
    Tab("orderhistory", "Order History", "View and filter past orders"),
    Tab("printslip", "Print Slip", "Generate and print courier slips"),
    Tab("webhook_printslip", "Slips by Order ID", "Generate courier slips from the slip webhook"),
    Tab("tracking", "Update Tracking", "Update tracking information for orders"),
    Tab("manifest", "Create Manifest", "Create and export shipping manifests"),
    Tab("manual_orders", "Manual Orders", "Track manually entered orders, notes and status changes"),
    Tab("campaign", "Repeat Campaign", "Manage repeat customer campaigns and feedback"),
    Tab("repeat_dashboard", "Repeat Dashboard", "Assigned repeat customers for the logged-in agent"),
    Tab("ndr", "NDR Dashboard", "Monitor and resolve non-delivery shipments"),
    Tab("allocation", "Allocation", "Define NDR allocation rules for the active team"),
    Tab("team_analytics", "Team Analytics", "Per-member NDR performance for a team"),
    Tab("agent_analytics", "Agent Analytics", "Agent-centric analytics over calls, emails and missed calls"),
    Tab("survey_categories", "Survey Categories", "Group free-text survey answers into categories"),
    Tab("segmentation", "Segmentation", "Group and export orders by state, city, pincode and area"),
    Tab("batch_update", "Batch Update", "Update survey fields in bulk by order number"),
    Tab("gstinvoice", "GST Invoice", "Generate GST invoices for orders"),
)

TABS_BY_KEY = {tab.key: tab for tab in TABS}
DEFAULT_TAB = TABS[0].key


def get_tab(key: Optional[str]) -> Tab:
    return TABS_BY_KEY.get(key or "", TABS_BY_KEY[DEFAULT_TAB])


def open_repeat_campaign(state: MutableMapping[str, Any], store: LocalStore, order_id: str = "") -> str:
    """Switch to the repeat campaign, preloaded with ``order_id``.

    Without an id the last looked-up order number is used.
    """

    order_id = (order_id or "").strip() or store.get(REPEAT_ORDER_NUMBER, "") or ""
    if order_id:
        store.set(REPEAT_ORDER_NUMBER, order_id)
    state[REPEAT_INITIAL_ORDER] = order_id
    state[ACTIVE_TAB] = "campaign"
    return order_id


def repeat_campaign_button(store: LocalStore, order_id: str = "", key: str = "open_repeat_campaign") -> bool:
    """Render the cross-link to the repeat campaign.

    The tab switch runs as a click callback, before the sidebar radio that
    owns ``ACTIVE_TAB`` is created on the next run.
    """

    return st.button(
        "Open in repeat campaign",
        key=key,
        on_click=open_repeat_campaign,
        args=(st.session_state, store, order_id),
    )
