"""Manual orders: KPIs, filters, creation with order autofill, notes and status updates."""
from __future__ import annotations

import streamlit as st

from opsconsole.core.errors import RemoteRequestError
from opsconsole.processing.aggregation import paginate
from opsconsole.processing.filters import fmt_ist
from opsconsole.processing.manual_orders import (
    KPI_STATUSES,
    NOTE_CHANNELS,
    SOURCE_OPTIONS,
    STATUS_OPTIONS,
    ManualOrderFilter,
    filter_manual_orders,
    status_kpis,
    unique_values,
)
from opsconsole.reporting.templates import MANUAL_ORDER_EXPORT_HEADERS, manual_order_export_rows
from opsconsole.ui.context import Console, _rerun_app, export_controls, flash, show_feedback, show_flash

CREATE_FORM = "manual_order_form"
PAGE_SIZES = (25, 50, 100)


def _kpis(orders) -> None:
    tallies = status_kpis(orders)
    cols = st.columns(len(KPI_STATUSES) + 1)
    for col, status in zip(cols, KPI_STATUSES + ("PNS",)):
        col.metric(status, tallies["all"][status], help=f"Today {tallies['today'][status]} · 7 days {tallies['week'][status]}")


def _filters(orders) -> ManualOrderFilter:
    search = st.text_input("Search", placeholder="Name, phone, order, tracking, address or source")
    cols = st.columns(4)
    criteria = ManualOrderFilter(
        search=search,
        statuses=cols[0].multiselect("Status", STATUS_OPTIONS),
        sources=cols[1].multiselect("Source", SOURCE_OPTIONS),
        partners=cols[2].multiselect("Shipping partner", unique_values(o.shipping_partner for o in orders)),
        created_by=cols[3].selectbox("Agent", [""] + unique_values(o.created_by for o in orders), format_func=lambda v: v or "All agents"),
    )
    dates = st.columns(2)
    criteria.start = dates[0].date_input("Order date from", value=None)
    criteria.end = dates[1].date_input("Order date to", value=None)
    return criteria


def _create_form(console: Console) -> None:
    form = st.session_state.setdefault(CREATE_FORM, {"status": "New", "quantity": 1, "servicable": True})
    with st.expander("New manual order", expanded=False):
        lookup_cols = st.columns([3, 1])
        order_number = lookup_cols[0].text_input("Autofill from order number")
        if lookup_cols[1].button("Fetch order"):
            try:
                st.session_state[CREATE_FORM] = console.manual_orders.prefill(order_number, form)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                _rerun_app()

        with st.form("manual_order_create"):
            cols = st.columns(3)
            values = {
                "source": cols[0].selectbox("Source", [""] + list(SOURCE_OPTIONS)),
                "status": cols[1].selectbox("Status", STATUS_OPTIONS, index=STATUS_OPTIONS.index(form.get("status") or "New")),
                "quantity": cols[2].number_input("Quantity", min_value=1, value=int(form.get("quantity") or 1), step=1),
                "customer_name": cols[0].text_input("Customer name", value=form.get("customer_name", "")),
                "phone_number": cols[1].text_input("Phone", value=form.get("phone_number", "")),
                "order_id": cols[2].text_input("Order number", value=order_number),
                "address": st.text_area("Address", value=form.get("address", "")),
                "shipping_partner": cols[0].text_input("Shipping partner", value=form.get("shipping_partner", "")),
                "tracking_code": cols[1].text_input("Tracking code", value=form.get("tracking_code", "")),
                "servicable": cols[2].checkbox("Servicable", value=bool(form.get("servicable", True))),
                "notes": st.text_input("Notes", value=form.get("notes", "")),
            }
            submitted = st.form_submit_button("Create order", type="primary")
        if submitted:
            try:
                order = console.manual_orders.create(values)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                st.session_state.pop(CREATE_FORM, None)
                flash(f"Created manual order {order.id}.")
                _rerun_app()


def _order_drawer(console: Console, order) -> None:
    st.subheader(f"{order.customer_name or 'Order'} · {order.status or '—'}")
    st.json(order.to_dict(), expanded=False)
    notes, history = console.manual_orders.detail(order.id)

    with st.form("manual_order_update", clear_on_submit=True):
        cols = st.columns(3)
        status = cols[0].selectbox("New status", [""] + list(STATUS_OPTIONS), format_func=lambda v: v or "Keep current")
        partner = cols[1].text_input("Shipping partner", placeholder=order.shipping_partner or "")
        tracking = cols[2].text_input("Tracking code", placeholder=order.tracking_code or "")
        remark = st.text_input("Remark")
        channel = st.selectbox("Note channel", NOTE_CHANNELS)
        note_only = st.form_submit_button("Add note")
        update = st.form_submit_button("Update status", type="primary")
    try:
        if note_only:
            console.manual_orders.add_note(order.id, remark, channel)
            flash("Note added.")
            _rerun_app()
        if update:
            console.manual_orders.change_status(order.id, status, partner.strip(), tracking.strip(), remark)
            flash("Status updated.")
            _rerun_app()
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")

    cols = st.columns(2)
    cols[0].caption("Notes")
    cols[0].dataframe(
        [{"When": fmt_ist(n.get("created_at")), "Agent": n.get("agent"), "Channel": n.get("channel"), "Remark": n.get("remark")} for n in notes],
        hide_index=True,
    )
    cols[1].caption("Status history")
    cols[1].dataframe(
        [
            {"When": fmt_ist(h.get("changed_at")), "From": h.get("old_status") or "—", "To": h.get("new_status"), "By": h.get("changed_by")}
            for h in history
        ],
        hide_index=True,
    )


def render_manual_orders(console: Console) -> None:
    show_flash()
    try:
        orders = console.manual_orders.load()
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return

    _kpis(orders)
    _create_form(console)
    criteria = _filters(orders)
    filtered = filter_manual_orders(orders, criteria)
    st.caption(f"{len(filtered)} of {len(orders)} order(s)")

    page_cols = st.columns(2)
    page_size = page_cols[0].selectbox("Rows per page", PAGE_SIZES)
    page_rows, total_pages = paginate(filtered, int(page_cols[1].number_input("Page", min_value=1, value=1)), page_size)
    st.caption(f"Page size {page_size} · {total_pages} page(s)")
    table = manual_order_export_rows(page_rows)
    st.dataframe(table, use_container_width=True, hide_index=True)
    export_controls(manual_order_export_rows(filtered), MANUAL_ORDER_EXPORT_HEADERS, "manual_orders", "manual_orders.csv")

    if filtered:
        by_label = {f"{o.id} · {o.customer_name or '—'} · {o.status}": o for o in filtered}
        _order_drawer(console, by_label[st.selectbox("Open order", list(by_label))])
