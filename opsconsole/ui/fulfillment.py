"""Order, slip, tracking, manifest and invoice views."""
from __future__ import annotations

from datetime import date
from typing import List

import streamlit as st
import streamlit.components.v1 as components

from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.store import NDR_USER
from opsconsole.processing.gst import (
    GstInvoice,
    InvoiceLine,
    Party,
    compute_invoice,
    invoice_number,
    render_invoice_html,
    validate_invoice,
)
from opsconsole.processing.manifest import MANIFEST_HEADERS, build_manifest, group_by_courier, manifest_summary
from opsconsole.processing.slips import (
    FROM_ADDRESS,
    SlipRecord,
    filter_slip_records,
    parse_bulk_orders,
    render_slips_html,
)
from opsconsole.processing.tracking_csv import entries_to_rows, parse_tracking_csv
from opsconsole.reporting.templates import TRACKING_HISTORY_HEADERS
from opsconsole.services.slips import (
    agent_options,
    fetch_webhook_slips,
    load_slip_records,
    shipping_options,
    status_options,
)
from opsconsole.ui.context import Console, _rerun_app, export_controls, flash, show_feedback, show_flash
from opsconsole.ui.navigation import repeat_campaign_button

SLIP_RECORDS = "slip_records"


def render_order_form(console: Console) -> None:
    lookup_tab, create_tab = st.tabs(["Look up order", "Create order"])

    with lookup_tab:
        with st.form("order_lookup"):
            order_number = st.text_input("Order Number", value=console.orders.last_order_number())
            submitted = st.form_submit_button("Search")
        if submitted:
            try:
                st.session_state["looked_up_order"] = console.orders.lookup(order_number)
            except (RemoteRequestError, ValueError) as exc:
                st.session_state.pop("looked_up_order", None)
                show_feedback(str(exc), "error")

        order = st.session_state.get("looked_up_order")
        if order is not None:
            cols = st.columns(3)
            cols[0].metric("Order", order.order_number)
            cols[1].metric("Status", order.status or "—")
            cols[2].metric("Quantity", order.quantity)
            st.json(order.to_dict(), expanded=False)
            if order.tracking_url:
                st.markdown(f"[Track shipment]({order.tracking_url})")
            repeat_campaign_button(console.store, order.order_number, key="order_to_repeat")

    with create_tab:
        with st.form("order_create", clear_on_submit=False):
            cols = st.columns(2)
            customer_name = cols[0].text_input("Customer name")
            phone = cols[1].text_input("Phone")
            address = st.text_area("Address", help="Name, street, city, state and pincode separated by commas")
            cols = st.columns(3)
            product = cols[0].text_input("Product")
            variant = cols[1].text_input("Variant")
            quantity = cols[2].number_input("Quantity", min_value=1, value=1, step=1)
            cols = st.columns(2)
            email = cols[0].text_input("Email")
            notes = cols[1].text_input("Notes")
            submitted = st.form_submit_button("Create order", type="primary")
        if submitted:
            form = {
                "customer_name": customer_name,
                "phone": phone,
                "address": address,
                "product": product,
                "variant": variant,
                "quantity": quantity,
                "email": email,
                "notes": notes,
            }
            try:
                console.orders.create(form)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                show_feedback(f"Order for {customer_name} submitted.", "success")


def render_order_history(console: Console) -> None:
    cols = st.columns([2, 1, 1])
    search = cols[0].text_input("Search order, customer, phone or AWB")
    day = cols[1].date_input("Order date", value=None)
    status = cols[2].text_input("Status")
    try:
        orders = console.orders.list_orders(search, day.isoformat() if day else "", status)
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return
    st.caption(f"{len(orders)} order(s)")
    st.dataframe([o.to_dict() for o in orders], use_container_width=True, hide_index=True)


def _print_preview(document: str, key: str) -> None:
    st.download_button("Download printable HTML", data=document, file_name=f"{key}.html", mime="text/html", key=key)
    with st.expander("Preview", expanded=True):
        components.html(document, height=600, scrolling=True)


def render_print_slips(console: Console) -> None:
    if st.button("Reload slip data", type="secondary") or SLIP_RECORDS not in st.session_state:
        try:
            st.session_state[SLIP_RECORDS] = load_slip_records(console.nocodb, console.table_id("slips"))
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return
    records: List[SlipRecord] = st.session_state[SLIP_RECORDS]

    cols = st.columns(5)
    day = cols[0].date_input("Date", value=None, key="slip_date")
    agent = cols[1].selectbox("Agent", ["", *agent_options(records)], key="slip_agent")
    status = cols[2].selectbox("Order status", ["", *status_options(records)], key="slip_status")
    shipping = cols[3].selectbox("Shipping", ["", *shipping_options(records)], key="slip_shipping")
    search = cols[4].text_input("Order ID", key="slip_search")
    only_tracking = st.checkbox("Only orders with tracking", value=False)

    filtered = filter_slip_records(
        records,
        date=day.isoformat() if day else "",
        agent=agent,
        status=status,
        shipping=shipping,
        search=search,
        only_with_tracking=only_tracking,
    )
    st.caption(f"{len(filtered)} of {len(records)} slip(s)")
    table = [
        {"Order ID": r.order_id, "Date": r.date, "Agent": r.agent, "Shipping": r.shipping, "Tracking": r.tracking, "Qty": r.quantity}
        for r in filtered
    ]
    picked = st.multiselect("Orders to print (empty prints all shown)", [r.order_id for r in filtered])
    st.dataframe(table, use_container_width=True, hide_index=True, height=320)
    noted = st.multiselect("Add the India Post customer-id note to", [r.order_id for r in filtered])

    to_print = [r for r in filtered if not picked or r.order_id in picked]
    if to_print and st.button("Generate slips", type="primary"):
        _print_preview(render_slips_html(to_print, FROM_ADDRESS, noted), "slips")


def render_webhook_slips(console: Console) -> None:
    with st.form("webhook_slips"):
        raw_orders = st.text_area("Order IDs (one per line)")
        cols = st.columns(3)
        dispatch_date = cols[0].date_input("Dispatch date", value=date.today())
        courier = cols[1].text_input("Courier partner")
        agent = cols[2].text_input("Agent name", value=console.store.get(NDR_USER, "") or "")
        submitted = st.form_submit_button("Fetch slips", type="primary")
    if submitted:
        try:
            valid, failures = fetch_webhook_slips(
                console.webhooks, parse_bulk_orders(raw_orders), dispatch_date.isoformat(), courier, agent
            )
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return
        st.session_state["webhook_slips"] = (valid, failures)

    valid, failures = st.session_state.get("webhook_slips", ([], {}))
    if failures:
        st.warning(f"{len(failures)} order(s) without a slip")
        st.dataframe([{"Order ID": k, "Reason": v} for k, v in failures.items()], hide_index=True)
    if valid:
        st.success(f"{len(valid)} slip(s) ready")
        _print_preview(render_slips_html(valid), "webhook_slips")


def render_tracking(console: Console) -> None:
    show_flash()
    single_tab, bulk_tab, history_tab = st.tabs(["Single update", "CSV upload", "Recent updates"])

    with single_tab:
        with st.form("tracking_single", clear_on_submit=True):
            cols = st.columns(3)
            order_number = cols[0].text_input("Order Number")
            tracking_code = cols[1].text_input("Tracking Code")
            phone = cols[2].text_input("Phone (optional)")
            submitted = st.form_submit_button("Update tracking", type="primary")
        if submitted:
            try:
                entry = console.orders.update_tracking(order_number, tracking_code, phone)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                flash(f"Tracking {entry.tracking_code} saved for order {entry.order_number}.")
                _rerun_app()

    with bulk_tab:
        st.caption("Columns: Order, Tracking, and optionally Date and Phone.")
        upload = st.file_uploader("Tracking CSV", type=["csv"])
        if upload is not None:
            try:
                entries = parse_tracking_csv(upload.getvalue().decode("utf-8-sig"))
            except ValueError as exc:
                show_feedback(str(exc), "error")
                entries = []
            st.dataframe(entries_to_rows(entries), use_container_width=True, hide_index=True)
            if entries and st.button(f"Submit {len(entries)} update(s)", type="primary"):
                bar = st.progress(0.0, text="Sending tracking updates...")
                try:
                    sent = console.orders.submit_tracking_batch(entries, progress=lambda p: bar.progress(p))
                except (RemoteRequestError, ValueError) as exc:
                    show_feedback(str(exc), "error")
                else:
                    show_feedback(f"Sent {sent} tracking update(s).", "success")
                finally:
                    bar.empty()

    with history_tab:
        rows = [entry.to_payload() for entry in console.orders.history()]
        if rows:
            st.dataframe(rows, use_container_width=True, hide_index=True)
            export_controls(rows, TRACKING_HISTORY_HEADERS, "tracking_history", "tracking_history.csv")
            if st.button("Clear history", type="secondary"):
                console.orders.clear_history()
                _rerun_app()
        else:
            st.info("No tracking updates yet.")


def render_manifest(console: Console) -> None:
    records: List[SlipRecord] = st.session_state.get(SLIP_RECORDS) or []
    if st.button("Load orders from slip table", type="secondary") or not records:
        try:
            records = load_slip_records(console.nocodb, console.table_id("slips"))
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return
        st.session_state[SLIP_RECORDS] = records

    couriers = list(group_by_courier(records))
    cols = st.columns(2)
    courier = cols[0].selectbox("Courier", ["", *couriers])
    dispatch = cols[1].date_input("Dispatch date", value=None, key="manifest_date")
    rows, skipped = build_manifest(records, courier or None, dispatch.isoformat() if dispatch else None)
    summary = manifest_summary(rows)

    metric_cols = st.columns(3)
    metric_cols[0].metric("Shipments", summary["shipments"])
    metric_cols[1].metric("Packets", summary["packets"])
    metric_cols[2].metric("Weight (KG)", summary["weight_kg"])
    if skipped:
        st.warning(f"Skipped {len(skipped)} order(s) without an AWB: {', '.join(skipped)}")
    st.dataframe(rows, use_container_width=True, hide_index=True)
    export_controls(rows, MANIFEST_HEADERS, "manifest", f"manifest_{courier or 'all'}.csv")


def render_gst_invoice(console: Console) -> None:
    st.caption("Prices are tax inclusive unless unticked per line.")
    cols = st.columns(2)
    with cols[0]:
        st.markdown("**Seller**")
        seller = Party(
            name=st.text_input("Seller name", value="Aurawill"),
            address=st.text_area("Seller address", value=FROM_ADDRESS),
            state=st.text_input("Seller state", value="Tamil Nadu"),
            gstin=st.text_input("Seller GSTIN"),
        )
    with cols[1]:
        st.markdown("**Buyer**")
        buyer = Party(
            name=st.text_input("Buyer name"),
            address=st.text_area("Buyer address"),
            state=st.text_input("Buyer state / place of supply"),
            gstin=st.text_input("Buyer GSTIN (optional)"),
        )

    meta = st.columns(3)
    prefix = meta[0].text_input("Invoice prefix", value="INV")
    sequence = meta[1].number_input("Sequence", min_value=1, value=1, step=1)
    invoice_day = meta[2].date_input("Invoice date", value=date.today())
    order_number = st.text_input("Order number", value=console.orders.last_order_number())

    lines = st.data_editor(
        [{"description": "", "hsn": "", "quantity": 1, "unit_price": 0.0, "gst_rate": 5.0, "tax_inclusive": True}],
        num_rows="dynamic",
        use_container_width=True,
        key="gst_lines",
    )
    if not st.button("Generate invoice", type="primary"):
        return
    try:
        invoice = GstInvoice(
            number=invoice_number(prefix, int(sequence), invoice_day),
            invoice_date=invoice_day,
            seller=seller,
            buyer=buyer,
            lines=[
                InvoiceLine(
                    description=str(line.get("description") or ""),
                    quantity=int(line.get("quantity") or 0),
                    unit_price=float(line.get("unit_price") or 0),
                    gst_rate=float(line.get("gst_rate") or 0),
                    hsn=str(line.get("hsn") or ""),
                    tax_inclusive=bool(line.get("tax_inclusive", True)),
                )
                for line in lines
                if str(line.get("description") or "").strip()
            ],
            order_number=order_number or None,
        )
        totals = compute_invoice(invoice)
    except ValueError as exc:
        show_feedback(str(exc), "error")
        return
    for issue in validate_invoice(invoice, totals):
        st.warning(issue)
    st.metric("Grand total", f"₹{totals.grand_total}")
    st.caption(totals.amount_in_words)
    _print_preview(render_invoice_html(invoice, totals), f"invoice_{sequence}")
