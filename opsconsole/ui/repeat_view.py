"""Repeat campaign (one customer) and repeat dashboard (assigned leads) views."""
from __future__ import annotations

from datetime import date

import streamlit as st

from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.store import CALLER_IDENTITY
from opsconsole.processing.aggregation import paginate
from opsconsole.processing.filters import quick_range
from opsconsole.reporting.templates import REPEAT_EXPORT_HEADERS, lead_export_rows
from opsconsole.services.repeat import NOT_CALLED, REPEAT_CALL_STATUSES, feedback_stats, filter_leads, lead_stats
from opsconsole.ui.context import Console, _rerun_app, export_controls, flash, show_feedback, show_flash
from opsconsole.ui.navigation import REPEAT_INITIAL_ORDER
from opsconsole.ui.ndr_view import render_ndr_login

PAGE_SIZES = (10, 25, 50, 100)


def _feedback_form(console: Console, order, total_orders: int, call_status: str) -> None:
    with st.form("repeat_feedback", clear_on_submit=True):
        cols = st.columns(2)
        form = {
            "heard_from": cols[0].text_input("How did they hear about us?"),
            "first_time_reason": cols[1].text_input("Why did they buy the first time?"),
            "reorder_reason": cols[0].text_input("Why did they reorder?"),
            "liked_features": cols[1].text_input("What do they like about the product?"),
            "usage_recipe": cols[0].text_input("How do they use it?"),
            "usage_time": cols[1].text_input("When do they use it?"),
            "family_user": cols[0].text_input("Who in the family uses it?"),
            "gender": cols[1].selectbox("Gender", ["", "Male", "Female", "Other"]),
            "age": cols[0].text_input("Age"),
            "marital_status": cols[1].text_input("Marital status"),
            "profession_text": cols[0].text_input("Profession"),
            "city_text": cols[1].text_input("City"),
            "would_recommend": cols[0].selectbox("Would recommend?", ["", "Yes", "No"]),
            "monthly_delivery": cols[1].selectbox("Monthly delivery?", ["", "Yes", "No", "Not now"]),
            "new_product_expectation": st.text_area("New product expectations / general feedback"),
            "remark": st.text_input("Remark"),
        }
        submitted = st.form_submit_button("Submit feedback", type="primary")
    if submitted:
        try:
            console.repeat.submit_feedback(
                form,
                agent=console.teams.current_user(),
                order_number=order.order_number,
                customer_phone=order.phone or "",
                call_status=call_status,
                total_orders=total_orders,
                customer={"customer_name": order.customer_name, "customer_email": order.email, "customer_phone": order.phone},
            )
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            show_feedback("Feedback submitted successfully!", "success")


def render_repeat_campaign(console: Console) -> None:
    show_flash()
    initial = st.session_state.pop(REPEAT_INITIAL_ORDER, None) or console.orders.last_order_number()
    with st.form("repeat_lookup"):
        order_number = st.text_input("Order Number", value=initial)
        submitted = st.form_submit_button("Load customer")
    if submitted or (initial and "repeat_order" not in st.session_state):
        try:
            st.session_state["repeat_order"] = console.orders.lookup(order_number or initial)
        except (RemoteRequestError, ValueError) as exc:
            st.session_state.pop("repeat_order", None)
            show_feedback(str(exc), "error")

    order = st.session_state.get("repeat_order")
    if order is None:
        st.info("Enter an order number to load the customer.")
        return

    cols = st.columns(3)
    cols[0].metric("Customer", order.customer_name or "—")
    cols[1].metric("Phone", order.phone or "—")
    cols[2].metric("Email", order.email or "—")
    total_orders = int(st.number_input("Total orders by this customer", min_value=1, value=1, step=1))

    status_options = ["", *REPEAT_CALL_STATUSES]
    current = order.call_status or ""
    call_status = st.selectbox(
        "Call status",
        status_options,
        index=status_options.index(current) if current in status_options else 0,
        format_func=lambda value: value or NOT_CALLED,
    )
    action_cols = st.columns(3)
    if call_status != current and action_cols[0].button("Update call status"):
        try:
            updated = console.repeat.update_call_status(order.email or "", call_status)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(f"Failed to update call status: {exc}", "error")
        else:
            order.call_status = call_status
            flash(f"Call status updated successfully! ({updated} order(s) updated)")
            _rerun_app()
    if action_cols[1].button("Call customer", disabled=not order.phone):
        try:
            console.repeat.place_call(console.teams.current_user(), console.teams.active_team_id(), order.phone or "")
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            show_feedback("Call initiated. Your phone will ring first.", "success")
    with action_cols[2].popover("Call via Callerdesk", disabled=not order.phone):
        saved = console.store.get(CALLER_IDENTITY) or console.settings.callerdesk_agent_number
        agent_number = st.text_input("Your number", value=saved, key="callerdesk_agent")
        if st.button("Dial", key="callerdesk_dial"):
            try:
                message = console.repeat.click_to_call(agent_number, order.phone or "")
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                console.store.set(CALLER_IDENTITY, agent_number.strip())
                show_feedback(message, "success")

    _feedback_form(console, order, total_orders, call_status)


def _leads_tab(console: Console, user: str, team_id: int) -> None:
    cols = st.columns(2)
    if cols[0].button("Reload leads", type="secondary") or "repeat_leads" not in st.session_state:
        try:
            st.session_state["repeat_leads"] = console.repeat.load_assigned(user, team_id)
        except (RemoteRequestError, ValueError) as exc:
            st.session_state["repeat_leads"] = []
            show_feedback(str(exc), "error")
    if cols[1].button("Run allocation", help="Assign unallocated repeat customers by the team's percentages"):
        try:
            console.repeat.run_allocation(team_id)
            st.session_state["repeat_leads"] = console.repeat.load_assigned(user, team_id)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            show_feedback("Allocation finished.", "success")
    leads = st.session_state.get("repeat_leads", [])

    filter_cols = st.columns([2, 1, 1, 1, 1, 1])
    search = filter_cols[0].text_input("Search by email, phone, or order number")
    status = filter_cols[1].selectbox("Call status", ["", NOT_CALLED, *REPEAT_CALL_STATUSES])
    start = filter_cols[2].date_input("Last order from", value=None)
    end = filter_cols[3].date_input("Last order to", value=None)
    min_orders = filter_cols[4].number_input("Min orders", min_value=0, value=0)
    max_orders = filter_cols[5].number_input("Max orders", min_value=0, value=0, help="0 means no limit")

    filtered = filter_leads(
        leads,
        search=search,
        status=status,
        start=start,
        end=end,
        min_orders=int(min_orders) or None,
        max_orders=int(max_orders) or None,
    )
    summary = lead_stats(filtered)
    metric_cols = st.columns(5)
    metric_cols[0].metric("Customers", summary["totalCustomers"])
    metric_cols[1].metric("Orders", summary["totalOrders"])
    metric_cols[2].metric("Avg orders / customer", f"{summary['avgPerCust']:.2f}")
    metric_cols[3].metric("Called", summary["called"])
    metric_cols[4].metric("Called %", f"{summary['calledPct']}%")

    page_cols = st.columns(2)
    page_size = page_cols[0].selectbox("Rows per page", PAGE_SIZES, index=1)
    rows = lead_export_rows(filtered)
    page_rows, total_pages = paginate(rows, int(page_cols[1].number_input("Page", min_value=1, value=1)), page_size)
    st.caption(f"Page count: {total_pages}")
    st.dataframe(page_rows, use_container_width=True, hide_index=True)
    export_controls(rows, REPEAT_EXPORT_HEADERS, "repeat_leads", "repeat_leads.csv")

    with st.expander("Assign orders to an agent", expanded=False):
        numbers = st.text_area("Order numbers (one per line)")
        try:
            agents = console.teams.member_handles(team_id)
        except RemoteRequestError as exc:
            show_feedback(str(exc), "warning")
            agents = []
        agent = st.selectbox("Agent", agents)
        if st.button("Assign"):
            try:
                console.repeat.assign_orders(numbers.splitlines(), agent, team_id)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                show_feedback(f"Assigned to {agent}.", "success")


def _feedback_tab(console: Console, user: str) -> None:
    cols = st.columns(3)
    scope = cols[0].radio("Forms by", ["me", "everyone"], horizontal=True)
    start_default, end_default = quick_range("last30")
    start = cols[1].date_input("From", value=start_default, key="fb_from")
    end = cols[2].date_input("To", value=end_default or date.today(), key="fb_to")
    try:
        rows = console.repeat.load_feedback(user if scope == "me" else None, start, end)
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return

    summary = feedback_stats(rows)
    metric_cols = st.columns(5)
    metric_cols[0].metric("Forms", summary["totalForms"])
    metric_cols[1].metric("Today", summary["today"])
    metric_cols[2].metric("Last 7 days", summary["last7"])
    metric_cols[3].metric("Would recommend", summary["recommendYes"])
    metric_cols[4].metric("Monthly delivery", summary["monthlyYes"])
    chart_cols = st.columns(2)
    with chart_cols[0]:
        st.caption("Gender")
        st.bar_chart(summary["genderCounts"])
    with chart_cols[1]:
        st.caption("Top liked features")
        st.dataframe([{"Feature": k, "Count": v} for k, v in summary["featureTop"]], hide_index=True)
    st.dataframe(rows, use_container_width=True, hide_index=True)


def render_repeat_dashboard(console: Console) -> None:
    if not render_ndr_login(console):
        return
    user = console.teams.current_user()
    team_id = console.teams.active_team_id()
    leads_tab, feedback_tab = st.tabs(["Assigned customers", "Feedback analytics"])
    with leads_tab:
        _leads_tab(console, user, team_id)
    with feedback_tab:
        _feedback_tab(console, user)
