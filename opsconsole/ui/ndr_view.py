"""NDR dashboard, team login and allocation rule views."""
from __future__ import annotations

from typing import List

import streamlit as st

from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.store import NDR_ACTIVE_TEAM_NAME, NDR_MY_ONLY
from opsconsole.processing.allocation import even_percentages
from opsconsole.processing.buckets import (
    ACTION_OPTIONS,
    BUCKET_TABS,
    BUCKETS,
    CALL_STATUS_OPTIONS,
    FINAL_STATUS_OPTIONS,
    tracking_url,
)
from opsconsole.processing.filters import QUICK_RANGES, fmt_ist, quick_range
from opsconsole.processing.ndr import (
    ALL,
    COLUMN_KEYS,
    EnrichedNdr,
    NdrFilter,
    column_uniques,
    courier_options,
    filter_rows,
    remark_tabs,
    stats,
)
from opsconsole.reporting.emails import EmailDetails, is_address_issue
from opsconsole.reporting.templates import NDR_EXPORT_HEADERS, ndr_export_rows
from opsconsole.ui.context import Console, _rerun_app, export_controls, flash, show_feedback, show_flash

STAT_TILES = (
    ("all", "Total", "total"),
    ("edd_overdue", "EDD overdue", "late"),
    ("due_today", "Due today", "today"),
    ("cna_addr", "CNA / Address", "cna"),
    ("delivered", "Delivered", "delivered"),
    ("resolved", "Resolved", "resolved"),
)
WORKFLOW_STATUSES = ["open", "in_progress", "resolved"]


def _option_index(options, value) -> int:
    options = list(options)
    return options.index(value) if value in options else 0


def render_ndr_login(console: Console) -> bool:
    """PIN login against the team roster; returns True once logged in."""

    if console.teams.current_user() and console.teams.active_team_id():
        return True

    st.subheader("NDR login")
    try:
        teams = console.teams.list_teams()
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return False
    if not teams:
        st.info("No teams configured yet.")
        return False

    team = st.selectbox("Team", teams, format_func=lambda t: str(t.get("name") or t.get("id")))
    try:
        members = console.teams.member_handles(int(team["id"]))
    except RemoteRequestError as exc:
        show_feedback(str(exc), "error")
        return False
    with st.form("ndr_login"):
        member = st.selectbox("Member", members)
        pin = st.text_input("PIN", type="password")
        submitted = st.form_submit_button("Login", type="primary")
    if submitted:
        try:
            console.teams.login(int(team["id"]), member, pin, str(team.get("name") or ""))
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return False
        _rerun_app()
    return False


def _load_rows(console: Console) -> List[EnrichedNdr]:
    ndr = console.ndr
    if st.button("Refresh", type="secondary"):
        ndr.load()
    else:
        ndr.refresh_if_stale(console.settings.ndr_poll_seconds)
    try:
        assigned = ndr.auto_allocate_once()
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(f"Auto-allocation skipped: {exc}", "warning")
    else:
        if assigned:
            ndr.load()
            st.toast(f"Auto-assigned {assigned} NDR row(s)")
    return ndr.enriched()


def _filters(rows: List[EnrichedNdr], console: Console) -> NdrFilter:
    user = console.teams.current_user()
    criteria = NdrFilter(current_user=user)

    cols = st.columns([2, 1, 1, 1, 1])
    criteria.search = cols[0].text_input("Search order, AWB, phone, notes")
    criteria.courier = cols[1].selectbox("Courier", [ALL, *courier_options(rows)])
    criteria.bucket = cols[2].selectbox("Bucket", [ALL, *BUCKET_TABS])
    preset = cols[3].selectbox("Range", QUICK_RANGES, index=len(QUICK_RANGES) - 1)
    my_only_default = console.store.get(NDR_MY_ONLY, "0") == "1"
    criteria.my_only = cols[4].toggle("My rows only", value=my_only_default)
    if criteria.my_only != my_only_default:
        console.store.set(NDR_MY_ONLY, "1" if criteria.my_only else "0")

    start, end = quick_range(preset)
    with st.expander("Custom range and column filters", expanded=False):
        range_cols = st.columns(2)
        criteria.date_from = range_cols[0].date_input("From", value=start)
        criteria.date_to = range_cols[1].date_input("To", value=end)
        column_cols = st.columns(len(COLUMN_KEYS))
        for col, key in zip(column_cols, COLUMN_KEYS):
            picked = col.multiselect(key.title(), column_uniques(rows, key), key=f"ndr_col_{key}")
            if picked:
                criteria.columns[key] = picked

    tabs, overflow = remark_tabs(rows)
    remark_choices = tabs + overflow
    criteria.remark = st.radio("Remark", remark_choices, horizontal=True) if len(remark_choices) > 1 else ALL
    return criteria


def _stat_tiles(rows: List[EnrichedNdr]) -> str:
    counters = stats(rows)
    selected = st.session_state.get("ndr_stat", "all")
    cols = st.columns(len(STAT_TILES))
    for col, (key, label, counter) in zip(cols, STAT_TILES):
        col.metric(label, counters[counter])
        if col.button("Filter" if key != selected else "Active", key=f"ndr_stat_{key}", disabled=key == selected):
            st.session_state["ndr_stat"] = key
            _rerun_app()
    return selected


def _row_editor(console: Console, row: EnrichedNdr, members: List[str]) -> None:
    record, notes = row.record, row.notes
    link = tracking_url(record.waybill, console.settings.tracking_page_url)
    st.markdown(f"**Order {record.order_id}** · AWB [{record.waybill}]({link})")
    st.caption(
        f"{record.delivery_status or '—'} · {record.remark or '—'} · {record.location or '—'} · "
        f"{fmt_ist(record.event_time)} · EDD {row.edd.label}"
    )

    with st.form(f"ndr_edit_{record.id}"):
        cols = st.columns(2)
        phone = cols[0].text_input("Phone", value=notes.phone or "")
        issue = cols[1].text_input("Customer issue", value=notes.customer_issue or "")
        taken = st.selectbox(
            "Action taken",
            ["", *ACTION_OPTIONS],
            index=_option_index(["", *ACTION_OPTIONS], notes.action_taken),
        )
        to_take = st.text_input("Action to be taken", value=notes.action_to_be_taken or "")
        cols = st.columns(2)
        status = cols[0].selectbox(
            "Status",
            WORKFLOW_STATUSES,
            index=_option_index(WORKFLOW_STATUSES, record.status),
        )
        final = cols[1].selectbox(
            "Final status",
            ["", *FINAL_STATUS_OPTIONS],
            index=_option_index(["", *FINAL_STATUS_OPTIONS], record.final_status),
        )
        if st.form_submit_button("Save", type="primary"):
            try:
                console.ndr.save_editor(record.id, phone, issue, taken, to_take, status, final)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                flash(f"Saved order {record.order_id}.")
                _rerun_app()

    cols = st.columns(3)
    call_status = cols[0].selectbox(
        "Call status",
        ["", *CALL_STATUS_OPTIONS],
        index=_option_index(["", *CALL_STATUS_OPTIONS], row.call_status),
        key=f"ndr_call_{record.id}",
    )
    if call_status != row.call_status and cols[0].button("Update call status", key=f"ndr_call_btn_{record.id}"):
        try:
            console.ndr.set_call_status(record.id, call_status)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            _rerun_app()

    bucket = cols[1].selectbox("Move to bucket", BUCKETS, index=_option_index(BUCKETS, row.bucket), key=f"ndr_bucket_{record.id}")
    if bucket != row.bucket and cols[1].button("Move", key=f"ndr_move_{record.id}"):
        try:
            console.ndr.move_to_bucket(record.id, bucket)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            _rerun_app()

    options = ["", *members]
    assignee = cols[2].selectbox(
        "Assigned to",
        options,
        index=_option_index(options, record.assigned_to),
        key=f"ndr_assign_{record.id}",
    )
    if assignee != (record.assigned_to or "") and cols[2].button("Assign", key=f"ndr_assign_btn_{record.id}"):
        try:
            console.ndr.assign(record.id, assignee)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            _rerun_app()

    if st.button("Assign to me", key=f"ndr_me_{record.id}"):
        try:
            console.ndr.assign(record.id, console.teams.current_user())
        except RemoteRequestError as exc:
            show_feedback(str(exc), "error")
        else:
            _rerun_app()

    if is_address_issue(record, notes.customer_issue or ""):
        _email_panel(console, row)


def _email_panel(console: Console, row: EnrichedNdr) -> None:
    record, notes = row.record, row.notes
    with st.expander("Email courier about address issue", expanded=False):
        details = EmailDetails(
            phone=st.text_input("Customer phone", value=notes.phone or "", key=f"mail_phone_{record.id}"),
            issue=st.text_input("Issue", value=notes.customer_issue or "", key=f"mail_issue_{record.id}"),
            remark=record.remark or "",
            action_to_be_taken=st.text_input("Requested action", value=notes.action_to_be_taken or "", key=f"mail_action_{record.id}"),
            customer_query=st.text_input("Customer query", key=f"mail_query_{record.id}"),
            corrected_phone=st.text_input("Corrected phone", key=f"mail_cphone_{record.id}"),
            corrected_address=st.text_area("Corrected address", key=f"mail_caddr_{record.id}"),
            courier_partner=row.courier,
            called=bool(record.called),
        )
        draft = console.ndr.compose_email(record.id, details)
        subject = st.text_input("Subject", value=draft.subject, key=f"mail_subject_{record.id}")
        body = st.text_area("Body", value=draft.body_text, height=300, key=f"mail_body_{record.id}")
        if record.email_sent:
            st.caption("An email was already sent for this row.")
        if st.button("Send email", type="primary", key=f"mail_send_{record.id}"):
            sent, fallback = console.ndr.send_address_issue_email(record.id, details, subject, body)
            if sent:
                flash(f"Email sent for order {record.order_id}.")
                _rerun_app()
            else:
                show_feedback("Mail webhook failed. Open the draft in your mail client instead.", "warning")
                st.markdown(f"[Open draft]({fallback})")
    _email_thread(console, row)


def _email_thread(console: Console, row: EnrichedNdr) -> None:
    record = row.record
    with st.expander("Email thread", expanded=False):
        try:
            thread, messages = console.ndr.email_thread(record.id)
        except RemoteRequestError as exc:
            show_feedback(str(exc), "error")
            return
        if thread is None:
            st.caption("No emails exchanged for this shipment yet.")
            return
        st.caption(thread["subject"] or "")
        for message in messages:
            inbound = message.get("direction") == "inbound"
            when = fmt_ist(message.get("received_at") or message.get("sent_at") or message.get("created_at"))
            st.markdown(f"**{'Courier' if inbound else 'Us'}** · {when}")
            st.text(message.get("text_body") or message.get("snippet") or message.get("body") or "")
        reply = st.text_area("Reply", key=f"mail_reply_{record.id}")
        if st.button("Send reply", key=f"mail_reply_send_{record.id}"):
            try:
                subject = console.ndr.reply_email(record.id, reply)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                flash(f"Reply sent: {subject}")
                _rerun_app()


def _bulk_assign(console: Console, rows: List[EnrichedNdr], members: List[str]) -> None:
    with st.expander("Bulk assign filtered rows by percentage", expanded=False):
        defaults = even_percentages(members)
        cols = st.columns(max(1, len(members)))
        percents = {
            member: col.number_input(member, min_value=0, max_value=100, value=defaults.get(member, 0), key=f"bulk_pct_{member}")
            for col, member in zip(cols, members)
        }
        st.caption(f"Total: {sum(percents.values())}%")
        if st.button(f"Assign {len(rows)} row(s)", key="bulk_assign"):
            try:
                pairs = console.ndr.assign_by_percentages([r.record.id for r in rows], percents)
            except (RemoteRequestError, ValueError) as exc:
                show_feedback(str(exc), "error")
            else:
                flash(f"Assigned {len(pairs)} row(s).")
                _rerun_app()


def render_ndr_dashboard(console: Console) -> None:
    if not render_ndr_login(console):
        return
    show_flash()
    user = console.teams.current_user()
    st.caption(f"Logged in as **{user}** · team {console.store.get(NDR_ACTIVE_TEAM_NAME, '') or console.teams.active_team_id()}")

    try:
        rows = _load_rows(console)
        members = console.teams.member_handles(console.teams.active_team_id())
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return

    criteria = _filters(rows, console)
    criteria.stat = _stat_tiles(rows)
    filtered = filter_rows(rows, criteria)
    st.caption(f"{len(filtered)} of {len(rows)} row(s)")

    table = ndr_export_rows(filtered)
    st.dataframe(table, use_container_width=True, hide_index=True, height=360)
    export_controls(table, NDR_EXPORT_HEADERS, "ndr_export", "ndr_export.csv")

    if filtered:
        by_label = {f"{r.record.order_id} · {r.record.waybill} · {r.bucket}": r for r in filtered}
        selected = st.selectbox("Open row", list(by_label))
        _row_editor(console, by_label[selected], members)
        _bulk_assign(console, filtered, members)


def render_allocation(console: Console) -> None:
    if not render_ndr_login(console):
        return
    show_flash()
    team_id = console.teams.active_team_id()
    try:
        members = console.teams.member_handles(team_id)
        rule = console.teams.load_rule(team_id) or {}
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return

    stored = {
        str(entry.get("member")): entry.get("percent", 0)
        for entry in rule.get("percents") or []
        if isinstance(entry, dict)
    }
    defaults = {m: int(round(float(stored.get(m, 0)))) for m in members} if stored else even_percentages(members)
    st.caption("Percent of new NDR rows each member receives. The total must be 100.")
    percents = {m: st.number_input(m, min_value=0, max_value=100, value=defaults.get(m, 0), key=f"rule_{m}") for m in members}
    st.metric("Total", f"{sum(percents.values())}%")

    cols = st.columns(3)
    if cols[0].button("Save rule", type="primary"):
        try:
            console.teams.save_rule(team_id, percents)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            flash("Allocation rule saved.")
            _rerun_app()
    if cols[1].button("Split evenly"):
        for member, value in even_percentages(members).items():
            st.session_state[f"rule_{member}"] = value
        _rerun_app()
    if cols[2].button("Reset allocation", help="Unassign every NDR row held by this team"):
        try:
            console.ndr.reset_allocation()
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
        else:
            flash("Team allocation cleared; rows will be re-assigned on next load.", "info")
            _rerun_app()

    with st.expander("Recent activity", expanded=False):
        try:
            st.dataframe(console.ndr.activity(), use_container_width=True, hide_index=True)
        except RemoteRequestError as exc:
            show_feedback(str(exc), "warning")

    with st.expander("Team members", expanded=False):
        try:
            roster = console.teams.list_members(team_id)
        except RemoteRequestError as exc:
            show_feedback(str(exc), "warning")
            roster = []
        for entry in roster:
            cols = st.columns([2, 2, 1])
            cols[0].write(entry.get("member"))
            new_pin = cols[1].text_input("New PIN", type="password", key=f"pin_{entry['id']}", label_visibility="collapsed")
            if cols[2].button("Set PIN", key=f"set_pin_{entry['id']}"):
                try:
                    console.teams.set_member_pin(int(entry["id"]), new_pin)
                except RemoteRequestError as exc:
                    show_feedback(str(exc), "error")
                else:
                    show_feedback(f"PIN updated for {entry.get('member')}.", "success")
        with st.form("add_member", clear_on_submit=True):
            name = st.text_input("Member")
            pin = st.text_input("PIN (optional)", type="password")
            if st.form_submit_button("Add member"):
                try:
                    console.teams.add_member(team_id, name, pin)
                except (RemoteRequestError, ValueError) as exc:
                    show_feedback(str(exc), "error")
                else:
                    flash(f"Added {name}.")
                    _rerun_app()
