"""Team analytics: per-member NDR assignments, follow-up and resolution."""
from __future__ import annotations

from datetime import datetime, timedelta

import streamlit as st

from opsconsole.core.errors import RemoteRequestError
from opsconsole.processing.buckets import courier_name
from opsconsole.processing.filters import IST
from opsconsole.processing.team_metrics import ALL, TeamRowFilter
from opsconsole.reporting.sinks import csv_text
from opsconsole.reporting.templates import ASSIGNMENT_REPORT_HEADERS, assignment_report_rows
from opsconsole.ui.context import Console, show_feedback

DEFAULT_WINDOW_DAYS = 30


def _pick_team(console: Console):
    teams = console.teams.list_teams()
    if not teams:
        st.info("No teams configured yet.")
        return None
    ids = [team.get("id") for team in teams]
    names = {team.get("id"): team.get("name") or str(team.get("id")) for team in teams}
    active = console.teams.active_team_id()
    index = ids.index(active) if active in ids else 0
    return st.selectbox("Team", ids, index=index, format_func=lambda team_id: names[team_id])


def _row_filter(rows) -> TeamRowFilter:
    statuses = sorted({str(r.get("delivery_status") or r.get("status") or "") for r in rows} - {""})
    couriers = sorted({courier_name(r.get("courier_account") or "") for r in rows} - {"—"})
    cols = st.columns(6)
    return TeamRowFilter(
        order_id=cols[0].text_input("Order ID"),
        awb=cols[1].text_input("AWB"),
        status=cols[2].selectbox("Status", [ALL] + statuses),
        courier=cols[3].selectbox("Courier", [ALL] + couriers),
        email=cols[4].selectbox("Email sent", [ALL, "Yes", "No"]),
        call=cols[5].selectbox("Called", [ALL, "Yes", "No"]),
    )


def render_team_analytics(console: Console) -> None:
    try:
        team_id = _pick_team(console)
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return
    if team_id is None:
        return

    today = datetime.now(IST).date()
    cols = st.columns(2)
    start = cols[0].date_input("From", value=today - timedelta(days=DEFAULT_WINDOW_DAYS))
    end = cols[1].date_input("To", value=today)
    try:
        report = console.team_analytics.load(team_id, start, end)
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return

    st.subheader("Assignment snapshot")
    agent = st.selectbox("Agent", [ALL] + report.members)
    snapshot = report.snapshot(agent)
    tiles = st.columns(2)
    tiles[0].metric("Assigned", snapshot.assigned)
    tiles[1].metric("Raised with delivery partner", snapshot.raised_with_partner)
    split = st.columns(2)
    split[0].dataframe([{"Partner": k, "Rows": v} for k, v in snapshot.by_partner], hide_index=True)
    split[1].dataframe([{"Agent": k, "Rows": v} for k, v in snapshot.by_agent], hide_index=True)
    st.download_button(
        "Download report",
        data=csv_text(assignment_report_rows(snapshot.rows), ASSIGNMENT_REPORT_HEADERS),
        file_name=report.report_filename(agent),
        mime="text/csv",
        disabled=not snapshot.rows,
    )

    st.subheader("Member performance")
    criteria = _row_filter(report.ndr_rows)
    performance = [entry.to_dict() for entry in report.performance(criteria)]
    if performance:
        st.bar_chart(performance, x="member", y=["assigned", "emails_sent", "calls_updated"])
        st.dataframe(performance, use_container_width=True, hide_index=True)
    else:
        st.info("This team has no members.")

    st.subheader("Resolution")
    st.dataframe([{"Outcome": k, "Rows": v} for k, v in report.resolutions(criteria).items()], hide_index=True)

    st.subheader("Actions per day")
    st.line_chart([{"day": day, "actions": count} for day, count in report.daily_actions()], x="day", y="actions")
