"""Agent analytics, survey categories, segmentation and batch update views."""
from __future__ import annotations

import csv
import io
from typing import Any, Dict, List

import streamlit as st

from opsconsole.core.errors import RemoteRequestError
from opsconsole.processing.aggregation import (
    KEYWORD_CATALOGS,
    drill_down,
    frequency_table,
    load_groups,
    merge_categories,
    paginate,
    remove_group,
    save_groups,
)
from opsconsole.processing.filters import QUICK_RANGES, quick_range
from opsconsole.processing.segmentation import DIMENSIONS
from opsconsole.reporting.templates import AGENT_EXPORT_HEADERS, agent_export_rows
from opsconsole.services.analytics import (
    Pivot,
    agent_aggregates,
    batch_update_by_order_number,
    detect_date_key,
    filter_rows_by_range,
    load_segmentation,
    parse_batch_updates,
    pivot_drill,
    table_pivots,
)
from opsconsole.ui.context import Console, _rerun_app, export_controls, show_feedback

ANALYTICS_TABLES = {
    "missed_calls": "Missed call",
    "incoming_email": "Incoming Email",
    "incoming_calls": "Incoming calls",
}


def _pivot_rows(pivot: Pivot) -> List[Dict[str, Any]]:
    rows = []
    for day, cells, total in pivot.matrix:
        row: Dict[str, Any] = {"Day": day}
        row.update(dict(zip(pivot.columns, cells)))
        row["Total"] = total
        rows.append(row)
    if rows:
        footer: Dict[str, Any] = {"Day": "Grand total"}
        footer.update(dict(zip(pivot.columns, pivot.grand_totals)))
        footer["Total"] = pivot.grand_total
        rows.append(footer)
    return rows


def _render_pivot(title: str, pivot: Pivot, rows: List[Dict[str, Any]], date_key: str, key: str) -> None:
    st.markdown(f"#### {title}")
    if not pivot.column:
        st.caption("No matching column in this table.")
        return
    st.metric("All", pivot.grand_total)
    st.dataframe(_pivot_rows(pivot), use_container_width=True, hide_index=True)
    cols = st.columns(2)
    value = cols[0].selectbox("Drill into", ["", *pivot.columns], key=f"{key}_value")
    day = cols[1].selectbox("Day", ["", *pivot.days], key=f"{key}_day")
    if value or day:
        drilled = pivot_drill(rows, pivot.column, value or None, date_key, day or None)
        st.dataframe(drilled, use_container_width=True, hide_index=True)


def render_agent_analytics(console: Console) -> None:
    cols = st.columns([1.2, 1, 1])
    table_name = cols[0].selectbox("Table", list(ANALYTICS_TABLES), format_func=ANALYTICS_TABLES.get)
    agent_field = cols[1].text_input("Agent field", value="Agent")
    preset = cols[2].selectbox("Range", QUICK_RANGES, index=len(QUICK_RANGES) - 1, key="agent_range")

    cache_key = f"analytics_rows:{table_name}"
    if st.button("Reload", type="secondary") or cache_key not in st.session_state:
        try:
            st.session_state[cache_key] = console.nocodb.list_records(
                console.table_id(table_name), view_id=console.settings.nocodb_views.get(table_name)
            )
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return
    rows = st.session_state[cache_key]

    start, end = quick_range(preset)
    missed = table_name == "missed_calls"
    filtered = filter_rows_by_range(rows, start, end, prefer_date_column=missed)

    filter_cols = st.columns(4)
    query = filter_cols[0].text_input("Agent contains")
    min_total = filter_cols[1].number_input("Min total", min_value=0, value=0)
    sort_key = filter_cols[2].selectbox("Sort by", ["total", "agent", "lastActivity"])
    descending = filter_cols[3].toggle("Descending", value=True)
    aggregates = agent_aggregates(filtered, agent_field, query, int(min_total) or None, sort_key, descending)

    metric_cols = st.columns(2)
    metric_cols[0].metric("Records", len(filtered))
    metric_cols[1].metric("Agents", len(aggregates))
    export_rows = agent_export_rows(aggregates)
    st.dataframe(export_rows, use_container_width=True, hide_index=True)
    export_controls(export_rows, AGENT_EXPORT_HEADERS, "agent_analytics", f"agents_{table_name}.csv")

    date_key = detect_date_key(filtered[0], prefer_date_column=missed) if filtered else None
    if not date_key:
        st.info("No date field detected for pivot")
        return
    pivots = table_pivots(filtered, date_key, agent_field, email_table=table_name == "incoming_email")
    titles = {"status": "Status by day", "agent": "Agent by day", "reason": "Reason by day", "final": "Final status by day"}
    for name, pivot in pivots.items():
        with st.expander(titles[name], expanded=False):
            _render_pivot(titles[name], pivot, filtered, date_key, f"pivot_{name}")


def render_survey_categories(console: Console) -> None:
    cols = st.columns([1.2, 1, 1])
    field = cols[0].selectbox("Survey field", list(KEYWORD_CATALOGS) + ["usage_time", "family_user", "profession_text", "city_text"])
    preset = cols[1].selectbox("Range", QUICK_RANGES, index=len(QUICK_RANGES) - 1, key="survey_range")
    page_size = cols[2].selectbox("Rows per page", (10, 25, 50), index=0)
    start, end = quick_range(preset)

    if st.button("Reload feedback", type="secondary") or "survey_rows" not in st.session_state:
        try:
            st.session_state["survey_rows"] = console.repeat.load_feedback()
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return
    records = st.session_state["survey_rows"]

    groups = load_groups(console.store, field)
    table = frequency_table(records, field, start, end, groups=groups)
    if not table:
        st.info(f"No answers recorded for {field}.")
        return

    page = st.number_input("Page", min_value=1, value=1, key="survey_page")
    page_rows, total_pages = paginate([row.to_dict() for row in table], int(page), page_size)
    st.caption(f"{sum(row.count for row in table)} answers · page {min(int(page), total_pages)} of {total_pages}")
    st.dataframe(page_rows, use_container_width=True, hide_index=True)

    with st.expander("Group categories", expanded=False):
        picked = st.multiselect("Categories to merge", [row.label for row in table])
        name = st.text_input("Group name")
        merge_cols = st.columns(2)
        if merge_cols[0].button("Merge", disabled=not picked):
            try:
                save_groups(console.store, field, merge_categories(groups, picked, name))
            except ValueError as exc:
                show_feedback(str(exc), "error")
            else:
                _rerun_app()
        existing = sorted(set(groups.values()))
        if existing:
            to_remove = merge_cols[1].selectbox("Ungroup", existing)
            if merge_cols[1].button("Remove group"):
                save_groups(console.store, field, remove_group(groups, to_remove))
                _rerun_app()

    label = st.selectbox("Show answers for", ["", *(row.label for row in table)])
    if label:
        answers = drill_down(records, field, label, groups)
        st.dataframe(answers, use_container_width=True, hide_index=True)


def render_segmentation(console: Console) -> None:
    cols = st.columns([2, 1, 1, 1])
    dims = cols[0].multiselect("Group by", DIMENSIONS, default=["state"])
    start = cols[1].date_input("From", value=None, key="seg_from")
    end = cols[2].date_input("To", value=None, key="seg_to")
    status = cols[3].text_input("Status contains")
    if not st.button("Run segmentation", type="primary"):
        return
    try:
        rows = load_segmentation(
            console.supabase,
            dims or ["state"],
            start.isoformat() if start else "",
            end.isoformat() if end else "",
            status,
        )
    except (RemoteRequestError, ValueError) as exc:
        show_feedback(str(exc), "error")
        return
    st.caption(f"{len(rows)} segment(s), {sum(r['count'] for r in rows)} order(s)")
    st.dataframe(rows, use_container_width=True, hide_index=True)
    export_controls(rows, [*(dims or ["state"]), "count"], "segmentation", "segmentation.csv")


def render_batch_update(console: Console) -> None:
    st.caption("Upload a CSV with an order number column and the fields to overwrite. Blank cells are left unchanged.")
    cols = st.columns(2)
    table_name = cols[0].selectbox("Table", list(console.settings.nocodb_tables))
    order_field = cols[1].text_input("Order number column", value="Order ID")
    upload = st.file_uploader("Updates CSV", type=["csv"], key="batch_csv")
    if upload is None:
        return
    reader = csv.DictReader(io.StringIO(upload.getvalue().decode("utf-8-sig")))
    updates = parse_batch_updates(reader, order_field)
    if not updates:
        show_feedback(f"No rows with a value in {order_field!r}.", "warning")
        return
    st.dataframe([{order_field: k, **v} for k, v in updates.items()], use_container_width=True, hide_index=True)
    if st.button(f"Update {len(updates)} order(s)", type="primary"):
        try:
            outcomes = batch_update_by_order_number(console.nocodb, console.table_id(table_name), order_field, updates)
        except (RemoteRequestError, ValueError) as exc:
            show_feedback(str(exc), "error")
            return
        failed = {k: v for k, v in outcomes.items() if not v.startswith("updated")}
        level = "warning" if failed else "success"
        show_feedback(f"{len(outcomes) - len(failed)} updated, {len(failed)} not updated.", level)
        st.dataframe([{"Order": k, "Outcome": v} for k, v in outcomes.items()], hide_index=True)
