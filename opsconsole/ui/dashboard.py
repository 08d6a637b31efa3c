"""Streamlit operations console: orders, shipping, NDR and repeat-customer work."""
from pathlib import Path

import streamlit as st

# Allow running via "streamlit run opsconsole/ui/dashboard.py" without installing the package
# by ensuring the repository root is on ``sys.path``.
if __package__ in {None, ""}:
    import sys

    sys.path.append(str(Path(__file__).resolve().parents[2]))

from opsconsole.core.logging import configure_logging
from opsconsole.core.store import authenticate, is_authenticated
from opsconsole.ui.context import CONSOLE_KEY, STORE_KEY, Console, _rerun_app, get_console, show_feedback
from opsconsole.ui.fulfillment import (
    render_gst_invoice,
    render_manifest,
    render_order_form,
    render_order_history,
    render_print_slips,
    render_tracking,
    render_webhook_slips,
)
from opsconsole.ui.insights import (
    render_agent_analytics,
    render_batch_update,
    render_segmentation,
    render_survey_categories,
)
from opsconsole.ui.manual_orders_view import render_manual_orders
from opsconsole.ui.navigation import ACTIVE_TAB, DEFAULT_TAB, TABS, get_tab
from opsconsole.ui.ndr_view import render_allocation, render_ndr_dashboard
from opsconsole.ui.repeat_view import render_repeat_campaign, render_repeat_dashboard
from opsconsole.ui.team_view import render_team_analytics

RENDERERS = {
    "order": render_order_form,
    "orderhistory": render_order_history,
    "printslip": render_print_slips,
    "webhook_printslip": render_webhook_slips,
    "tracking": render_tracking,
    "manifest": render_manifest,
    "manual_orders": render_manual_orders,
    "campaign": render_repeat_campaign,
    "repeat_dashboard": render_repeat_dashboard,
    "ndr": render_ndr_dashboard,
    "allocation": render_allocation,
    "team_analytics": render_team_analytics,
    "agent_analytics": render_agent_analytics,
    "survey_categories": render_survey_categories,
    "segmentation": render_segmentation,
    "batch_update": render_batch_update,
    "gstinvoice": render_gst_invoice,
}


def _auth_gate(console: Console) -> bool:
    """Show the password prompt until the console is unlocked."""

    if is_authenticated(console.store):
        return True
    st.title("Operations Console")
    with st.form("auth"):
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Unlock", type="primary")
    if submitted:
        try:
            ok = authenticate(console.store, password, console.settings.console_password)
        except ValueError as exc:
            show_feedback(str(exc), "error")
            return False
        if not ok:
            show_feedback("Incorrect password", "error")
            return False
        _rerun_app()
    return False


def _logout(console: Console) -> None:
    console.store.clear_session()
    for key in list(st.session_state.keys()):
        if key not in (CONSOLE_KEY, STORE_KEY):
            st.session_state.pop(key, None)
    _rerun_app()


def main() -> None:
    """Launch the console."""

    st.set_page_config(page_title="Operations Console", layout="wide", initial_sidebar_state="expanded")
    configure_logging()
    console = get_console()
    if not _auth_gate(console):
        return

    keys = [tab.key for tab in TABS]
    st.session_state.setdefault(ACTIVE_TAB, DEFAULT_TAB)
    with st.sidebar:
        st.subheader("Operations Console")
        st.radio(
            "Go to",
            options=keys,
            format_func=lambda key: get_tab(key).label,
            key=ACTIVE_TAB,
            label_visibility="collapsed",
        )
        if st.button("Logout", type="secondary"):
            _logout(console)

    tab = get_tab(st.session_state[ACTIVE_TAB])
    st.header(tab.label)
    st.caption(tab.description)
    RENDERERS[tab.key](console)


if __name__ == "__main__":
    main()
