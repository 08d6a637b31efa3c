"""Per-session wiring shared by the dashboard views."""
from __future__ import annotations

from functools import cached_property
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import requests
import streamlit as st

from opsconsole.clients.http import build_session
from opsconsole.clients.nocodb import NocoDBClient
from opsconsole.clients.supabase import SupabaseClient
from opsconsole.clients.telephony import TelephonyClient
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.settings import Settings, load_settings
from opsconsole.core.store import LocalStore
from opsconsole.reporting.sinks import csv_text, push_to_google_sheets, write_excel
from opsconsole.services.manual_orders import ManualOrderService
from opsconsole.services.ndr import NdrService
from opsconsole.services.orders import OrderService
from opsconsole.services.repeat import RepeatService
from opsconsole.services.team_analytics import TeamAnalyticsService
from opsconsole.services.teams import TeamService

CONSOLE_KEY = "console"
STORE_KEY = "console_store"


class Console:
    """Settings, the per-session store and lazily-built backend clients.

    Clients whose settings are missing raise ``ValueError`` on first use,
    so each view can report what is not configured.
    """

    def __init__(self, settings: Settings, store: LocalStore, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.store = store
        self.session = session or build_session()

    @cached_property
    def webhooks(self) -> WebhookClient:
        return WebhookClient(self.settings, self.session)

    @cached_property
    def nocodb(self) -> NocoDBClient:
        return NocoDBClient.from_settings(self.settings, self.session)

    @cached_property
    def supabase(self) -> SupabaseClient:
        return SupabaseClient.from_settings(self.settings, self.session)

    @cached_property
    def telephony(self) -> TelephonyClient:
        return TelephonyClient(self.settings, self.session)

    @cached_property
    def orders(self) -> OrderService:
        return OrderService(self.webhooks, self.store)

    @cached_property
    def teams(self) -> TeamService:
        return TeamService(self.supabase, self.store)

    @cached_property
    def ndr(self) -> NdrService:
        return NdrService(self.supabase, self.store, self.webhooks, self.teams, self.settings.tracking_page_url)

    @cached_property
    def repeat(self) -> RepeatService:
        return RepeatService(self.supabase, self.telephony, self.webhooks)

    @cached_property
    def manual_orders(self) -> ManualOrderService:
        return ManualOrderService(self.supabase, self.store, self.webhooks)

    @cached_property
    def team_analytics(self) -> TeamAnalyticsService:
        return TeamAnalyticsService(self.ndr)

    def table_id(self, name: str) -> str:
        table = self.settings.nocodb_tables.get(name, "")
        if not table:
            raise ValueError(f"NocoDB table for {name!r} is not configured")
        return table


def get_console() -> Console:
    """One console per browser session."""

    if CONSOLE_KEY not in st.session_state:
        settings = load_settings()
        store = LocalStore(settings.state_file, session=st.session_state.setdefault(STORE_KEY, {}))
        st.session_state[CONSOLE_KEY] = Console(settings, store)
    return st.session_state[CONSOLE_KEY]


def _rerun_app() -> None:
    """Trigger a Streamlit rerun, compatible with newer and older APIs."""

    rerun = getattr(st, "rerun", None) or getattr(st, "experimental_rerun", None)
    if not rerun:
        raise RuntimeError("Streamlit does not expose a rerun helper.")
    rerun()


def show_feedback(message: Optional[str], level: Optional[str] = "info", target: Any = None) -> None:
    if not message:
        return
    target = target or st
    renderer = {
        "success": target.success,
        "warning": target.warning,
        "info": target.info,
        "error": target.error,
    }.get(level or "info", target.info)
    renderer(message)


def flash(message: str, level: str = "success") -> None:
    """Keep a message across the next rerun."""

    st.session_state["last_action"] = {"message": message, "level": level}


def show_flash() -> None:
    last = st.session_state.pop("last_action", None)
    if last:
        show_feedback(last["message"], last["level"])


def _has_sheets_secrets() -> bool:
    try:
        return "gcp_service_account" in st.secrets
    except (FileNotFoundError, KeyError):
        return False


def export_sink(
    rows: List[Dict[str, Any]],
    headers: Sequence[str],
    sink: str,
    excel_path: Optional[Path] = None,
    spreadsheet_id: str = "",
    worksheet_title: str = "",
    service_account_path: Optional[Path] = None,
) -> tuple[Optional[str], Optional[str]]:
    """Run an Excel or Google Sheets export and return ``(message, level)``."""

    if not rows:
        return "Nothing to export for the current filters.", "info"

    if sink == "excel":
        target = excel_path or Path("output/export.xlsx")
        try:
            write_excel(rows, target, headers=headers)
        except (OSError, ImportError) as exc:
            return f"Excel export failed: {exc}", "error"
        return f"Excel export saved to {target}", "success"

    if sink == "sheets":
        if not spreadsheet_id or not worksheet_title:
            return "Provide spreadsheet ID and worksheet title to sync with Google Sheets.", "warning"
        if not _has_sheets_secrets():
            if not service_account_path:
                return "Provide a service account file or configure gcp_service_account in Streamlit secrets.", "warning"
            if not service_account_path.exists():
                return f"Service account file not found at {service_account_path}.", "warning"
        try:
            push_to_google_sheets(
                rows,
                spreadsheet_id=spreadsheet_id,
                worksheet_title=worksheet_title,
                service_account_path=service_account_path,
                headers=headers,
            )
        except Exception as exc:  # pragma: no cover - gspread raises many types
            return f"Google Sheets sync failed: {exc}", "error"
        return f"Pushed {len(rows)} rows to Google Sheets worksheet '{worksheet_title}'.", "success"

    return None, None


def export_controls(rows: List[Dict[str, Any]], headers: Sequence[str], key: str, filename: str) -> None:
    """CSV download plus Excel / Google Sheets export for a table of rows."""

    st.download_button(
        "Download CSV",
        data=csv_text(rows, headers),
        file_name=filename,
        mime="text/csv",
        key=f"{key}_csv",
        disabled=not rows,
    )
    with st.expander("Export to Excel or Google Sheets", expanded=False):
        sink = st.radio(
            "Choose destination",
            options=["excel", "sheets"],
            format_func=lambda value: value.upper(),
            horizontal=True,
            key=f"{key}_sink",
        )
        excel_path = st.text_input("Excel file path", value=f"output/{Path(filename).stem}.xlsx", key=f"{key}_xlsx")
        sheet_cols = st.columns(3)
        spreadsheet_id = sheet_cols[0].text_input("Spreadsheet ID", key=f"{key}_sheet_id")
        worksheet_title = sheet_cols[1].text_input("Worksheet title", value="Sheet1", key=f"{key}_sheet_title")
        service_account = sheet_cols[2].text_input("Service account JSON", value="service_account.json", key=f"{key}_sa")
        if st.button("Export", key=f"{key}_export"):
            message, level = export_sink(
                rows,
                headers,
                sink,
                excel_path=Path(excel_path) if excel_path else None,
                spreadsheet_id=spreadsheet_id.strip(),
                worksheet_title=worksheet_title.strip(),
                service_account_path=Path(service_account.strip()) if service_account.strip() else None,
            )
            show_feedback(message, level)
