"""Runtime settings for the console's remote backends.

Endpoints and credentials come from Streamlit secrets or the environment
(see :func:`opsconsole.core.utils.get_config_value`). A ``KEY=VALUE`` file
at ``secrets/opsconsole.env`` (or ``OPSCONSOLE_SECRET_FILE``) is loaded once
per process for local runs.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict

from opsconsole.core.utils import get_config_value, load_env_file

DEFAULT_SECRET_FILE = Path("secrets/opsconsole.env")
_SECRETS_LOADED = False

MCUBE_OUTBOUND_URL = "https://api.mcube.com/Restmcube-api/outbound-calls"
CALLERDESK_CLICK_TO_CALL_URL = "https://app.callerdesk.io/api/click_to_call_v2"

DEFAULT_NOCODB_TABLES = {
    "slips": "mis8ifo8jxfn2ws",
    "missed_calls": "m135bs690ngf28r",
    "incoming_email": "md2i0xibfqgmv9y",
    "incoming_calls": "mkq6wdce7yukjl9",
}
DEFAULT_NOCODB_VIEWS = {"missed_calls": "vw6crj6fzeftwwwh"}


def _ensure_secrets_env() -> None:
    global _SECRETS_LOADED
    if _SECRETS_LOADED:
        return
    _SECRETS_LOADED = True
    load_env_file(Path(os.getenv("OPSCONSOLE_SECRET_FILE", DEFAULT_SECRET_FILE)))


def _int_setting(key: str, default: int) -> int:
    raw = get_config_value(key, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc


@dataclass
class Settings:
    """Every endpoint, credential and tunable the console talks to."""

    console_password: str = ""
    order_lookup_url: str = ""
    order_create_url: str = ""
    order_list_url: str = ""
    tracking_update_url: str = ""
    slip_lookup_url: str = ""
    ndr_mailer_url: str = ""
    feedback_url: str = ""
    tracking_page_url: str = "https://aurawill.clickpost.ai/en?waybill="
    nocodb_base_url: str = ""
    nocodb_token: str = ""
    nocodb_tables: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_NOCODB_TABLES))
    nocodb_views: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_NOCODB_VIEWS))
    supabase_url: str = ""
    supabase_key: str = ""
    callerdesk_authcode: str = ""
    callerdesk_deskphone: str = ""
    callerdesk_agent_number: str = ""
    mcube_token: str = ""
    state_file: Path = Path(".opsconsole/state.json")
    ndr_poll_seconds: int = 300
    http_timeout: int = 30

    def require(self, name: str) -> str:
        """Return a setting or raise when it was never configured."""

        value = getattr(self, name)
        if not value:
            raise ValueError(f"{name.upper()} is not configured; set it in secrets or the environment")
        return value


def load_settings() -> Settings:
    """Build :class:`Settings` from secrets, the env file and the environment."""

    _ensure_secrets_env()
    tables = dict(DEFAULT_NOCODB_TABLES)
    for name in tables:
        tables[name] = get_config_value(f"NOCODB_TABLE_{name.upper()}", tables[name])

    return Settings(
        console_password=get_config_value("OPSCONSOLE_PASSWORD"),
        order_lookup_url=get_config_value("ORDER_LOOKUP_WEBHOOK_URL"),
        order_create_url=get_config_value("ORDER_CREATE_WEBHOOK_URL"),
        order_list_url=get_config_value("ORDER_LIST_WEBHOOK_URL"),
        tracking_update_url=get_config_value("TRACKING_WEBHOOK_URL"),
        slip_lookup_url=get_config_value("SLIP_WEBHOOK_URL"),
        ndr_mailer_url=get_config_value("NDR_MAILER_WEBHOOK_URL"),
        feedback_url=get_config_value("FEEDBACK_WEBHOOK_URL"),
        tracking_page_url=get_config_value("TRACKING_PAGE_URL", Settings.tracking_page_url),
        nocodb_base_url=get_config_value("NOCODB_BASE_URL").rstrip("/"),
        nocodb_token=get_config_value("NOCODB_TOKEN"),
        nocodb_tables=tables,
        supabase_url=get_config_value("SUPABASE_URL").rstrip("/"),
        supabase_key=get_config_value("SUPABASE_KEY"),
        callerdesk_authcode=get_config_value("CALLERDESK_AUTHCODE"),
        callerdesk_deskphone=get_config_value("CALLERDESK_DESKPHONE"),
        callerdesk_agent_number=get_config_value("CALLERDESK_AGENT_NUMBER"),
        mcube_token=get_config_value("MCUBE_TOKEN"),
        state_file=Path(get_config_value("OPSCONSOLE_STATE_FILE", ".opsconsole/state.json")),
        ndr_poll_seconds=_int_setting("NDR_POLL_SECONDS", 300),
        http_timeout=_int_setting("HTTP_TIMEOUT", 30),
    )
