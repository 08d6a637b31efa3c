"""Teams, members, PIN login and allocation rules stored in Supabase."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from opsconsole.clients.supabase import SupabaseClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.store import (
    AUTH_TOKEN,
    AUTHENTICATED,
    NDR_ACTIVE_TEAM_ID,
    NDR_ACTIVE_TEAM_NAME,
    NDR_AUTO_ALLOC_DONE,
    NDR_SESSION,
    NDR_USER,
    LocalStore,
)
from opsconsole.core.utils import now_iso
from opsconsole.processing.allocation import percentage_rule

logger = logging.getLogger(__name__)


class TeamService:
    def __init__(self, supabase: SupabaseClient, store: LocalStore) -> None:
        self.supabase = supabase
        self.store = store

    def list_teams(self) -> List[Dict[str, Any]]:
        return self.supabase.select("teams", {"order": "name.asc"})

    def list_members(self, team_id: int) -> List[Dict[str, Any]]:
        params = {"team_id": f"eq.{team_id}", "order": "member.asc"}
        try:
            return self.supabase.select("team_members", {**params, "select": "id,team_id,member,pin,phone"})
        except RemoteRequestError as exc:
            if exc.status_code != 400:
                raise
            logger.info("team_members has no pin/phone column; reading names only")
            return self.supabase.select("team_members", {**params, "select": "id,team_id,member"})

    def member_handles(self, team_id: int) -> List[str]:
        return [str(m["member"]) for m in self.list_members(team_id) if m.get("member")]

    def login(self, team_id: int, member: str, pin: str, team_name: str = "") -> None:
        """Check the member's PIN (when the table has one) and start an NDR session."""

        if not team_id or not member or not pin:
            raise ValueError("Select team, member and enter PIN")
        rows = self.supabase.select(
            "team_members",
            {"team_id": f"eq.{team_id}", "member": f"eq.{member}", "select": "id,member,pin", "limit": 1},
        )
        row = rows[0] if rows else None
        if row is not None and "pin" in row and str(row.get("pin") or "") != str(pin):
            logger.warning("Invalid PIN for %s", member)
            raise ValueError("Invalid PIN")

        self.store.set(AUTH_TOKEN, AUTHENTICATED)
        self.store.set(NDR_USER, member)
        self.store.set(NDR_ACTIVE_TEAM_ID, team_id)
        self.store.set(NDR_ACTIVE_TEAM_NAME, team_name)
        self.store.set(NDR_SESSION, now_iso())
        self.store.remove(NDR_AUTO_ALLOC_DONE)
        logger.info("%s logged in to team %s", member, team_id)

    def current_user(self) -> str:
        return self.store.get(NDR_USER, "") or ""

    def active_team_id(self) -> Optional[int]:
        raw = self.store.get(NDR_ACTIVE_TEAM_ID)
        return int(raw) if raw and raw.isdigit() else None

    def load_rule(self, team_id: int) -> Optional[Dict[str, Any]]:
        rows = self.supabase.select("ndr_allocation_rules", {"team_id": f"eq.{team_id}", "select": "rule", "limit": 1})
        return (rows[0] or {}).get("rule") if rows else None

    def save_rule(self, team_id: int, percents: Mapping[str, float]) -> Dict[str, Any]:
        if not team_id:
            raise ValueError("Select a team first")
        rule = percentage_rule(percents)
        self.supabase.insert(
            "ndr_allocation_rules",
            {"team_id": team_id, "rule": rule},
            prefer="resolution=merge-duplicates",
        )
        logger.info("Saved allocation rule for team %s", team_id)
        return rule

    def set_member_pin(self, member_id: int, pin: str) -> None:
        self.supabase.patch("team_members", {"id": f"eq.{member_id}"}, {"pin": pin or None})

    def add_member(self, team_id: int, member: str, pin: str = "") -> Any:
        member = (member or "").strip()
        if not team_id or not member:
            raise ValueError("Select a team and enter a member name")
        result = self.supabase.insert("team_members", {"team_id": team_id, "member": member, "pin": pin or None})
        logger.info("Added %s to team %s", member, team_id)
        return result
