"""Supabase PostgREST tables and RPC functions."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests

from opsconsole.clients.http import build_session, request_json
from opsconsole.core.settings import Settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """``select``/``insert``/``patch``/``delete`` on tables plus ``rpc`` calls.

    Filters use PostgREST syntax, e.g. ``{"id": "eq.12", "assigned_to": "is.null"}``.
    """

    def __init__(self, url: str, key: str, session: Optional[requests.Session] = None, timeout: int = 30) -> None:
        if not url or not key:
            raise ValueError("Supabase URL and key are required")
        self.rest_url = url.rstrip("/")
        if not self.rest_url.endswith("/rest/v1"):
            self.rest_url += "/rest/v1"
        self.session = session or build_session()
        self.timeout = timeout
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "SupabaseClient":
        return cls(
            settings.require("supabase_url"),
            settings.require("supabase_key"),
            session=session,
            timeout=settings.http_timeout,
        )

    def _send(self, method: str, path: str, context: str, prefer: Optional[str] = None, **kwargs: Any) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer
        return request_json(
            self.session, method, f"{self.rest_url}/{path}", context, timeout=self.timeout, headers=headers, **kwargs
        )

    def select(self, table: str, params: Optional[Mapping[str, Any]] = None) -> list:
        query = {"select": "*", **(params or {})}
        return self._send("GET", table, f"Read {table}", params=query) or []

    def insert(self, table: str, body: Any, prefer: Optional[str] = None) -> Any:
        return self._send("POST", table, f"Insert into {table}", prefer=prefer, json=body)

    def patch(self, table: str, filters: Mapping[str, Any], body: Mapping[str, Any]) -> Any:
        if not filters:
            raise ValueError(f"Refusing to patch every row of {table}")
        return self._send("PATCH", table, f"Update {table}", params=dict(filters), json=dict(body))

    def delete(self, table: str, filters: Mapping[str, Any]) -> Any:
        if not filters:
            raise ValueError(f"Refusing to delete every row of {table}")
        return self._send("DELETE", table, f"Delete from {table}", params=dict(filters))

    def rpc(self, name: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        return self._send("POST", f"rpc/{name}", f"RPC {name}", json=payload or {})
