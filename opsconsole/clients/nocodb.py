"""NocoDB v2 table API: paginated reads and bulk patches."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

import requests

from opsconsole.clients.http import build_session, request_json
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.settings import Settings

logger = logging.getLogger(__name__)

PAGE_SIZE = 500
MAX_ROWS = 100000
UNAUTHORIZED_MESSAGE = "401 Unauthorized: NocoDB token rejected by server. Check NOCODB_TOKEN."
_WHERE_SPECIAL = set(",()\"\\")


def where_value(value: Any) -> str:
    """Quote a filter value that would otherwise break the ``(field,op,value)`` syntax."""

    text = str(value)
    if not any(char in _WHERE_SPECIAL for char in text) and text == text.strip():
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def eq_filter(field: str, value: Any) -> str:
    return f"({field},eq,{where_value(value)})"


class NocoDBClient:
    def __init__(self, base_url: str, token: str, session: Optional[requests.Session] = None, timeout: int = 30) -> None:
        if not base_url or not token:
            raise ValueError("NocoDB base URL and token are required")
        self.base_url = base_url.rstrip("/")
        self.session = session or build_session()
        self.timeout = timeout
        self.headers = {"xc-token": token}

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "NocoDBClient":
        return cls(
            settings.require("nocodb_base_url"),
            settings.require("nocodb_token"),
            session=session,
            timeout=settings.http_timeout,
        )

    def _url(self, table_id: str) -> str:
        return f"{self.base_url}/api/v2/tables/{table_id}/records"

    def _request(self, method: str, table_id: str, context: str, **kwargs: Any) -> Any:
        try:
            return request_json(
                self.session, method, self._url(table_id), context, timeout=self.timeout, headers=self.headers, **kwargs
            )
        except RemoteRequestError as exc:
            if exc.status_code == 401:
                raise RemoteRequestError(context, 401, UNAUTHORIZED_MESSAGE) from exc
            raise

    def list_records(
        self,
        table_id: str,
        where: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        sort: Optional[str] = None,
        view_id: Optional[str] = None,
        page_size: int = PAGE_SIZE,
        max_rows: int = MAX_ROWS,
    ) -> List[Dict[str, Any]]:
        """Read every page of a table.

        Paging stops on ``pageInfo.isLastPage``, on a short page, or after
        ``max_rows`` rows have been requested.
        """

        params: Dict[str, Any] = {"limit": page_size}
        if where:
            params["where"] = where
        if fields:
            params["fields"] = ",".join(fields)
        if sort:
            params["sort"] = sort
        if view_id:
            params["viewId"] = view_id

        rows: List[Dict[str, Any]] = []
        for offset in range(0, max_rows, page_size):
            params["offset"] = offset
            data = self._request("GET", table_id, "NocoDB read", params=dict(params)) or {}
            batch = data.get("list") or []
            rows.extend(batch)
            if (data.get("pageInfo") or {}).get("isLastPage") or len(batch) < page_size:
                break
        else:
            logger.warning("Stopped reading %s at the %d row limit", table_id, max_rows)
        logger.info("Loaded %d rows from NocoDB table %s", len(rows), table_id)
        return rows

    def find_records(self, table_id: str, field: str, value: Any) -> List[Dict[str, Any]]:
        return self.list_records(table_id, where=eq_filter(field, value))

    def patch_records(self, table_id: str, rows: Iterable[Dict[str, Any]]) -> Any:
        """PATCH a list of ``{"Id": ..., <field>: <value>}`` rows."""

        rows = list(rows)
        if not rows:
            return []
        missing = [row for row in rows if row.get("Id") in (None, "")]
        if missing:
            raise ValueError("Every row to patch needs an Id")
        return self._request("PATCH", table_id, "NocoDB update", json=rows)
