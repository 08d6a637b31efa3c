"""Shared request handling for the backend clients."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from opsconsole.core.errors import RemoteRequestError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"Accept": "application/json"})
    return session


def request_json(
    session: requests.Session,
    method: str,
    url: str,
    context: str,
    timeout: int = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> Optional[Any]:
    """Send a request and decode its JSON body.

    Success is decided by HTTP status alone. An empty body decodes to
    ``None``. Transport failures, non-2xx statuses and undecodable bodies
    raise :class:`RemoteRequestError`.
    """

    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        logger.error("%s: %s %s raised %s", context, method, url, exc)
        raise RemoteRequestError(context, body=str(exc)) from exc

    if not response.ok:
        logger.error("%s: %s %s returned %s", context, method, url, response.status_code)
        raise RemoteRequestError(context, response.status_code, response.text)

    text = response.text or ""
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        logger.error("%s: invalid JSON from %s", context, url)
        raise RemoteRequestError(context, response.status_code, f"Invalid JSON response: {exc}") from exc
