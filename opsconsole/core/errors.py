"""Exceptions raised by the remote backend wrappers."""
from __future__ import annotations

from typing import Optional


class RemoteRequestError(RuntimeError):
    """A backend call failed: non-2xx status, transport error, or bad JSON.

    The message is short enough to show inline next to the form that
    triggered the call.
    """

    def __init__(self, context: str, status_code: Optional[int] = None, body: str = "") -> None:
        self.context = context
        self.status_code = status_code
        self.body = (body or "").strip()
        detail = " ".join(part for part in (str(status_code or ""), self.body[:300]) if part)
        super().__init__(f"{context} failed: {detail}" if detail else f"{context} failed")
