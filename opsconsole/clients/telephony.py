"""Click-to-call through Callerdesk and outbound calls through Mcube."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

import requests

from opsconsole.clients.http import build_session, request_json
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.settings import CALLERDESK_CLICK_TO_CALL_URL, MCUBE_OUTBOUND_URL, Settings
from opsconsole.core.utils import digits

logger = logging.getLogger(__name__)

CALLERDESK_SUCCESS = "Call to Customer Initiate Successfully"
MIN_CUSTOMER_DIGITS = 10
MIN_AGENT_DIGITS = 6


def customer_number(value: Any) -> str:
    number = digits(value)
    if len(number) < MIN_CUSTOMER_DIGITS:
        raise ValueError("Invalid phone number: at least 10 digits are required")
    return number


def resolve_exenumber(members: Iterable[Mapping[str, Any]], member: str, fallback: Iterable[Mapping[str, Any]] = ()) -> str:
    """Find an agent's phone among team members, then among all members.

    Names compare case-insensitively. The number must have six digits or more.
    """

    wanted = (member or "").strip().lower()
    for pool in (members, fallback):
        for row in pool:
            if str(row.get("member") or "").strip().lower() == wanted:
                number = str(row.get("phone") or "")
                if len(digits(number)) >= MIN_AGENT_DIGITS:
                    return number
    raise ValueError(f"No calling number configured for {member or 'this agent'}")


class TelephonyClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or build_session()

    def callerdesk_click_to_call(self, agent_number: str, phone: str) -> str:
        """Ring the agent, then bridge to the customer; returns the provider message."""

        params = {
            "calling_party_a": digits(agent_number),
            "calling_party_b": customer_number(phone),
            "deskphone": self.settings.require("callerdesk_deskphone"),
            "authcode": self.settings.require("callerdesk_authcode"),
            "call_from_did": 1,
        }
        data = request_json(
            self.session, "GET", CALLERDESK_CLICK_TO_CALL_URL, "Callerdesk call",
            timeout=self.settings.http_timeout, params=params,
        ) or {}
        message = str(data.get("message") or "") if isinstance(data, dict) else ""
        if CALLERDESK_SUCCESS not in message:
            raise RemoteRequestError("Callerdesk call", body=message or "An unknown error occurred.")
        logger.info("Callerdesk call started to %s", params["calling_party_b"][-4:])
        return message

    def mcube_outbound_call(self, exenumber: str, phone: str) -> Dict[str, Any]:
        if len(digits(exenumber)) < MIN_AGENT_DIGITS:
            raise ValueError("exenumber_not_configured")
        body = {"exenumber": exenumber, "custnumber": customer_number(phone), "refurl": "1"}
        data = request_json(
            self.session, "POST", MCUBE_OUTBOUND_URL, "Mcube call",
            timeout=self.settings.http_timeout,
            headers={"Authorization": self.settings.require("mcube_token"), "Content-Type": "application/json"},
            json=body,
        )
        logger.info("Mcube call placed from %s", exenumber)
        return {"ok": True, "mcube": data}
