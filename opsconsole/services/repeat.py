"""Repeat-customer campaign: assigned leads, allocation, calls and feedback."""
from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from opsconsole.clients.supabase import SupabaseClient
from opsconsole.clients.telephony import MIN_AGENT_DIGITS, TelephonyClient, resolve_exenumber
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.models import RepeatLead
from opsconsole.core.utils import digits, pick_field
from opsconsole.processing.filters import day_bounds, parse_date_flexible

logger = logging.getLogger(__name__)

ADMIN_USER = "admin"
NOT_CALLED = "Not Called"
CALLED = "Called"
ALLOCATION_BATCH_LIMIT = 500
FEEDBACK_TABLE = "call_feedback"

REPEAT_CALL_STATUSES = (
    CALLED,
    "Call Waiting",
    "Cancelled",
    "No Response",
    "Customer Busy",
    "Wrong Number",
    "Call Later",
    "Invalid Number",
    "DNP1",
    "DNP2",
    "DNP3",
    "DNP4",
)

FEEDBACK_FIELDS = (
    "heard_from",
    "first_time_reason",
    "reorder_reason",
    "liked_features",
    "usage_recipe",
    "usage_time",
    "family_user",
    "gender",
    "age",
    "new_product_expectation",
    "remark",
    "marital_status",
    "profession_text",
    "city_text",
)


def is_admin(user: str) -> bool:
    return (user or "").strip().lower() == ADMIN_USER


def order_type(total_orders: int) -> str:
    return "First Order" if total_orders <= 1 else f"Repeat ({total_orders})"


def filter_leads(
    leads: Sequence[RepeatLead],
    search: str = "",
    status: str = "",
    start: Any = None,
    end: Any = None,
    min_orders: Optional[int] = None,
    max_orders: Optional[int] = None,
) -> List[RepeatLead]:
    """Narrow the lead table.

    ``status`` of ``"Not Called"`` matches leads with no call status. The
    date range applies to ``last_order`` and drops leads without one.
    """

    needle = (search or "").strip().lower()
    lower, upper = day_bounds(start, end)
    result = []
    for lead in leads:
        if needle:
            haystack = " ".join([lead.email, lead.phone or "", *lead.order_numbers]).lower()
            if needle not in haystack:
                continue
        if status:
            if status == NOT_CALLED:
                if lead.call_status:
                    continue
            elif (lead.call_status or "") != status:
                continue
        if lower or upper:
            last = parse_date_flexible(lead.last_order)
            if last is None or (lower and last < lower) or (upper and last > upper):
                continue
        if min_orders is not None and lead.order_count < min_orders:
            continue
        if max_orders is not None and lead.order_count > max_orders:
            continue
        result.append(lead)
    return result


def lead_stats(leads: Sequence[RepeatLead]) -> Dict[str, Any]:
    total_customers = len(leads)
    total_orders = sum(lead.order_count for lead in leads)
    called = sum(1 for lead in leads if (lead.call_status or "") == CALLED)
    return {
        "totalCustomers": total_customers,
        "totalOrders": total_orders,
        "avgPerCust": total_orders / total_customers if total_customers else 0,
        "called": called,
        "notCalled": total_customers - called,
        "calledPct": round(called / total_customers * 100) if total_customers else 0,
    }


def feedback_stats(rows: Sequence[Mapping[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    """Headline numbers for the feedback analytics view."""

    now = now or datetime.now(timezone.utc)
    today = now.date().isoformat()
    week_ago = now - timedelta(days=7)

    last7 = 0
    for row in rows:
        created = _aware(row.get("created_at"))
        if created is not None and created >= week_ago:
            last7 += 1

    genders: Counter = Counter()
    features: Counter = Counter()
    for row in rows:
        genders[pick_field(row, ("gender", "gender_text")) or "Unknown"] += 1
        liked = str(pick_field(row, ("likedFeatures", "liked_features")) or "")
        features.update(part.strip() for part in liked.split(",") if part.strip())

    return {
        "totalForms": len(rows),
        "today": sum(1 for row in rows if str(row.get("created_at") or "")[:10] == today),
        "last7": last7,
        "recommendYes": sum(
            1 for row in rows if str(pick_field(row, ("wouldRecommend", "would_recommend"))).lower() == "yes"
        ),
        "monthlyYes": sum(
            1 for row in rows if str(pick_field(row, ("monthlyDelivery", "monthly_delivery"))).lower() == "yes"
        ),
        "genderCounts": dict(genders),
        "featureTop": features.most_common(10),
    }


def _aware(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class RepeatService:
    def __init__(
        self,
        supabase: SupabaseClient,
        telephony: Optional[TelephonyClient] = None,
        webhooks: Optional[WebhookClient] = None,
    ) -> None:
        self.supabase = supabase
        self.telephony = telephony
        self.webhooks = webhooks

    def load_assigned(self, user: str, team_id: Optional[int]) -> List[RepeatLead]:
        """Leads assigned to ``user`` in ``team_id``; ``admin`` sees every lead."""

        if not user or not team_id:
            raise ValueError("Login via NDR and set an active team to view your assigned repeat customers.")
        admin = is_admin(user)
        data = self.supabase.rpc(
            "get_repeat_orders_with_assignments",
            {"p_team_id": None if admin else int(team_id), "p_agent": None if admin else user},
        )
        leads = [RepeatLead.from_row(row) for row in data or [] if isinstance(row, dict)]
        if admin:
            return leads
        # The RPC may return a broader set; keep only this agent's leads.
        wanted = user.strip().lower()
        return [
            lead for lead in leads
            if (lead.assigned_to or "").strip().lower() == wanted and (lead.team_id or 0) == int(team_id)
        ]

    def run_allocation(self, team_id: int) -> Any:
        if not team_id:
            raise ValueError("Select a team first")
        result = self.supabase.rpc(
            "allocate_repeat_orders_percent_v1",
            {"p_team_id": int(team_id), "p_batch_limit": ALLOCATION_BATCH_LIMIT, "p_tag_team_when_null": True},
        )
        logger.info("Ran repeat-order allocation for team %s", team_id)
        return result

    def assign_orders(self, order_numbers: Sequence[str], agent: str, team_id: Optional[int] = None) -> Any:
        numbers = [n.strip() for n in order_numbers if n and n.strip()]
        if not numbers or not agent:
            raise ValueError("Pick at least one order and an agent")
        result = self.supabase.rpc(
            "assign_orders_by_number",
            {"p_order_numbers": numbers, "p_agent": agent, "p_team_id": int(team_id) if team_id else None},
        )
        logger.info("Assigned %d repeat orders to %s", len(numbers), agent)
        return result

    def update_call_status(self, email: str, status: str) -> int:
        """Set the call status on every order of a customer; returns rows updated."""

        if not email:
            raise ValueError("Customer email is not available.")
        result = self.supabase.rpc("update_call_status", {"p_email": email, "p_status": status})
        updated = 0
        if isinstance(result, list) and result and isinstance(result[0], dict):
            updated = int(result[0].get("updated_count") or 0)
        if updated == 0:
            raise RemoteRequestError(
                "Call status update",
                body="No records updated. Status may not be allowed by database constraint or customer not found.",
            )
        return updated

    def place_call(self, agent: str, team_id: Optional[int], phone: str) -> Dict[str, Any]:
        """Dial ``phone`` from the agent's own number through Mcube."""

        if self.telephony is None:
            raise ValueError("Calling is not configured")
        params = {"member": f"ilike.{agent}", "select": "member,phone"}
        scoped = self.supabase.select("team_members", {**params, "team_id": f"eq.{team_id}"}) if team_id else []
        everyone = self.supabase.select("team_members", params)
        exenumber = resolve_exenumber(scoped, agent, everyone)
        return self.telephony.mcube_outbound_call(exenumber, phone)

    def click_to_call(self, agent_number: str, phone: str) -> str:
        """Ring the agent's own phone through Callerdesk, then bridge to ``phone``."""

        if self.telephony is None:
            raise ValueError("Calling is not configured")
        if len(digits(agent_number)) < MIN_AGENT_DIGITS:
            raise ValueError("Enter your calling number (at least 6 digits) first")
        return self.telephony.callerdesk_click_to_call(agent_number, phone)

    def load_feedback(self, agent: Optional[str] = None, start: Optional[date] = None, end: Optional[date] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if agent:
            params["agent"] = f"eq.{agent}"
        bounds = []
        if start:
            bounds.append(f"created_at.gte.{start.isoformat()}T00:00:00Z")
        if end:
            bounds.append(f"created_at.lte.{end.isoformat()}T23:59:59Z")
        if bounds:
            params["and"] = f"({','.join(bounds)})"
        return self.supabase.select(FEEDBACK_TABLE, params)

    def submit_feedback(
        self,
        form: Mapping[str, Any],
        agent: str,
        order_number: str = "",
        customer_phone: str = "",
        call_status: str = "",
        total_orders: int = 1,
        customer: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Post the survey to the feedback webhook and record it for analytics.

        The analytics insert tries ``insert_call_feedback_v2`` and falls back to
        ``insert_call_feedback``. A failed analytics insert is logged; the
        webhook submission still counts.
        """

        kind = order_type(total_orders)
        if self.webhooks is not None:
            payload = {**(customer or {}), **form, "agent_name": agent, "order_type": kind, "orderType": kind}
            self.webhooks.submit_feedback(payload)

        record: Dict[str, Any] = {
            "order_id": None,
            "order_number": order_number or None,
            "customer_phone": customer_phone or None,
            "agent": agent,
            "call_status": call_status or None,
        }
        for name in FEEDBACK_FIELDS:
            record[name] = form.get(name) or None
        record["new_product_expectation"] = form.get("new_product_expectation") or ""
        record["order_type"] = kind

        try:
            self.supabase.rpc("insert_call_feedback_v2", {"p": record})
        except RemoteRequestError as exc:
            logger.info("insert_call_feedback_v2 unavailable (%s); using insert_call_feedback", exc.status_code)
            try:
                self.supabase.rpc("insert_call_feedback", {"p": record})
            except RemoteRequestError as fallback_exc:
                logger.warning("Could not store call feedback for %s: %s", order_number, fallback_exc)
        return record
