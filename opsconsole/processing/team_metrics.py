"""Per-member NDR performance figures for a team over a date window."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from opsconsole.core.models import NdrNotes
from opsconsole.processing.buckets import courier_name
from opsconsole.processing.filters import parse_date_flexible

ALL = "All"
WORK_STATUSES = ("Open", "In Progress", "Resolved", "Escalated", "Other")
RESOLUTION_LABELS = ("Resolved by member", "Resolved by agent", "Auto resolved")


def _call_status(row: Mapping[str, Any]) -> str:
    return NdrNotes.parse(row.get("notes")).call_status or ""


def call_value(row: Mapping[str, Any]) -> str:
    """``Yes`` when a call status was noted or the row is marked called, else ``No``."""

    return "Yes" if _call_status(row) or row.get("called") is True else "No"


def call_updated(row: Mapping[str, Any]) -> bool:
    return isinstance(row.get("called"), bool) or bool(_call_status(row))


@dataclass
class TeamRowFilter:
    order_id: str = ""
    awb: str = ""
    status: str = ALL
    courier: str = ALL
    email: str = ALL
    call: str = ALL


def filter_team_rows(rows: Iterable[Mapping[str, Any]], criteria: TeamRowFilter) -> List[Mapping[str, Any]]:
    kept = []
    for row in rows:
        if criteria.order_id and str(row.get("order_id") or "").strip() != criteria.order_id.strip():
            continue
        if criteria.awb and str(row.get("waybill") or "").strip() != criteria.awb.strip():
            continue
        if criteria.status != ALL and str(row.get("delivery_status") or row.get("status") or "") != criteria.status:
            continue
        if criteria.courier != ALL and courier_name(row.get("courier_account") or "") != criteria.courier:
            continue
        if criteria.email != ALL and ("Yes" if row.get("email_sent") else "No") != criteria.email:
            continue
        if criteria.call != ALL and call_value(row) != criteria.call:
            continue
        kept.append(row)
    return kept


@dataclass
class MemberPerformance:
    member: str
    assigned: int = 0
    emails_sent: int = 0
    calls_updated: int = 0
    statuses: Dict[str, int] = field(default_factory=lambda: {status: 0 for status in WORK_STATUSES})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "member": self.member,
            "assigned": self.assigned,
            "emails_sent": self.emails_sent,
            "calls_updated": self.calls_updated,
            **self.statuses,
        }


def member_performance(rows: Iterable[Mapping[str, Any]], members: Sequence[str]) -> List[MemberPerformance]:
    """One entry per team member, in roster order; rows for non-members are ignored."""

    by_member = {member: MemberPerformance(member) for member in members}
    for row in rows:
        entry = by_member.get(str(row.get("assigned_to") or "").strip())
        if entry is None:
            continue
        entry.assigned += 1
        if row.get("email_sent") is True:
            entry.emails_sent += 1
        if call_updated(row):
            entry.calls_updated += 1
        status = row.get("status") or "Other"
        entry.statuses[status if status in WORK_STATUSES else "Other"] += 1
    return [by_member[member] for member in members]


def resolution_split(rows: Iterable[Mapping[str, Any]]) -> Dict[str, int]:
    """Attribute resolved rows by how much follow-up (email, call) preceded them."""

    counts = {label: 0 for label in RESOLUTION_LABELS}
    for row in rows:
        if str(row.get("status") or "").lower() != "resolved":
            continue
        emailed = row.get("email_sent") is True
        called = call_updated(row)
        if emailed and called:
            counts["Resolved by member"] += 1
        elif emailed or called:
            counts["Resolved by agent"] += 1
        else:
            counts["Auto resolved"] += 1
    return counts


def actions_by_day(activities: Iterable[Mapping[str, Any]], start: date, end: date) -> List[Tuple[str, int]]:
    """Activity counts for every day of the window, zero-filled."""

    counts: Counter = Counter()
    for activity in activities:
        moment = parse_date_flexible(activity.get("created_at"))
        if moment is not None:
            counts[moment.date().isoformat()] += 1
    days = []
    day = start
    while day <= end:
        days.append((day.isoformat(), counts.get(day.isoformat(), 0)))
        day += timedelta(days=1)
    return days


@dataclass
class AssignmentSnapshot:
    rows: List[Mapping[str, Any]]
    by_partner: List[Tuple[str, int]]
    by_agent: List[Tuple[str, int]]
    raised_with_partner: int

    @property
    def assigned(self) -> int:
        return len(self.rows)


def assignment_snapshot(rows: Iterable[Mapping[str, Any]], agent: str = ALL) -> AssignmentSnapshot:
    """Assignments in the window, optionally for one agent.

    A row counts as raised with the delivery partner once its courier email
    was sent.
    """

    agent = (agent or ALL).strip()
    picked = [
        row for row in rows if agent in (ALL, "") or str(row.get("assigned_to") or "").strip() == agent
    ]
    partners: Counter = Counter()
    agents: Counter = Counter()
    for row in picked:
        partner = courier_name(row.get("courier_account") or "")
        if partner != "—":
            partners[partner] += 1
        assignee = str(row.get("assigned_to") or "").strip()
        if assignee:
            agents[assignee] += 1
    return AssignmentSnapshot(
        rows=picked,
        by_partner=partners.most_common(),
        by_agent=agents.most_common(),
        raised_with_partner=sum(1 for row in picked if row.get("email_sent") is True),
    )
