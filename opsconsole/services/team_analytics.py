"""Team performance over NDR assignments and the NDR activity log."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from opsconsole.processing.filters import to_ymd
from opsconsole.processing.team_metrics import (
    ALL,
    AssignmentSnapshot,
    MemberPerformance,
    TeamRowFilter,
    actions_by_day,
    assignment_snapshot,
    filter_team_rows,
    member_performance,
    resolution_split,
)
from opsconsole.services.ndr import NDR_TABLE, NdrService

logger = logging.getLogger(__name__)

NDR_COLUMNS = "assigned_to,assigned_at,status,notes,order_id,waybill,courier_account,delivery_status,email_sent,called"


@dataclass
class TeamReport:
    team_id: int
    start: date
    end: date
    members: List[str] = field(default_factory=list)
    ndr_rows: List[Dict[str, Any]] = field(default_factory=list)
    activities: List[Dict[str, Any]] = field(default_factory=list)

    def performance(self, criteria: Optional[TeamRowFilter] = None) -> List[MemberPerformance]:
        return member_performance(filter_team_rows(self.ndr_rows, criteria or TeamRowFilter()), self.members)

    def resolutions(self, criteria: Optional[TeamRowFilter] = None) -> Dict[str, int]:
        return resolution_split(filter_team_rows(self.ndr_rows, criteria or TeamRowFilter()))

    def daily_actions(self):
        return actions_by_day(self.activities, self.start, self.end)

    def snapshot(self, agent: str = ALL) -> AssignmentSnapshot:
        return assignment_snapshot(self.ndr_rows, agent)

    def report_filename(self, agent: str = ALL) -> str:
        slug = agent.replace(" ", "_") if agent and agent != ALL else "all_agents"
        return f"ndr_report_{self.start.isoformat()}_to_{self.end.isoformat()}_{slug}.csv"


class TeamAnalyticsService:
    def __init__(self, ndr: NdrService) -> None:
        self.ndr = ndr

    def load(self, team_id: Optional[int], start: date, end: date) -> TeamReport:
        """Read the team roster, NDR rows assigned in the window and member activity."""

        if not team_id:
            raise ValueError("Select a team first")
        if start > end:
            raise ValueError("Start date must not be after end date")
        first, last = to_ymd(start), to_ymd(end)
        members = self.ndr.teams.member_handles(team_id)
        rows = self.ndr.supabase.select(
            NDR_TABLE,
            {
                "select": NDR_COLUMNS,
                "and": f"(assigned_at.gte.{first}T00:00:00,assigned_at.lte.{last}T23:59:59.999)",
                "order": "assigned_at.asc",
            },
        )
        activities = self.ndr.activity_between(first, last, members)
        logger.info("Team %s: %d assigned rows and %d actions from %s to %s", team_id, len(rows), len(activities), first, last)
        return TeamReport(team_id, start, end, members, rows, activities)
