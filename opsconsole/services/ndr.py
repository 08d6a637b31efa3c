"""NDR workflows: loading, editing, allocation and courier emails.

Every edit is written to Supabase first and only then applied to the cached
row, so a failed write leaves the screen unchanged.
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from opsconsole.clients.supabase import SupabaseClient
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.models import NdrRecord
from opsconsole.core.store import NDR_AUTO_ALLOC_DONE, LocalStore
from opsconsole.core.utils import now_iso
from opsconsole.processing.allocation import (
    assign_round_robin,
    build_schedule,
    largest_remainder_schedule,
    validate_percentages,
)
from opsconsole.processing.buckets import DEFAULT_TRACKING_PAGE, with_bucket_override
from opsconsole.processing.ndr import EnrichedNdr, enrich, needs_refresh
from opsconsole.reporting.emails import (
    EmailDetails,
    EmailDraft,
    compose_address_issue_email,
    mail_payload,
    mailto_url,
    merge_thread,
    reply_html,
    reply_subject,
)
from opsconsole.services.teams import TeamService

logger = logging.getLogger(__name__)

NDR_TABLE = "ndr"
ACTIVITY_TABLE = "ndr_user_activity"
ASSIGN_BATCH_SIZE = 25
ACTIVITY_ACTIONS = "assign,reassign,unassign,reset_allocation,auto_assign,call_status_update"
THREADS_TABLE = "email_threads"
MESSAGES_TABLE = "email_messages"
EMAIL_ACTIVITY_TABLE = "email_activity"
REPLY_HEADERS = {"X-NDR-Action": "reply_email", "X-Webhook-Marker": "ndr_reply"}

# Column names on the wire differ from dataclass fields for these.
_COLUMN_TO_FIELD = {"Partner_EDD": "partner_edd"}


def _called_from_status(status: str) -> Optional[bool]:
    if status == "Yes":
        return True
    if status == "No":
        return False
    return None


class NdrService:
    def __init__(
        self,
        supabase: SupabaseClient,
        store: LocalStore,
        webhooks: Optional[WebhookClient] = None,
        teams: Optional[TeamService] = None,
        tracking_base: str = DEFAULT_TRACKING_PAGE,
    ) -> None:
        self.supabase = supabase
        self.store = store
        self.webhooks = webhooks
        self.teams = teams or TeamService(supabase, store)
        self.tracking_base = tracking_base
        self.records: List[NdrRecord] = []
        self.loaded_at: Optional[datetime] = None

    @property
    def actor(self) -> str:
        return self.teams.current_user()

    @property
    def team_id(self) -> Optional[int]:
        return self.teams.active_team_id()

    def load(self) -> List[NdrRecord]:
        rows = self.supabase.select(NDR_TABLE, {"order": "event_time.desc"})
        self.records = [NdrRecord.from_row(row) for row in rows]
        self.loaded_at = datetime.now()
        logger.info("Loaded %d NDR rows", len(self.records))
        return self.records

    def refresh_if_stale(self, interval_seconds: int = 300, now: Optional[datetime] = None) -> bool:
        if needs_refresh(self.loaded_at, now or datetime.now(), interval_seconds):
            self.load()
            return True
        return False

    def enriched(self, today: Optional[date] = None) -> List[EnrichedNdr]:
        return enrich(self.records, today)

    def get(self, record_id: int) -> NdrRecord:
        for record in self.records:
            if record.id == record_id:
                return record
        raise KeyError(f"NDR row {record_id} is not loaded")

    def patch(self, record_id: int, updates: Mapping[str, Any]) -> NdrRecord:
        """Write ``updates`` and mirror them onto the cached row."""

        self.supabase.patch(NDR_TABLE, {"id": f"eq.{record_id}"}, updates)
        changes = {_COLUMN_TO_FIELD.get(k, k): v for k, v in updates.items()}
        known = {f.name for f in dataclasses.fields(NdrRecord)}
        for index, record in enumerate(self.records):
            if record.id == record_id:
                self.records[index] = dataclasses.replace(record, **{k: v for k, v in changes.items() if k in known})
                return self.records[index]
        return NdrRecord.from_row({"id": record_id, **updates})

    def log_activity(self, action: str, record: Optional[NdrRecord] = None, **fields: Any) -> None:
        """Append to the activity log; a failed log write never blocks the edit."""

        body = {
            "ndr_id": record.id if record else None,
            "order_id": record.order_id if record else None,
            "waybill": str(record.waybill) if record and record.waybill else None,
            "actor": self.actor,
            "action": action,
            "from_member": None,
            "to_member": None,
            "team_id": self.team_id,
            "details": {},
        }
        body.update(fields)
        try:
            self.supabase.insert(ACTIVITY_TABLE, body)
        except RemoteRequestError as exc:
            logger.warning("Could not log %s activity: %s", action, exc)

    def activity(self, limit: int = 200) -> List[Dict[str, Any]]:
        return self.supabase.select(
            ACTIVITY_TABLE,
            {"action": f"in.({ACTIVITY_ACTIONS})", "order": "created_at.desc", "limit": limit},
        )

    def activity_between(self, start: str, end: str, actors: Sequence[str] = ()) -> List[Dict[str, Any]]:
        """Every activity row from ``start`` through ``end`` (inclusive days), oldest first."""

        params: Dict[str, Any] = {
            "select": "actor,action,created_at",
            "and": f"(created_at.gte.{start}T00:00:00,created_at.lte.{end}T23:59:59.999)",
            "order": "created_at.asc",
        }
        if actors:
            params["actor"] = "in.({})".format(",".join(f'"{actor}"' for actor in actors))
        return self.supabase.select(ACTIVITY_TABLE, params)

    def save_editor(
        self,
        record_id: int,
        phone: str = "",
        customer_issue: str = "",
        action_taken: str = "",
        action_to_be_taken: str = "",
        status: Optional[str] = None,
        final_status: Optional[str] = None,
    ) -> NdrRecord:
        """Save the row editor: notes fields plus workflow status columns."""

        record = self.get(record_id)
        notes = record.parsed_notes
        notes.phone = phone.strip() or None
        notes.customer_issue = customer_issue.strip() or None
        notes.action_taken = action_taken.strip() or None
        notes.action_to_be_taken = action_to_be_taken.strip() or None
        updates: Dict[str, Any] = {"notes": notes.to_json()}
        if status is not None:
            updates["status"] = status
        if final_status is not None:
            updates["final_status"] = final_status or None
        return self.patch(record_id, updates)

    def move_to_bucket(self, record_id: int, bucket: str) -> NdrRecord:
        record = self.get(record_id)
        updated = self.patch(record_id, {"notes": with_bucket_override(record.notes, bucket)})
        self.log_activity("bucket_override", updated, details={"bucket": bucket})
        return updated

    def set_call_status(self, record_id: int, call_status: str) -> NdrRecord:
        record = self.get(record_id)
        notes = record.parsed_notes
        notes.call_status = call_status or None
        called = _called_from_status(call_status)
        if notes.phone:
            try:
                self.supabase.rpc("update_call_status", {"p_phone": notes.phone, "p_status": call_status})
            except RemoteRequestError as exc:
                logger.warning("Could not mirror call status for %s: %s", record.order_id, exc)
        updated = self.patch(record_id, {"called": called, "notes": notes.to_json()})
        self.log_activity("call_status_update", updated, details={"called": called, "call_status": call_status})
        return updated

    def assign(self, record_id: int, member: str) -> NdrRecord:
        record = self.get(record_id)
        previous = record.assigned_to
        updated = self.patch(record_id, {"assigned_to": member or None, "assigned_at": now_iso() if member else None})
        action = "unassign" if not member else ("reassign" if previous else "assign")
        self.log_activity(action, updated, from_member=previous, to_member=member or None)
        return updated

    def auto_allocate_once(self) -> int:
        """Spread unassigned rows over the team once per login session.

        Uses the team's allocation rule when it has one, round-robin
        otherwise. Returns the number of rows assigned.
        """

        if self.store.get(NDR_AUTO_ALLOC_DONE) == "1":
            return 0
        team_id = self.team_id
        if not team_id:
            return 0
        members = self.teams.member_handles(team_id)
        if not members:
            return 0
        schedule = build_schedule(self.teams.load_rule(team_id), members)

        unassigned = self.supabase.select(
            NDR_TABLE,
            {"assigned_to": "is.null", "select": "id,order_id,waybill", "order": "event_time.desc"},
        )
        now = now_iso()
        pairs = assign_round_robin(unassigned, schedule)
        for offset in range(0, len(pairs), ASSIGN_BATCH_SIZE):
            for row, assignee in pairs[offset:offset + ASSIGN_BATCH_SIZE]:
                self.supabase.patch(NDR_TABLE, {"id": f"eq.{row['id']}"}, {"assigned_to": assignee, "assigned_at": now})
                self.log_activity(
                    "assign",
                    NdrRecord.from_row(row),
                    to_member=assignee,
                    details={"via": "autoAllocateOnce"},
                )
        if pairs:
            self.log_activity("auto_assign", details={"count": len(pairs), "members": sorted(set(schedule))})
            logger.info("Auto-assigned %d NDR rows across %d members", len(pairs), len(set(schedule)))
        self.store.set(NDR_AUTO_ALLOC_DONE, "1")
        return len(pairs)

    def reset_allocation(self) -> int:
        """Clear assignments held by the active team's members."""

        team_id = self.team_id
        if not team_id:
            raise ValueError("Select a team first")
        members = self.teams.member_handles(team_id)
        for member in members:
            self.supabase.patch(NDR_TABLE, {"assigned_to": f"eq.{member}"}, {"assigned_to": None, "assigned_at": None})
        for index, record in enumerate(self.records):
            if record.assigned_to in members:
                self.records[index] = dataclasses.replace(record, assigned_to=None, assigned_at=None)
        self.log_activity("reset_allocation", details={"members": members})
        self.store.remove(NDR_AUTO_ALLOC_DONE)
        return len(members)

    def assign_by_percentages(self, record_ids: Sequence[int], percents: Mapping[str, float]) -> List[Tuple[int, str]]:
        validate_percentages(percents)
        members = [m for m, p in percents.items() if p]
        schedule = largest_remainder_schedule(members, percents, len(record_ids))
        now = now_iso()
        pairs = list(zip(record_ids, schedule))
        for record_id, member in pairs:
            self.patch(record_id, {"assigned_to": member, "assigned_at": now})
        self.log_activity("assign", details={"via": "percentages", "count": len(pairs), "percents": dict(percents)})
        return pairs

    def compose_email(self, record_id: int, details: EmailDetails) -> EmailDraft:
        return compose_address_issue_email(self.get(record_id), details, self.tracking_base)

    def send_address_issue_email(
        self,
        record_id: int,
        details: EmailDetails,
        subject: str = "",
        body_text: str = "",
    ) -> Tuple[bool, Optional[str]]:
        """Send through the mail webhook; on failure return a ``mailto:`` fallback.

        A sent email is recorded on the row as ``email_sent``.
        """

        record = self.get(record_id)
        draft = compose_address_issue_email(record, details, self.tracking_base)
        draft = EmailDraft(subject=subject or draft.subject, body_text=body_text or draft.body_text, body_html=draft.body_html)
        if self.webhooks is None:
            return False, mailto_url(draft)
        try:
            self.webhooks.send_mail(mail_payload(record, details, draft, self.tracking_base))
        except (RemoteRequestError, ValueError) as exc:
            logger.warning("Mail webhook failed for order %s: %s", record.order_id, exc)
            return False, mailto_url(draft)
        self.patch(record_id, {"email_sent": True})
        self.log_activity("email_sent", record, details={"subject": draft.subject})
        return True, None

    def email_thread(self, record_id: int) -> Tuple[Optional[Dict[str, Any]], List[Dict[str, Any]]]:
        """Messages exchanged with the courier about a row, oldest first.

        Returns the thread header (provider thread id and subject) of the
        latest message, or ``None`` when nothing was exchanged yet.
        """

        record = self.get(record_id)
        filters = {"order_id": f"eq.{record.order_id}", "waybill": f"eq.{record.waybill}"}
        outbound = self.supabase.select(
            MESSAGES_TABLE,
            {**filters, "direction": "eq.outbound", "order": "sent_at.asc.nullsfirst,created_at.asc"},
        )
        inbound = self.supabase.select(
            EMAIL_ACTIVITY_TABLE,
            {**filters, "direction": "eq.inbound", "order": "activity_at.asc"},
        )
        messages = merge_thread(outbound, inbound)
        if not messages:
            return None, []
        latest = messages[-1]
        subject = next((m.get("subject") for m in reversed(messages) if m.get("subject")), "")
        return {"thread_id": latest.get("provider_thread_id") or "-", "subject": subject}, messages

    def reply_email(self, record_id: int, body_text: str) -> str:
        """Reply in the row's courier thread; returns the subject used.

        The thread bookkeeping rows are written after the mail went out and
        a failure there is only logged.
        """

        body_text = (body_text or "").strip()
        if not body_text:
            raise ValueError("Write a reply first")
        if self.webhooks is None:
            raise ValueError("Mail webhook is not configured")
        record = self.get(record_id)
        thread, messages = self.email_thread(record_id)
        if thread is None:
            raise ValueError("No email thread for this shipment yet")
        last_message_id = messages[-1].get("message_id")
        subject = reply_subject(thread["subject"], record)
        payload = {
            "order_id": record.order_id,
            "waybill": record.waybill,
            "subject": subject,
            "text_body": body_text,
            "html_body": reply_html(body_text),
            "content_type": "text/html",
            "thread_id": thread["thread_id"],
            "in_reply_to": last_message_id,
            "timestamp": now_iso(),
            "action": "reply_email",
            "webhook_marker": "ndr_reply",
            "message_kind": "reply",
            "source": "ndr_dashboard",
        }
        data = self.webhooks.send_mail(payload, headers=REPLY_HEADERS)
        sent = data if isinstance(data, dict) else {}
        provider = str(sent.get("provider") or "gmail")
        message_id = str(sent.get("message_id") or sent.get("id") or "")
        try:
            self.supabase.insert(
                THREADS_TABLE,
                {
                    "ndr_id": record.id,
                    "order_id": record.order_id,
                    "waybill": str(record.waybill or ""),
                    "thread_id": str(thread["thread_id"]),
                    "provider": provider,
                    "subject": subject,
                    "last_message_id": message_id,
                    "last_activity_at": now_iso(),
                },
                prefer="resolution=merge-duplicates,return=representation",
            )
            self.supabase.insert(
                MESSAGES_TABLE,
                {
                    "provider": provider,
                    "message_id": message_id,
                    "in_reply_to": last_message_id,
                    "provider_thread_id": str(thread["thread_id"]),
                    "direction": "outbound",
                    "order_id": record.order_id,
                    "waybill": str(record.waybill or ""),
                    "subject": subject,
                    "text_body": body_text,
                    "sent_at": now_iso(),
                },
            )
        except RemoteRequestError as exc:
            logger.warning("Reply sent but thread bookkeeping failed for %s: %s", record.order_id, exc)
        self.log_activity("email_reply", record, details={"subject": subject})
        return subject
