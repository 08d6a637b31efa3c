"""Address-issue emails sent to the courier about an NDR shipment.

Drafts come in a plain-text form (ASCII table, readable in any mail
client) and an HTML form for the mail webhook. When the webhook fails the
plain-text draft is offered as a ``mailto:`` link.
"""
from __future__ import annotations

import html
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from opsconsole.core.models import NdrRecord
from opsconsole.core.utils import now_iso
from opsconsole.processing.buckets import (
    ADDRESS_ISSUE,
    DEFAULT_TRACKING_PAGE,
    courier_name,
    to_bucket,
    tracking_url,
)
from opsconsole.processing.filters import parse_date_flexible

KEY_WIDTH = 22
VALUE_WIDTH = 78
DEFAULT_ACTIONS = (
    "Please correct the address and/or attempt delivery as appropriate.",
    "Update the shipment status accordingly.",
)
INTRO = (
    "We are observing an address-related issue for the following shipment. "
    "Kindly assist with resolution or guide on next steps."
)

_ADDRESS = re.compile("address", re.IGNORECASE)


@dataclass
class EmailDetails:
    """What the agent typed into the compose form."""

    phone: str = ""
    issue: str = ""
    remark: str = ""
    action_to_be_taken: str = ""
    customer_query: str = ""
    corrected_phone: str = ""
    corrected_address: str = ""
    courier_partner: str = ""
    called: bool = False


@dataclass
class EmailDraft:
    subject: str
    body_text: str
    body_html: str


def is_address_issue(record: NdrRecord, issue: str = "") -> bool:
    """Whether the compose-email action applies to this row."""

    notes = record.parsed_notes
    return bool(
        _ADDRESS.search(issue or "")
        or _ADDRESS.search(record.delivery_status or "")
        or notes.bucket_override == ADDRESS_ISSUE
        or to_bucket(record) == ADDRESS_ISSUE
    )


def subject_for(record: NdrRecord) -> str:
    return f"Address Issue: Order #{record.order_id} – AWB {record.waybill}"


def reply_subject(subject: str, record: NdrRecord) -> str:
    """Subject for a reply in an existing thread; a thread without one falls back to the order."""

    subject = (subject or "").strip()
    if not subject:
        return f"Re: Order #{record.order_id} – AWB {record.waybill}"
    return subject if subject.lower().startswith("re:") else f"Re: {subject}"


def _message_time(message: Mapping[str, Any]) -> datetime:
    for key in ("received_at", "sent_at", "created_at", "activity_at"):
        parsed = parse_date_flexible(message.get(key))
        if parsed:
            return parsed
    return datetime.min


def merge_thread(outbound: Sequence[Mapping[str, Any]], inbound: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Sent messages and courier replies in one chronological list.

    Inbound activity rows carry their time in ``activity_at``; it is copied to
    ``received_at`` so both kinds read the same way.
    """

    messages = [dict(m) for m in outbound]
    messages.extend({**m, "received_at": m.get("activity_at")} for m in inbound)
    return sorted(messages, key=_message_time)


def reply_html(body_text: str) -> str:
    escaped = html.escape(body_text or "").replace("\n", "<br/>")
    return f'<div style="font-family:Arial,sans-serif;font-size:14px;line-height:1.6;">{escaped}</div>'


def _entries(record: NdrRecord, details: EmailDetails, tracking_base: str) -> List[Tuple[str, str]]:
    courier = courier_name(record.courier_account)
    return [
        ("Courier Partner", details.courier_partner or courier),
        ("Order ID", str(record.order_id)),
        ("AWB", str(record.waybill or "—")),
        ("Courier", courier),
        ("Current Status", record.delivery_status or "—"),
        ("Location (last scan)", record.location or "—"),
        ("Customer Phone", details.phone or "—"),
        ("Tracking Link", tracking_url(record.waybill, tracking_base) or "—"),
    ]


def text_table(entries: Sequence[Tuple[str, str]]) -> str:
    sep = "+" + "-" * (KEY_WIDTH + 2) + "+" + "-" * VALUE_WIDTH + "+"
    lines = [sep, "| " + "Field".ljust(KEY_WIDTH) + " | " + "Value".ljust(VALUE_WIDTH) + "|", sep]
    for key, value in entries:
        lines.append("| " + key.ljust(KEY_WIDTH) + " | " + (value or "—").ljust(VALUE_WIDTH)[:VALUE_WIDTH] + "|")
    lines.append(sep)
    return "\n".join(lines)


def html_table(entries: Sequence[Tuple[str, str]]) -> str:
    cell = "padding:8px 10px;border:1px solid #dbe0e6;"
    rows = "".join(
        f'<tr><td style="{cell}background:#f8fafc;font-weight:600;white-space:nowrap;">{html.escape(k)}</td>'
        f'<td style="{cell}">{html.escape(v or "—")}</td></tr>'
        for k, v in entries
    )
    return (
        '<table cellpadding="0" cellspacing="0" role="presentation" '
        'style="border-collapse:collapse;border:1px solid #dbe0e6;width:100%;max-width:680px;font-size:14px;">'
        f'<thead><tr><th align="left" style="{cell}background:#e2e8f0;">Field</th>'
        f'<th align="left" style="{cell}background:#e2e8f0;">Value</th></tr></thead>'
        f"<tbody>{rows}</tbody></table>"
    )


def _text_body(entries: Sequence[Tuple[str, str]], details: EmailDetails) -> str:
    lines: List[Optional[str]] = ["Hello Team,", "", ">>> REQUESTED ACTION (IMPORTANT) <<<"]
    if details.action_to_be_taken:
        lines.append(f"- {details.action_to_be_taken}")
    else:
        lines.extend(f"- {action}" for action in DEFAULT_ACTIONS)
    lines.append("")
    if details.customer_query:
        lines.extend([">>> CUSTOMER QUERY <<<", f"- {details.customer_query}", ""])
    if details.corrected_phone or details.corrected_address:
        lines.append("Corrections")
        if details.corrected_phone:
            lines.append(f"- Corrected Phone: {details.corrected_phone}")
        if details.corrected_address:
            lines.append(f"- Corrected Address: {details.corrected_address}")
        lines.append("")
    lines.extend([INTRO, "", "Shipping Details", text_table(entries), ""])
    notes = []
    if details.issue:
        notes.append(f"- Customer Issue: {details.issue}")
    if details.remark:
        notes.append(f"- Internal Remarks: {details.remark}")
    if notes:
        lines.extend(["Notes", *notes, ""])
    lines.extend(["Thank you,", "Support", "", "--", "This email was sent automatically with n8n"])
    return "\n".join(line for line in lines if line is not None)


def _box(title: str, items: Sequence[str], border: str, background: str) -> str:
    bullets = "".join(f"<li>{html.escape(item).replace(chr(10), '<br/>')}</li>" for item in items)
    return (
        f'<div style="margin:0 0 16px 0;padding:14px 16px;border:2px solid {border};'
        f'background:{background};border-radius:12px;"><div style="font-weight:700;">{title}</div>'
        f'<ul style="margin:8px 0 0 20px;padding:0;">{bullets}</ul></div>'
    )


def _html_body(entries: Sequence[Tuple[str, str]], details: EmailDetails) -> str:
    actions = [details.action_to_be_taken] if details.action_to_be_taken else list(DEFAULT_ACTIONS)
    parts = ["<p>Hello Team,</p>", _box("Requested action", actions, "#F59E0B", "#FEF3C7")]
    if details.customer_query:
        parts.append(_box("Customer query", [details.customer_query], "#3B82F6", "#EFF6FF"))
    corrections = []
    if details.corrected_phone:
        corrections.append(f"Corrected Phone: {details.corrected_phone}")
    if details.corrected_address:
        corrections.append(f"Corrected Address: {details.corrected_address}")
    if corrections:
        parts.append(_box("Corrections", corrections, "#16a34a33", "#f0fdf4"))
    parts.extend([f"<p>{INTRO}</p>", "<h3>Shipping Details</h3>", html_table(entries)])
    notes = []
    if details.issue:
        notes.append(f"<li><strong>Customer Issue:</strong> {html.escape(details.issue)}</li>")
    if details.remark:
        notes.append(f"<li><strong>Internal Remarks:</strong> {html.escape(details.remark)}</li>")
    if notes:
        parts.append(f"<h3>Notes</h3><ul>{''.join(notes)}</ul>")
    parts.append("<p>Thank you,<br/>Support</p><hr/><p>This email was sent automatically with n8n</p>")
    return f'<div style="font-family:Arial,sans-serif;font-size:14px;line-height:1.6;">{"".join(parts)}</div>'


def compose_address_issue_email(
    record: NdrRecord,
    details: EmailDetails,
    tracking_base: str = DEFAULT_TRACKING_PAGE,
) -> EmailDraft:
    entries = _entries(record, details, tracking_base)
    return EmailDraft(
        subject=subject_for(record),
        body_text=_text_body(entries, details),
        body_html=_html_body(entries, details),
    )


def mail_payload(
    record: NdrRecord,
    details: EmailDetails,
    draft: EmailDraft,
    tracking_base: str = DEFAULT_TRACKING_PAGE,
) -> Dict[str, Any]:
    """Body POSTed to the mail webhook."""

    return {
        "order_id": record.order_id,
        "waybill": record.waybill,
        "courier_account": record.courier_account,
        "courier_partner": details.courier_partner or courier_name(record.courier_account),
        "subject": draft.subject,
        "text_body": draft.body_text,
        "html_body": draft.body_html,
        "content_type": "text/html",
        "corrected_phone": details.corrected_phone or None,
        "corrected_address": details.corrected_address or None,
        "phone": details.phone or None,
        "issue": details.issue or None,
        "remark": details.remark or None,
        "requested_action": details.action_to_be_taken or None,
        "customer_query": details.customer_query or None,
        "tracking": tracking_url(record.waybill, tracking_base) or None,
        "called": details.called,
        "timestamp": now_iso(),
    }


def mailto_url(draft: EmailDraft) -> str:
    return f"mailto:?subject={quote(draft.subject, safe='')}&body={quote(draft.body_text, safe='')}"
