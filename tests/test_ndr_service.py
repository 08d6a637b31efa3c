"""Tests for the NDR service: cached edits, allocation and courier emails."""
import json

import pytest

from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.store import NDR_ACTIVE_TEAM_ID, NDR_AUTO_ALLOC_DONE, NDR_USER
from opsconsole.reporting.emails import EmailDetails
from opsconsole.services.ndr import REPLY_HEADERS, NdrService

MEMBERS = [{"id": 1, "team_id": 3, "member": "asha"}, {"id": 2, "team_id": 3, "member": "ravi"}]


@pytest.fixture
def logged_in(store):
    store.set(NDR_USER, "asha")
    store.set(NDR_ACTIVE_TEAM_ID, 3)
    return store


@pytest.fixture
def make_service(supabase_factory, logged_in, ndr_rows):
    """Build a loaded ``NdrService`` over an in-memory backend."""

    def _make(webhooks=None, **tables):
        supabase = supabase_factory(tables={"ndr": ndr_rows, "team_members": MEMBERS, **tables})
        service = NdrService(supabase, logged_in, webhooks=webhooks)
        service.load()
        supabase.calls.clear()
        return service, supabase

    return _make


def test_load_and_get(make_service):
    service, _ = make_service()

    assert [r.id for r in service.records] == [1, 2, 3]
    assert service.get(2).partner_edd == "2024-03-06"
    assert service.actor == "asha"
    assert service.team_id == 3
    assert service.loaded_at is not None
    with pytest.raises(KeyError):
        service.get(99)


def test_patch_mirrors_columns_onto_cache(make_service):
    service, supabase = make_service()

    updated = service.patch(1, {"Partner_EDD": "2024-03-10", "status": "resolved", "not_a_field": 1})

    assert updated.partner_edd == "2024-03-10"
    assert service.get(1).status == "resolved"
    assert supabase.calls_to("patch", "ndr")[0][2] == {"id": "eq.1"}


def test_failed_patch_leaves_cache_unchanged(make_service, remote_error):
    service, supabase = make_service()
    supabase.failures[("patch", "ndr")] = remote_error(409)

    with pytest.raises(RemoteRequestError):
        service.patch(1, {"status": "resolved"})

    assert service.get(1).status == "open"


def test_save_editor_rewrites_notes(make_service):
    service, _ = make_service()

    updated = service.save_editor(1, phone=" 9000000000 ", customer_issue="Was travelling", status="in_progress")

    notes = json.loads(updated.notes)
    assert notes == {"phone": "9000000000", "customer_issue": "Was travelling"}
    assert updated.status == "in_progress"
    assert service.save_editor(2, final_status="").final_status is None


def test_move_to_bucket_logs_activity(make_service):
    service, supabase = make_service()

    updated = service.move_to_bucket(3, "Address Issue")

    assert updated.parsed_notes.bucket_override == "Address Issue"
    activity = supabase.calls_to("insert", "ndr_user_activity")[0][2]
    assert activity["action"] == "bucket_override"
    assert activity["actor"] == "asha"
    assert activity["team_id"] == 3
    assert activity["details"] == {"bucket": "Address Issue"}
    with pytest.raises(ValueError, match="Unknown bucket"):
        service.move_to_bucket(3, "Lost")


def test_activity_failure_is_only_logged(make_service, remote_error, caplog):
    service, supabase = make_service()
    supabase.failures[("insert", "ndr_user_activity")] = remote_error(500)

    service.move_to_bucket(1, "CNA")

    assert service.get(1).parsed_notes.bucket_override == "CNA"
    assert "Could not log bucket_override activity" in caplog.text


def test_set_call_status_mirrors_to_leads(make_service):
    service, supabase = make_service()

    updated = service.set_call_status(1, "Yes")

    assert updated.called is True
    assert updated.parsed_notes.call_status == "Yes"
    assert supabase.calls_to("rpc", "update_call_status")[0][2] == {"p_phone": "9876543210", "p_status": "Yes"}

    assert service.set_call_status(2, "Call Later").called is None
    assert len(supabase.calls_to("rpc")) == 1


def test_assign_reassign_unassign(make_service):
    service, supabase = make_service()

    service.assign(2, "asha")
    service.assign(2, "ravi")
    final = service.assign(2, "")

    assert final.assigned_to is None
    assert final.assigned_at is None
    logged = [call[2] for call in supabase.calls_to("insert", "ndr_user_activity")]
    assert [(a["action"], a["from_member"], a["to_member"]) for a in logged] == [
        ("assign", None, "asha"),
        ("reassign", "asha", "ravi"),
        ("unassign", "ravi", None),
    ]


def test_auto_allocate_once_per_session(make_service, ndr_rows):
    service, supabase = make_service()

    assert service.auto_allocate_once() == 3

    patches = [(call[2]["id"], call[3]["assigned_to"]) for call in supabase.calls_to("patch", "ndr")]
    assert patches == [("eq.1", "asha"), ("eq.2", "ravi"), ("eq.3", "asha")]
    actions = [call[2]["action"] for call in supabase.calls_to("insert", "ndr_user_activity")]
    assert actions == ["assign", "assign", "assign", "auto_assign"]
    assert service.store.get(NDR_AUTO_ALLOC_DONE) == "1"

    assert service.auto_allocate_once() == 0


def test_auto_allocate_needs_team(make_service):
    service, supabase = make_service()
    service.store.remove(NDR_ACTIVE_TEAM_ID)

    assert service.auto_allocate_once() == 0
    assert supabase.calls == []


def test_reset_allocation(make_service):
    service, supabase = make_service()
    service.assign(1, "asha")
    service.store.set(NDR_AUTO_ALLOC_DONE, "1")

    assert service.reset_allocation() == 2

    assert service.get(1).assigned_to is None
    filters = [call[2] for call in supabase.calls_to("patch", "ndr")][1:]
    assert filters == [{"assigned_to": "eq.asha"}, {"assigned_to": "eq.ravi"}]
    assert service.store.get(NDR_AUTO_ALLOC_DONE) is None


def test_assign_by_percentages(make_service):
    service, _ = make_service()

    pairs = service.assign_by_percentages([1, 2, 3], {"asha": 50, "ravi": 50})

    assert pairs == [(1, "asha"), (2, "ravi"), (3, "asha")]
    assert service.get(2).assigned_to == "ravi"
    with pytest.raises(ValueError, match="must equal 100"):
        service.assign_by_percentages([1], {"asha": 50})


def test_address_email_without_webhook_returns_mailto(make_service):
    service, _ = make_service()

    sent, fallback = service.send_address_issue_email(2, EmailDetails())

    assert not sent
    assert fallback.startswith("mailto:?subject=")


def test_address_email_falls_back_when_webhook_fails(make_service, webhooks_factory, remote_error):
    service, supabase = make_service(webhooks=webhooks_factory(mail_error=remote_error(502)))

    sent, fallback = service.send_address_issue_email(2, EmailDetails(), subject="Custom subject")

    assert not sent
    assert "Custom%20subject" in fallback
    assert not service.get(2).email_sent
    assert supabase.calls_to("patch") == []


def test_address_email_marks_row(make_service, fake_webhooks):
    service, _ = make_service(webhooks=fake_webhooks)

    assert service.send_address_issue_email(2, EmailDetails(phone="9876543210")) == (True, None)

    payload, headers = fake_webhooks.mails[0]
    assert payload["order_id"] == "5002"
    assert headers is None
    assert service.get(2).email_sent


THREAD_TABLES = {
    "email_messages": [
        {
            "subject": "Address Issue",
            "sent_at": "2024-03-05T10:00:00Z",
            "message_id": "m1",
            "provider_thread_id": "t1",
        }
    ],
    "email_activity": [
        {
            "subject": "Re: Address Issue",
            "activity_at": "2024-03-06T09:00:00Z",
            "message_id": "m-in",
            "provider_thread_id": "t1",
        }
    ],
}


def test_email_thread_is_chronological(make_service):
    service, supabase = make_service(**THREAD_TABLES)

    thread, messages = service.email_thread(2)

    assert thread == {"thread_id": "t1", "subject": "Re: Address Issue"}
    assert [m["message_id"] for m in messages] == ["m1", "m-in"]
    params = supabase.calls_to("select", "email_messages")[0][2]
    assert params["order_id"] == "eq.5002"
    assert params["direction"] == "eq.outbound"


def test_reply_email_threads_the_reply(make_service, webhooks_factory):
    webhooks = webhooks_factory(mail_result={"message_id": "m2", "provider": "gmail"})
    service, supabase = make_service(webhooks=webhooks, **THREAD_TABLES)

    subject = service.reply_email(2, "Please reattempt\ntomorrow")

    assert subject == "Re: Address Issue"
    payload, headers = webhooks.mails[0]
    assert headers == REPLY_HEADERS
    assert payload["in_reply_to"] == "m-in"
    assert payload["thread_id"] == "t1"
    assert "<br/>" in payload["html_body"]
    thread_row = supabase.calls_to("insert", "email_threads")[0]
    assert thread_row[2]["last_message_id"] == "m2"
    assert thread_row[3] == "resolution=merge-duplicates,return=representation"
    assert supabase.calls_to("insert", "email_messages")[0][2]["in_reply_to"] == "m-in"


def test_reply_email_errors(make_service, fake_webhooks):
    service, _ = make_service(webhooks=fake_webhooks)

    with pytest.raises(ValueError, match="Write a reply first"):
        service.reply_email(2, "  ")
    with pytest.raises(ValueError, match="No email thread"):
        service.reply_email(2, "Hello")
    assert fake_webhooks.mails == []


def test_reply_bookkeeping_failure_is_logged(make_service, fake_webhooks, remote_error, caplog):
    service, supabase = make_service(webhooks=fake_webhooks, **THREAD_TABLES)
    supabase.failures[("insert", "email_threads")] = remote_error(500)

    assert service.reply_email(2, "Hello") == "Re: Address Issue"
    assert len(fake_webhooks.mails) == 1
    assert "thread bookkeeping failed" in caplog.text


def test_note_edits_keep_unknown_note_keys(make_service):
    service, supabase = make_service()
    service.records[0].notes = json.dumps({"phone": "9876543210", "email_thread": "t1", "history": ["called"]})

    service.save_editor(1, phone="9876543210", customer_issue="Wants evening delivery")
    service.set_call_status(1, "Connected")

    saved = json.loads(supabase.calls_to("patch", "ndr")[-1][3]["notes"])
    assert saved["email_thread"] == "t1"
    assert saved["history"] == ["called"]
    assert saved["customer_issue"] == "Wants evening delivery"
    assert saved["call_status"] == "Connected"
