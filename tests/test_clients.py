"""Tests for the HTTP wrappers around NocoDB, Supabase, webhooks and telephony."""
import pytest
import requests

from opsconsole.clients.http import request_json
from opsconsole.clients.nocodb import UNAUTHORIZED_MESSAGE, NocoDBClient, eq_filter
from opsconsole.clients.supabase import SupabaseClient
from opsconsole.clients.telephony import TelephonyClient, customer_number, resolve_exenumber
from opsconsole.clients.webhooks import WebhookClient
from opsconsole.core.errors import RemoteRequestError
from opsconsole.core.models import TrackingEntry
from opsconsole.core.settings import CALLERDESK_CLICK_TO_CALL_URL, MCUBE_OUTBOUND_URL, Settings


def test_request_json_decodes_body(fake_session, fake_response):
    session = fake_session(fake_response(200, {"ok": True}), fake_response(204, text=""))

    assert request_json(session, "GET", "https://api.test/a", "Probe") == {"ok": True}
    assert request_json(session, "GET", "https://api.test/b", "Probe") is None
    assert session.calls[0]["timeout"] == 30


def test_request_json_raises_on_status(fake_session, fake_response, caplog):
    session = fake_session(fake_response(500, text="upstream down"))

    with pytest.raises(RemoteRequestError) as excinfo:
        request_json(session, "POST", "https://api.test/a", "Order lookup")

    assert excinfo.value.status_code == 500
    assert str(excinfo.value) == "Order lookup failed: 500 upstream down"
    assert "Order lookup" in caplog.text


def test_request_json_wraps_transport_and_json_errors(fake_session, fake_response):
    session = fake_session(requests.ConnectionError("connection refused"), fake_response(200, text="<html>"))

    with pytest.raises(RemoteRequestError, match="connection refused") as excinfo:
        request_json(session, "GET", "https://api.test/a", "Probe")
    assert excinfo.value.status_code is None

    with pytest.raises(RemoteRequestError, match="Invalid JSON response"):
        request_json(session, "GET", "https://api.test/a", "Probe")


def test_nocodb_pages_until_last_page(fake_session, fake_response):
    session = fake_session(
        fake_response(200, {"list": [{"Id": 1}, {"Id": 2}], "pageInfo": {"isLastPage": False}}),
        fake_response(200, {"list": [{"Id": 3}], "pageInfo": {"isLastPage": True}}),
    )
    client = NocoDBClient("https://noco.test/", "token", session=session)

    rows = client.list_records("tbl1", where="(Agent,eq,asha)", fields=["Id", "Agent"], sort="-Id", page_size=2)

    assert [row["Id"] for row in rows] == [1, 2, 3]
    assert [call["params"]["offset"] for call in session.calls] == [0, 2]
    first = session.calls[0]
    assert first["url"] == "https://noco.test/api/v2/tables/tbl1/records"
    assert first["headers"] == {"xc-token": "token"}
    assert first["params"]["fields"] == "Id,Agent"
    assert first["params"]["where"] == "(Agent,eq,asha)"


def test_nocodb_stops_at_max_rows(fake_session, fake_response, caplog):
    session = fake_session(
        fake_response(200, {"list": [{"Id": 1}, {"Id": 2}]}),
        fake_response(200, {"list": [{"Id": 3}, {"Id": 4}]}),
    )
    client = NocoDBClient("https://noco.test", "token", session=session)

    rows = client.list_records("tbl1", page_size=2, max_rows=4)

    assert len(rows) == 4
    assert len(session.calls) == 2
    assert "Stopped reading tbl1 at the 4 row limit" in caplog.text


@pytest.mark.parametrize(
    "value, expected",
    [
        ("1001", "(Order ID,eq,1001)"),
        (1001, "(Order ID,eq,1001)"),
        ("10,01", '(Order ID,eq,"10,01")'),
        ("A(1)", '(Order ID,eq,"A(1)")'),
        ('say "hi"', '(Order ID,eq,"say \\"hi\\"")'),
        (" 1001", '(Order ID,eq," 1001")'),
    ],
)
def test_eq_filter_quotes_special_values(value, expected):
    assert eq_filter("Order ID", value) == expected


def test_find_records_sends_quoted_filter(fake_session, fake_response):
    session = fake_session(fake_response(200, {"list": [{"Id": 9}], "pageInfo": {"isLastPage": True}}))
    client = NocoDBClient("https://noco.test", "token", session=session)

    assert client.find_records("tbl1", "Order ID", "#1001, dup") == [{"Id": 9}]
    assert session.calls[0]["params"]["where"] == '(Order ID,eq,"#1001, dup")'


def test_nocodb_unauthorized_message(fake_session, fake_response):
    client = NocoDBClient("https://noco.test", "bad", session=fake_session(fake_response(401, text="{}")))

    with pytest.raises(RemoteRequestError) as excinfo:
        client.find_records("tbl1", "Order ID", "1001")

    assert excinfo.value.status_code == 401
    assert UNAUTHORIZED_MESSAGE in str(excinfo.value)


def test_nocodb_patch_records(fake_session, fake_response):
    session = fake_session(fake_response(200, [{"Id": 4}]))
    client = NocoDBClient("https://noco.test", "token", session=session)

    assert client.patch_records("tbl1", []) == []
    with pytest.raises(ValueError, match="needs an Id"):
        client.patch_records("tbl1", [{"Agent": "asha"}])
    assert client.patch_records("tbl1", [{"Id": 4, "Agent": "asha"}]) == [{"Id": 4}]
    assert session.calls[0]["method"] == "PATCH"
    assert session.calls[0]["json"] == [{"Id": 4, "Agent": "asha"}]


def test_supabase_select_and_headers(fake_session, fake_response):
    session = fake_session(fake_response(200, [{"id": 1}]), fake_response(200, text=""))
    client = SupabaseClient("https://project.supabase.test/", "anon-key", session=session)

    assert client.select("ndr", {"id": "eq.1"}) == [{"id": 1}]
    assert client.select("ndr") == []

    call = session.calls[0]
    assert call["url"] == "https://project.supabase.test/rest/v1/ndr"
    assert call["params"] == {"select": "*", "id": "eq.1"}
    assert call["headers"]["apikey"] == "anon-key"
    assert call["headers"]["Authorization"] == "Bearer anon-key"


def test_supabase_writes(fake_session, fake_response):
    session = fake_session(fake_response(201, text=""), fake_response(200, [{"updated_count": 2}]))
    client = SupabaseClient("https://project.supabase.test", "anon-key", session=session)

    client.insert("ndr_allocation_rules", {"team_id": 1}, prefer="resolution=merge-duplicates")
    result = client.rpc("update_call_status", {"p_email": "a@b.c", "p_status": "Called"})

    assert session.calls[0]["headers"]["Prefer"] == "resolution=merge-duplicates"
    assert session.calls[1]["url"].endswith("/rest/v1/rpc/update_call_status")
    assert result == [{"updated_count": 2}]
    with pytest.raises(ValueError, match="Refusing to patch"):
        client.patch("ndr", {}, {"called": True})
    with pytest.raises(ValueError, match="Refusing to delete"):
        client.delete("ndr", {})


def test_supabase_requires_configuration():
    with pytest.raises(ValueError, match="SUPABASE_URL is not configured"):
        SupabaseClient.from_settings(Settings())
    with pytest.raises(ValueError):
        SupabaseClient("https://project.supabase.test", "")


def test_webhook_lookup_order(settings, fake_session, fake_response):
    session = fake_session(
        fake_response(200, [{"order_number": "1001", "customer_name": "Priya", "phone": "9876543210"}]),
        fake_response(200, []),
    )
    client = WebhookClient(settings, session)

    order = client.lookup_order(" 1001 ")

    assert order.customer_name == "Priya"
    assert session.calls[0]["url"] == settings.order_lookup_url
    assert session.calls[0]["json"] == {"Order": "1001"}
    with pytest.raises(RemoteRequestError, match="No order found for 1002"):
        client.lookup_order("1002")
    with pytest.raises(ValueError, match="Please enter an order number"):
        client.lookup_order("  ")


def test_webhook_requires_url(fake_session):
    client = WebhookClient(Settings(), fake_session())

    with pytest.raises(ValueError, match="TRACKING_UPDATE_URL is not configured"):
        client.update_tracking(TrackingEntry("1001", "AWB1", "2024-03-05T00:00:00"))


def test_webhook_list_orders_unwraps_data(settings, fake_session, fake_response):
    client = WebhookClient(settings, fake_session(fake_response(200, {"data": [{"order_number": "1"}]})))

    assert client.list_orders() == [{"order_number": "1"}]


def test_webhook_slip_records_collect_failures(settings, fake_session, fake_response):
    session = fake_session(
        fake_response(200, [{"Order ID": "1001", "Tracking": "T1"}]),
        fake_response(500, text="boom"),
    )
    client = WebhookClient(settings, session)

    records, failures = client.fetch_slip_records(["1001", " ", "1002"], dispatch_date="2024-03-05")

    assert records == [{"Order ID": "1001", "Tracking": "T1"}]
    assert list(failures) == ["1002"]
    assert "500" in failures["1002"]
    assert session.calls[0]["json"]["dispatch_date"] == "2024-03-05"


def test_webhook_send_mail_headers(settings, fake_session, fake_response):
    session = fake_session(fake_response(200, {"id": "m1"}), fake_response(200, {"id": "m2"}))
    client = WebhookClient(settings, session)

    client.send_mail({"subject": "x"})
    client.send_mail({"subject": "y"}, headers={"X-NDR-Action": "reply_email"})

    assert "headers" not in session.calls[0]
    assert session.calls[1]["headers"] == {"X-NDR-Action": "reply_email"}


def test_phone_validation():
    assert customer_number("+91 98765-43210") == "919876543210"
    with pytest.raises(ValueError, match="at least 10 digits"):
        customer_number("98765")


def test_resolve_exenumber():
    team = [{"member": "Asha", "phone": "123"}]
    everyone = [{"member": "asha", "phone": "08012345678"}]

    assert resolve_exenumber(team, "ASHA", everyone) == "08012345678"
    with pytest.raises(ValueError, match="No calling number configured for ravi"):
        resolve_exenumber(team, "ravi", everyone)


def test_callerdesk_click_to_call(settings, fake_session, fake_response):
    session = fake_session(
        fake_response(200, {"message": "Call to Customer Initiate Successfully"}),
        fake_response(200, {"message": "Agent busy"}),
    )
    client = TelephonyClient(settings, session)

    assert client.callerdesk_click_to_call("98400 12345", "9876543210") == "Call to Customer Initiate Successfully"
    call = session.calls[0]
    assert call["url"] == CALLERDESK_CLICK_TO_CALL_URL
    assert call["params"]["calling_party_a"] == "9840012345"
    assert call["params"]["authcode"] == "auth-code"
    with pytest.raises(RemoteRequestError, match="Agent busy"):
        client.callerdesk_click_to_call("9840012345", "9876543210")


def test_mcube_outbound_call(settings, fake_session, fake_response):
    session = fake_session(fake_response(200, {"status": "queued"}))
    client = TelephonyClient(settings, session)

    with pytest.raises(ValueError, match="exenumber_not_configured"):
        client.mcube_outbound_call("123", "9876543210")
    assert client.mcube_outbound_call("08012345678", "9876543210") == {"ok": True, "mcube": {"status": "queued"}}
    assert session.calls[0]["url"] == MCUBE_OUTBOUND_URL
    assert session.calls[0]["headers"]["Authorization"] == "mcube-token"
    assert session.calls[0]["json"]["custnumber"] == "9876543210"
