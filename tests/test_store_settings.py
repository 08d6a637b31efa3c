"""Tests for the local state store, the console gate and settings loading."""
import json
from pathlib import Path

import pytest

import opsconsole.core.settings as settings_module
from opsconsole.core.models import NdrNotes, NdrRecord, RepeatLead, TrackingEntry
from opsconsole.core.settings import Settings, load_settings
from opsconsole.core.store import (
    AUTH_TOKEN,
    CALLER_IDENTITY,
    GROUPS_PREFIX,
    NDR_USER,
    REPEAT_ORDER_NUMBER,
    TRACKING_HISTORY,
    LocalStore,
    authenticate,
    is_authenticated,
)
from opsconsole.core.utils import get_config_value, load_env_file, now_iso, pick_field


def test_store_persists_only_shared_groups(tmp_path: Path):
    path = tmp_path / "state" / "console.json"
    store = LocalStore(path)
    store.set_json(GROUPS_PREFIX + "heard_from", {"insta": "Instagram"})
    store.set(REPEAT_ORDER_NUMBER, 1001)

    reloaded = LocalStore(path)

    assert reloaded.get_json(GROUPS_PREFIX + "heard_from") == {"insta": "Instagram"}
    assert reloaded.get(REPEAT_ORDER_NUMBER) is None
    assert store.get(REPEAT_ORDER_NUMBER) == "1001"
    assert sorted(store.keys()) == [GROUPS_PREFIX + "heard_from", REPEAT_ORDER_NUMBER]
    assert list(json.loads(path.read_text(encoding="utf-8"))) == [GROUPS_PREFIX + "heard_from"]


def test_sessions_on_one_file_stay_separate(tmp_path: Path):
    path = tmp_path / "state.json"
    first = LocalStore(path)
    second = LocalStore(path)

    assert authenticate(first, "letmein", "letmein")
    first.set(NDR_USER, "alice")
    second.set(CALLER_IDENTITY, "9876543210")

    assert not is_authenticated(second)
    assert second.get(NDR_USER) is None
    assert LocalStore(path).get(NDR_USER) is None
    assert first.get(CALLER_IDENTITY) is None


def test_group_writes_merge_with_other_sessions(tmp_path: Path):
    path = tmp_path / "state.json"
    first = LocalStore(path)
    second = LocalStore(path)

    first.set_json(GROUPS_PREFIX + "gender", {"f": "Female"})
    second.set_json(GROUPS_PREFIX + "city_text", {"kochi": "Kerala"})
    first.remove(GROUPS_PREFIX + "missing")

    assert second.get_json(GROUPS_PREFIX + "gender") == {"f": "Female"}
    assert json.loads(path.read_text(encoding="utf-8")) == {
        GROUPS_PREFIX + "city_text": json.dumps({"kochi": "Kerala"}),
        GROUPS_PREFIX + "gender": json.dumps({"f": "Female"}),
    }


def test_store_uses_the_given_session_mapping(tmp_path: Path):
    session = {}
    store = LocalStore(tmp_path / "state.json", session=session)

    store.set(NDR_USER, "asha")
    store.clear_session()
    store.set(TRACKING_HISTORY, "[]")

    assert session == {TRACKING_HISTORY: "[]"}
    assert not (tmp_path / "state.json").exists()


def test_store_without_path_keeps_groups_in_memory():
    store = LocalStore()
    store.set_json(GROUPS_PREFIX + "gender", {"m": "Male"})

    assert store.get_json(GROUPS_PREFIX + "gender") == {"m": "Male"}
    store.remove(GROUPS_PREFIX + "gender")
    assert store.keys() == []


def test_store_survives_corrupt_values(tmp_path: Path, caplog):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({GROUPS_PREFIX + "gender": "{not json", "auth_token": "authenticated"}), encoding="utf-8")

    store = LocalStore(path)

    assert store.get_json(GROUPS_PREFIX + "gender", {}) == {}
    assert "corrupt JSON" in caplog.text
    assert not is_authenticated(store)


def test_store_ignores_unreadable_file(tmp_path: Path, caplog):
    path = tmp_path / "state.json"
    path.write_text("{broken", encoding="utf-8")

    assert LocalStore(path).keys() == []
    assert "unreadable state file" in caplog.text


def test_authenticate_and_clear_session(store: LocalStore, caplog):
    store.set(REPEAT_ORDER_NUMBER, "1001")
    store.set(NDR_USER, "asha")

    assert not authenticate(store, "wrong", "letmein")
    assert "Rejected console login" in caplog.text
    assert not is_authenticated(store)

    assert authenticate(store, "letmein", "letmein")
    assert is_authenticated(store)

    store.clear_session()

    assert not is_authenticated(store)
    assert store.get(AUTH_TOKEN) is None
    assert store.get(NDR_USER) is None
    assert store.get(REPEAT_ORDER_NUMBER) == "1001"


def test_authenticate_requires_configured_password(store: LocalStore):
    with pytest.raises(ValueError, match="OPSCONSOLE_PASSWORD"):
        authenticate(store, "anything", "")


def test_load_settings_from_environment(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(settings_module, "_SECRETS_LOADED", True)
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.test/")
    monkeypatch.setenv("SUPABASE_KEY", "anon-key")
    monkeypatch.setenv("NOCODB_TABLE_SLIPS", "tbl_custom")
    monkeypatch.setenv("NDR_POLL_SECONDS", "120")
    monkeypatch.setenv("OPSCONSOLE_STATE_FILE", str(tmp_path / "s.json"))

    loaded = load_settings()

    assert loaded.supabase_url == "https://project.supabase.test"
    assert loaded.require("supabase_key") == "anon-key"
    assert loaded.nocodb_tables["slips"] == "tbl_custom"
    assert loaded.nocodb_tables["missed_calls"] == "m135bs690ngf28r"
    assert loaded.ndr_poll_seconds == 120
    assert loaded.http_timeout == 30
    assert loaded.state_file == tmp_path / "s.json"


def test_load_settings_rejects_bad_integers(monkeypatch):
    monkeypatch.setattr(settings_module, "_SECRETS_LOADED", True)
    monkeypatch.setenv("HTTP_TIMEOUT", "soon")

    with pytest.raises(ValueError, match="HTTP_TIMEOUT must be an integer"):
        load_settings()


def test_settings_require_names_missing_value():
    with pytest.raises(ValueError, match="NDR_MAILER_URL is not configured"):
        Settings().require("ndr_mailer_url")


def test_env_file_does_not_override_environment(monkeypatch, tmp_path: Path):
    env_file = tmp_path / "opsconsole.env"
    env_file.write_text("# comment\nOPS_TEST_A='from-file'\nOPS_TEST_B=from-file\nnot a pair\n", encoding="utf-8")
    monkeypatch.setenv("OPS_TEST_A", "placeholder")
    monkeypatch.delenv("OPS_TEST_A")
    monkeypatch.setenv("OPS_TEST_B", "from-env")

    load_env_file(env_file)

    assert get_config_value("OPS_TEST_A") == "from-file"
    assert get_config_value("OPS_TEST_B") == "from-env"
    assert get_config_value("OPS_TEST_MISSING", "fallback") == "fallback"


def test_pick_field_tolerates_column_naming():
    row = {"Order ID": "", "order_id": "1001", "Customer Name": "Priya"}

    assert pick_field(row, ["Order ID", "order_id"]) == "1001"
    assert pick_field(row, ["customer_name"]) == "Priya"
    assert pick_field(row, ["missing"], None) is None


def test_now_iso_is_utc_with_milliseconds():
    stamp = now_iso()

    assert stamp.endswith("Z")
    assert len(stamp.split(".")[1]) == 4


def test_model_rows():
    record = NdrRecord.from_row({"id": "7", "order_id": 5001, "Partner_EDD": "2024-03-05", "called": 0})
    assert (record.id, record.order_id, record.partner_edd, record.called) == (7, "5001", "2024-03-05", False)
    assert NdrRecord.from_row({"id": 8}).called is None

    assert NdrNotes.parse("[1, 2]") == NdrNotes()
    assert NdrNotes(phone="9876543210", customer_issue="").to_json() == '{"phone": "9876543210"}'

    lead = RepeatLead.from_row({"email": "a@b.c", "order_count": "3", "order_numbers": [1001, 1002], "team_id": "2"})
    assert (lead.order_count, lead.order_numbers, lead.team_id) == (3, ["1001", "1002"], 2)

    assert TrackingEntry("1001", "AWB1", "t").to_payload()["phoneNumber"] == ""
