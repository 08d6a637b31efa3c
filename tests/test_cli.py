"""Integration tests for the opsconsole batch-job CLI."""
import csv
import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from openpyxl import load_workbook

from opsconsole import cli
from opsconsole.processing.manifest import MANIFEST_HEADERS
from opsconsole.reporting.templates import NDR_EXPORT_HEADERS

SLIP_CSV = (
    "Order ID,Date,Address,Phone number,Quanity,Shipping,Tracking\n"
    '1001,2024-03-05,"Priya, 12 Beach Rd, Fort Kochi, Kochi, Kerala 682001",9876543210,2,India Post,EE123IN\n'
    '1002,2024-03-05,"Ravi, 4 Hill St, Ooty, Tamil Nadu 643001",9123456780,1,Delhivery,\n'
    '1003,2024-03-06,"Anu, 9 Lake Rd, Bhopal, Madhya Pradesh 462001",9988776655,1,Delhivery,DL55\n'
)


@pytest.fixture
def tracking_file(tmp_path: Path) -> Path:
    path = tmp_path / "tracking.csv"
    path.write_text("Order,Tracking,Date,Phone\n1001,AWB1,05/03/2024,9876543210\n1002,AWB2,,\n", encoding="utf-8")
    return path


@pytest.fixture
def slip_file(tmp_path: Path) -> Path:
    path = tmp_path / "slips.csv"
    path.write_text(SLIP_CSV, encoding="utf-8")
    return path


def test_tracking_upload_dry_run(run_cli, tracking_file: Path, capsys):
    run_cli(["tracking-upload", str(tracking_file), "--dry-run"])

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "1001\tAWB1\t2024-03-05T00:00:00\t9876543210"
    assert out[1].startswith("1002\tAWB2\t")
    assert out[-1] == "Parsed 2 rows (dry run, nothing sent)"


def test_tracking_upload_sends_rows(run_cli, tracking_file: Path, monkeypatch, settings, fake_webhooks, capsys):
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_session", lambda: None)
    monkeypatch.setattr(cli, "WebhookClient", lambda settings, session: fake_webhooks)

    run_cli(["tracking-upload", str(tracking_file)])

    assert [entry.order_number for entry in fake_webhooks.tracking] == ["1001", "1002"]
    assert "Submitted 2 tracking updates" in capsys.readouterr().out
    assert not settings.state_file.exists()


def test_tracking_upload_failure_exits(run_cli, tracking_file: Path, monkeypatch, settings, webhooks_factory, capsys):
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_session", lambda: None)
    monkeypatch.setattr(cli, "WebhookClient", lambda settings, session: webhooks_factory(failing={"1002"}))

    with pytest.raises(SystemExit) as excinfo:
        run_cli(["tracking-upload", str(tracking_file)])

    assert excinfo.value.code == 1
    assert "Row 2 (1002) failed: 502 bad gateway" in capsys.readouterr().err


def test_tracking_upload_rejects_empty_file(run_cli, tmp_path: Path, capsys):
    path = tmp_path / "empty.csv"
    path.write_text("Order,Tracking\n,\n", encoding="utf-8")

    with pytest.raises(SystemExit):
        run_cli(["tracking-upload", str(path), "--dry-run"])

    assert "No valid tracking rows" in capsys.readouterr().err


def test_categories_prints_table(run_cli, tmp_path: Path, capsys):
    records = tmp_path / "feedback.json"
    records.write_text(
        json.dumps(
            [
                {"liked_features": "Tastes delicious", "created_at": "2024-03-01T09:00:00"},
                {"liked_features": "Yummy taste", "created_at": "2024-03-02T12:00:00"},
                {"liked_features": "Easy to prepare", "created_at": "2024-03-02T18:00:00"},
            ]
        ),
        encoding="utf-8",
    )

    run_cli(["categories", str(records), "--field", "liked_features"])

    rows = list(csv.reader(capsys.readouterr().out.splitlines()))
    assert rows == [
        ["label", "count", "percentage"],
        ["Taste / Flavor", "2", "66.7"],
        ["Convenience / Easy to prepare", "1", "33.3"],
    ]


def test_categories_reports_missing_field(run_cli, tmp_path: Path, capsys):
    records = tmp_path / "feedback.json"
    records.write_text(json.dumps({"list": [{"gender": "Female"}]}), encoding="utf-8")

    run_cli(["categories", str(records), "--field", "heard_from"])

    assert "No records carry the field 'heard_from'" in capsys.readouterr().out


def test_manifest_csv(run_cli, slip_file: Path, tmp_path: Path, capsys):
    output = tmp_path / "out" / "manifest.csv"

    run_cli(["manifest", str(slip_file), "--output", str(output), "--date", "2024-03-05"])

    with output.open(encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert list(rows[0].keys()) == MANIFEST_HEADERS
    assert [row["Order ID"] for row in rows] == ["1001"]
    assert rows[0]["Qty"] == "2"
    out = capsys.readouterr().out
    assert "Skipped 1 orders without an AWB: 1002" in out
    assert f"Wrote {output}" in out


def test_manifest_excel_for_one_courier(run_cli, slip_file: Path, tmp_path: Path):
    run_cli(["manifest", str(slip_file), "--output", str(tmp_path / "manifest.csv"), "--sink", "excel", "--courier", "delhivery"])

    sheet = load_workbook(tmp_path / "manifest.xlsx").active
    assert [cell.value for cell in sheet[1]] == MANIFEST_HEADERS
    assert sheet.max_row == 2
    assert sheet.cell(row=2, column=2).value == "1003"


def test_manifest_without_awbs_exits(run_cli, slip_file: Path, tmp_path: Path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["manifest", str(slip_file), "--output", str(tmp_path / "m.csv"), "--courier", "Bluedart"])

    assert excinfo.value.code == 1
    assert "No shipments with an AWB" in capsys.readouterr().err


def test_ndr_export(run_cli, monkeypatch, settings, supabase_factory, ndr_rows, tmp_path: Path):
    supabase = supabase_factory(tables={"ndr": ndr_rows})
    monkeypatch.setattr(cli, "load_settings", lambda: settings)
    monkeypatch.setattr(cli, "build_session", lambda: None)
    monkeypatch.setattr(cli, "SupabaseClient", SimpleNamespace(from_settings=lambda settings, session: supabase))
    output = tmp_path / "ndr.csv"

    run_cli(["ndr-export", "--output", str(output)])

    with output.open(encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert list(rows[0].keys()) == NDR_EXPORT_HEADERS
    assert sorted(row["Order ID"] for row in rows) == ["5001", "5002", "5003"]


def test_missing_file_exits_with_error(run_cli, tmp_path: Path, capsys):
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["categories", str(tmp_path / "nope.json"), "--field", "gender"])

    assert excinfo.value.code == 1
    assert "error:" in capsys.readouterr().err
