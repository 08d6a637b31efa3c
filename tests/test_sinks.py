"""Tests for the CSV, Excel and Google Sheets export sinks."""
import csv
from pathlib import Path

import pytest
from openpyxl import load_workbook

from opsconsole.reporting import sinks
from opsconsole.reporting.sinks import csv_text, emit_rows, resolve_sheets_target, write_csv, write_excel

HEADERS = ["Order ID", "AWB", "Qty"]
ROWS = [
    {"Order ID": "1001", "AWB": "EE123IN", "Qty": 2, "ignored": "x"},
    {"Order ID": "1003", "AWB": "BD55", "Qty": 1},
]


def test_write_csv_uses_fixed_headers(tmp_path: Path):
    output = tmp_path / "nested" / "manifest.csv"

    write_csv(ROWS, output, HEADERS)

    with output.open(encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert list(rows[0].keys()) == HEADERS
    assert [row["AWB"] for row in rows] == ["EE123IN", "BD55"]


def test_write_csv_with_no_rows_still_writes_header(tmp_path: Path):
    output = tmp_path / "empty.csv"

    write_csv([], output, HEADERS)

    assert output.read_text(encoding="utf-8").strip() == "Order ID,AWB,Qty"


def test_csv_text_for_downloads():
    assert csv_text(ROWS[:1], HEADERS).splitlines() == ["Order ID,AWB,Qty", "1001,EE123IN,2"]


def test_write_excel(tmp_path: Path):
    output = tmp_path / "manifest.xlsx"

    write_excel(ROWS, output, sheet_title="manifest", headers=HEADERS)

    sheet = load_workbook(output).active
    assert sheet.title == "manifest"
    assert [cell.value for cell in sheet[1]] == HEADERS
    assert sheet.max_row == 3


def test_emit_rows_excel_swaps_suffix(tmp_path: Path, caplog):
    caplog.set_level("INFO")

    written = emit_rows(ROWS, tmp_path / "manifest.csv", HEADERS, sink="excel")

    assert written == tmp_path / "manifest.xlsx"
    assert load_workbook(written).active.title == "manifest"
    assert not (tmp_path / "manifest.csv").exists()
    assert any("Excel" in message for message in caplog.messages)


def test_emit_rows_sheets_pushes_after_csv(tmp_path: Path, monkeypatch, fake_service_account_file: Path):
    captured = {}

    def fake_push(rows, **kwargs):
        captured["rows"] = list(rows)
        captured.update(kwargs)

    monkeypatch.setattr(sinks, "push_to_google_sheets", fake_push)

    written = emit_rows(
        ROWS,
        tmp_path / "manifest.csv",
        HEADERS,
        sink="sheets",
        spreadsheet_id="sheet-123",
        worksheet_title="Manifest",
        service_account_path=fake_service_account_file,
    )

    assert written.exists()
    assert len(captured["rows"]) == 2
    assert captured["spreadsheet_id"] == "sheet-123"
    assert captured["worksheet_title"] == "Manifest"
    assert captured["service_account_path"] == fake_service_account_file
    assert captured["headers"] == HEADERS


def test_emit_rows_rejects_unknown_sink(tmp_path: Path):
    with pytest.raises(ValueError, match="Unknown sink"):
        emit_rows(ROWS, tmp_path / "out.csv", HEADERS, sink="pdf")


def test_resolve_sheets_target_errors(tmp_path: Path, monkeypatch):
    with pytest.raises(ValueError, match="spreadsheet_id is required"):
        resolve_sheets_target(None, "Sheet1", None)

    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValueError, match="--service-account"):
        resolve_sheets_target("sheet-123", "Sheet1", None)


def test_resolve_sheets_target_finds_default_file(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    default = tmp_path / "secrets" / "service_account.json"
    default.parent.mkdir()
    default.write_text("{}", encoding="utf-8")

    target = resolve_sheets_target("sheet-123", "Sheet1", None)

    assert target["service_account_path"] == Path("secrets/service_account.json")
