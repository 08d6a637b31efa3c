"""Export sinks for console tables: CSV files, CSV downloads, Excel and Google Sheets."""
import csv
import io
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

DEFAULT_SERVICE_ACCOUNT_PATHS = [
    Path("secrets/service_account.json"),
    Path("credentials/service_account.json"),
]
SINKS = ("csv", "excel", "sheets")

logger = logging.getLogger(__name__)


def ensure_output_dir(output_path: Path) -> None:
    """Create parent folders for sink outputs when missing."""

    output_path.parent.mkdir(parents=True, exist_ok=True)


def _headers(rows: List[Dict[str, Any]], headers: Optional[Sequence[str]]) -> List[str]:
    return list(headers) if headers else list(rows[0].keys())


def push_to_google_sheets(
    rows: Iterable[Dict[str, Any]],
    spreadsheet_id: str,
    worksheet_title: str = "Sheet1",
    service_account_path: Path | None = None,
    headers: Optional[Sequence[str]] = None,
) -> None:
    """Replace a worksheet's contents with ``rows`` using a service account."""

    rows = list(rows)
    if not rows:
        return

    try:
        import gspread
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ImportError("gspread is required for Google Sheets sinks") from exc

    client = (
        gspread.service_account(filename=str(service_account_path))
        if service_account_path
        else gspread.service_account()
    )
    worksheet = client.open_by_key(spreadsheet_id).worksheet(worksheet_title)
    worksheet.clear()
    columns = _headers(rows, headers)
    worksheet.append_rows([columns] + [[row.get(h, "") for h in columns] for row in rows])


def write_excel(
    rows: Iterable[Dict[str, Any]],
    output_path: Path,
    sheet_title: str = "export",
    headers: Optional[Sequence[str]] = None,
) -> None:
    """Write rows to an Excel workbook using openpyxl."""

    rows = list(rows)
    if not rows:
        return

    try:
        from openpyxl import Workbook
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise ImportError("openpyxl is required for Excel sinks") from exc

    ensure_output_dir(output_path)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title[:31]
    columns = _headers(rows, headers)
    sheet.append(columns)
    for row in rows:
        sheet.append([row.get(header, "") for header in columns])
    workbook.save(output_path)


def csv_text(rows: Iterable[Dict[str, Any]], headers: Sequence[str]) -> str:
    """Render rows as CSV text, header line included, for download buttons."""

    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(headers), extrasaction="ignore")
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue()


def write_csv(rows: Iterable[Dict[str, Any]], output_path: Path, headers: Sequence[str]) -> None:
    """Write rows to a CSV file with a fixed header order."""

    rows = list(rows)
    ensure_output_dir(output_path)
    with output_path.open("w", newline="", encoding="utf-8") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=list(headers), extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


def _default_service_account_path() -> Optional[Path]:
    for candidate in DEFAULT_SERVICE_ACCOUNT_PATHS:
        if candidate.exists():
            return candidate
    return None


def resolve_sheets_target(
    spreadsheet_id: Optional[str],
    worksheet_title: str,
    explicit_account_path: Optional[Path],
) -> Dict[str, Any]:
    if not spreadsheet_id:
        raise ValueError("spreadsheet_id is required when sink='sheets'")

    account_path = explicit_account_path or _default_service_account_path()
    if not account_path:
        raise ValueError(
            "Provide --service-account pointing to your Google credentials or place a file at "
            f"{DEFAULT_SERVICE_ACCOUNT_PATHS[0]}"
        )

    return {
        "spreadsheet_id": spreadsheet_id,
        "worksheet_title": worksheet_title,
        "service_account_path": account_path,
    }


def emit_rows(
    rows: Iterable[Dict[str, Any]],
    output_path: Path,
    headers: Sequence[str],
    sink: str = "csv",
    spreadsheet_id: Optional[str] = None,
    worksheet_title: str = "Sheet1",
    service_account_path: Optional[Path] = None,
) -> Path:
    """Write ``rows`` in the chosen sink and return the file written.

    ``excel`` swaps the suffix of ``output_path`` to ``.xlsx``. ``sheets``
    keeps the CSV as a local copy and then replaces the worksheet contents.
    """

    if sink not in SINKS:
        raise ValueError(f"Unknown sink {sink!r}; choose one of {', '.join(SINKS)}")
    rows = list(rows)

    if sink == "excel":
        target = output_path.with_suffix(".xlsx")
        ensure_output_dir(target)
        write_excel(rows, target, sheet_title=output_path.stem, headers=headers)
        logger.info("Wrote %d rows to Excel file %s", len(rows), target)
        return target

    write_csv(rows, output_path, headers)
    logger.info("Wrote %d rows to %s", len(rows), output_path)
    if sink == "sheets":
        target = resolve_sheets_target(spreadsheet_id, worksheet_title, service_account_path)
        push_to_google_sheets(rows, headers=headers, **target)
        logger.info(
            "Pushed %d rows to Google Sheets document %s (worksheet %s)",
            len(rows),
            target["spreadsheet_id"],
            target["worksheet_title"],
        )
    return output_path
