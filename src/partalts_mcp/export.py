"""Spreadsheet export of batch results and part-number upload parsing."""

import csv
import io
import logging
from typing import Any, Iterable

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill

from .config import MAX_BATCH_PARTS
from .models import DEFAULT_MATCH_TYPE, PartResult

logger = logging.getLogger(__name__)

EXPORT_HEADER = [
    "Original Part",
    "TI Cross-Reference Alternative",
    "Match Type",
    "AI Alternative 1",
    "AI Alternative 2",
    "AI Alternative 3",
    "Status",
]
EXPORT_SHEET_TITLE = "Part Alternatives"
EXPORT_FILENAME = "part-alternatives-bulk.xlsx"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_NA = "N/A"
_HEADER_FILL = PatternFill(start_color="FFE6E6", end_color="FFE6E6", fill_type="solid")


class UploadError(ValueError):
    """Uploaded file could not be turned into a list of part numbers."""


def _as_dict(result: PartResult | dict[str, Any]) -> dict[str, Any]:
    return result.to_dict() if isinstance(result, PartResult) else result


def _alternative_entries(value: Any) -> list[dict[str, Any]]:
    # Exported results may come back from a client; ignore entries that aren't objects
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def _cell(value: Any, default: str = _NA) -> str:
    return str(value) if value not in (None, "") else default


def export_row(result: PartResult | dict[str, Any]) -> list[str]:
    """Project one result into the fixed 7-column export row."""
    data = _as_dict(result)
    ti = _alternative_entries(data.get("tiAlternatives"))
    ai = _alternative_entries(data.get("aiAlternatives"))

    first_ti = ti[0] if ti else None
    row = [
        _cell(data.get("originalPart"), ""),
        _cell(first_ti.get("partNumber")) if first_ti else _NA,
        _cell(first_ti.get("matchType"), DEFAULT_MATCH_TYPE) if first_ti else _NA,
    ]
    for i in range(3):
        row.append(_cell(ai[i].get("partNumber")) if i < len(ai) else _NA)
    row.append(_cell(data.get("status"), ""))
    return row


def export_rows(results: Iterable[PartResult | dict[str, Any]]) -> list[list[str]]:
    """Export rows (without header) for a list of results. Pure function of input."""
    return [export_row(r) for r in results]


def build_workbook(results: Iterable[PartResult | dict[str, Any]]) -> bytes:
    """Build the .xlsx export and return its bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = EXPORT_SHEET_TITLE

    ws.append(EXPORT_HEADER)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = _HEADER_FILL

    for row in export_rows(results):
        ws.append(row)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _first_column_xlsx(content: bytes) -> list[Any]:
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise UploadError(f"Could not read Excel file: {type(e).__name__}")
    try:
        ws = wb.worksheets[0]
        return [row[0] if row else None for row in ws.iter_rows(max_col=1, values_only=True)]
    finally:
        wb.close()


def _first_column_csv(content: bytes) -> list[Any]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise UploadError("CSV file must be UTF-8 encoded")
    return [row[0] if row else None for row in csv.reader(io.StringIO(text))]


def read_part_numbers(filename: str, content: bytes, limit: int = MAX_BATCH_PARTS) -> list[str]:
    """Read part numbers from the first column of an uploaded .xlsx or .csv.

    Blank and non-text cells are skipped; at most ``limit`` are returned.

    Raises:
        UploadError: Unsupported file type, unreadable file, or no part numbers
    """
    lower = (filename or "").lower()
    if lower.endswith(".xlsx"):
        cells = _first_column_xlsx(content)
    elif lower.endswith(".csv"):
        cells = _first_column_csv(content)
    else:
        raise UploadError("Only Excel (.xlsx) and CSV files are allowed")

    parts = [c.strip() for c in cells if isinstance(c, str) and c.strip()][:limit]
    if not parts:
        raise UploadError("No valid part numbers found in the file")
    logger.info(f"Read {len(parts)} part numbers from {filename}")
    return parts
