"""Tests for spreadsheet export and upload parsing."""

import io

import pytest
from openpyxl import Workbook, load_workbook

from conftest import make_crossref, make_synthesized
from partalts_mcp.export import (
    EXPORT_HEADER,
    EXPORT_SHEET_TITLE,
    UploadError,
    build_workbook,
    export_row,
    export_rows,
    read_part_numbers,
)
from partalts_mcp.models import PartResult


def _xlsx(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class TestExportRow:
    def test_full_row(self):
        result = PartResult.success("LM317", make_crossref("TLV1117"), make_synthesized("A100", "B200", "C300"))
        assert export_row(result) == [
            "LM317", "TLV1117", "Drop-in replacement", "A100", "B200", "C300", "success",
        ]

    def test_missing_values_are_na(self):
        result = PartResult.success("NE555", [], make_synthesized("A100"))
        assert export_row(result) == ["NE555", "N/A", "N/A", "A100", "N/A", "N/A", "success"]

    def test_error_row(self):
        row = export_row(PartResult.failure("BROKEN1", "Empty response from model"))
        assert row == ["BROKEN1", "N/A", "N/A", "N/A", "N/A", "N/A", "error"]

    def test_dict_input_defaults_match_type(self):
        row = export_row({
            "originalPart": "LM317",
            "tiAlternatives": [{"partNumber": "TLV1117"}],
            "aiAlternatives": [],
            "status": "success",
        })
        assert row[1:3] == ["TLV1117", "Cross-Reference Match"]

    def test_non_object_entries_ignored(self):
        row = export_row({
            "originalPart": "LM317",
            "tiAlternatives": ["LM317HV"],
            "aiAlternatives": ["A100", {"partNumber": "B200"}, None, {"partNumber": {"nested": 1}}],
            "status": "success",
        })
        assert row == ["LM317", "N/A", "N/A", "B200", "{'nested': 1}", "N/A", "success"]

    def test_non_list_alternatives(self):
        row = export_row({"originalPart": "LM317", "tiAlternatives": "LM317HV", "aiAlternatives": 3})
        assert row == ["LM317", "N/A", "N/A", "N/A", "N/A", "N/A", ""]

    def test_deterministic(self):
        results = [
            PartResult.success("LM317", make_crossref("TLV1117"), make_synthesized("A100", "B200")),
            PartResult.failure("NE555", "boom").to_dict(),
        ]
        assert export_rows(results) == export_rows(results)
        assert len(export_rows(results)) == 2


class TestBuildWorkbook:
    def test_readable_workbook(self):
        results = [PartResult.success("LM317", make_crossref("TLV1117"), make_synthesized("A100", "B200", "C300"))]

        wb = load_workbook(io.BytesIO(build_workbook(results)))
        ws = wb.active

        assert ws.title == EXPORT_SHEET_TITLE
        assert [c.value for c in ws[1]] == EXPORT_HEADER
        assert ws["A1"].font.bold
        assert ws["A1"].fill.fgColor.rgb.endswith("FFE6E6")
        assert [c.value for c in ws[2]] == [
            "LM317", "TLV1117", "Drop-in replacement", "A100", "B200", "C300", "success",
        ]
        assert ws.max_row == 2

    def test_empty_results_header_only(self):
        ws = load_workbook(io.BytesIO(build_workbook([]))).active
        assert ws.max_row == 1


class TestReadPartNumbers:
    def test_csv_first_column(self):
        content = b"LM317,regulator\nNE555,timer\n,\n  LM358  ,opamp\n"
        assert read_part_numbers("parts.csv", content) == ["LM317", "NE555", "LM358"]

    def test_csv_with_bom(self):
        content = "\ufeffLM317\nNE555\n".encode("utf-8")
        assert read_part_numbers("PARTS.CSV", content) == ["LM317", "NE555"]

    def test_xlsx_first_column(self):
        content = _xlsx([["LM317", "x"], [None, "y"], [12345, "z"], ["NE555"]])
        # Non-text cells are skipped
        assert read_part_numbers("bom.xlsx", content) == ["LM317", "NE555"]

    def test_limit(self):
        content = "\n".join(f"PART{i}" for i in range(25)).encode()
        parts = read_part_numbers("parts.csv", content)
        assert parts == [f"PART{i}" for i in range(10)]

    def test_unsupported_extension(self):
        with pytest.raises(UploadError, match="Only Excel"):
            read_part_numbers("parts.txt", b"LM317")

    def test_no_part_numbers(self):
        with pytest.raises(UploadError, match="No valid part numbers"):
            read_part_numbers("parts.csv", b"\n\n ,\n")

    def test_corrupt_xlsx(self):
        with pytest.raises(UploadError, match="Could not read Excel file"):
            read_part_numbers("parts.xlsx", b"not a zip file")

    def test_non_utf8_csv(self):
        with pytest.raises(UploadError, match="UTF-8"):
            read_part_numbers("parts.csv", b"\xff\xfe\xfa")
