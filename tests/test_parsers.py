"""
Tests for spreadsheet parsing (CSV, XLSX, Field,Value layout).
"""

import io

import pytest
from openpyxl import Workbook

from core.ingestion.parsers import is_field_value_layout, is_supported, parse_file
from core.ingestion.schema import FileLayout, FileParseError, MalformedRow


# =============================================================================
# Helpers
# =============================================================================


def _xlsx(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _error_code(file_name, content, **kwargs):
    with pytest.raises(FileParseError) as exc_info:
        parse_file(file_name, content, **kwargs)
    assert exc_info.value.file_name == file_name
    return exc_info.value.code


# =============================================================================
# Tabular CSV
# =============================================================================


class TestTabularCsv:
    def test_headers_and_rows(self):
        parsed = parse_file("a.csv", b"City,State\nAustin,TX\nDallas,TX\n")

        assert parsed.layout == FileLayout.TABULAR
        assert parsed.headers == ("City", "State")
        assert parsed.record_count == 2
        assert parsed.rows[1].values == {"City": "Dallas", "State": "TX"}

    def test_row_index_is_data_row_number(self):
        parsed = parse_file("a.csv", b"City\nAustin\n\nDallas\n")

        assert [r.row_index for r in parsed.rows] == [1, 2]
        assert all(r.source_file == "a.csv" for r in parsed.rows)

    def test_byte_order_mark_stripped(self):
        parsed = parse_file("a.csv", "\ufeffCity,State\nAustin,TX\n".encode("utf-8"))

        assert parsed.headers == ("City", "State")

    def test_cells_trimmed_and_empty_kept(self):
        parsed = parse_file("a.csv", b"City,State,Zip\n  Austin ,,78701\n")

        assert parsed.rows[0].values == {"City": "Austin", "State": "", "Zip": "78701"}

    def test_na_text_not_treated_as_missing(self):
        parsed = parse_file("a.csv", b"City,State\nNA,N/A\n")

        assert parsed.rows[0].values == {"City": "NA", "State": "N/A"}

    def test_blank_and_duplicate_headers(self):
        parsed = parse_file("a.csv", b"City,,City\nAustin,x,Dallas\n")

        assert parsed.headers == ("City", "Column 2", "City (2)")

    def test_empty_unnamed_column_dropped(self):
        parsed = parse_file("a.csv", b"City,,State\nAustin,,TX\n")

        assert parsed.headers == ("City", "State")

    def test_header_only(self):
        parsed = parse_file("a.csv", b"City,State\n")

        assert parsed.headers == ("City", "State")
        assert parsed.rows == ()


# =============================================================================
# Malformed CSV Rows
# =============================================================================


class TestMalformedCsvRows:
    CONTENT = b"MLS #,List Price,City\n100,450000,Austin\n101,460000,Austin,\n102,470000,Austin\n"

    def test_good_rows_survive_trailing_comma_row(self):
        parsed = parse_file("listings.csv", self.CONTENT)

        assert parsed.headers == ("MLS #", "List Price", "City")
        assert [r.values["MLS #"] for r in parsed.rows] == ["100", "102"]
        assert [r.row_index for r in parsed.rows] == [1, 3]

    def test_malformed_row_reported_in_place(self):
        parsed = parse_file("listings.csv", self.CONTENT)

        assert parsed.malformed_rows == (
            MalformedRow(
                source_file="listings.csv", row_index=2, cell_count=4, expected_count=3
            ),
        )
        assert parsed.record_count == 2
        assert parsed.row_count == 3
        assert parsed.malformed_rows[0].message == (
            "listings.csv row 2: has 4 cells (header has 3)"
        )

    def test_short_rows_are_padded_not_malformed(self):
        parsed = parse_file("a.csv", b"City,State,Zip\nAustin\n")

        assert parsed.malformed_rows == ()
        assert parsed.rows[0].values == {"City": "Austin", "State": "", "Zip": ""}

    def test_well_formed_file_has_no_malformed_rows(self):
        assert parse_file("a.csv", b"City,State\nAustin,TX\n").malformed_rows == ()


# =============================================================================
# Field,Value Layout
# =============================================================================


class TestFieldValue:
    def test_single_record(self):
        content = b"Field,Value\nCity,Austin\nState,TX\nCity,Dallas\n"

        parsed = parse_file("single.csv", content)

        assert parsed.layout == FileLayout.FIELD_VALUE
        assert parsed.headers == ("City", "State")
        assert parsed.record_count == 1
        assert parsed.rows[0].values == {"City": "Dallas", "State": "TX"}
        assert parsed.rows[0].row_index == 1

    def test_case_insensitive(self):
        parsed = parse_file("single.csv", b"FIELD,value\nCity,Austin\n")

        assert parsed.layout == FileLayout.FIELD_VALUE

    def test_extra_column_means_tabular(self):
        parsed = parse_file("table.csv", b"Field,Value,Notes\nCity,Austin,x\n")

        assert parsed.layout == FileLayout.TABULAR
        assert parsed.headers == ("Field", "Value", "Notes")

    def test_no_fields(self):
        assert _error_code("single.csv", b"Field,Value\n") == "NO_HEADER"

    def test_is_field_value_layout(self):
        assert is_field_value_layout(["Field", "Value"])
        assert is_field_value_layout(["field", "value", ""])
        assert not is_field_value_layout(["Field"])
        assert not is_field_value_layout(["Name", "Value"])


# =============================================================================
# XLSX
# =============================================================================


class TestXlsx:
    def test_reads_first_sheet(self):
        content = _xlsx([["MLS #", "List Price"], ["TX-100", 450000]])

        parsed = parse_file("listings.xlsx", content)

        assert parsed.headers == ("MLS #", "List Price")
        assert parsed.rows[0].values == {"MLS #": "TX-100", "List Price": "450000"}

    def test_empty_cells(self):
        content = _xlsx([["City", "State"], ["Austin", None]])

        assert parse_file("listings.xlsx", content).rows[0].values == {
            "City": "Austin",
            "State": "",
        }

    def test_garbage_content(self):
        assert _error_code("broken.xlsx", b"not a spreadsheet") == "UNREADABLE"


# =============================================================================
# Rejections
# =============================================================================


class TestRejections:
    def test_unsupported_type(self):
        assert _error_code("notes.txt", b"City\nAustin\n") == "UNSUPPORTED_TYPE"
        assert not is_supported("notes.txt")
        assert is_supported("LISTINGS.XLSX")

    def test_empty_bytes(self):
        assert _error_code("a.csv", b"") == "EMPTY_FILE"

    def test_blank_lines_only(self):
        assert _error_code("a.csv", b"\n\n") == "EMPTY_FILE"

    def test_empty_cells_only(self):
        assert _error_code("a.csv", b",,\n,,\n") == "EMPTY_FILE"

    def test_too_large(self):
        assert _error_code("a.csv", b"City\nAustin\n", max_file_size=5) == "FILE_TOO_LARGE"

    def test_too_many_records(self):
        content = b"City\nAustin\nDallas\nHouston\n"

        assert _error_code("a.csv", content, max_records=2) == "TOO_MANY_RECORDS"

    def test_error_message_from_code_table(self):
        with pytest.raises(FileParseError) as exc_info:
            parse_file("a.csv", b"")

        assert exc_info.value.message == "File is empty"
        assert "a.csv" in str(exc_info.value)
