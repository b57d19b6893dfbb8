"""
Spreadsheet Parsers - CSV / XLSX / XLS to ParsedFile

Reads uploaded bytes with pandas (every cell as text, empty cells as "")
and produces the shared header/row abstraction for both supported shapes:

- Tabular: first non-empty row is the header, each later row one record.
- Field,Value: exactly two columns literally named "field" and "value"
  (case-insensitive). Each row sets one field of a single record.

A CSV line with more cells than the header row is skipped in place and
reported on ParsedFile.malformed_rows. Any other failure is reported as
FileParseError for that file alone.
"""

from __future__ import annotations

import io
import logging
import os
from typing import Any, Final, Optional

import pandas as pd

from core.ingestion.schema import (
    FileLayout,
    FileParseError,
    MalformedRow,
    ParsedFile,
    RawRecord,
)


logger = logging.getLogger(__name__)


SUPPORTED_EXTENSIONS: Final[dict[str, Optional[str]]] = {
    ".csv": None,
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}

DEFAULT_MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024
DEFAULT_MAX_RECORDS: Final[int] = 1000

FIELD_VALUE_HEADERS: Final[tuple[str, str]] = ("field", "value")

# Stands in for a skipped CSV line so later rows keep their numbering
_MALFORMED_MARKER: Final[str] = "\x00malformed-row\x00"


def file_extension(file_name: str) -> str:
    return os.path.splitext(file_name)[1].lower()


def is_supported(file_name: str) -> bool:
    return file_extension(file_name) in SUPPORTED_EXTENSIONS


# =============================================================================
# Reading
# =============================================================================


def _cell(value: Any) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _read_frame(file_name: str, content: bytes, bad_lines: list[list[str]]) -> pd.DataFrame:
    extension = file_extension(file_name)
    buffer = io.BytesIO(content)
    if extension == ".csv":

        def keep_position(line: list[str]) -> list[str]:
            # Lines with more cells than the header row
            bad_lines.append(line)
            return [_MALFORMED_MARKER]

        return pd.read_csv(
            buffer,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
            engine="python",
            on_bad_lines=keep_position,
        )
    return pd.read_excel(
        buffer,
        header=None,
        dtype=str,
        keep_default_na=False,
        sheet_name=0,
        engine=SUPPORTED_EXTENSIONS[extension],
    )


def _read_rows(file_name: str, content: bytes) -> tuple[list[list[str]], dict[int, int]]:
    """
    Read non-empty rows as lists of trimmed text cells.

    Returns:
        (rows, malformed) where malformed maps a position in rows to the
        cell count of a line that was skipped in place
    """
    bad_lines: list[list[str]] = []
    try:
        frame = _read_frame(file_name, content, bad_lines)
    except pd.errors.EmptyDataError:
        raise FileParseError(file_name, "EMPTY_FILE")
    except Exception as e:
        logger.warning("Could not read %s: %s", file_name, e)
        raise FileParseError(file_name, "UNREADABLE", f"Could not read file: {e}") from e

    pending = iter(bad_lines)
    rows: list[list[str]] = []
    malformed: dict[int, int] = {}
    for values in frame.itertuples(index=False, name=None):
        if values and values[0] == _MALFORMED_MARKER:
            malformed[len(rows)] = len(next(pending))
            rows.append([])
            continue
        cells = [_cell(v) for v in values]
        if any(cells):
            rows.append(cells)
    return rows, malformed


def _unique_headers(raw_headers: list[str]) -> list[str]:
    headers: list[str] = []
    counts: dict[str, int] = {}
    for position, header in enumerate(raw_headers, start=1):
        name = header or f"Column {position}"
        counts[name] = counts.get(name, 0) + 1
        if counts[name] > 1:
            name = f"{name} ({counts[name]})"
        headers.append(name)
    return headers


# =============================================================================
# Shapes
# =============================================================================


def is_field_value_layout(header_row: list[str]) -> bool:
    if len(header_row) < 2 or any(header_row[2:]):
        return False
    return (header_row[0].lower(), header_row[1].lower()) == FIELD_VALUE_HEADERS


def _malformed_rows(
    file_name: str, malformed: dict[int, int], expected_count: int
) -> tuple[MalformedRow, ...]:
    return tuple(
        MalformedRow(
            source_file=file_name,
            row_index=position,
            cell_count=cell_count,
            expected_count=expected_count,
        )
        for position, cell_count in sorted(malformed.items())
    )


def _parse_field_value(
    file_name: str, rows: list[list[str]], malformed: dict[int, int]
) -> ParsedFile:
    values: dict[str, str] = {}
    for row in rows[1:]:
        field_name = row[0] if row else ""
        if not field_name:
            continue
        # Repeated fields: last value wins, first position kept
        values[field_name] = row[1] if len(row) > 1 else ""

    if not values:
        raise FileParseError(file_name, "NO_HEADER", "Field,Value file lists no fields")

    record = RawRecord(source_file=file_name, row_index=1, values=values)
    return ParsedFile(
        file_name=file_name,
        headers=tuple(values),
        rows=(record,),
        layout=FileLayout.FIELD_VALUE,
        malformed_rows=_malformed_rows(file_name, malformed, len(rows[0])),
    )


def _parse_tabular(
    file_name: str, rows: list[list[str]], malformed: dict[int, int], max_records: int
) -> ParsedFile:
    header_row = rows[0]
    data_rows = rows[1:]

    # Drop columns with neither a header nor any data
    keep = [
        i
        for i, header in enumerate(header_row)
        if header or any(i < len(r) and r[i] for r in data_rows)
    ]
    if not any(header_row[i] for i in keep):
        raise FileParseError(file_name, "NO_HEADER")

    headers = _unique_headers([header_row[i] for i in keep])
    if len(data_rows) > max_records:
        raise FileParseError(
            file_name,
            "TOO_MANY_RECORDS",
            f"File has {len(data_rows)} records (maximum {max_records})",
        )

    records = tuple(
        RawRecord(
            source_file=file_name,
            row_index=row_number,
            values={
                header: (row[i] if i < len(row) else "") for header, i in zip(headers, keep)
            },
        )
        for row_number, row in enumerate(data_rows, start=1)
        if row_number not in malformed
    )
    return ParsedFile(
        file_name=file_name,
        headers=tuple(headers),
        rows=records,
        malformed_rows=_malformed_rows(file_name, malformed, len(header_row)),
    )


def parse_file(
    file_name: str,
    content: bytes,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    max_records: int = DEFAULT_MAX_RECORDS,
) -> ParsedFile:
    """
    Parse one uploaded spreadsheet.

    Args:
        file_name: Original upload name (extension selects the reader)
        content: Raw file bytes
        max_file_size: Size cap in bytes
        max_records: Record cap for tabular files

    Returns:
        ParsedFile; row_index is the 1-based data row number

    Raises:
        FileParseError: If the file is empty, unsupported, too large,
            unreadable, headerless or over the record cap
    """
    if not is_supported(file_name):
        raise FileParseError(file_name, "UNSUPPORTED_TYPE")
    if not content:
        raise FileParseError(file_name, "EMPTY_FILE")
    if len(content) > max_file_size:
        raise FileParseError(
            file_name,
            "FILE_TOO_LARGE",
            f"File is {len(content)} bytes (maximum {max_file_size})",
        )

    rows, malformed = _read_rows(file_name, content)
    if not rows:
        raise FileParseError(file_name, "EMPTY_FILE")

    if is_field_value_layout(rows[0]):
        parsed = _parse_field_value(file_name, rows, malformed)
    else:
        parsed = _parse_tabular(file_name, rows, malformed, max_records)

    logger.info(
        "Parsed %s (%s): %d headers, %d records, %d malformed rows",
        file_name,
        parsed.layout.value,
        len(parsed.headers),
        parsed.record_count,
        len(parsed.malformed_rows),
    )
    return parsed
