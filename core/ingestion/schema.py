"""
Ingestion Schema - Stage Types and Error Taxonomy

Explicit intermediate types for each pipeline stage:

    RawRecord (header -> text) -> CanonicalRecord (canonical name -> typed value)

Shapes are checked at the boundary (RawRecord construction) so transform
and validation logic never receives an unknown structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Final, Optional


# =============================================================================
# Error Codes
# =============================================================================

PARSE_ERROR_CODES: Final[dict[str, str]] = {
    "EMPTY_FILE": "File is empty",
    "UNSUPPORTED_TYPE": "File type not supported (expected .csv, .xlsx or .xls)",
    "FILE_TOO_LARGE": "File exceeds the maximum upload size",
    "UNREADABLE": "File could not be read as a spreadsheet",
    "NO_HEADER": "No header row found",
    "TOO_MANY_RECORDS": "File exceeds the maximum number of records",
    "DUPLICATE_FILE": "A file with this name is already in the batch",
    "TOO_MANY_FILES": "Batch already holds the maximum number of files",
}

# Failures absorbed while processing rows or storing records
ROW_ERROR_CODES: Final[dict[str, str]] = {
    "ROW_FAILED": "Row could not be transformed",
    "STORE_FAILED": "Record was not accepted by the listing store",
}


# =============================================================================
# Exceptions
# =============================================================================


class IngestError(Exception):
    """Base class for ingestion failures."""


class FileParseError(IngestError):
    """A single file could not be parsed. Fatal to that file only."""

    def __init__(self, file_name: str, code: str, message: Optional[str] = None):
        self.file_name = file_name
        self.code = code
        self.message = message or PARSE_ERROR_CODES.get(code, f"Unknown code: {code}")
        super().__init__(f"{file_name}: {self.message}")


class RecordTransformError(IngestError):
    """A value had a shape the transformer cannot coerce."""


class BatchStateError(IngestError):
    """An orchestrator operation was invoked in the wrong stage."""


class BatchCancelledError(BatchStateError):
    """Processing stopped because the batch was cancelled."""


class InvalidMappingError(IngestError):
    """A reviewer-supplied mapping is inconsistent with the catalog or batch."""


# =============================================================================
# Raw Input
# =============================================================================


class FileLayout(Enum):
    """Shape of a parsed input file."""

    TABULAR = "tabular"
    FIELD_VALUE = "field_value"


@dataclass(frozen=True)
class RawRecord:
    """
    One source row, keyed by observed header.

    Values are normalised to stripped strings; missing cells become "".

    Raises:
        TypeError: If values is not a mapping
    """

    source_file: str
    row_index: int
    values: dict[str, str]

    def __post_init__(self) -> None:
        if not isinstance(self.values, dict):
            raise TypeError(
                f"RawRecord values must be a dict, got {type(self.values).__name__}"
            )
        clean = {
            str(k): ("" if v is None else str(v)).strip() for k, v in self.values.items()
        }
        object.__setattr__(self, "values", clean)

    def get(self, header: str) -> str:
        return self.values.get(header, "")


@dataclass(frozen=True)
class MalformedRow:
    """A data row whose cells could not be lined up with the header row."""

    source_file: str
    row_index: int
    cell_count: int
    expected_count: int

    @property
    def message(self) -> str:
        return (
            f"{self.source_file} row {self.row_index}: has {self.cell_count} cells "
            f"(header has {self.expected_count})"
        )


@dataclass(frozen=True)
class ParsedFile:
    """
    Header and row abstraction shared by tabular and Field,Value files.

    malformed_rows holds rows the reader skipped; they keep their position
    in the row numbering and count towards row_count.
    """

    file_name: str
    headers: tuple[str, ...]
    rows: tuple[RawRecord, ...]
    layout: FileLayout = FileLayout.TABULAR
    malformed_rows: tuple[MalformedRow, ...] = ()

    @property
    def record_count(self) -> int:
        return len(self.rows)

    @property
    def row_count(self) -> int:
        return len(self.rows) + len(self.malformed_rows)


# =============================================================================
# Validation
# =============================================================================


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    severity: Severity

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "severity": self.severity.value}


@dataclass(frozen=True)
class ValidationResult:
    """
    Per-record validation outcome.

    valid is True iff there are no errors. Warnings never affect validity
    or completion.
    """

    valid: bool
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    completion_percentage: int = 100

    def __post_init__(self) -> None:
        if not 0 <= self.completion_percentage <= 100:
            raise ValueError(
                f"completion_percentage must be within [0, 100]: {self.completion_percentage}"
            )
        if self.valid != (len(self.errors) == 0):
            raise ValueError("valid must be True exactly when there are no errors")

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "completionPercentage": self.completion_percentage,
        }


# =============================================================================
# Canonical Record
# =============================================================================


@dataclass
class CanonicalRecord:
    """
    A transformed listing.

    fields holds canonical name -> typed value. extras keeps unmapped
    columns under their original header for audit; they never populate
    canonical fields. identity is set by the deduplicator.
    """

    fields: dict[str, Any]
    source_file: str
    row_index: int
    raw: dict[str, str]
    extras: dict[str, str] = field(default_factory=dict)
    validation: Optional[ValidationResult] = None
    identity: str = ""
    status: str = "draft"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_publishable(self) -> bool:
        """Records with validation errors are kept but never published."""
        return self.validation is not None and self.validation.valid

    def get(self, canonical_name: str, default: Any = None) -> Any:
        return self.fields.get(canonical_name, default)

    def to_dict(self) -> dict:
        return {
            "fields": dict(self.fields),
            "extras": dict(self.extras),
            "sourceFile": self.source_file,
            "rowIndex": self.row_index,
            "createdAt": self.created_at.isoformat(),
            "validation": self.validation.to_dict() if self.validation else None,
            "identity": self.identity,
            "status": self.status,
        }


# =============================================================================
# Batch Outcomes
# =============================================================================


class DuplicateReason(Enum):
    EXISTING = "existing"
    BATCH_DUPLICATE = "batch_duplicate"


@dataclass(frozen=True)
class DuplicateNotice:
    """A record filtered out as a duplicate, for UI and audit reporting."""

    identifying_info: str
    reason: DuplicateReason
    source_file: str
    row_index: int
    identity: str

    def to_dict(self) -> dict:
        return {
            "identifyingInfo": self.identifying_info,
            "reason": self.reason.value,
            "sourceFile": self.source_file,
            "rowIndex": self.row_index,
            "identity": self.identity,
        }


@dataclass(frozen=True)
class BatchError:
    """A failure absorbed by the batch. row_index is None for file-level errors."""

    file_name: str
    code: str
    message: str
    row_index: Optional[int] = None

    @classmethod
    def from_parse_error(cls, error: FileParseError) -> "BatchError":
        return cls(file_name=error.file_name, code=error.code, message=error.message)

    def to_dict(self) -> dict:
        return {
            "fileName": self.file_name,
            "rowIndex": self.row_index,
            "code": self.code,
            "message": self.message,
        }
