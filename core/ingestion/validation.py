"""
Record Validation - Required Fields, Type Checks and Completion

Checks one raw row against the batch mapping. Missing required values are
errors; type mismatches and listing-quality problems are warnings and never
block completion.

completion_percentage counts only required mappings:
    round(100 x present_required / total_required)
A mapping with no required fields yields 100 (vacuous pass).
"""

from __future__ import annotations

from typing import Final, Sequence

from core.ingestion.catalog import PHOTO_FIELD, DataType
from core.ingestion.mapper import FieldMapping
from core.ingestion.schema import RawRecord, Severity, ValidationIssue, ValidationResult
from core.ingestion.transform import (
    DEFAULT_MAX_PHOTOS,
    parse_date,
    parse_number,
    sanitize_photos,
    split_list,
)


DEFAULT_MIN_PHOTOS: Final[int] = 4
MIN_MLS_NUMBER_LENGTH: Final[int] = 3


def _error(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity=Severity.ERROR)


def _warning(field: str, message: str) -> ValidationIssue:
    return ValidationIssue(field=field, message=message, severity=Severity.WARNING)


def _completion(present: int, total: int) -> int:
    if total == 0:
        return 100
    # Half-up rounding
    return int(100 * present / total + 0.5)


def validate_record(
    raw: RawRecord,
    mappings: Sequence[FieldMapping],
    min_photos: int = DEFAULT_MIN_PHOTOS,
    max_photos: int = DEFAULT_MAX_PHOTOS,
) -> ValidationResult:
    """
    Validate a raw row against the batch's field mappings.

    Args:
        raw: Source row
        mappings: Mappings from the batch MappingResult
        min_photos: Fewer valid photos than this raises a warning when a
            photo column is mapped

    Returns:
        ValidationResult; valid iff no errors
    """
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    required_total = 0
    required_present = 0

    for mapping in mappings:
        name = mapping.canonical_name
        value = raw.get(mapping.input_header)

        # === Required presence ===
        if mapping.required:
            required_total += 1
            if value:
                required_present += 1
            else:
                errors.append(_error(name, f"{name} is required but missing"))

        if not value:
            if name == PHOTO_FIELD:
                warnings.append(
                    _warning(name, f"At least {min_photos} photos are required (found 0)")
                )
            continue

        # === Type conformance ===
        data_type = mapping.field.data_type
        if data_type == DataType.NUMBER and parse_number(value) is None:
            warnings.append(_warning(name, f"{name} should be a number (got {value!r})"))
        elif data_type == DataType.DATE and parse_date(value) is None:
            warnings.append(_warning(name, f"{name} should be a valid date (got {value!r})"))

        # === Listing quality ===
        if name == "ListPrice":
            price = parse_number(value)
            if price is not None and price <= 0:
                warnings.append(_warning(name, "ListPrice should be greater than 0"))
        elif name == "MLSNumber" and len(value) < MIN_MLS_NUMBER_LENGTH:
            warnings.append(
                _warning(
                    name,
                    f"MLSNumber should be at least {MIN_MLS_NUMBER_LENGTH} characters",
                )
            )
        elif name == PHOTO_FIELD:
            photo_count = len(sanitize_photos(split_list(value), max_photos))
            if photo_count < min_photos:
                warnings.append(
                    _warning(
                        name,
                        f"At least {min_photos} photos are required (found {photo_count})",
                    )
                )

    return ValidationResult(
        valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        completion_percentage=_completion(required_present, required_total),
    )
