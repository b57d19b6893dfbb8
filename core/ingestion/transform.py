"""
Record Transformer - RawRecord to CanonicalRecord

Applies a batch mapping to one raw row:

1. Every mapped, non-empty value is coerced to its field's declared type
   and written under the canonical name.
2. Unmapped columns are kept in CanonicalRecord.extras for audit.
3. Street number/name/suffix still empty after direct mapping are filled
   from the best address-like column via the address parser. Parsed
   components only fill empty slots.
4. Photo lists are sanitised (http(s) only, no placeholder hosts, no
   duplicates, capped).
5. BathroomsTotal is derived from full + 0.5 x half when not supplied.

Validation is not performed here; see core.ingestion.validation.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime
from typing import Any, Final, Iterable, Optional, Union
from urllib.parse import urlparse

from core.ingestion.address import parse_street_address
from core.ingestion.catalog import (
    PHOTO_FIELD,
    STREET_COMPONENT_FIELDS,
    DataType,
    FieldDefinition,
)
from core.ingestion.mapper import MappingResult
from core.ingestion.schema import CanonicalRecord, RawRecord, RecordTransformError
from core.ingestion.similarity import best_match


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_PHOTOS: Final[int] = 50
DEFAULT_ADDRESS_THRESHOLD: Final[float] = 0.7

# Phrases an address-like column is scored against
ADDRESS_SYNONYMS: Final[tuple[str, ...]] = (
    "address",
    "street address",
    "property address",
    "full address",
    "street",
    "location",
)

# Hosts never accepted as listing photos (subdomains included)
PLACEHOLDER_PHOTO_HOSTS: Final[frozenset[str]] = frozenset(
    {
        "example.com",
        "example.org",
        "example.net",
        "localhost",
        "127.0.0.1",
        "placeholder.com",
        "placehold.co",
        "placehold.it",
        "dummyimage.com",
    }
)

DATE_FORMATS: Final[tuple[str, ...]] = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%m-%d-%Y",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)

TRUE_VALUES: Final[frozenset[str]] = frozenset({"yes", "y", "true", "t", "1"})
FALSE_VALUES: Final[frozenset[str]] = frozenset({"no", "n", "false", "f", "0"})

_NUMBER_NOISE: Final = re.compile(r"[\s$,]")
_LIST_SEPARATORS: Final = re.compile(r"[,;|\n]+")

Number = Union[int, float]


# =============================================================================
# Value Parsing
# =============================================================================


def parse_number(value: str) -> Optional[Number]:
    """
    Parse a spreadsheet number ("$450,000", "2.5", " 1200 ").

    Returns:
        int when the value is integral, float otherwise, None when the
        text is not a finite number
    """
    text = _NUMBER_NOISE.sub("", value or "")
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def parse_date(value: str) -> Optional[date]:
    """Parse a date in any of DATE_FORMATS. Returns None when none match."""
    text = (value or "").strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_boolean(value: str) -> Optional[bool]:
    text = (value or "").strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def split_list(value: str) -> list[str]:
    """Split a delimited cell (comma, semicolon, pipe or newline) into items."""
    return [item.strip() for item in _LIST_SEPARATORS.split(value or "") if item.strip()]


def _is_placeholder_host(host: str) -> bool:
    return any(host == blocked or host.endswith("." + blocked) for blocked in PLACEHOLDER_PHOTO_HOSTS)


def sanitize_photos(urls: Iterable[str], max_photos: int = DEFAULT_MAX_PHOTOS) -> list[str]:
    """
    Keep only usable listing photo URLs.

    Accepts well-formed http(s) URLs whose host is not a known placeholder,
    drops duplicates (first occurrence kept) and caps the list length.
    """
    photos: list[str] = []
    seen: set[str] = set()
    for url in urls:
        candidate = (url or "").strip()
        if not candidate or candidate in seen:
            continue
        parsed = urlparse(candidate)
        host = (parsed.hostname or "").lower()
        if parsed.scheme not in ("http", "https") or not host:
            continue
        if _is_placeholder_host(host):
            continue
        seen.add(candidate)
        photos.append(candidate)
        if len(photos) >= max_photos:
            break
    return photos


def coerce_value(
    definition: FieldDefinition,
    value: str,
    max_photos: int = DEFAULT_MAX_PHOTOS,
) -> Any:
    """
    Coerce one raw cell to the field's declared type.

    Numbers that fail to parse become 0 for required fields and are
    skipped (None) for optional ones. Dates become ISO strings; dates and
    booleans that fail to parse keep their trimmed text so the validator
    can report them.

    Raises:
        RecordTransformError: If the value is not text
    """
    if not isinstance(value, str):
        raise RecordTransformError(
            f"{definition.canonical_name}: expected text, got {type(value).__name__}"
        )
    text = value.strip()

    if definition.data_type == DataType.NUMBER:
        number = parse_number(text)
        if number is None:
            return 0 if definition.required else None
        return number

    if definition.data_type == DataType.DATE:
        parsed = parse_date(text)
        return parsed.isoformat() if parsed else text

    if definition.data_type == DataType.BOOLEAN:
        flag = parse_boolean(text)
        return text if flag is None else flag

    if definition.data_type == DataType.ARRAY:
        items = split_list(text)
        if definition.canonical_name == PHOTO_FIELD:
            return sanitize_photos(items, max_photos)
        return items

    return text


# =============================================================================
# Address Fallback
# =============================================================================


def find_address_column(
    raw: RawRecord,
    excluded_headers: Iterable[str] = (),
    threshold: float = DEFAULT_ADDRESS_THRESHOLD,
) -> Optional[str]:
    """
    Pick the raw column most likely to hold a one-line street address.

    Only non-empty columns are considered. The best score must be strictly
    above threshold; ties keep the earlier column.
    """
    excluded = set(excluded_headers)
    best_header: Optional[str] = None
    best_score = threshold
    for header, value in raw.values.items():
        if not value or header in excluded or "email" in header.lower():
            continue
        _, score = best_match(header, list(ADDRESS_SYNONYMS))
        if score > best_score:
            best_header, best_score = header, score
    return best_header


def _fill_street_components(
    fields: dict[str, Any],
    raw: RawRecord,
    excluded_headers: Iterable[str],
    threshold: float,
) -> None:
    if all(fields.get(name) for name in STREET_COMPONENT_FIELDS):
        return

    header = find_address_column(raw, excluded_headers, threshold)
    if header is None:
        return

    parsed = parse_street_address(raw.get(header))
    components = {
        "StreetNumber": parsed.street_number,
        "StreetName": parsed.street_name,
        "StreetSuffix": parsed.street_suffix,
    }
    for name, component in components.items():
        if component and not fields.get(name):
            fields[name] = component
    logger.debug(
        "%s row %d: street components filled from column %r",
        raw.source_file,
        raw.row_index,
        header,
    )


def _derive_bathrooms_total(fields: dict[str, Any]) -> None:
    if "BathroomsTotal" in fields:
        return
    full = fields.get("BathroomsFull")
    half = fields.get("BathroomsHalf")
    if full is None and half is None:
        return
    total = (full or 0) + 0.5 * (half or 0)
    fields["BathroomsTotal"] = int(total) if float(total).is_integer() else total


# =============================================================================
# Transform
# =============================================================================


def transform_record(
    raw: RawRecord,
    mapping: MappingResult,
    address_threshold: float = DEFAULT_ADDRESS_THRESHOLD,
    max_photos: int = DEFAULT_MAX_PHOTOS,
) -> CanonicalRecord:
    """
    Build a canonical record from one raw row.

    Args:
        raw: Source row
        mapping: Batch mapping shared by every file in the batch
        address_threshold: Minimum score for the address-column fallback
        max_photos: Photo list cap

    Returns:
        CanonicalRecord without validation attached

    Raises:
        RecordTransformError: If a cell cannot be coerced
    """
    if not isinstance(raw, RawRecord):
        raise RecordTransformError(f"Expected RawRecord, got {type(raw).__name__}")

    fields: dict[str, Any] = {}
    mapped_headers: set[str] = set()
    street_headers: set[str] = set()

    for field_mapping in mapping.mappings:
        mapped_headers.add(field_mapping.input_header)
        if field_mapping.canonical_name in STREET_COMPONENT_FIELDS:
            street_headers.add(field_mapping.input_header)

        value = raw.get(field_mapping.input_header)
        if not value:
            continue
        coerced = coerce_value(field_mapping.field, value, max_photos)
        if coerced is None:
            continue
        fields[field_mapping.canonical_name] = coerced

    extras = {
        header: value for header, value in raw.values.items() if header not in mapped_headers
    }

    _fill_street_components(fields, raw, street_headers, address_threshold)
    _derive_bathrooms_total(fields)

    return CanonicalRecord(
        fields=fields,
        source_file=raw.source_file,
        row_index=raw.row_index,
        raw=dict(raw.values),
        extras=extras,
    )
