"""
Field Mapper - Fuzzy Header-to-Catalog Matching

Matches the headers observed in a batch against the canonical field
catalog. Each header is compared with every variation of every field not
yet claimed; the best (field, score) pair at or above the threshold wins.

Invariants:
    - A canonical field is assigned to at most one header per call
      (claimed fields are excluded from later headers)
    - Ties keep the field encountered first in catalog order
    - Absence of a match is a normal outcome, never an exception
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final, Iterable, Mapping, Optional, Sequence

from core.ingestion.catalog import FIELD_CATALOG, FieldDefinition, get_field
from core.ingestion.schema import InvalidMappingError
from core.ingestion.similarity import similarity


logger = logging.getLogger(__name__)


DEFAULT_MAPPING_THRESHOLD: Final[float] = 0.7

# Confidence recorded for mappings chosen by a reviewer
MANUAL_CONFIDENCE: Final[float] = 1.0


# =============================================================================
# Mapping Types
# =============================================================================


@dataclass(frozen=True)
class FieldMapping:
    """One observed header bound to one canonical field."""

    input_header: str
    field: FieldDefinition
    confidence: float
    required: bool

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1]: {self.confidence}")

    @property
    def canonical_name(self) -> str:
        return self.field.canonical_name

    def to_dict(self) -> dict:
        return {
            "inputHeader": self.input_header,
            "canonicalName": self.field.canonical_name,
            "confidence": round(self.confidence, 4),
            "required": self.required,
            "dataType": self.field.data_type.value,
        }


@dataclass(frozen=True)
class MappingResult:
    """
    Outcome of mapping one batch's headers.

    Derived per batch and never persisted. headers keeps every input
    header in first-seen order, mapped or not.
    """

    mappings: tuple[FieldMapping, ...] = ()
    unmapped_headers: tuple[str, ...] = ()
    missing_required_fields: tuple[FieldDefinition, ...] = ()
    headers: tuple[str, ...] = ()

    @property
    def mapped_fields(self) -> set[str]:
        return {m.canonical_name for m in self.mappings}

    @property
    def has_missing_required(self) -> bool:
        return len(self.missing_required_fields) > 0

    def mapping_for(self, canonical_name: str) -> Optional[FieldMapping]:
        """Return the mapping bound to a canonical field, if any."""
        for mapping in self.mappings:
            if mapping.canonical_name == canonical_name:
                return mapping
        return None

    def low_confidence(self, threshold: float) -> list[FieldMapping]:
        """Mappings whose confidence falls below the given threshold."""
        return [m for m in self.mappings if m.confidence < threshold]

    def to_dict(self) -> dict:
        return {
            "mappings": [m.to_dict() for m in self.mappings],
            "unmappedHeaders": list(self.unmapped_headers),
            "missingRequiredFields": [f.canonical_name for f in self.missing_required_fields],
            "headers": list(self.headers),
        }


# =============================================================================
# Matching
# =============================================================================


def _missing_required(
    mapped: set[str],
    catalog: Sequence[FieldDefinition],
) -> tuple[FieldDefinition, ...]:
    """Required fields not covered by a mapping, directly or by derivation."""
    return tuple(
        f
        for f in catalog
        if f.required
        and f.canonical_name not in mapped
        and not (f.derived_from and f.derived_from in mapped)
    )


def map_headers(
    headers: Iterable[str],
    threshold: float = DEFAULT_MAPPING_THRESHOLD,
    catalog: Sequence[FieldDefinition] = FIELD_CATALOG,
) -> MappingResult:
    """
    Map observed headers onto canonical fields.

    Args:
        headers: Observed header strings, in first-seen order
        threshold: Minimum similarity for a header to map
        catalog: Field definitions to match against (catalog order is the
            tie-break order)

    Returns:
        MappingResult with mappings, unmapped headers and required fields
        left uncovered. Required street components count as covered when
        the one-line street address they derive from is mapped.
    """
    seen_headers: list[str] = []
    mappings: list[FieldMapping] = []
    unmapped: list[str] = []
    used_fields: set[str] = set()

    for header in headers:
        seen_headers.append(header)
        best_field: Optional[FieldDefinition] = None
        best_score = 0.0

        for definition in catalog:
            if definition.canonical_name in used_fields:
                continue
            for variation in definition.variations:
                score = similarity(header, variation)
                if score >= threshold and (best_field is None or score > best_score):
                    best_field, best_score = definition, score

        if best_field is None:
            unmapped.append(header)
            logger.debug("Header %r unmapped (threshold %.2f)", header, threshold)
            continue

        used_fields.add(best_field.canonical_name)
        mappings.append(
            FieldMapping(
                input_header=header,
                field=best_field,
                confidence=best_score,
                required=best_field.required,
            )
        )
        logger.debug(
            "Header %r -> %s (confidence %.2f)",
            header,
            best_field.canonical_name,
            best_score,
        )

    result = MappingResult(
        mappings=tuple(mappings),
        unmapped_headers=tuple(unmapped),
        missing_required_fields=_missing_required(used_fields, catalog),
        headers=tuple(seen_headers),
    )
    logger.info(
        "Mapped %d headers: %d mapped, %d unmapped, %d required missing",
        len(mappings) + len(unmapped),
        len(result.mappings),
        len(result.unmapped_headers),
        len(result.missing_required_fields),
    )
    return result


def apply_overrides(
    result: MappingResult,
    overrides: Mapping[str, Optional[str]],
    catalog: Sequence[FieldDefinition] = FIELD_CATALOG,
) -> MappingResult:
    """
    Apply a reviewer's corrections to a mapping result.

    Args:
        result: Mapping produced by map_headers
        overrides: input header -> canonical field name, or None to unmap.
            Headers not named keep their automatic mapping.

    Returns:
        New MappingResult. Reviewer-chosen mappings carry confidence 1.0.

    Raises:
        InvalidMappingError: If a canonical name is unknown, a header is not
            part of the batch, or two headers end up on the same field
    """
    known_headers = list(result.headers) or (
        [m.input_header for m in result.mappings] + list(result.unmapped_headers)
    )
    for header in overrides:
        if header not in known_headers:
            raise InvalidMappingError(f"Header not in batch: {header!r}")

    current = {m.input_header: m for m in result.mappings}
    mappings: list[FieldMapping] = []
    unmapped: list[str] = []
    claimed: dict[str, str] = {}

    for header in known_headers:
        if header in overrides:
            target = overrides[header]
            if not target:
                unmapped.append(header)
                continue
            definition = get_field(target)
            if definition is None:
                raise InvalidMappingError(f"Unknown canonical field: {target!r}")
            mapping = FieldMapping(
                input_header=header,
                field=definition,
                confidence=MANUAL_CONFIDENCE,
                required=definition.required,
            )
        elif header in current:
            mapping = current[header]
        else:
            unmapped.append(header)
            continue

        if mapping.canonical_name in claimed:
            raise InvalidMappingError(
                f"Field {mapping.canonical_name} assigned to both "
                f"{claimed[mapping.canonical_name]!r} and {header!r}"
            )
        claimed[mapping.canonical_name] = header
        mappings.append(mapping)

    return MappingResult(
        mappings=tuple(mappings),
        unmapped_headers=tuple(unmapped),
        missing_required_fields=_missing_required(set(claimed), catalog),
        headers=tuple(known_headers),
    )
