"""
Listing Ingest - Spreadsheet Ingestion Pipeline

Broker spreadsheets (CSV / Excel) with free-form headers are mapped onto
the canonical field catalog, transformed, validated, deduplicated and
handed to the listing store.

    files -> parsed rows -> combined headers -> field mapping
          -> per-row transform/validate -> dedup -> listing store
"""

from core.ingestion.schema import (
    BatchCancelledError,
    BatchError,
    BatchStateError,
    CanonicalRecord,
    DuplicateNotice,
    DuplicateReason,
    FileLayout,
    FileParseError,
    IngestError,
    InvalidMappingError,
    MalformedRow,
    PARSE_ERROR_CODES,
    ParsedFile,
    RawRecord,
    RecordTransformError,
    Severity,
    ValidationIssue,
    ValidationResult,
)
from core.ingestion.similarity import best_match, levenshtein, similarity
from core.ingestion.address import ParsedAddress, parse_street_address
from core.ingestion.catalog import (
    FIELD_CATALOG,
    REQUIRED_FIELDS,
    DataType,
    FieldCategory,
    FieldDefinition,
    fields_by_category,
    get_field,
    required_fields,
)
from core.ingestion.mapper import FieldMapping, MappingResult, apply_overrides, map_headers
from core.ingestion.validation import validate_record
from core.ingestion.transform import sanitize_photos, transform_record
from core.ingestion.identity import DedupResult, build_listing_identity, deduplicate
from core.ingestion.parsers import parse_file
from core.ingestion.events import (
    CollectingEventSink,
    EventSink,
    IngestEvent,
    LoggingEventSink,
    NullEventSink,
)
from core.ingestion.batch import (
    BatchIngestOrchestrator,
    BatchProgress,
    BatchReport,
    BatchStage,
)

__all__ = [
    # Stage types and errors
    "BatchCancelledError",
    "BatchError",
    "BatchStateError",
    "CanonicalRecord",
    "DuplicateNotice",
    "DuplicateReason",
    "FileLayout",
    "FileParseError",
    "IngestError",
    "InvalidMappingError",
    "MalformedRow",
    "PARSE_ERROR_CODES",
    "ParsedFile",
    "RawRecord",
    "RecordTransformError",
    "Severity",
    "ValidationIssue",
    "ValidationResult",
    # Matching
    "best_match",
    "levenshtein",
    "similarity",
    "ParsedAddress",
    "parse_street_address",
    "FIELD_CATALOG",
    "REQUIRED_FIELDS",
    "DataType",
    "FieldCategory",
    "FieldDefinition",
    "fields_by_category",
    "get_field",
    "required_fields",
    "FieldMapping",
    "MappingResult",
    "apply_overrides",
    "map_headers",
    # Records
    "validate_record",
    "sanitize_photos",
    "transform_record",
    "DedupResult",
    "build_listing_identity",
    "deduplicate",
    "parse_file",
    # Events
    "CollectingEventSink",
    "EventSink",
    "IngestEvent",
    "LoggingEventSink",
    "NullEventSink",
    # Orchestration
    "BatchIngestOrchestrator",
    "BatchProgress",
    "BatchReport",
    "BatchStage",
]
