"""
Batch Ingest Orchestrator - Multi-File Upload to Stored Listings

State machine over one batch:

    UPLOAD -> PARSE -> (MAPPING_REVIEW) -> PROCESSING -> COMPLETE
       ^__________________ cancel() / reset() __________________|

- Files are parsed in parallel; results are kept in upload order.
- Headers from every parsed file are unioned (first-seen order) and mapped
  once. The mapping is shared by every file in the batch.
- Missing required fields or any confidence below the review threshold
  stops at MAPPING_REVIEW until a corrected mapping is applied.
- Rows are transformed and validated file by file, row by row, on one
  thread. A failing row is counted and reported, never fatal.
- Accepted records are deduplicated, handed to the listing store, and
  their identities registered with the caller only on COMPLETE.

Known identities are read when processing starts. Callers sharing one
identity set between concurrent batches must serialise those batches
themselves.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping, MutableSet, Optional

from core.ingestion import events
from core.ingestion.events import EventSink, IngestEvent, LoggingEventSink
from core.ingestion.identity import KnownListing, deduplicate
from core.ingestion.mapper import MappingResult, apply_overrides, map_headers
from core.ingestion.parsers import is_supported, parse_file
from core.ingestion.schema import (
    BatchCancelledError,
    BatchError,
    BatchStateError,
    CanonicalRecord,
    DuplicateNotice,
    DuplicateReason,
    FileParseError,
    ParsedFile,
    RecordTransformError,
)
from core.ingestion.transform import transform_record
from core.ingestion.validation import validate_record
from core.persistence import (
    PersistenceClient,
    StoredListing,
    StoreFailure,
    get_persistence_client,
)
from utils.config import Config
from utils.formatting import format_confidence, format_count


logger = logging.getLogger(__name__)


# =============================================================================
# Batch Types
# =============================================================================


class BatchStage(Enum):
    UPLOAD = "upload"
    PARSE = "parse"
    MAPPING_REVIEW = "mapping_review"
    PROCESSING = "processing"
    COMPLETE = "complete"


@dataclass
class BatchProgress:
    """
    Row counters, updated after every row.

    successful counts rows transformed into records (including records with
    validation errors); invalid counts the subset that is not publishable.
    """

    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    invalid: int = 0

    @property
    def percent(self) -> float:
        if self.total == 0:
            return 100.0
        return 100.0 * self.processed / self.total

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "invalid": self.invalid,
        }


@dataclass(frozen=True)
class UploadedFile:
    name: str
    content: bytes


@dataclass
class BatchReport:
    """Final outcome of a completed batch."""

    batch_id: str
    progress: BatchProgress
    accepted: list[CanonicalRecord] = field(default_factory=list)
    duplicates: list[DuplicateNotice] = field(default_factory=list)
    errors: list[BatchError] = field(default_factory=list)
    stored: list[StoredListing] = field(default_factory=list)
    store_failures: list[StoreFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def summary(self) -> str:
        return (
            f"{format_count(self.progress.total, 'row')}: "
            f"{self.progress.successful} successful, {self.progress.failed} failed, "
            f"{format_count(len(self.duplicates), 'duplicate')}, "
            f"{len(self.stored)} stored"
        )

    def to_dict(self) -> dict:
        return {
            "batchId": self.batch_id,
            "progress": self.progress.to_dict(),
            "accepted": [r.to_dict() for r in self.accepted],
            "duplicates": [d.to_dict() for d in self.duplicates],
            "errors": [e.to_dict() for e in self.errors],
            "stored": [s.to_dict() for s in self.stored],
            "storeFailures": [f.to_dict() for f in self.store_failures],
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "summary": self.summary(),
        }


# =============================================================================
# Orchestrator
# =============================================================================


class BatchIngestOrchestrator:
    """
    Drives one batch from upload to stored listings.

    Args:
        config: Thresholds and limits (defaults from the environment)
        persistence: Listing store (defaults to the process-wide client)
        event_sink: Destination for batch events (defaults to logging)
        known_identities: Caller-owned identity set; read when processing
            starts, updated only when the batch completes
        known_listings: Existing listings to deduplicate against
            (identity strings, canonical maps or stored rows)
        batch_id: Identifier used in events and reports
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        persistence: Optional[PersistenceClient] = None,
        event_sink: Optional[EventSink] = None,
        known_identities: Optional[MutableSet[str]] = None,
        known_listings: Iterable[KnownListing] = (),
        batch_id: Optional[str] = None,
    ):
        self.config = config or Config.load()
        self.persistence = persistence or get_persistence_client(self.config)
        self.event_sink = event_sink or LoggingEventSink()
        self.batch_id = batch_id or str(uuid.uuid4())
        self._known_identities = known_identities
        self._known_listings = list(known_listings)

        self._lock = threading.RLock()
        self._cancel_requested = threading.Event()
        self._running = False
        self._reset_state()

    def _reset_state(self) -> None:
        self._stage = BatchStage.UPLOAD
        self._files: list[UploadedFile] = []
        self._parsed: list[ParsedFile] = []
        self._errors: list[BatchError] = []
        self._mapping: Optional[MappingResult] = None
        self._progress = BatchProgress()
        self._report: Optional[BatchReport] = None
        self._cancel_requested.clear()

    def _emit(self, name: str, **payload: Any) -> None:
        self.event_sink.emit(IngestEvent(name=name, batch_id=self.batch_id, payload=payload))

    def _require_stage(self, *stages: BatchStage) -> None:
        if self._stage not in stages:
            expected = ", ".join(s.value for s in stages)
            raise BatchStateError(
                f"Batch {self.batch_id} is in stage {self._stage.value} (expected {expected})"
            )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def stage(self) -> BatchStage:
        return self._stage

    @property
    def progress(self) -> BatchProgress:
        with self._lock:
            return replace(self._progress)

    @property
    def errors(self) -> list[BatchError]:
        with self._lock:
            return list(self._errors)

    @property
    def mapping_result(self) -> Optional[MappingResult]:
        return self._mapping

    @property
    def report(self) -> Optional[BatchReport]:
        return self._report

    @property
    def file_names(self) -> list[str]:
        return [f.name for f in self._files]

    @property
    def needs_review(self) -> bool:
        """Missing required fields, or any mapping below the review threshold."""
        if self._mapping is None:
            return False
        return self._mapping.has_missing_required or bool(
            self._mapping.low_confidence(self.config.review_threshold)
        )

    def snapshot(self) -> dict:
        """Current batch state for the UI."""
        with self._lock:
            return {
                "batchId": self.batch_id,
                "stage": self._stage.value,
                "files": self.file_names,
                "progress": self._progress.to_dict(),
                "errors": [e.to_dict() for e in self._errors],
                "mapping": self._mapping.to_dict() if self._mapping else None,
                "needsReview": self.needs_review,
                "report": self._report.to_dict() if self._report else None,
            }

    # =========================================================================
    # Upload
    # =========================================================================

    def _reject_file(self, name: str, code: str, message: Optional[str] = None) -> bool:
        error = BatchError.from_parse_error(FileParseError(name, code, message))
        self._errors.append(error)
        logger.warning("Rejected upload %s: %s", name, error.message)
        self._emit(events.FILE_REJECTED, file_name=name, code=code, message=error.message)
        return False

    def add_file(self, name: str, content: bytes) -> bool:
        """
        Add one file to the batch.

        Returns:
            True if the file was accepted. Rejected files are recorded as
            batch errors.

        Raises:
            BatchStateError: If the batch is past the upload stage
        """
        with self._lock:
            self._require_stage(BatchStage.UPLOAD)

            if name in self.file_names:
                return self._reject_file(name, "DUPLICATE_FILE")
            if len(self._files) >= self.config.max_files_per_batch:
                return self._reject_file(
                    name,
                    "TOO_MANY_FILES",
                    f"Batch already holds {self.config.max_files_per_batch} files",
                )
            if not is_supported(name):
                return self._reject_file(name, "UNSUPPORTED_TYPE")
            if len(content) > self.config.max_file_size_bytes:
                return self._reject_file(
                    name,
                    "FILE_TOO_LARGE",
                    f"File is {len(content)} bytes "
                    f"(maximum {self.config.max_file_size_bytes})",
                )

            self._files.append(UploadedFile(name=name, content=content))
            return True

    def add_files(self, files: Iterable[tuple[str, bytes]]) -> int:
        """Add several files. Returns the number accepted."""
        accepted = [name for name, content in files if self.add_file(name, content)]
        if accepted:
            self._emit(events.FILES_ADDED, files=accepted, count=len(accepted))
        return len(accepted)

    # =========================================================================
    # Parse and Map
    # =========================================================================

    def _parse_all(self) -> list[ParsedFile]:
        workers = max(1, min(self.config.parse_workers, len(self._files)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(
                    parse_file,
                    f.name,
                    f.content,
                    self.config.max_file_size_bytes,
                    self.config.max_records_per_file,
                )
                for f in self._files
            ]

            parsed: list[ParsedFile] = []
            for uploaded, future in zip(self._files, futures):
                try:
                    parsed.append(future.result())
                except FileParseError as e:
                    logger.warning("Parse failed for %s: %s", uploaded.name, e.message)
                    self._errors.append(BatchError.from_parse_error(e))
        return parsed

    def parse(self) -> MappingResult:
        """
        Parse every file and map the combined headers once.

        Returns:
            MappingResult shared by every file in the batch

        Raises:
            BatchStateError: If not in UPLOAD or no files were added
        """
        with self._lock:
            self._require_stage(BatchStage.UPLOAD)
            if not self._files:
                raise BatchStateError(f"Batch {self.batch_id} has no files to parse")
            self._stage = BatchStage.PARSE

            self._parsed = self._parse_all()

            headers: list[str] = []
            seen: set[str] = set()
            for parsed in self._parsed:
                for header in parsed.headers:
                    if header not in seen:
                        seen.add(header)
                        headers.append(header)

            self._emit(
                events.PARSED,
                files=len(self._files),
                parsed=len(self._parsed),
                failed=len(self._files) - len(self._parsed),
                records=sum(p.record_count for p in self._parsed),
                malformed_rows=sum(len(p.malformed_rows) for p in self._parsed),
                headers=len(headers),
            )

            self._mapping = map_headers(headers, threshold=self.config.mapping_threshold)
            self._emit(
                events.MAPPING_COMPUTED,
                mapped=len(self._mapping.mappings),
                unmapped=len(self._mapping.unmapped_headers),
                missing_required=len(self._mapping.missing_required_fields),
            )

            if self._parsed and self.needs_review:
                self._stage = BatchStage.MAPPING_REVIEW
                low = self._mapping.low_confidence(self.config.review_threshold)
                self._emit(
                    events.REVIEW_REQUIRED,
                    missing_required=[
                        f.canonical_name for f in self._mapping.missing_required_fields
                    ],
                    low_confidence={
                        m.input_header: format_confidence(m.confidence) for m in low
                    },
                )
            else:
                self._stage = BatchStage.PROCESSING
            return self._mapping

    def apply_mapping(self, overrides: Mapping[str, Optional[str]]) -> MappingResult:
        """
        Apply a reviewer's corrected mapping and move to PROCESSING.

        Args:
            overrides: input header -> canonical field name (None unmaps)

        Raises:
            BatchStateError: If not in MAPPING_REVIEW or PROCESSING
            InvalidMappingError: If the correction is inconsistent
        """
        with self._lock:
            self._require_stage(BatchStage.MAPPING_REVIEW, BatchStage.PROCESSING)
            self._mapping = apply_overrides(self._mapping, overrides)
            self._stage = BatchStage.PROCESSING
            self._emit(
                events.MAPPING_CORRECTED,
                overrides=dict(overrides),
                missing_required=len(self._mapping.missing_required_fields),
            )
            return self._mapping

    # =========================================================================
    # Process
    # =========================================================================

    def _check_cancelled(self) -> None:
        if self._cancel_requested.is_set():
            with self._lock:
                self._reset_state()
            logger.info("Batch %s cancelled during processing", self.batch_id)
            self._emit(events.CANCELLED, during="processing")
            raise BatchCancelledError(f"Batch {self.batch_id} was cancelled")

    def _record_row_failure(self, file_name: str, row_index: int, message: str) -> None:
        error = BatchError(
            file_name=file_name,
            row_index=row_index,
            code="ROW_FAILED",
            message=message,
        )
        with self._lock:
            self._errors.append(error)
            self._progress.failed += 1
            self._progress.processed += 1
        self._emit(events.ROW_FAILED, **error.to_dict())
        self._emit(events.PROGRESS, **self.progress.to_dict())

    def _process_rows(self) -> list[CanonicalRecord]:
        mapping = self._mapping
        records: list[CanonicalRecord] = []

        for parsed in self._parsed:
            for malformed in parsed.malformed_rows:
                self._check_cancelled()
                logger.warning("Row failed: %s", malformed.message)
                self._record_row_failure(
                    malformed.source_file, malformed.row_index, malformed.message
                )

            for row in parsed.rows:
                self._check_cancelled()
                try:
                    validation = validate_record(
                        row,
                        mapping.mappings,
                        min_photos=self.config.min_photos,
                        max_photos=self.config.max_photos,
                    )
                    record = transform_record(
                        row,
                        mapping,
                        address_threshold=self.config.address_match_threshold,
                        max_photos=self.config.max_photos,
                    )
                except (RecordTransformError, ValueError, TypeError) as e:
                    message = f"{row.source_file} row {row.row_index}: {e}"
                    logger.warning("Row failed: %s", message)
                    self._record_row_failure(row.source_file, row.row_index, message)
                    continue
                except Exception as e:
                    logger.exception(
                        "Unexpected error in %s row %d", row.source_file, row.row_index
                    )
                    self._record_row_failure(
                        row.source_file,
                        row.row_index,
                        f"{row.source_file} row {row.row_index}: unexpected error: {e}",
                    )
                    continue

                record.validation = validation
                records.append(record)
                with self._lock:
                    self._progress.successful += 1
                    if not validation.valid:
                        self._progress.invalid += 1
                    self._progress.processed += 1
                self._emit(events.PROGRESS, **self.progress.to_dict())
        return records

    def process(self) -> BatchReport:
        """
        Transform, validate, deduplicate and store every row.

        Returns:
            BatchReport for the completed batch

        Raises:
            BatchStateError: If not in PROCESSING
            BatchCancelledError: If cancel() was called while processing
        """
        with self._lock:
            self._require_stage(BatchStage.PROCESSING)
            if self._running:
                raise BatchStateError(f"Batch {self.batch_id} is already processing")
            self._running = True
            self._cancel_requested.clear()
            self._progress = BatchProgress(total=sum(p.row_count for p in self._parsed))
            known_identities = set(self._known_identities or ())

        try:
            return self._run_processing(known_identities)
        finally:
            with self._lock:
                self._running = False

    def _run_processing(self, known_identities: set[str]) -> BatchReport:
        started = time.monotonic()
        records = self._process_rows()
        self._check_cancelled()

        dedup = deduplicate(
            records,
            known_listings=self._known_listings,
            known_identities=known_identities,
        )
        self._emit(
            events.DUPLICATES_FILTERED,
            accepted=len(dedup.accepted),
            existing=sum(1 for d in dedup.duplicates if d.reason == DuplicateReason.EXISTING),
            batch_duplicate=sum(
                1 for d in dedup.duplicates if d.reason == DuplicateReason.BATCH_DUPLICATE
            ),
        )

        # Storing starts only if the batch was not cancelled in the meantime
        self._check_cancelled()
        stored: list[StoredListing] = []
        failures: list[StoreFailure] = []
        for record in dedup.accepted:
            result = self.persistence.store(record)
            if isinstance(result, StoredListing):
                stored.append(result)
                continue
            failures.append(result)
            error = BatchError(
                file_name=record.source_file,
                row_index=record.row_index,
                code="STORE_FAILED",
                message=(
                    f"{record.source_file} row {record.row_index}: "
                    f"store returned {result.error}"
                ),
            )
            logger.warning("Store failed: %s", error.message)
            with self._lock:
                self._errors.append(error)
        self._emit(events.PERSISTED, stored=len(stored), failed=len(failures))

        with self._lock:
            if self._known_identities is not None:
                self._known_identities.update(
                    s.record.identity for s in stored if s.record.identity
                )

            self._report = BatchReport(
                batch_id=self.batch_id,
                progress=replace(self._progress),
                accepted=dedup.accepted,
                duplicates=dedup.duplicates,
                errors=list(self._errors),
                stored=stored,
                store_failures=failures,
                elapsed_seconds=time.monotonic() - started,
            )
            self._stage = BatchStage.COMPLETE

        logger.info("Batch %s complete: %s", self.batch_id, self._report.summary())
        self._emit(
            events.COMPLETED,
            elapsed_seconds=round(self._report.elapsed_seconds, 3),
            **self._report.progress.to_dict(),
        )
        return self._report

    def run(self) -> Optional[BatchReport]:
        """
        Parse and, when no review is needed, process.

        Returns:
            BatchReport, or None when the batch stopped at MAPPING_REVIEW
        """
        self.parse()
        if self._stage == BatchStage.PROCESSING:
            return self.process()
        return None

    # =========================================================================
    # Cancel / Reset
    # =========================================================================

    def cancel(self) -> None:
        """
        Abandon the batch and return to UPLOAD.

        Safe to call from another thread while process() runs; processing
        stops at the next row boundary. Once records are being stored the
        batch runs to COMPLETE. The caller's known identities are never
        touched.
        """
        self._cancel_requested.set()
        with self._lock:
            if self._running:
                return
            self._reset_state()
        self._emit(events.CANCELLED, during="idle")

    def reset(self) -> None:
        """Clear a batch (including a completed one) back to UPLOAD."""
        self.cancel()
