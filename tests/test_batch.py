"""
Tests for the batch ingest orchestrator.

Covers:
- Upload gate (type, size, duplicate names, file count)
- Parse and map across files, including unreadable files
- Mapping review and reviewer corrections
- Row failures, deduplication, store failures
- Cancellation and stage errors
"""

import pytest

import core.ingestion.batch as batch_module
from core.ingestion import events
from core.ingestion.batch import BatchIngestOrchestrator, BatchStage
from core.ingestion.events import CollectingEventSink, EventSink
from core.ingestion.schema import (
    BatchCancelledError,
    BatchStateError,
    DuplicateReason,
    RecordTransformError,
)
from core.persistence import (
    FAILED,
    InMemoryPersistenceClient,
    PersistenceClient,
    StoreFailure,
)
from utils.config import Config


# =============================================================================
# Fixtures
# =============================================================================


HEADERS = [
    "MLS #", "List Price", "Property Type", "Year Built", "Square Feet", "Lot Size",
    "Bedrooms", "Full Baths", "Address", "City", "State", "Zip Code", "County",
    "Agent Name", "Agent License", "Agent Phone", "Brokerage",
]


def _row(mls, street="123 Main St", city="Austin", county="Travis"):
    return [
        mls, "450000", "Residential", "1998", "2100", "6000", "3", "2", street, city,
        "TX", "78701", county, "Dana Reyes", "TX-55501", "512-555-0100", "Hill Country Realty",
    ]


def _csv(rows, headers=HEADERS):
    lines = [",".join(headers)] + [",".join(row) for row in rows]
    return ("\n".join(lines) + "\n").encode("utf-8")


@pytest.fixture
def config():
    return Config(parse_workers=2)


@pytest.fixture
def store():
    return InMemoryPersistenceClient()


@pytest.fixture
def sink():
    return CollectingEventSink()


@pytest.fixture
def known():
    return set()


@pytest.fixture
def orchestrator(config, store, sink, known):
    return BatchIngestOrchestrator(
        config=config,
        persistence=store,
        event_sink=sink,
        known_identities=known,
        batch_id="batch-1",
    )


class RejectingStore(PersistenceClient):
    def store(self, record):
        return StoreFailure(error=FAILED, record=record, detail="HTTP 500")

    def known_listings(self):
        return []


class CancelOnFirstProgress(EventSink):
    def __init__(self):
        self.orchestrator = None
        self.names = []

    def emit(self, event):
        self.names.append(event.name)
        if event.name == events.PROGRESS and self.orchestrator is not None:
            self.orchestrator.cancel()


# =============================================================================
# Upload
# =============================================================================


class TestUpload:
    def test_accepts_supported_files(self, orchestrator, sink):
        accepted = orchestrator.add_files([("a.csv", _csv([_row("TX-100")])), ("b.xlsx", b"x")])

        assert accepted == 2
        assert orchestrator.file_names == ["a.csv", "b.xlsx"]
        assert sink.of(events.FILES_ADDED)[0].payload["count"] == 2

    def test_rejects_unsupported_type(self, orchestrator, sink):
        assert orchestrator.add_file("notes.txt", b"City\nAustin\n") is False

        assert [e.code for e in orchestrator.errors] == ["UNSUPPORTED_TYPE"]
        assert sink.names() == [events.FILE_REJECTED]

    def test_rejects_duplicate_name(self, orchestrator):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))

        assert orchestrator.add_file("a.csv", _csv([_row("TX-101")])) is False
        assert orchestrator.errors[0].code == "DUPLICATE_FILE"
        assert orchestrator.file_names == ["a.csv"]

    def test_rejects_oversized_file(self, store, sink):
        orchestrator = BatchIngestOrchestrator(
            config=Config(max_file_size_bytes=10), persistence=store, event_sink=sink
        )

        assert orchestrator.add_file("a.csv", _csv([_row("TX-100")])) is False
        assert orchestrator.errors[0].code == "FILE_TOO_LARGE"

    def test_rejects_files_over_batch_limit(self, store, sink):
        orchestrator = BatchIngestOrchestrator(
            config=Config(max_files_per_batch=1), persistence=store, event_sink=sink
        )

        accepted = orchestrator.add_files([("a.csv", b"x"), ("b.csv", b"y")])

        assert accepted == 1
        assert orchestrator.errors[0].code == "TOO_MANY_FILES"

    def test_upload_closed_after_parse(self, orchestrator):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))
        orchestrator.parse()

        with pytest.raises(BatchStateError):
            orchestrator.add_file("b.csv", _csv([_row("TX-101")]))


# =============================================================================
# Parse
# =============================================================================


class TestParse:
    def test_clean_mapping_goes_to_processing(self, orchestrator, sink):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))

        mapping = orchestrator.parse()

        assert orchestrator.stage == BatchStage.PROCESSING
        assert not orchestrator.needs_review
        assert len(mapping.mappings) == len(HEADERS)
        assert sink.names() == [events.PARSED, events.MAPPING_COMPUTED]

    def test_no_files(self, orchestrator):
        with pytest.raises(BatchStateError):
            orchestrator.parse()

    def test_unreadable_file_isolated(self, orchestrator, sink):
        orchestrator.add_files(
            [
                ("a.csv", _csv([_row("TX-100"), _row("TX-101", street="9 Elm Rd")])),
                ("b.xlsx", b"not a spreadsheet"),
                ("c.csv", _csv([_row("TX-200", street="5 Oak Ave")])),
            ]
        )

        orchestrator.parse()

        assert [(e.file_name, e.code) for e in orchestrator.errors] == [("b.xlsx", "UNREADABLE")]
        payload = sink.of(events.PARSED)[0].payload
        assert (payload["files"], payload["parsed"], payload["failed"]) == (3, 2, 1)
        assert payload["records"] == 3

    def test_headers_unioned_across_files(self, orchestrator):
        orchestrator.add_files(
            [
                ("a.csv", _csv([["TX-100", "Austin"]], headers=["MLS #", "City"])),
                ("b.csv", _csv([["Austin", "TX"]], headers=["City", "State"])),
            ]
        )

        mapping = orchestrator.parse()

        assert [m.input_header for m in mapping.mappings] == ["MLS #", "City", "State"]

    def test_missing_required_needs_review(self, orchestrator, sink):
        headers = [h if h != "County" else "Zone" for h in HEADERS]
        orchestrator.add_file("a.csv", _csv([_row("TX-100")], headers=headers))

        mapping = orchestrator.parse()

        assert orchestrator.stage == BatchStage.MAPPING_REVIEW
        assert orchestrator.needs_review
        assert [f.canonical_name for f in mapping.missing_required_fields] == ["County"]
        review = sink.of(events.REVIEW_REQUIRED)[0].payload
        assert review["missing_required"] == ["County"]

    def test_low_confidence_needs_review(self, orchestrator, sink):
        headers = [h if h != "City" else "Municpalt" for h in HEADERS]
        orchestrator.add_file("a.csv", _csv([_row("TX-100")], headers=headers))

        mapping = orchestrator.parse()

        assert orchestrator.stage == BatchStage.MAPPING_REVIEW
        assert mapping.missing_required_fields == ()
        review = sink.of(events.REVIEW_REQUIRED)[0].payload
        assert review["low_confidence"] == {"Municpalt": "75%"}

    def test_all_files_failed_skips_review(self, orchestrator):
        orchestrator.add_file("b.xlsx", b"not a spreadsheet")

        orchestrator.parse()
        report = orchestrator.process()

        assert orchestrator.stage == BatchStage.COMPLETE
        assert report.progress.total == 0
        assert [e.code for e in report.errors] == ["UNREADABLE"]


# =============================================================================
# Review
# =============================================================================


class TestReview:
    @pytest.fixture
    def in_review(self, orchestrator):
        headers = [h if h != "County" else "Zone" for h in HEADERS]
        orchestrator.add_file("a.csv", _csv([_row("TX-100")], headers=headers))
        orchestrator.parse()
        return orchestrator

    def test_process_blocked_until_corrected(self, in_review):
        with pytest.raises(BatchStateError):
            in_review.process()

    def test_correction_applied(self, in_review, store, sink):
        mapping = in_review.apply_mapping({"Zone": "County"})

        assert in_review.stage == BatchStage.PROCESSING
        assert mapping.missing_required_fields == ()
        assert sink.of(events.MAPPING_CORRECTED)[0].payload["overrides"] == {"Zone": "County"}

        report = in_review.process()

        assert report.accepted[0].get("County") == "Travis"
        assert report.accepted[0].validation.valid
        assert len(store) == 1

    def test_mapping_before_parse_rejected(self, orchestrator):
        with pytest.raises(BatchStateError):
            orchestrator.apply_mapping({"Zone": "County"})


# =============================================================================
# Process
# =============================================================================


class TestProcess:
    def test_end_to_end(self, orchestrator, store, sink, known):
        orchestrator.add_files(
            [
                ("a.csv", _csv([_row("TX-100"), _row("TX-101", street="9 Elm Rd")])),
                ("b.xlsx", b"not a spreadsheet"),
                ("c.csv", _csv([_row("TX-200", street="5 Oak Ave")])),
            ]
        )

        report = orchestrator.run()

        assert orchestrator.stage == BatchStage.COMPLETE
        assert report.progress.to_dict() == {
            "total": 3,
            "processed": 3,
            "successful": 3,
            "failed": 0,
            "invalid": 0,
        }
        assert report.progress.percent == 100.0
        assert [r.get("MLSNumber") for r in report.accepted] == ["TX-100", "TX-101", "TX-200"]
        assert [(r.source_file, r.row_index) for r in report.accepted] == [
            ("a.csv", 1),
            ("a.csv", 2),
            ("c.csv", 1),
        ]
        assert len(report.stored) == 3
        assert len(store) == 3
        assert known == {"mls:TX100", "mls:TX101", "mls:TX200"}
        assert sink.names().count(events.PROGRESS) == 3
        assert sink.names()[-1] == events.COMPLETED
        assert report.summary() == "3 rows: 3 successful, 0 failed, 0 duplicates, 3 stored"

    def test_street_components_derived(self, orchestrator):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))

        record = orchestrator.run().accepted[0]

        assert record.get("StreetNumber") == "123"
        assert record.get("StreetName") == "Main"
        assert record.get("StreetSuffix") == "ST"

    def test_field_value_file_joins_batch(self, orchestrator):
        single = "Field,Value\n" + "\n".join(
            f"{h},{v}" for h, v in zip(HEADERS, _row("TX-300", street="7 Pine Ln"))
        )
        orchestrator.add_files(
            [("a.csv", _csv([_row("TX-100")])), ("single.csv", single.encode("utf-8"))]
        )

        report = orchestrator.run()

        assert [r.get("MLSNumber") for r in report.accepted] == ["TX-100", "TX-300"]

    def test_invalid_records_counted(self, orchestrator):
        orchestrator.add_file("a.csv", _csv([_row("TX-100", city="")]))

        report = orchestrator.run()

        assert report.progress.invalid == 1
        assert report.progress.successful == 1
        assert not report.accepted[0].is_publishable

    def test_row_failure_isolated(self, orchestrator, sink, monkeypatch):
        original = batch_module.transform_record

        def flaky_transform(raw, mapping, **kwargs):
            if raw.row_index == 2:
                raise RecordTransformError("bad cell")
            return original(raw, mapping, **kwargs)

        monkeypatch.setattr(batch_module, "transform_record", flaky_transform)
        orchestrator.add_file(
            "a.csv",
            _csv(
                [
                    _row("TX-100"),
                    _row("TX-101", street="9 Elm Rd"),
                    _row("TX-102", street="1 Bay St"),
                ]
            ),
        )

        report = orchestrator.run()

        assert report.progress.failed == 1
        assert report.progress.successful == 2
        assert report.progress.processed == 3
        error = report.errors[0]
        assert (error.code, error.file_name, error.row_index) == ("ROW_FAILED", "a.csv", 2)
        assert "bad cell" in error.message
        assert len(sink.of(events.ROW_FAILED)) == 1

    def test_unexpected_row_error_isolated(self, orchestrator, monkeypatch):
        original = batch_module.validate_record

        def broken_validate(raw, mappings, **kwargs):
            if raw.row_index == 1:
                raise KeyError("Photos")
            return original(raw, mappings, **kwargs)

        monkeypatch.setattr(batch_module, "validate_record", broken_validate)
        orchestrator.add_file(
            "a.csv", _csv([_row("TX-100"), _row("TX-101", street="9 Elm Rd")])
        )

        report = orchestrator.run()

        assert orchestrator.stage == BatchStage.COMPLETE
        assert report.progress.failed == 1
        assert report.progress.successful == 1
        assert [r.get("MLSNumber") for r in report.accepted] == ["TX-101"]
        error = report.errors[0]
        assert (error.code, error.file_name, error.row_index) == ("ROW_FAILED", "a.csv", 1)
        assert "unexpected error" in error.message

    def test_csv_row_with_extra_cell_counted_as_failure(self, orchestrator, sink):
        orchestrator.add_file(
            "a.csv",
            _csv(
                [
                    _row("TX-100"),
                    _row("TX-101", street="9 Elm Rd") + [""],
                    _row("TX-102", street="1 Bay St"),
                ]
            ),
        )

        report = orchestrator.run()

        assert report.progress.to_dict() == {
            "total": 3,
            "processed": 3,
            "successful": 2,
            "failed": 1,
            "invalid": 0,
        }
        assert [(r.get("MLSNumber"), r.row_index) for r in report.accepted] == [
            ("TX-100", 1),
            ("TX-102", 3),
        ]
        error = report.errors[0]
        assert (error.code, error.file_name, error.row_index) == ("ROW_FAILED", "a.csv", 2)
        assert "18 cells" in error.message
        assert len(sink.of(events.ROW_FAILED)) == 1
        assert sink.of(events.PARSED)[0].payload["malformed_rows"] == 1

    def test_batch_duplicates_across_files(self, orchestrator, store):
        orchestrator.add_files(
            [("a.csv", _csv([_row("TX-100")])), ("b.csv", _csv([_row("tx 100")]))]
        )

        report = orchestrator.run()

        assert len(report.accepted) == 1
        assert report.accepted[0].source_file == "a.csv"
        assert report.duplicates[0].reason == DuplicateReason.BATCH_DUPLICATE
        assert report.duplicates[0].source_file == "b.csv"
        assert len(store) == 1

    def test_identities_shared_between_batches(self, orchestrator, config, store, known):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))
        orchestrator.run()

        second = BatchIngestOrchestrator(
            config=config,
            persistence=store,
            event_sink=CollectingEventSink(),
            known_identities=known,
        )
        second.add_file("a.csv", _csv([_row("TX-100")]))
        report = second.run()

        assert report.accepted == []
        assert report.duplicates[0].reason == DuplicateReason.EXISTING
        assert len(store) == 1

    def test_known_listings_from_store(self, config, store):
        orchestrator = BatchIngestOrchestrator(
            config=config,
            persistence=store,
            event_sink=CollectingEventSink(),
            known_listings=[{"mls_number": "TX-100"}],
        )
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))

        report = orchestrator.run()

        assert report.duplicates[0].reason == DuplicateReason.EXISTING

    def test_store_failures_reported(self, config, sink, known):
        orchestrator = BatchIngestOrchestrator(
            config=config,
            persistence=RejectingStore(),
            event_sink=sink,
            known_identities=known,
        )
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))

        report = orchestrator.run()

        assert report.stored == []
        assert report.store_failures[0].error == FAILED
        assert report.errors[0].code == "STORE_FAILED"
        assert known == set()

    def test_process_twice_rejected(self, orchestrator):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))
        orchestrator.run()

        with pytest.raises(BatchStateError):
            orchestrator.process()

    def test_snapshot(self, orchestrator):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))
        orchestrator.run()

        snapshot = orchestrator.snapshot()

        assert snapshot["batchId"] == "batch-1"
        assert snapshot["stage"] == "complete"
        assert snapshot["files"] == ["a.csv"]
        assert snapshot["report"]["progress"]["successful"] == 1


# =============================================================================
# Cancel
# =============================================================================


class TestCancel:
    def test_cancel_during_processing(self, config, store, known):
        sink = CancelOnFirstProgress()
        orchestrator = BatchIngestOrchestrator(
            config=config, persistence=store, event_sink=sink, known_identities=known
        )
        sink.orchestrator = orchestrator
        orchestrator.add_file(
            "a.csv", _csv([_row("TX-100"), _row("TX-101", street="9 Elm Rd")])
        )
        orchestrator.parse()

        with pytest.raises(BatchCancelledError):
            orchestrator.process()

        assert orchestrator.stage == BatchStage.UPLOAD
        assert orchestrator.file_names == []
        assert orchestrator.report is None
        assert len(store) == 0
        assert known == set()
        assert events.CANCELLED in sink.names()
        assert events.COMPLETED not in sink.names()

    def test_cancel_while_idle(self, orchestrator, sink):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))
        orchestrator.parse()

        orchestrator.cancel()

        assert orchestrator.stage == BatchStage.UPLOAD
        assert orchestrator.file_names == []
        assert orchestrator.mapping_result is None
        assert sink.of(events.CANCELLED)[0].payload == {"during": "idle"}

    def test_batch_reusable_after_reset(self, orchestrator, store):
        orchestrator.add_file("a.csv", _csv([_row("TX-100")]))
        orchestrator.run()

        orchestrator.reset()
        orchestrator.add_file("b.csv", _csv([_row("TX-500", street="2 Bay St")]))
        report = orchestrator.run()

        assert [r.get("MLSNumber") for r in report.accepted] == ["TX-500"]
        assert len(store) == 2
