"""
Ingest Events - Structured Batch Observability

The orchestrator reports what happened (files added, mapping computed,
rows failed, duplicates filtered, batch completed) as named events with a
payload. Sinks decide where events go.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Final, Optional


logger = logging.getLogger(__name__)


# Event names
FILES_ADDED: Final[str] = "batch.files_added"
FILE_REJECTED: Final[str] = "batch.file_rejected"
PARSED: Final[str] = "batch.parsed"
MAPPING_COMPUTED: Final[str] = "batch.mapping_computed"
REVIEW_REQUIRED: Final[str] = "batch.review_required"
MAPPING_CORRECTED: Final[str] = "batch.mapping_corrected"
ROW_FAILED: Final[str] = "batch.row_failed"
PROGRESS: Final[str] = "batch.progress"
DUPLICATES_FILTERED: Final[str] = "batch.duplicates_filtered"
PERSISTED: Final[str] = "batch.persisted"
COMPLETED: Final[str] = "batch.completed"
CANCELLED: Final[str] = "batch.cancelled"


@dataclass(frozen=True)
class IngestEvent:
    name: str
    batch_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    emitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "batchId": self.batch_id,
            "payload": dict(self.payload),
            "emittedAt": self.emitted_at.isoformat(),
        }


class EventSink(ABC):
    """Destination for ingest events."""

    @abstractmethod
    def emit(self, event: IngestEvent) -> None:
        """Deliver one event. Must not raise for ordinary payloads."""


class LoggingEventSink(EventSink):
    """Writes events through the standard logging module."""

    def __init__(self, level: int = logging.INFO, target: Optional[logging.Logger] = None):
        self.level = level
        self.target = target or logger

    def emit(self, event: IngestEvent) -> None:
        self.target.log(
            self.level,
            "%s [%s] %s",
            event.name,
            event.batch_id,
            event.payload,
            extra={"event_name": event.name, "batch_id": event.batch_id},
        )


class CollectingEventSink(EventSink):
    """Keeps events in memory, for polling and tests."""

    def __init__(self):
        self._events: list[IngestEvent] = []
        self._lock = threading.Lock()

    def emit(self, event: IngestEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[IngestEvent]:
        with self._lock:
            return list(self._events)

    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def of(self, name: str) -> list[IngestEvent]:
        return [e for e in self.events if e.name == name]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class NullEventSink(EventSink):
    def emit(self, event: IngestEvent) -> None:
        return None
