"""
Persistence Client - Listing Store Collaborator

Accepted records are handed to the listing store one by one. The store
answers with a server-assigned id and lifecycle state, or an error string
("not_found" / "failed"). Store failures never raise into the batch; they
are returned as StoreFailure values.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

import requests

from core.persistence.field_map import DRAFT_STATUS, to_persistence_payload
from utils.config import Config

if TYPE_CHECKING:
    from core.ingestion.schema import CanonicalRecord


logger = logging.getLogger(__name__)


NOT_FOUND = "not_found"
FAILED = "failed"


@dataclass(frozen=True)
class StoredListing:
    """Row acknowledged by the listing store."""

    id: str
    state: str
    record: CanonicalRecord

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "state": self.state,
            "sourceFile": self.record.source_file,
            "rowIndex": self.record.row_index,
        }


@dataclass(frozen=True)
class StoreFailure:
    """Record the listing store did not accept."""

    error: str
    record: CanonicalRecord
    detail: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "error": self.error,
            "detail": self.detail,
            "sourceFile": self.record.source_file,
            "rowIndex": self.record.row_index,
        }


StoreResult = Union[StoredListing, StoreFailure]


# =============================================================================
# Client Interface
# =============================================================================


class PersistenceClient(ABC):
    """Synchronous request/response interface to the listing store."""

    @abstractmethod
    def store(self, record: CanonicalRecord) -> StoreResult:
        """Store one accepted record."""

    @abstractmethod
    def known_listings(self) -> list[dict[str, Any]]:
        """Rows already in the store, in the store's schema."""


class InMemoryPersistenceClient(PersistenceClient):
    """
    Store backed by a dict.

    Used when no store URL is configured and in tests.
    """

    def __init__(self):
        self._rows: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def store(self, record: CanonicalRecord) -> StoreResult:
        payload = to_persistence_payload(record)
        listing_id = str(uuid.uuid4())
        row = dict(payload, id=listing_id, state=DRAFT_STATUS)
        with self._lock:
            self._rows[listing_id] = row
        return StoredListing(id=listing_id, state=DRAFT_STATUS, record=record)

    def known_listings(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(row) for row in self._rows.values()]

    def get(self, listing_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            row = self._rows.get(listing_id)
            return dict(row) if row else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)


class HttpPersistenceClient(PersistenceClient):
    """
    Listing store reached over HTTP.

    POST {base_url}/properties stores a listing; GET {base_url}/properties
    lists existing rows.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})
        if api_key:
            self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    def store(self, record: CanonicalRecord) -> StoreResult:
        payload = to_persistence_payload(record)
        try:
            response = self._session.post(
                f"{self.base_url}/properties",
                json={"property": payload},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(
                "Store request failed for %s row %d: %s",
                record.source_file,
                record.row_index,
                e,
            )
            return StoreFailure(error=FAILED, record=record, detail=str(e))

        if response.status_code == 404:
            return StoreFailure(error=NOT_FOUND, record=record)
        if not response.ok:
            return StoreFailure(
                error=FAILED,
                record=record,
                detail=f"HTTP {response.status_code}",
            )

        try:
            body = response.json()
        except ValueError:
            return StoreFailure(error=FAILED, record=record, detail="Invalid JSON response")

        row = body.get("property", body) if isinstance(body, dict) else {}
        if not isinstance(row, dict) or not row.get("id"):
            error = body.get("error") if isinstance(body, dict) else None
            return StoreFailure(error=error or FAILED, record=record, detail="No id returned")

        return StoredListing(
            id=str(row["id"]),
            state=str(row.get("state") or row.get("status") or DRAFT_STATUS),
            record=record,
        )

    def known_listings(self) -> list[dict[str, Any]]:
        """
        Fetch existing rows.

        Raises:
            requests.RequestException: On network errors or non-2xx status
        """
        response = self._session.get(f"{self.base_url}/properties", timeout=self.timeout)
        response.raise_for_status()
        body = response.json()
        rows = body.get("properties", []) if isinstance(body, dict) else body
        return [row for row in rows if isinstance(row, dict)]


# =============================================================================
# Factory
# =============================================================================

_client_instance: Optional[PersistenceClient] = None


def create_persistence_client(config: Config) -> PersistenceClient:
    """HTTP client when a store URL is configured, in-memory otherwise."""
    if config.persistence_api_url:
        return HttpPersistenceClient(
            base_url=config.persistence_api_url,
            api_key=config.persistence_api_key,
            timeout=config.request_timeout,
        )
    return InMemoryPersistenceClient()


def get_persistence_client(config: Optional[Config] = None) -> PersistenceClient:
    """
    Get the process-wide persistence client.

    Args:
        config: Configuration (only used on first call)
    """
    global _client_instance
    if _client_instance is None:
        _client_instance = create_persistence_client(config or Config.load())
    return _client_instance
