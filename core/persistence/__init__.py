"""
Listing Store Collaborator

Field-name mapping to the external schema and clients that store accepted
records (HTTP or in-memory).
"""

from core.persistence.field_map import (
    PERSISTENCE_FIELD_MAP,
    build_validation_summary,
    to_persistence_payload,
)
from core.persistence.client import (
    FAILED,
    NOT_FOUND,
    HttpPersistenceClient,
    InMemoryPersistenceClient,
    PersistenceClient,
    StoredListing,
    StoreFailure,
    StoreResult,
    create_persistence_client,
    get_persistence_client,
)

__all__ = [
    "PERSISTENCE_FIELD_MAP",
    "build_validation_summary",
    "to_persistence_payload",
    "FAILED",
    "NOT_FOUND",
    "HttpPersistenceClient",
    "InMemoryPersistenceClient",
    "PersistenceClient",
    "StoredListing",
    "StoreFailure",
    "StoreResult",
    "create_persistence_client",
    "get_persistence_client",
]
