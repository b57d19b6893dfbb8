"""
Listing Ingest - Core Business Logic

1. Ingestion (field mapping, address parsing, validation, transform, dedup)
2. Batch orchestration (upload -> parse -> review -> processing -> complete)
3. Persistence (listing store collaborator)
"""

from .ingestion import (
    BatchIngestOrchestrator,
    BatchReport,
    BatchStage,
    CanonicalRecord,
    FIELD_CATALOG,
    MappingResult,
    map_headers,
)
from .persistence import (
    HttpPersistenceClient,
    InMemoryPersistenceClient,
    PersistenceClient,
    get_persistence_client,
)

__all__ = [
    "BatchIngestOrchestrator",
    "BatchReport",
    "BatchStage",
    "CanonicalRecord",
    "FIELD_CATALOG",
    "MappingResult",
    "map_headers",
    "HttpPersistenceClient",
    "InMemoryPersistenceClient",
    "PersistenceClient",
    "get_persistence_client",
]
