"""
FastAPI application for the listing ingest service.

JSON surface for the upload UI: create a batch, upload spreadsheets, parse,
review the field mapping, process and poll progress.

Production deployment configuration via environment variables.
"""

import logging
import os
import threading
from typing import Dict, List, Optional

import requests
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.ingestion import (
    FIELD_CATALOG,
    BatchIngestOrchestrator,
    BatchStateError,
    FieldCategory,
    InvalidMappingError,
    LoggingEventSink,
    fields_by_category,
    required_fields,
)
from core.persistence import PersistenceClient, get_persistence_client
from utils.config import Config


logger = logging.getLogger(__name__)


# =============================================================================
# Environment Configuration
# =============================================================================

IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]


# =============================================================================
# Request Models
# =============================================================================


class CreateBatchRequest(BaseModel):
    batch_id: Optional[str] = None


class MappingCorrection(BaseModel):
    """Reviewer corrections: input header -> canonical field (null unmaps)."""

    overrides: Dict[str, Optional[str]]


# =============================================================================
# Batch Registry
# =============================================================================


class BatchRegistry:
    """
    In-memory batches for this process.

    Processing is serialised across batches so the shared identity set is
    never read and updated by two batches at once.
    """

    def __init__(self, config: Config, persistence: PersistenceClient):
        self.config = config
        self.persistence = persistence
        self.known_identities: set[str] = set()
        self.process_lock = threading.Lock()
        self._batches: dict[str, BatchIngestOrchestrator] = {}
        self._lock = threading.Lock()

    def create(self, batch_id: Optional[str] = None) -> BatchIngestOrchestrator:
        try:
            known_listings = self.persistence.known_listings()
        except requests.RequestException as e:
            logger.error("Could not load known listings: %s", e)
            raise HTTPException(status_code=502, detail="Listing store unavailable")

        with self._lock:
            if batch_id and batch_id in self._batches:
                raise HTTPException(status_code=409, detail=f"Batch {batch_id} already exists")
            batch = BatchIngestOrchestrator(
                config=self.config,
                persistence=self.persistence,
                event_sink=LoggingEventSink(),
                known_identities=self.known_identities,
                known_listings=known_listings,
                batch_id=batch_id,
            )
            self._batches[batch.batch_id] = batch
        return batch

    def get(self, batch_id: str) -> BatchIngestOrchestrator:
        with self._lock:
            batch = self._batches.get(batch_id)
        if batch is None:
            raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")
        return batch


# =============================================================================
# Application
# =============================================================================


def create_app(
    config: Optional[Config] = None,
    persistence: Optional[PersistenceClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    config = config or Config.load()
    registry = BatchRegistry(config, persistence or get_persistence_client(config))

    app = FastAPI(
        title="Listing Ingest",
        description="Bulk listing spreadsheet ingestion",
        version="0.1.0",
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=config.debug and not IS_PRODUCTION,
    )
    app.state.registry = registry

    @app.get("/health", include_in_schema=False)
    def health():
        """Health endpoint. No dependencies, no IO."""
        return {"status": "healthy"}

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["*"],
        )

    @app.exception_handler(BatchStateError)
    async def batch_state_error(request: Request, exc: BatchStateError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(InvalidMappingError)
    async def invalid_mapping_error(request: Request, exc: InvalidMappingError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    # ==========================================================================
    # Catalog
    # ==========================================================================

    @app.get("/catalog")
    def catalog():
        return {
            "fields": [f.to_dict() for f in FIELD_CATALOG],
            "required": [f.canonical_name for f in required_fields()],
            "categories": {
                category.value: [f.canonical_name for f in fields_by_category(category)]
                for category in FieldCategory
            },
        }

    # ==========================================================================
    # Batches
    # ==========================================================================

    @app.post("/batches", status_code=201)
    def create_batch(request_data: Optional[CreateBatchRequest] = None):
        batch = registry.create(request_data.batch_id if request_data else None)
        return batch.snapshot()

    @app.get("/batches/{batch_id}")
    def get_batch(batch_id: str):
        return registry.get(batch_id).snapshot()

    @app.post("/batches/{batch_id}/files")
    async def upload_files(batch_id: str, files: List[UploadFile] = File(...)):
        batch = registry.get(batch_id)
        uploads = []
        for upload in files:
            uploads.append((upload.filename or "upload", await upload.read()))
        accepted = batch.add_files(uploads)
        snapshot = batch.snapshot()
        snapshot["accepted"] = accepted
        return snapshot

    @app.post("/batches/{batch_id}/parse")
    def parse_batch(batch_id: str):
        batch = registry.get(batch_id)
        batch.parse()
        return batch.snapshot()

    @app.put("/batches/{batch_id}/mapping")
    def correct_mapping(batch_id: str, correction: MappingCorrection):
        batch = registry.get(batch_id)
        batch.apply_mapping(correction.overrides)
        return batch.snapshot()

    @app.post("/batches/{batch_id}/process")
    def process_batch(batch_id: str):
        batch = registry.get(batch_id)
        with registry.process_lock:
            report = batch.process()
        return report.to_dict()

    @app.post("/batches/{batch_id}/cancel")
    def cancel_batch(batch_id: str):
        batch = registry.get(batch_id)
        batch.cancel()
        return batch.snapshot()

    return app


app = create_app()
