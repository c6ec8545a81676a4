"""Notion Sync Service - FastAPI application."""

import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

# Add shared module to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../'))
from shared.db_operations import DatabaseOperations, RecordNotFoundError
from shared.encryption import EncryptionService
from shared.models import (
    Conflict,
    ConflictType,
    EntityType,
    FieldSide,
    ResolutionChoice,
    ResolutionStrategy,
    Severity,
    SyncStatus,
)
from services.notion_sync.pipeline import (
    DatabaseNotLinkedError,
    SyncConfigurationError,
    SyncPipeline,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

# Global instances
db_ops: Optional[DatabaseOperations] = None
pipeline: Optional[SyncPipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    global db_ops, pipeline

    logger.info("Notion Sync Service starting up...")

    db_ops = DatabaseOperations()
    logger.info("Database connection initialized")

    pipeline = SyncPipeline(db_ops, EncryptionService())
    logger.info("Sync pipeline initialized")

    yield

    logger.info("Notion Sync Service shutting down...")


# Create FastAPI application
app = FastAPI(
    title="Notion Sync Service",
    description="Two-way reconciliation between Notion databases and local records",
    version="0.1.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handling middleware
@app.middleware("http")
async def error_handling_middleware(request: Request, call_next):
    """Global error handling middleware."""
    try:
        response = await call_next(request)
        return response
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc)
            }
        )


# Health check endpoint
@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint."""
    db_healthy = False
    if db_ops is not None:
        try:
            with db_ops.get_session() as session:
                session.execute(text("SELECT 1"))
            db_healthy = True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")

    return {
        "status": "healthy" if db_healthy else "degraded",
        "service": "notion_sync",
        "version": "0.1.0",
        "database": "connected" if db_healthy else "disconnected"
    }


@app.get("/", status_code=status.HTTP_200_OK)
async def root():
    """Root endpoint."""
    return {
        "service": "Notion Sync Service",
        "version": "0.1.0",
        "status": "running"
    }


# Request/Response models
class ConflictModel(BaseModel):
    """A detected conflict, as returned by retrieve and sent back to resolve."""
    id: str
    type: ConflictType
    remote_value: Any = None
    local_value: Any = None
    remote_timestamp: str = ""
    local_timestamp: str = ""
    severity: Severity
    description: str = ""
    page_id: str
    record_id: Optional[str] = None
    field: Optional[str] = None
    duplicate: bool = False


class RetrieveRequest(BaseModel):
    """Request model for retrieving a Notion database and detecting conflicts."""
    user_id: str
    entity_type: EntityType


class RetrieveResponse(BaseModel):
    """Response model for retrieval."""
    success: bool
    entity_type: EntityType
    database_id: str
    retrieved: int
    matched: int
    new_records: int
    has_conflicts: bool
    conflicts: List[ConflictModel]
    record_level_conflicts: int
    field_level_conflicts: int
    missing_records: int
    rate_limit_hits: int
    errors: List[str] = []
    matches: List[Dict[str, Any]] = []


class ResolutionChoiceModel(BaseModel):
    """The strategy chosen for the record a conflict belongs to."""
    conflict_id: str
    strategy: ResolutionStrategy
    field_choices: Dict[str, FieldSide] = {}


class ResolveRequest(BaseModel):
    """Request model for resolving conflicts."""
    user_id: str
    entity_type: EntityType
    conflicts: List[ConflictModel]
    resolutions: List[ResolutionChoiceModel]


class ResolutionErrorModel(BaseModel):
    conflict_id: str
    error: str


class ResolveResponse(BaseModel):
    """Response model for conflict resolution."""
    success: bool
    records_updated: int
    records_skipped: int
    errors: List[ResolutionErrorModel] = []


class PushRequest(BaseModel):
    """Request model for pushing one local record to Notion."""
    user_id: str
    entity_type: EntityType
    record_id: str


class PushResponse(BaseModel):
    """Response model for a record push."""
    success: bool
    record_id: str
    page_id: str
    page_url: Optional[str] = None
    created: bool


class SyncStatusResponse(BaseModel):
    """Response model for the sync status of one entity type."""
    user_id: str
    entity_type: EntityType
    linked: bool
    database_id: Optional[str] = None
    database_name: Optional[str] = None
    total_records: int = 0
    status_counts: Dict[str, int] = {}


def _configuration_error(error: SyncConfigurationError) -> HTTPException:
    if isinstance(error, DatabaseNotLinkedError):
        status_code = status.HTTP_404_NOT_FOUND
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=status_code, detail=str(error))


@app.post("/internal/notion/retrieve", response_model=RetrieveResponse, status_code=status.HTTP_200_OK)
async def retrieve(request: RetrieveRequest):
    """
    Retrieve a user's Notion database and detect conflicts with local records.

    Args:
        request: RetrieveRequest with user_id and entity_type

    Returns:
        RetrieveResponse with counts, conflicts and match summaries

    Raises:
        HTTPException: 400 for missing credentials, 404 for an unlinked
            database, 500 if retrieval fails unexpectedly
    """
    try:
        report = await pipeline.retrieve_and_detect(request.user_id, request.entity_type)

        return RetrieveResponse(
            success=not report.errors,
            entity_type=report.entity_type,
            database_id=report.database_id,
            retrieved=report.retrieved,
            matched=report.matched,
            new_records=report.new_records,
            has_conflicts=report.has_conflicts,
            conflicts=[ConflictModel(**asdict(c)) for c in report.conflicts],
            record_level_conflicts=report.record_level_conflicts,
            field_level_conflicts=report.field_level_conflicts,
            missing_records=report.missing_records,
            rate_limit_hits=report.rate_limit_hits,
            errors=report.errors,
            matches=report.matches
        )

    except SyncConfigurationError as e:
        logger.warning(f"Cannot retrieve {request.entity_type.value} for user {request.user_id}: {e}")
        raise _configuration_error(e)

    except Exception as e:
        logger.error(f"Error retrieving Notion database: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to retrieve from Notion: {str(e)}"
        )


@app.post("/internal/notion/resolve-conflicts", response_model=ResolveResponse, status_code=status.HTTP_200_OK)
async def resolve_conflicts(request: ResolveRequest):
    """
    Apply the user's resolution choices to previously detected conflicts.

    Args:
        request: ResolveRequest with the conflicts from retrieve and the choices

    Returns:
        ResolveResponse with counts and per-record errors

    Raises:
        HTTPException: 400 if there is nothing to resolve or credentials are
            missing, 404 for an unlinked database
    """
    if not request.resolutions:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="resolutions are required"
        )
    if not request.conflicts:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No conflicts to resolve"
        )

    conflicts = [Conflict(**c.model_dump()) for c in request.conflicts]
    resolutions = [
        ResolutionChoice(
            conflict_id=r.conflict_id,
            strategy=r.strategy,
            field_choices=dict(r.field_choices)
        )
        for r in request.resolutions
    ]

    try:
        result = await pipeline.resolve_conflicts(
            request.user_id,
            request.entity_type,
            conflicts,
            resolutions
        )

    except SyncConfigurationError as e:
        logger.warning(f"Cannot resolve {request.entity_type.value} for user {request.user_id}: {e}")
        raise _configuration_error(e)

    return ResolveResponse(
        success=result.success,
        records_updated=result.records_updated,
        records_skipped=result.records_skipped,
        errors=[ResolutionErrorModel(conflict_id=e.conflict_id, error=e.error) for e in result.errors]
    )


@app.post("/internal/notion/push", response_model=PushResponse, status_code=status.HTTP_200_OK)
async def push_record(request: PushRequest):
    """
    Create or update the Notion page for one local record.

    Args:
        request: PushRequest with user_id, entity_type and record_id

    Returns:
        PushResponse with the linked page and whether it was created

    Raises:
        HTTPException: 400 for missing credentials, 404 for an unlinked
            database or unknown record, 500 if the Notion write fails
    """
    try:
        result = await pipeline.push_record(request.user_id, request.entity_type, request.record_id)

    except SyncConfigurationError as e:
        logger.warning(f"Cannot push {request.entity_type.value} for user {request.user_id}: {e}")
        raise _configuration_error(e)

    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    except Exception as e:
        logger.error(f"Error pushing record {request.record_id} to Notion: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to push to Notion: {str(e)}"
        )

    return PushResponse(
        success=True,
        record_id=result.record_id,
        page_id=result.page_id,
        page_url=result.url,
        created=result.created
    )


@app.get(
    "/internal/notion/sync-status/{user_id}/{entity_type}",
    response_model=SyncStatusResponse,
    status_code=status.HTTP_200_OK
)
async def sync_status(user_id: str, entity_type: EntityType):
    """Report whether an entity type is linked to Notion and how its records stand."""
    database = db_ops.get_notion_database(user_id, entity_type)
    records = db_ops.get_records_for_user(entity_type, user_id)

    counts = {s.value: 0 for s in SyncStatus}
    for record in records:
        record_status = record.get("notion_sync_status")
        if record_status:
            counts[record_status] = counts.get(record_status, 0) + 1

    return SyncStatusResponse(
        user_id=user_id,
        entity_type=entity_type,
        linked=database is not None,
        database_id=database.database_id if database else None,
        database_name=database.database_name if database else None,
        total_records=len(records),
        status_counts=counts
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("NOTION_SYNC_PORT", 8006))
    uvicorn.run(app, host="0.0.0.0", port=port)
