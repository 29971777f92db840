"""
FastAPI endpoints for the offering ingestion service.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from offering_ingest import __version__
from offering_ingest.exceptions import RepositoryError
from offering_ingest.models.domain import ExtractionRequest, ExtractionResponse
from offering_ingest.pipeline.orchestrator import ExtractionPipeline
from offering_ingest.repositories.base import RecordStore

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["extraction"])
health_router = APIRouter(tags=["health"])

DISCONNECT_POLL_SECONDS = 0.5


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str
    version: str
    timestamp: datetime
    services: dict


def get_record_store(request: Request) -> Optional[RecordStore]:
    return request.app.state.record_store


def get_extraction_pipeline(request: Request) -> ExtractionPipeline:
    extractor = request.app.state.extractor
    if extractor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Extraction service is not configured",
        )
    return ExtractionPipeline(
        request.app.state.pipeline_config,
        extractor,
        record_store=request.app.state.record_store,
    )


async def _watch_disconnect(request: Request, cancel_event: asyncio.Event) -> None:
    """Set the cancel event once the client goes away"""
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.warning("Client disconnected, cancelling run")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def _stop_watcher(watcher: asyncio.Task) -> None:
    """Cancel the disconnect watcher and collect its outcome"""
    watcher.cancel()
    await asyncio.wait([watcher])
    if watcher.cancelled():
        return
    error = watcher.exception()
    if error is not None:
        logger.warning(
            "Disconnect watcher failed",
            error=str(error),
            error_type=type(error).__name__,
        )


@router.post("/extract", response_model=ExtractionResponse)
async def extract_offerings(
    payload: ExtractionRequest,
    request: Request,
    pipeline: ExtractionPipeline = Depends(get_extraction_pipeline),
    record_store: Optional[RecordStore] = Depends(get_record_store),
) -> ExtractionResponse:
    """
    Extract coffee offerings from price list text.

    New offerings are stored for the supplier when a source id is given.
    Validation errors and a quota abort with nothing extracted are turned
    into 400 and 402 responses by the application's exception handlers.
    """
    document = payload.to_document()
    cancel_event = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        summary = await pipeline.run(document, cancel_event=cancel_event)
    finally:
        await _stop_watcher(watcher)

    inserted = 0
    if document.source_id and summary.records and record_store is not None:
        try:
            inserted = await record_store.insert_records(
                document.source_id, summary.records
            )
        except RepositoryError as e:
            logger.error(
                "Failed to store extracted offerings",
                source_id=document.source_id,
                record_count=summary.count,
                error=e.message,
            )

    return ExtractionResponse.from_summary(summary, inserted=inserted)


@health_router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request) -> HealthCheckResponse:
    """Report service status and which dependencies are wired"""
    services = {
        "api": "healthy",
        "extraction": (
            "configured" if request.app.state.extractor is not None else "not_configured"
        ),
        "record_store": (
            type(request.app.state.record_store).__name__
            if request.app.state.record_store is not None
            else "none"
        ),
    }
    return HealthCheckResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        services=services,
    )
