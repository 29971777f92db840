"""
FastAPI application for the offering ingestion service.
"""
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from offering_ingest import __version__
from offering_ingest.api.endpoints import health_router, router
from offering_ingest.config.logging_config import configure_logging
from offering_ingest.config.settings import (
    ApplicationSettings,
    get_settings,
    validate_settings,
)
from offering_ingest.exceptions import InputValidationError, QuotaExhaustedError
from offering_ingest.models.domain import ErrorCode, PipelineConfig
from offering_ingest.repositories.base import RecordStore
from offering_ingest.repositories.memory_store import InMemoryRecordStore
from offering_ingest.repositories.offering_repository import OfferingRepository
from offering_ingest.services.extraction_client import ExtractionClient
from offering_ingest.services.retry import ChunkExtractor

logger = structlog.get_logger(__name__)

QUOTA_MESSAGE_AR = "نفاد رصيد الذكاء الاصطناعي. يرجى المحاولة لاحقاً."
QUOTA_MESSAGE_EN = "AI credits exhausted. Please try again later."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the shared extraction client and record store unless they were
    injected, and releases whatever it created on shutdown.
    """
    settings: ApplicationSettings = app.state.settings
    configure_logging(settings.monitoring.log_level, settings.monitoring.log_format)
    validate_settings(settings)

    owned = []

    if app.state.extractor is None:
        if settings.extraction.api_key:
            client = ExtractionClient(
                settings.to_extraction_config(), settings.extraction.api_key
            )
            app.state.extractor = client
            owned.append(client)
        else:
            logger.warning("Extraction API key not set, /api/v1/extract disabled")

    if app.state.record_store is None:
        if settings.database.database_url:
            repository = OfferingRepository.from_url(
                settings.database.database_url, echo=settings.database.database_echo
            )
            await repository.create_tables()
            app.state.record_store = repository
            owned.append(repository)
        else:
            app.state.record_store = InMemoryRecordStore()

    logger.info(
        "Service started",
        environment=settings.environment,
        version=__version__,
        record_store=type(app.state.record_store).__name__,
    )

    yield

    for resource in owned:
        await resource.close()
    logger.info("Service shut down")


def create_app(
    settings: Optional[ApplicationSettings] = None,
    extractor: Optional[ChunkExtractor] = None,
    record_store: Optional[RecordStore] = None,
    pipeline_config: Optional[PipelineConfig] = None,
) -> FastAPI:
    """Build the application; injected components are used as-is"""
    settings = settings or get_settings()

    app = FastAPI(
        title="Coffee Offering Ingestion API",
        description="Extracts structured coffee offerings from supplier price lists",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug_mode else None,
        redoc_url="/redoc" if settings.debug_mode else None,
        openapi_url="/openapi.json" if settings.debug_mode else None,
    )
    app.state.settings = settings
    app.state.extractor = extractor
    app.state.record_store = record_store
    app.state.pipeline_config = pipeline_config or settings.to_pipeline_config()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(router)

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint with service information"""
        return {
            "service": settings.app_name,
            "version": __version__,
            "environment": settings.environment,
            "health": "/health",
        }

    return app


def _validation_details(exc: RequestValidationError) -> list[dict[str, str]]:
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append(
            {"field": ".".join(location) or "body", "message": error.get("msg", "")}
        )
    return details


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": _validation_details(exc)},
        )

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": exc.field_errors},
        )

    @app.exception_handler(QuotaExhaustedError)
    async def quota_exhausted_handler(request: Request, exc: QuotaExhaustedError):
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={
                "error": ErrorCode.QUOTA_EXHAUSTED.value,
                "message": QUOTA_MESSAGE_AR,
                "message_en": QUOTA_MESSAGE_EN,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "path": str(request.url.path)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            path=str(request.url.path),
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "offering_ingest.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug_mode,
        log_level=settings.monitoring.log_level.lower(),
    )
