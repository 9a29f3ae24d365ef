"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, imports, artworks
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.context import PipelineContext
from core.exceptions import (
    IngestionException,
    NotFound,
    MalformedSource,
    SourceUnavailable,
    StorageUnavailable,
)
from core.logging import setup_logging
from ingestion.runner import ImportOrchestrator
from ingestion.scheduler import RetrySweepScheduler
import logging

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = (
    (NotFound, 404),
    (MalformedSource, 422),
    (SourceUnavailable, 502),
    (StorageUnavailable, 503),
)


def status_code_for(error: IngestionException) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app() -> FastAPI:
    app = FastAPI(
        title="NFT Ingestion API",
        description="Imports NFT metadata from marketplaces and metadata URLs into canonical artworks",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router)
    app.include_router(imports.router)
    app.include_router(artworks.router)

    @app.exception_handler(IngestionException)
    async def ingestion_exception_handler(request: Request, exc: IngestionException):
        request_id = getattr(request.state, "request_id", "-")
        status_code = status_code_for(exc)
        logger.error(f"[{request_id}] {request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                "error_type": type(exc).__name__,
                "retryable": exc.retryable,
            },
        )

    @app.on_event("startup")
    async def startup_event():
        """Application startup event"""
        setup_logging()
        logger.info("Starting NFT Ingestion API")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

        # Tests inject their own context before startup
        if getattr(app.state, "context", None) is None:
            app.state.context = PipelineContext.from_settings()

        app.state.scheduler = None
        if settings.RETRY_SWEEP_ENABLED:
            app.state.scheduler = RetrySweepScheduler(ImportOrchestrator(app.state.context))
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event"""
        logger.info("Shutting down NFT Ingestion API")
        if getattr(app.state, "scheduler", None) is not None:
            app.state.scheduler.stop()
        await app.state.context.aclose()

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "NFT Ingestion API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "import": "/import/{source}",
                "wallet_import": "/import/{source}/wallet",
                "refetch": "/artworks/{id}/refetch",
                "retryable": "/imports/retryable",
                "retry": "/imports/retry"
            }
        }

    return app


app = create_app()
