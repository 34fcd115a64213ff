"""Main FastAPI application for the contract review service."""
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from openai import OpenAI
from sqlalchemy import text

from contract_review import __version__, api, crud, schemas
from contract_review.analysis import MockAnalysisEngine, RiskAnalysisEngine, create_openai_client
from contract_review.audit import AuditLogger
from contract_review.config import Settings
from contract_review.database import Database
from contract_review.extraction import TextExtractor
from contract_review.pipeline import ContractAnalyzer
from contract_review.storage import BlobStore, create_blob_store

logger = logging.getLogger(__name__)

DESCRIPTION = """
Contract review API: upload contracts, run AI risk analysis and keep a
versioned history of edits.

## Features

* **Upload**: Store PDF or text contracts per organization
* **Extract**: Plain text and HTML of the original upload
* **Analyze**: AI risk review with risk items and a compliance checklist
* **Versions**: Append-only edit history with restore
* **Report**: PDF report of the latest review
* **Audit**: Who did what, for administrators
"""


def configure_logging(level: str = "INFO") -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    blob_store: Optional[BlobStore] = None,
    openai_client: Optional[OpenAI] = None
) -> FastAPI:
    """Build the application and its collaborators.

    Every collaborator can be passed in; anything omitted is built from
    settings (which default to the environment).
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    database = database or Database(settings.effective_database_url)
    blob_store = blob_store or create_blob_store(settings)
    if openai_client is None:
        openai_client = create_openai_client(settings)

    real_engine = None
    if openai_client is not None:
        real_engine = RiskAnalysisEngine(
            openai_client,
            model=settings.openai_model,
            timeout=settings.openai_timeout_seconds,
            max_input_tokens=settings.analysis_max_input_tokens
        )

    audit_logger = AuditLogger(database)
    extractor = TextExtractor()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan events for the application."""
        # Startup
        logger.info("Starting Contract Review API...")

        try:
            database.create_all()
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

        if settings.use_mock_analysis or real_engine is None:
            logger.info("Contract analysis will use the mock engine")

        yield

        # Shutdown
        logger.info("Shutting down Contract Review API...")
        database.dispose()

    app = FastAPI(
        title="Contract Review API",
        description=DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.state.settings = settings
    app.state.database = database
    app.state.blob_store = blob_store
    app.state.extractor = extractor
    app.state.audit_logger = audit_logger
    app.state.analyzer = ContractAnalyzer(
        blob_store=blob_store,
        extractor=extractor,
        real_engine=real_engine,
        mock_engine=MockAnalysisEngine(),
        audit_logger=audit_logger,
        force_mock=settings.use_mock_analysis
    )
    app.state.start_time = time.time()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, specify actual origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        start_time = time.time()

        logger.info(f"Request: {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            response.headers["X-Process-Time"] = str(process_time)

            logger.info(
                f"Response: {request.method} {request.url.path} "
                f"- Status: {response.status_code} - Time: {process_time:.3f}s"
            )

            return response

        except Exception as e:
            logger.error(f"Request failed: {request.method} {request.url.path} - Error: {str(e)}")
            raise

    # Include routers
    app.include_router(api.router, prefix="/api/v1", tags=["contracts"])

    @app.get("/healthz", response_model=schemas.HealthResponse, tags=["health"])
    async def health_check(request: Request):
        """
        Health check endpoint.

        Returns the health status of the API and database connection.
        """
        db_status = "healthy"

        try:
            with request.app.state.database.session() as db:
                db.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            db_status = "unhealthy"

        return schemas.HealthResponse(
            status="healthy" if db_status == "healthy" else "degraded",
            database=db_status,
            timestamp=datetime.now()
        )

    @app.get("/metrics", response_model=schemas.MetricsResponse, tags=["health"])
    async def get_metrics(request: Request):
        """
        Get system metrics.

        Returns counts of contracts, reviews, risk items and versions.
        """
        try:
            with request.app.state.database.session() as db:
                metrics = schemas.MetricsResponse(
                    total_contracts=crud.get_total_contracts(db),
                    total_reviews=crud.get_total_reviews(db),
                    total_risk_items=crud.get_total_risk_items(db),
                    total_versions=crud.get_total_versions(db),
                    uptime_seconds=time.time() - request.app.state.start_time
                )
            return metrics

        except Exception as e:
            logger.error(f"Failed to get metrics: {e}")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to retrieve metrics", "detail": "Metrics are unavailable"}
            )

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Contract Review API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": "/healthz",
            "metrics": "/metrics"
        }

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc):
        """Handle 404 errors."""
        detail = getattr(exc, "detail", None) or f"The requested resource was not found: {request.url.path}"
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "detail": detail,
                "status_code": 404
            }
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "detail": "An unexpected error occurred. Please try again later.",
                "status_code": 500
            }
        )

    return app


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "contract_review.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        reload=True,
        log_level="info"
    )
