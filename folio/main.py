"""
Main FastAPI application for the Folio backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from folio import __version__
from folio.config import GenerationConfig, Settings, settings as default_settings
from folio.routers import documents, health
from folio.services.completion_client import CompletionClient
from folio.services.errors import (
    CompletionError,
    FolioError,
    GenerationBusyError,
    JobNotFoundError,
    RenderError,
)
from folio.services.job_runner import GenerationGate, JobRunner
from folio.services.job_store import InMemoryJobStore, JobStore, run_sweeper
from folio.services.retrieval import RetrievalClient

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    cfg: Settings = app.state.settings
    logger.info("=" * 60)
    logger.info("  Starting Folio backend …")
    logger.info("=" * 60)

    if app.state.completion_client.is_configured:
        logger.info("✓ Completion service: %s (model %s)", cfg.LLM_BASE_URL, cfg.LLM_MODEL)
    else:
        logger.warning("⚠ LLM_API_KEY not set; generation requests will fail with 502")

    if app.state.retrieval_client.is_configured:
        logger.info("✓ Retrieval proxy: %s", cfg.RETRIEVAL_PROXY_URL)
    else:
        logger.info("  Retrieval proxy disabled (RETRIEVAL_PROXY_URL empty)")

    sweeper = asyncio.create_task(run_sweeper(app.state.job_store, cfg.JOB_SWEEP_INTERVAL_SECONDS))
    logger.info(
        "✓ Job store: ttl=%ss, max=%d, concurrent generations=%d",
        cfg.JOB_TTL_SECONDS, cfg.JOB_MAX_ENTRIES, app.state.gate.limit,
    )

    logger.info("=" * 60)
    logger.info("  Folio backend ready on http://%s:%d", cfg.HOST, cfg.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", cfg.HOST, cfg.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down Folio backend …")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    await app.state.job_runner.shutdown()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_ERROR_STATUS = (
    (GenerationBusyError, status.HTTP_429_TOO_MANY_REQUESTS),
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (CompletionError, status.HTTP_502_BAD_GATEWAY),
    (RenderError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


async def folio_error_handler(request: Request, exc: FolioError):
    """Map service errors to HTTP statuses with a JSON body."""
    code = next((c for cls, c in _ERROR_STATUS if isinstance(exc, cls)), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if code >= 500:
        logger.error("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc)
    else:
        logger.info("%s on %s %s: %s", exc.__class__.__name__, request.method, request.url.path, exc)
    headers = {"Retry-After": "30"} if code == status.HTTP_429_TOO_MANY_REQUESTS else None
    return JSONResponse(
        status_code=code,
        content={
            "detail": str(exc),
            "error": exc.__class__.__name__,
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        headers=headers,
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip job polling and health checks
    path = request.url.path
    if path not in ("/api/health/", "/") and not (request.method == "GET" and path.startswith("/api/documents/jobs/")):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    cfg: Optional[Settings] = None,
    completion_client: Optional[CompletionClient] = None,
    retrieval_client: Optional[RetrievalClient] = None,
    job_store: Optional[JobStore] = None,
    generation_config: Optional[GenerationConfig] = None,
    sleep=asyncio.sleep,
) -> FastAPI:
    """
    Build the application.  Every collaborator can be injected; anything
    left out is created from *cfg* (the environment by default).
    """
    cfg = cfg or default_settings

    app = FastAPI(
        title="Folio API",
        description=(
            "**Folio**: long-form business plan and project proposal generator.\n\n"
            "Key endpoints:\n"
            "- `GET  /api/documents/plans` : section plans per document type\n"
            "- `POST /api/documents/generate` : generate and download (pdf, docx, json)\n"
            "- `POST /api/documents/jobs` : start a background generation\n"
            "- `GET  /api/documents/jobs/{id}` : poll a job\n"
            "- `GET  /api/documents/jobs/{id}/result` : download a finished job\n"
        ),
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    gate = GenerationGate(cfg.MAX_CONCURRENT_GENERATIONS)
    store = job_store or InMemoryJobStore(ttl_seconds=cfg.JOB_TTL_SECONDS, max_entries=cfg.JOB_MAX_ENTRIES)
    app.state.settings = cfg
    app.state.completion_client = completion_client or CompletionClient(
        base_url=cfg.LLM_BASE_URL, api_key=cfg.LLM_API_KEY, model=cfg.LLM_MODEL, timeout=cfg.LLM_TIMEOUT
    )
    app.state.retrieval_client = retrieval_client or RetrievalClient(
        proxy_url=cfg.RETRIEVAL_PROXY_URL, timeout=cfg.RETRIEVAL_TIMEOUT
    )
    app.state.generation_config = generation_config or GenerationConfig.from_settings(cfg)
    app.state.gate = gate
    app.state.job_store = store
    app.state.job_runner = JobRunner(store, gate)
    app.state.max_pages = cfg.PDF_MAX_PAGES
    app.state.sleep = sleep

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Degraded-Sections"],
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(FolioError, folio_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # Routers
    app.include_router(health.router,    prefix="/api/health",    tags=["Health"])
    app.include_router(documents.router, prefix="/api/documents", tags=["Documents"])

    @app.get("/", tags=["Root"], include_in_schema=False)
    async def root():
        """API root: returns basic service info."""
        return {
            "name": "Folio API",
            "version": __version__,
            "description": "Business plan and project proposal generator",
            "docs": "/docs",
            "health": "/api/health/",
            "endpoints": {
                "plans": "/api/documents/plans",
                "generate": "/api/documents/generate",
                "jobs": "/api/documents/jobs",
            },
        }

    return app


app = create_app()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "folio.main:app",
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=True,
        log_level="info",
    )
