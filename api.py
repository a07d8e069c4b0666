"""
Gurukul FastAPI Application

Main entry point for the Gurukul API. Wires the auth core (sessions, OTPs,
password reset) and runs the periodic expiry sweep.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Common library imports
from common.database import MongoDB
from common.database.mongodb import set_main_database
from common.utils import APIException, error_response, success_response

# App-specific imports
from gurukul.config import settings
from gurukul.database import ensure_indexes
from gurukul.auth.dependencies import (
    init_auth_services,
    get_otp_manager,
    get_session_manager,
)
from jobs.session_cleanup import SessionCleanupJob

logger = logging.getLogger(__name__)


# =============================================================================
# Database Instance
# =============================================================================
main_db = MongoDB()


async def _sweep_periodically(job: SessionCleanupJob, interval_seconds: float) -> None:
    """Run the expiry sweep until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        await job.run()


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown tasks like database connections
    and service initialization.
    """
    # Startup
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    settings.validate_required()
    logger.info("Starting Gurukul API...")

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
    )
    set_main_database(main_db)

    await ensure_indexes(main_db.db, session_retention_days=settings.SESSION_RETENTION_DAYS)

    coordinator = init_auth_services(db=main_db.db, settings=settings)
    logger.info("Auth services initialized")

    sweep_task = None
    if settings.SESSION_CLEANUP_INTERVAL_MINUTES > 0:
        job = SessionCleanupJob(
            session_manager=get_session_manager(),
            otp_manager=get_otp_manager(),
        )
        sweep_task = asyncio.create_task(
            _sweep_periodically(job, settings.SESSION_CLEANUP_INTERVAL_MINUTES * 60)
        )

    logger.info("Gurukul API started successfully!")

    yield

    # Shutdown
    logger.info("Shutting down Gurukul API...")
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass

    await coordinator.wait_for_background_tasks()
    await main_db.disconnect()
    logger.info("Gurukul API shut down complete.")


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="Gurukul API",
    description="E-learning platform backend",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Error Envelope
# =============================================================================
@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """Render typed domain failures as the standard error envelope."""
    details = exc.detail.get("details") if isinstance(exc.detail, dict) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.message, code=exc.code, details=details),
        headers=exc.headers,
    )


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """
    Health check endpoint.

    Returns the status of the API and database connection.
    """
    return success_response({
        "status": "ok",
        "version": "1.0.0",
        "database": main_db.is_connected,
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )
