"""
Main FastAPI application entry point.
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging
import asyncio
from contextlib import asynccontextmanager

from cenniki.core.config import settings
from cenniki.core.database import engine, Base, SessionLocal
from cenniki.core.exceptions import CennikiError, SchedulerBusyError
from cenniki.routers import api_router
from cenniki.services.catalog_store import CatalogStore
from cenniki.services.change_applier import ApplyPolicy
from cenniki.services.notifier import PriceChangeNotifier
from cenniki.services.scheduled_change_repository import release_stale_claims
from cenniki.services.scheduler import PriceChangeScheduler
import cenniki.models  # noqa: F401  (registers tables on Base.metadata)

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format=settings.log_format,
)
logger = logging.getLogger(__name__)

# Suppress uvicorn warnings for invalid HTTP requests
logging.getLogger("uvicorn.error").setLevel(logging.ERROR)


def run_scheduled_changes(scheduler: PriceChangeScheduler) -> None:
    """One scheduler pass with its own database session"""
    db = SessionLocal()
    try:
        scheduler.run_due(db)
    except SchedulerBusyError:
        logger.info("Scheduler pass skipped: previous run still in progress")
    finally:
        db.close()


# Background task applying due scheduled changes
async def scheduler_loop(scheduler: PriceChangeScheduler, interval_seconds: int):
    """Apply due changes now and then every interval_seconds"""
    while True:
        try:
            await asyncio.to_thread(run_scheduled_changes, scheduler)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Scheduler pass failed: {str(e)}", exc_info=True)
        await asyncio.sleep(interval_seconds)


# Lifespan context manager for startup/shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build the shared services
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)

    # Changes claimed by a process that died mid-apply go back to pending
    db = SessionLocal()
    try:
        released = release_stale_claims(db)
        if released:
            logger.warning(f"Released {released} scheduled change(s) left in applying state")
    finally:
        db.close()

    app.state.catalog_store = CatalogStore(settings.DATA_DIR)
    app.state.notifier = PriceChangeNotifier(settings)
    app.state.scheduler = PriceChangeScheduler(
        app.state.catalog_store,
        app.state.notifier,
        ApplyPolicy(settings.APPLY_CONFLICT_POLICY),
    )

    task = None
    if settings.SCHEDULER_ENABLED:
        task = asyncio.create_task(scheduler_loop(app.state.scheduler, settings.SCHEDULER_INTERVAL_SECONDS))
        logger.info(f"Scheduler started (every {settings.SCHEDULER_INTERVAL_SECONDS}s)")

    yield

    # Shutdown: stop the scheduler, flush pending notifications
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Scheduler stopped")
    app.state.notifier.shutdown(wait=True)


# Create FastAPI app with lifespan
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)


# Last-resort handler for errors escaping a request
@app.middleware("http")
async def catch_unhandled_errors(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as e:
        logger.error(f"Request failed: {request.method} {request.url.path}: {str(e)}", exc_info=True)

        if settings.debug:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "success": False,
                    "error": str(e),
                    "error_type": type(e).__name__
                }
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Internal server error"}
        )


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CennikiError)
async def cenniki_exception_handler(request: Request, exc: CennikiError):
    """Map domain errors to their HTTP status"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc}")
    else:
        logger.info(f"{type(exc).__name__}: {exc}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc)}
    )


# Add exception handler for validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with detailed messages"""
    errors = exc.errors()
    error_messages = []

    for error in errors:
        field = " -> ".join(str(x) for x in error["loc"])
        error_messages.append(f"{field}: {error['msg']} (type: {error['type']})")

    logger.warning(f"Validation error: {error_messages}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "detail": "Validation Error",
            "errors": error_messages,
        }
    )


# Include API router
app.include_router(api_router, prefix="/api")


@app.get("/")
def read_root():
    """Root endpoint for health check."""
    return {
        "status": "ok",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level="error",  # Suppress invalid HTTP warnings
        access_log=False,   # Disable access logs to reduce noise
    )
