from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
import uuid
import time

from app.api.v1.routes import taps, rewards
from app.core.config import settings
from app.core.logging_config import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan: startup and shutdown.

    Warns about insecure or incomplete tag-validation configuration.
    Initializes database tables if they don't exist.
    """
    logger.info("Starting Tap Loyalty API...")

    if settings.allow_dev_taps:
        if settings.environment == "production":
            logger.error("ALLOW_DEV_TAPS is enabled in production: unsigned QR taps will earn stamps")
        else:
            logger.warning("Dev-mode taps enabled: signature validation is skipped for mode=dev")
    if not settings.nfc_master_key:
        logger.warning("NFC_MASTER_KEY is not set: all prod-mode taps will be rejected")
    if not settings.auth_jwt_secret:
        logger.warning("AUTH_JWT_SECRET is not set: every tap will be treated as anonymous")

    try:
        from app.db.init_db import init_db
        init_db()
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - allow app to start even if DB init fails
        # This allows for manual initialization if needed

    logger.info(f"Application starting in {settings.environment} mode")
    yield

    logger.info("Shutting down Tap Loyalty API...")


# Create FastAPI app with lifespan
app = FastAPI(
    title="Tap Loyalty API",
    description="NFC tap verification and loyalty stamp awarding",
    version="1.0.0",
    lifespan=lifespan
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert Pydantic validation errors to our error format."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        field_name = first_error.get("loc", ["unknown"])[-1] if first_error.get("loc") else "unknown"

        # Check if it's a missing field
        if first_error.get("type") == "missing":
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "detail": {
                        "code": "MISSING_FIELD",
                        "message": f"Missing required field: {field_name}",
                        "details": {"field": field_name}
                    }
                }
            )

    # Fallback to default validation error format
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": errors}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Never leak internal error details or stack traces to the caller."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "code": "INTERNAL_ERROR",
                "message": "Internal server error",
                "details": {}
            }
        }
    )


# Add request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add unique request ID to each request for traceability."""
    request_id = str(uuid.uuid4())[:8]

    request.state.request_id = request_id

    # Add request ID to logger context
    old_factory = logging.getLogRecordFactory()
    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.request_id = request_id
        return record
    logging.setLogRecordFactory(record_factory)

    start_time = time.time()
    try:
        response = await call_next(request)
    finally:
        # Restore original factory
        logging.setLogRecordFactory(old_factory)
    process_time = time.time() - start_time

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(round(process_time, 3))

    return response

# Taps come from phone browsers on any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(taps.router, prefix="/api/v1", tags=["taps"])
app.include_router(rewards.router, prefix="/api/v1", tags=["rewards"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Tap Loyalty API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """
    Health check endpoint with dependency verification.

    Returns:
        - 200: All systems healthy
        - 503: System degraded or unhealthy
    """
    from sqlalchemy import text
    from app.db.session import SessionLocal

    health_status = {
        "status": "healthy",
        "database": {"status": "ok", "latency_ms": 0},
        "tag_validation": {"status": "unknown"},
        "identity": {"status": "unknown"},
    }

    # Check database connectivity with latency
    try:
        start = time.time()
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        latency = (time.time() - start) * 1000
        health_status["database"] = {"status": "ok", "latency_ms": round(latency, 2)}
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["database"] = {"status": "error", "error": type(e).__name__}
        logger.error(f"Database health check failed: {e}")

    # Only report whether secrets are configured, never their values
    if settings.nfc_master_key:
        health_status["tag_validation"] = {"status": "configured", "dev_taps": settings.allow_dev_taps}
    else:
        health_status["tag_validation"] = {"status": "not_configured", "dev_taps": settings.allow_dev_taps}
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    if settings.auth_jwt_secret:
        health_status["identity"] = {"status": "configured"}
    else:
        health_status["identity"] = {"status": "not_configured"}
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503

    return JSONResponse(content=health_status, status_code=status_code)
