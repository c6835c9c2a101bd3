"""BodyScan session gateway.

FastAPI application behind the scan links designers send to their clients:
- Subject device: read a link, claim it, submit measurements, report failure
- Designer side: issue links, list them, read completed measurements

Photos never reach this service. Pose detection and measurement estimation
run on the subject's device; only the numeric result is posted here.

Enhanced with:
- Structured logging
- Error handling
- Request tracking
- CORS support
- Environment configuration
"""

import os
import time
import logging
from datetime import timedelta
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from bodyscan import config
from bodyscan.errors import BodyScanError, SessionNotWritable, ValidationError
from bodyscan.schemas import (
    CreateSessionRequest,
    FailureReport,
    ScanSubmission,
    StartResult,
    SubmissionResult,
)
from bodyscan.sessions import ScanSessionStore, SessionStatus
from utils.postprocess import (
    format_session_info,
    format_session_result,
    format_session_summary,
)


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

log_handlers: List[logging.Handler] = [logging.StreamHandler()]
if config.LOG_FILE:
    os.makedirs(os.path.dirname(config.LOG_FILE) or ".", exist_ok=True)
    log_handlers.append(logging.FileHandler(config.LOG_FILE))

logging.basicConfig(
    level=logging.DEBUG if config.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=log_handlers,
)

logger = logging.getLogger(__name__)


# ============================================================================
# MIDDLEWARE
# ============================================================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing information."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(f"Response: {request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s")

        return response


# ============================================================================
# INITIALIZE FASTAPI APP
# ============================================================================

app = FastAPI(
    title=config.APP_NAME,
    description="Single-use scan links for body measurement capture",
    version=config.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def error_response(request: Request, code: int, reason: str, message: str, **extra) -> JSONResponse:
    """Consistent error envelope for every failure."""
    error = {
        "code": code,
        "reason": reason,
        "message": message,
        "path": str(request.url.path),
    }
    error.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=code, content={"status": "error", "error": error})


@app.exception_handler(BodyScanError)
async def bodyscan_exception_handler(request: Request, exc: BodyScanError):
    """Handle domain errors with their subject-facing message."""
    logger.warning(f"{exc.reason} on {request.url.path}: {exc.message}")
    extra = {}
    if isinstance(exc, SessionNotWritable):
        extra["why"] = exc.why
    if isinstance(exc, ValidationError):
        extra["field"] = exc.field
    return error_response(request, exc.status_code, exc.reason, exc.message, **extra)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent format."""
    logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return error_response(request, exc.status_code, "HTTPError", str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors."""
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return error_response(
        request, 422, "ValidationError", "Validation error", details=errors
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error on {request.url.path}: {str(exc)}")
    return error_response(
        request,
        500,
        "InternalError",
        "Internal server error" if not config.DEBUG else str(exc),
    )


# ============================================================================
# SESSION STORAGE
# ============================================================================

# In-memory session storage (use a shared database in production)
store = ScanSessionStore()


def get_store() -> ScanSessionStore:
    return store


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def validate_link_code(link_code: str) -> str:
    """Reject obviously malformed codes before any lookup."""
    if not link_code or len(link_code) < config.MIN_LINK_CODE_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid scan code")
    return link_code


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.get("/")
def root():
    """Health check endpoint.

    Returns basic information about the API status and version.
    """
    logger.info("Health check accessed")
    return {
        "status": "ok",
        "message": f"{config.APP_NAME} backend is running",
        "version": config.APP_VERSION,
        "endpoints": {
            "docs": "/docs",
            "scan": "/scan/{link_code}",
            "scan_start": "/scan/{link_code}/start",
            "scan_fail": "/scan/{link_code}/fail",
            "sessions": "/sessions",
            "session_result": "/sessions/{link_code}/result",
        },
    }


# ----------------------------------------------------------------------------
# Subject device
# ----------------------------------------------------------------------------

@app.get("/scan/{link_code}")
async def scan_get(link_code: str, store: ScanSessionStore = Depends(get_store)):
    """Validate a scan link and describe it to the subject.

    Args:
        link_code: Code from the scan link

    Returns:
        JSONResponse with the effective status (expiry applied), the
        designer and client display names while the link is open, and a
        message for terminal states. Never includes measurements.

    Raises:
        LinkNotFound: If the code is unknown (404)
    """
    session = store.get(validate_link_code(link_code))
    logger.info(f"Scan link {link_code} read: {session.status.value}")
    return JSONResponse(format_session_info(session).to_json())


@app.post("/scan/{link_code}/start")
async def scan_start(link_code: str, store: ScanSessionStore = Depends(get_store)):
    """Mark the session as being captured on a device (advisory).

    Returns:
        JSONResponse with ``claimed`` False when another device got there first
    """
    claimed = store.begin_processing(validate_link_code(link_code))
    return JSONResponse(StartResult(status=SessionStatus.PROCESSING.value, claimed=claimed).to_json())


@app.post("/scan/{link_code}")
async def scan_submit(
    link_code: str,
    submission: ScanSubmission,
    store: ScanSessionStore = Depends(get_store),
):
    """Commit measurements for a scan link.

    The write succeeds at most once per link: only while the session is
    pending or processing and before it expires.

    Args:
        link_code: Code from the scan link
        submission: Measurements, confidence, height and gender, plus guest
            identity for quick scans

    Returns:
        JSONResponse with the completed status and any plausibility warnings

    Raises:
        SessionNotWritable: If the session is already terminal or expired (409)
    """
    session = store.complete(validate_link_code(link_code), submission)
    result = SubmissionResult(
        status=session.status.value,
        session_id=session.id,
        low_confidence=bool(session.low_confidence),
        warnings=session.warnings,
    )
    return JSONResponse(result.to_json())


@app.post("/scan/{link_code}/fail")
async def scan_fail(
    link_code: str,
    report: FailureReport,
    store: ScanSessionStore = Depends(get_store),
):
    """Record an unrecoverable device-side failure; the link is then spent."""
    session = store.fail(validate_link_code(link_code), report.reason)
    return JSONResponse({"status": session.status.value})


# ----------------------------------------------------------------------------
# Designer side
# ----------------------------------------------------------------------------

@app.post("/sessions", status_code=201)
async def session_create(body: CreateSessionRequest, store: ScanSessionStore = Depends(get_store)):
    """Issue a new scan link, for an existing client or as a quick scan."""
    ttl = timedelta(hours=body.ttl_hours) if body.ttl_hours else None
    session = store.create_session(
        designer_id=body.designer_id,
        designer_name=body.designer_name,
        business_name=body.business_name,
        client_id=body.client_id,
        client_name=body.client_name,
        client_gender=body.client_gender,
        ttl=ttl,
    )
    summary = format_session_summary(session, config.APP_URL)
    return JSONResponse(summary.to_json(), status_code=201)


@app.get("/sessions")
async def session_list(
    designer_id: str = Query(..., alias="designerId", min_length=1),
    status: Optional[SessionStatus] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    store: ScanSessionStore = Depends(get_store),
):
    """List a designer's scan sessions, newest first."""
    sessions = store.list_sessions(designer_id, status=status, limit=limit)
    return JSONResponse({
        "status": "ok",
        "sessions": [format_session_summary(s, config.APP_URL).to_json() for s in sessions],
        "total": len(sessions),
    })


@app.get("/sessions/{link_code}/result")
async def session_result(link_code: str, store: ScanSessionStore = Depends(get_store)):
    """Measurements, confidence and provenance flags of a session.

    Read-only: nothing here changes what the subject committed.
    """
    session = store.result(validate_link_code(link_code))
    return JSONResponse(format_session_result(session).to_json())


# ============================================================================
# APPLICATION STARTUP
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting {config.APP_NAME} v{config.APP_VERSION}")
    logger.info(f"Debug mode: {config.DEBUG}")
    uvicorn.run(
        "app:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level="debug" if config.DEBUG else "info"
    )
