"""
DocPilot Functions - FastAPI Main Application
"""

import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import asyncio
import httpx

from fastapi import FastAPI, HTTPException, Request, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from docpilot.config import settings, Environment
from docpilot.core.errors import CertificateError, PrescriptionGenerationError, TranscriptionError
from docpilot.core.logging import setup_logging, get_logger, audit_logger
from docpilot.core.security import get_current_user, security_manager
from docpilot.models.requests import CertificateRequest, PrescriptionRequest
from docpilot.models.responses import HealthCheckResponse, ErrorResponse, RateLimitResponse
from docpilot.services.certificate_service import CertificateRequestError, CertificateService
from docpilot.services.prescription_service import EmptyTranscriptError, PrescriptionService

# Initialize logging
setup_logging()
logger = get_logger(__name__)

# Prometheus metrics
request_count = Counter('http_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
request_duration = Histogram('http_request_duration_seconds', 'HTTP request duration')
function_duration = Histogram('function_duration_seconds', 'Function execution duration', ['function'])

# Rate limiter
limiter = Limiter(key_func=get_remote_address)

# Service instances
prescription_service = PrescriptionService()
certificate_service = CertificateService()

started_at = time.time()


def _now() -> datetime:
    return datetime.now(timezone.utc)


# --- Dependency Status Checks ---
async def check_appwrite_status() -> (str, str):
    """Checks that the Appwrite endpoint answers."""
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            response = await client.get(f"{settings.appwrite_api_endpoint.rstrip('/')}/health/version")
        if 200 <= response.status_code < 300:
            return "ok", "Appwrite API is reachable."
        return "error", f"Appwrite API returned status {response.status_code}."
    except httpx.HTTPError as e:
        return "error", f"Failed to connect to Appwrite API: {e}"

# --------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("🚀 DocPilot functions starting...")
    logger.info(f"Environment: {settings.environment.value}")
    logger.info(f"API Version: {settings.api_version}")

    yield

    logger.info("🛑 DocPilot functions shutting down...")


app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == Environment.DEVELOPMENT else None,
    redoc_url="/redoc" if settings.environment == Environment.DEVELOPMENT else None,
    debug=settings.debug,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Rate limiting
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response


@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Request tracking and Prometheus metrics"""

    start_time = time.time()
    request_id = security_manager.generate_request_id()

    request.state.request_id = request_id
    request.state.start_time = start_time

    try:
        response = await call_next(request)
    except Exception as e:
        request_count.labels(method=request.method, endpoint=request.url.path, status=500).inc()
        logger.error(f"Request {request_id} failed: {e}")
        return JSONResponse(
            status_code=500,
            content={"error": "An unexpected error occurred.", "details": str(e)},
            headers={"X-Request-ID": request_id},
        )

    duration = time.time() - start_time
    request_count.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()
    request_duration.observe(duration)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Processing-Time"] = f"{duration:.3f}s"
    audit_logger.log_api_request(
        request_id=request_id,
        endpoint=request.url.path,
        method=request.method,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
        status=response.status_code,
    )
    return response


@app.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """Service health check"""

    return HealthCheckResponse(
        status="healthy",
        timestamp=_now(),
        version=settings.api_version,
        uptime_seconds=int(time.time() - started_at),
    )


@app.get("/ready")
async def readiness_check():
    """
    Checks if the service and its dependencies are ready to accept traffic.
    Returns 200 OK if all checks pass, otherwise 503 Service Unavailable.
    """
    checks = {
        "appwrite": check_appwrite_status(),
    }

    results = await asyncio.gather(*checks.values())

    details = {}
    all_ok = True
    for name, (check_status, message) in zip(checks.keys(), results):
        details[name] = {"status": check_status, "message": message}
        if check_status != "ok":
            all_ok = False

    response_data = {
        "status": "ready" if all_ok else "unavailable",
        "timestamp": _now().isoformat(),
        "version": settings.api_version,
        "details": details,
    }

    if all_ok:
        return JSONResponse(status_code=status.HTTP_200_OK, content=response_data)
    logger.warning(f"Readiness check failed: {details}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response_data)


@app.get("/metrics")
async def metrics():
    """Prometheus metrics"""
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Metrics disabled")

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def _error(status_code: int, error: str, details=None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.post(
    "/v1/prescriptions",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": RateLimitResponse},
        500: {"model": ErrorResponse},
    },
)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def create_prescription(
    request: Request,
    body: PrescriptionRequest,
    user_info: dict = Depends(get_current_user),
):
    """
    Transcribes the consultation at audioUrl and returns a structured prescription.
    """
    request_id = request.state.request_id

    if not body.audio_url:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing audioUrl in the request body.")

    logger.info(f"[{request_id}] Received audio URL: {body.audio_url}")
    with function_duration.labels(function="prescriptions").time():
        try:
            prescription = await prescription_service.prescribe(request_id, body.audio_url)
        except EmptyTranscriptError:
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Received empty or malformed transcription.")
        except TranscriptionError as e:
            logger.error(f"[{request_id}] Transcription error: {e}")
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to transcribe audio.", str(e))
        except PrescriptionGenerationError as e:
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate structured prescription.", str(e)
            )

    return JSONResponse(status_code=status.HTTP_200_OK, content=prescription.model_dump(mode="json"))


@app.post(
    "/v1/certificates",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        429: {"model": RateLimitResponse},
        500: {"model": ErrorResponse},
    },
)
@limiter.limit(f"{settings.rate_limit_requests}/minute")
async def create_certificate(
    request: Request,
    body: CertificateRequest,
    user_info: dict = Depends(get_current_user),
):
    """
    Generates a PFX certificate for a doctor and uploads it to Appwrite storage.
    """
    request_id = request.state.request_id

    with function_duration.labels(function="certificates").time():
        try:
            result = await certificate_service.issue(request_id, body)
        except CertificateRequestError as e:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"success": False, "error": str(e)},
            )
        except CertificateError as e:
            logger.error(f"[{request_id}] Certificate generation failed: {e}")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "error": str(e)},
            )

    return JSONResponse(status_code=status.HTTP_200_OK, content=result.model_dump(mode="json", by_alias=True))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Custom rate limit error handler"""

    retry_after = settings.rate_limit_window
    response = RateLimitResponse(
        message="Too many requests. Please try again later.",
        retry_after=retry_after,
        limit=settings.rate_limit_requests,
        window=settings.rate_limit_window,
        timestamp=_now(),
    )

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=response.model_dump(mode="json"),
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors"""

    request_id = getattr(request.state, 'request_id', 'unknown')

    audit_logger.log_error(
        request_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred.", "details": str(exc)},
        headers={"X-Request-ID": request_id},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "docpilot.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == Environment.DEVELOPMENT
    )
