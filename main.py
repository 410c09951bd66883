"""Vocalog - speech-to-text transcription API."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.errors import INTERNAL_ERROR, VALIDATION_FAILED
from app.rate_limit import limiter
from app.routers import auth_router, transcriptions_router, users_router
from app.services.deepgram import DeepgramClient

APP_NAME = "vocalog"
APP_VERSION = "0.1.0"

# Logging
logger = logging.getLogger("vocalog")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    for warning in settings.validate():
        logger.warning(warning)

    # One provider client for the whole process, handed to requests through a dependency
    app.state.transcription_provider = DeepgramClient.from_settings(settings)
    logger.info("Starting %s %s (%s)", APP_NAME, APP_VERSION, settings.APP_ENV)
    try:
        yield
    finally:
        await app.state.transcription_provider.aclose()
        logger.info("Transcription provider client closed")


app = FastAPI(title="Vocalog", version=APP_VERSION, lifespan=lifespan)
app.state.limiter = limiter


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        return response


# --- Request size limit middleware ---
class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    # Slightly above the upload cap to leave room for multipart framing
    OVERHEAD_BYTES = 5 * 1024 * 1024

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")
        max_body = get_settings().max_upload_bytes + self.OVERHEAD_BYTES
        if content_length and content_length.isdigit() and int(content_length) > max_body:
            return JSONResponse(status_code=413, content={"detail": "Request body too large"})
        return await call_next(request)


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PATHS = ("/api/register", "/api/login", "/api/auth/", "/api/user/", "/api/transcriptions")

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        # Log sensitive operations
        path = request.url.path
        method = request.method
        if method in ("POST", "PUT", "DELETE") and path.startswith(self.AUDIT_PATHS):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(AuditLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(transcriptions_router)


# --- Rate limit error handler ---
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Handle rate limit exceeded."""
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded. Try again later."})


# --- HTTP errors: JSON body with optional machine-readable code ---
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as JSON, including the error code when there is one."""
    content: dict = {"detail": exc.detail}
    code = getattr(exc, "code", None)
    if code:
        content["code"] = code
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


# --- Request validation: 400 with field-level errors ---
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed input as 400 with one entry per offending field."""
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        errors.append({"field": ".".join(loc) or "request", "message": error.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "code": VALIDATION_FAILED, "errors": errors},
    )


# --- Anything else: 500, details only in development ---
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    detail = str(exc) if get_settings().is_development else "Internal server error"
    return JSONResponse(status_code=500, content={"detail": detail, "code": INTERNAL_ERROR})


# --- Health check ---
@app.get("/api/health")
def health_check(request: Request) -> dict:
    """Health check endpoint."""
    provider = getattr(request.app.state, "transcription_provider", None)
    return {
        "status": "ok",
        "app": APP_NAME,
        "version": APP_VERSION,
        "environment": get_settings().APP_ENV,
        "transcriptionProviderConfigured": bool(provider and provider.health_check()),
    }
