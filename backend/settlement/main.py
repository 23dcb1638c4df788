"""Main FastAPI application."""

import logging
import uuid

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement.config import settings
from settlement.core.errors import SettlementError
from settlement.api import quotes, transfers, funding, payouts, ledger, reconciliation, events

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Create FastAPI app
app = FastAPI(
    title="Settlement API",
    version="1.0.0",
    description="Crypto-funded transfers settled as ETB payouts, with funding confirmation, payout orchestration and reconciliation"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Attach a request id to every request and echo it back."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or f"req_{uuid.uuid4().hex}"
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Include routers
app.include_router(quotes.router, prefix=settings.API_V1_PREFIX)
app.include_router(transfers.router, prefix=settings.API_V1_PREFIX)
app.include_router(funding.router, prefix=settings.API_V1_PREFIX)
app.include_router(payouts.router, prefix=settings.API_V1_PREFIX)
app.include_router(ledger.router, prefix=settings.API_V1_PREFIX)
app.include_router(reconciliation.router, prefix=settings.API_V1_PREFIX)
app.include_router(
    events.router,
    prefix=f"{settings.API_V1_PREFIX}/internal",
    tags=["events"]
)


@app.on_event("startup")
async def startup():
    """Application startup tasks."""
    logger.info(f"Settlement API starting (environment: {settings.ENVIRONMENT})")


@app.on_event("shutdown")
async def shutdown():
    """Application shutdown tasks."""
    logger.info("Settlement API shutting down")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Settlement API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }


def _request_id(request: Request):
    return getattr(request.state, "request_id", None)


# Global exception handlers
@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError):
    """Map domain errors to their HTTP status with the error envelope."""
    if exc.status_code >= 500:
        logger.error(f"[{_request_id(request)}] {exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.to_detail(_request_id(request))},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as INVALID_PAYLOAD."""
    errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]
    detail = {
        "code": "INVALID_PAYLOAD",
        "message": errors[0]["msg"] if errors else "Invalid request payload.",
        "details": {"errors": errors},
    }
    request_id = _request_id(request)
    if request_id:
        detail["request_id"] = request_id
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"[{_request_id(request)}] Unhandled error on {request.method} {request.url.path}",
        exc_info=exc,
    )
    detail = {"code": "INTERNAL_ERROR", "message": "Internal server error."}
    request_id = _request_id(request)
    if request_id:
        detail["request_id"] = request_id
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": detail})
