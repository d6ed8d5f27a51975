"""FastAPI application entry point."""
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .errors import ExportError
from .models import ErrorResponse
from .routes import export, packs, sessions
from .services.export_service import new_request_id
from .services.response_builder import cors_headers
from .utils.logger import logger

# Create FastAPI app
app = FastAPI(
    title="Export Gate API",
    description="Paid dataset exports: access control, record normalization and file rendering",
    version="1.0.0",
    debug=settings.debug,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Include routers
app.include_router(export.router)
app.include_router(sessions.router)
app.include_router(packs.router)


@app.exception_handler(ExportError)
async def export_error_handler(request: Request, exc: ExportError) -> JSONResponse:
    """Render every export error as a stable machine-readable body.

    Args:
        request: Incoming request
        exc: Raised export error

    Returns:
        JSON error response with CORS headers
    """
    body = ErrorResponse(
        code=exc.code,
        message=exc.message,
        request_id=exc.request_id or new_request_id(),
        timestamp=datetime.now(timezone.utc),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", by_alias=True),
        headers=cors_headers(request.headers.get("origin"), settings.allowed_origins),
    )


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint.

    Returns:
        Health status
    """
    return {"status": "healthy", "service": "exportgate"}


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint.

    Returns:
        Welcome message
    """
    return {
        "message": "Export Gate API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# Startup event
@app.on_event("startup")
async def startup_event():
    """Run on application startup."""
    logger.info("Starting Export Gate API")
    logger.info(f"Storage path: {settings.storage_path}")
    logger.info(f"Debug mode: {settings.debug}")
    if not settings.capability_token_secret:
        logger.warning("CAPABILITY_TOKEN_SECRET is not set: signed capability tokens are disabled")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Run on application shutdown."""
    logger.info("Shutting down Export Gate API")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "exportgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info",
    )
