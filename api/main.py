"""
FastAPI application for the Excel section reader.

This module creates and configures the FastAPI application, registering
routers, exception handlers and middleware.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import Settings, get_settings, settings
from api.dependencies import get_storage
from api.routers import excel_router
from api.schemas.common import ErrorResponse, HealthCheckResponse
from services.exceptions import (
    CellReferenceError, ConfigurationError, DocumentFormatError,
    DocumentNotFoundError, ExcelSectionError, SheetNotFoundError
)
from services.section_config import load_section_configs
from services.storage_service import StorageService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")
    logger.info(f"Spreadsheet backend: {settings.SPREADSHEET_BACKEND}")
    logger.info(f"Sections file: {settings.SECTIONS_FILE}")

    # Ensure template directory exists
    os.makedirs(settings.TEMPLATE_DIR, exist_ok=True)
    logger.info(f"Template directory: {settings.TEMPLATE_DIR}")

    yield

    # Shutdown
    logger.info("Shutting down application")


# Create FastAPI application
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS
)


# Exception handlers

def _error_response(request: Request, status_code: int, error: str,
                    detail: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error,
            detail=detail,
            path=str(request.url)
        ).model_dump(mode='json')
    )


@app.exception_handler(CellReferenceError)
async def cell_reference_exception_handler(request: Request, exc: CellReferenceError):
    """Handle malformed or unsupported addresses and ranges."""
    logger.error(f"Invalid cell reference: {exc}")

    detail = {'text': exc.text}
    if exc.section is not None:
        detail.update({'section': exc.section, 'range': exc.range_text})

    return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), detail)


@app.exception_handler(ConfigurationError)
async def configuration_exception_handler(request: Request, exc: ConfigurationError):
    """Handle missing or invalid section configuration."""
    logger.error(f"Configuration error: {exc}")
    return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc))


@app.exception_handler(DocumentNotFoundError)
@app.exception_handler(SheetNotFoundError)
async def not_found_exception_handler(request: Request, exc: ExcelSectionError):
    """Handle a missing template workbook or worksheet."""
    logger.error(f"Not found: {exc}")
    return _error_response(request, status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(DocumentFormatError)
async def document_format_exception_handler(request: Request, exc: DocumentFormatError):
    """Handle workbooks that cannot be parsed."""
    logger.error(f"Unreadable workbook: {exc}")
    return _error_response(request, status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        {"message": str(exc)} if settings.DEBUG else None
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 Not Found errors."""
    return _error_response(
        request,
        status.HTTP_404_NOT_FOUND,
        "Resource not found",
        {"path": str(request.url)}
    )


# Register routers with API prefix
app.include_router(excel_router.router, prefix=settings.API_PREFIX)


# Root endpoints

@app.get('/', include_in_schema=False)
async def root():
    """Service banner with links to the docs and the section endpoints."""
    return {
        'message': f'Welcome to {settings.API_TITLE}',
        'version': settings.API_VERSION,
        'docs': '/docs',
        'sections': f'{settings.API_PREFIX}/excel/sections',
        'update': f'{settings.API_PREFIX}/excel/update-excel',
        'upload': f'{settings.API_PREFIX}/excel/upload'
    }


@app.get('/health', response_model=HealthCheckResponse, tags=['health'])
def health_check(
    storage: StorageService = Depends(get_storage),
    app_settings: Settings = Depends(get_settings)
):
    """
    Health check endpoint.

    Checks:
    - Active template workbook is present
    - Section configuration loads

    **Example:**
    ```bash
    curl http://localhost:8000/health
    ```
    """
    health_status = {
        'status': 'healthy',
        'version': app_settings.API_VERSION,
        'template': 'unknown',
        'sections': 'unknown'
    }

    if storage.has_template():
        health_status['template'] = 'present'
    else:
        health_status['template'] = 'missing'
        health_status['status'] = 'degraded'

    try:
        sections = load_section_configs(app_settings.SECTIONS_FILE)
        health_status['sections'] = f'{len(sections)} sections'
    except ConfigurationError as e:
        logger.error(f"Section configuration check failed: {e}")
        health_status['sections'] = 'invalid'
        health_status['status'] = 'unhealthy'

    return HealthCheckResponse(**health_status)


@app.get('/api/ping', tags=['health'])
async def ping():
    """
    Simple ping endpoint for load balancers.

    **Returns:**
    ```json
    {"ping": "pong"}
    ```
    """
    return {'ping': 'pong'}


# Middleware for request logging

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} - {response.status_code}")
    return response


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(
        'api.main:app',
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
