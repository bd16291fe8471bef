"""
Dependency injection utilities for FastAPI.

This module provides reusable dependencies for storage, section
configuration and the workbook section service.
"""

import logging
from pathlib import Path

from fastapi import Depends, HTTPException, status

from api.config import Settings, get_settings
from services.adapters import get_adapter, OpenpyxlAdapter
from services.number_format_service import NumberFormatter
from services.recalc_service import LibreOfficeRecalculator
from services.section_config import load_section_configs
from services.storage_service import StorageService
from services.workbook_service import WorkbookSectionService

logger = logging.getLogger(__name__)


def get_storage(settings: Settings = Depends(get_settings)) -> StorageService:
    """Get template storage configured from settings."""
    return StorageService(
        template_dir=settings.TEMPLATE_DIR,
        template_file_name=settings.TEMPLATE_FILE_NAME,
        work_dir_name=settings.WORK_DIR_NAME,
        max_backup_files=settings.MAX_BACKUP_FILES
    )


def get_section_service(
    settings: Settings = Depends(get_settings),
    storage: StorageService = Depends(get_storage)
) -> WorkbookSectionService:
    """
    Get workbook section service.

    Section definitions are re-read from SECTIONS_FILE on every request so
    edits take effect without a restart.

    Usage:
        @app.get("/endpoint")
        def endpoint(service: WorkbookSectionService = Depends(get_section_service)):
            return service.read_sections()
    """
    read_adapter = get_adapter(settings.SPREADSHEET_BACKEND)
    write_adapter = read_adapter if read_adapter.supports_write else OpenpyxlAdapter()

    recalculator = None
    if settings.RECALC_ENABLED:
        recalculator = LibreOfficeRecalculator(settings.RECALC_COMMAND, settings.RECALC_TIMEOUT)

    return WorkbookSectionService(
        sections=load_section_configs(settings.SECTIONS_FILE),
        storage=storage,
        read_adapter=read_adapter,
        write_adapter=write_adapter,
        sheet=settings.SHEET_NAME if settings.SHEET_NAME else 0,
        formatter=NumberFormatter(settings.CURRENCY_SYMBOL),
        recalculator=recalculator,
        file_retention_days=settings.FILE_RETENTION_DAYS
    )


def verify_file_size(file_size: int, settings: Settings) -> bool:
    """
    Verify uploaded file size is within limit.

    Args:
        file_size: File size in bytes
        settings: Application settings

    Returns:
        True if size is acceptable

    Raises:
        HTTPException: If file is empty or too large
    """
    if file_size == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file provided."
        )

    if not StorageService.validate_file_size(file_size, settings.MAX_FILE_SIZE_MB):
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size ({file_size / 1024 / 1024:.1f} MB) exceeds maximum allowed "
                   f"({settings.MAX_FILE_SIZE_MB} MB)"
        )

    return True


def verify_file_extension(filename: str, settings: Settings) -> bool:
    """
    Verify file has allowed extension.

    Args:
        filename: Name of uploaded file
        settings: Application settings

    Returns:
        True if extension is allowed

    Raises:
        HTTPException: If extension is not allowed
    """
    if not StorageService.validate_file_extension(filename or '', settings.ALLOWED_EXTENSIONS):
        ext = Path(filename or '').suffix.lower()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File extension '{ext}' not allowed. "
                   f"Allowed extensions: {', '.join(settings.ALLOWED_EXTENSIONS)}"
        )

    return True
