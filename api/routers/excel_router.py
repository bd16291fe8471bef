"""
Excel router - Template upload and section reading.

This module provides endpoints for replacing the active template workbook,
reading its configured sections, and reading them after applying cell
updates to a working copy.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException, status

from api.config import Settings, get_settings
from api.dependencies import get_section_service, get_storage, verify_file_extension, verify_file_size
from api.schemas.excel_schema import CellUpdateRequest, SectionResponse, UploadResponse, to_section_response
from services.storage_service import StorageService
from services.workbook_service import WorkbookSectionService

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix='/excel', tags=['excel'])


def _stream_size(upload: UploadFile) -> int:
    """Size in bytes of an uploaded file, leaving the stream at the start."""
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


@router.post('/upload', response_model=UploadResponse)
def upload_template(
    file: Optional[UploadFile] = File(None, description="Template workbook (.xlsx or .xlsm)"),
    storage: StorageService = Depends(get_storage),
    settings: Settings = Depends(get_settings)
):
    """
    Upload a new active template workbook.

    The current template, if any, is renamed to a timestamped backup before
    the upload is stored. Only the newest MAX_BACKUP_FILES backups are kept.

    **Returns:**
    - 200 with the stored file name and size
    - 400 if no file was sent, the file is empty, or the extension is not allowed
    - 413 if the file exceeds MAX_FILE_SIZE_MB
    """
    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file provided."
        )

    logger.info(f"Upload request: {file.filename}")

    verify_file_extension(file.filename, settings)

    file_size = _stream_size(file)
    verify_file_size(file_size, settings)

    template_path, backup = storage.store_template(file.file)

    logger.info(f"Template stored at {template_path} ({file_size / 1024 / 1024:.2f} MB)")

    return UploadResponse(
        message=f"File uploaded successfully as {storage.template_file_name}.",
        file_name=storage.template_file_name,
        size_mb=round(file_size / 1024 / 1024, 2),
        backup=Path(backup).name if backup else None
    )


@router.get('/sections', response_model=SectionResponse)
def read_sections(service: WorkbookSectionService = Depends(get_section_service)):
    """
    Read all configured sections from the active template.

    **Returns:**
    ```json
    {"Loan": [{"KeyCell": "A2", "Key": "Rate", "ValueCell": "B2",
               "Value": "4.50%", "Formula": ""}]}
    ```
    """
    sections = service.read_sections()
    return to_section_response(sections)


@router.post('/update-excel', response_model=SectionResponse)
def update_excel(
    updates: List[CellUpdateRequest],
    service: WorkbookSectionService = Depends(get_section_service)
):
    """
    Apply cell updates to a working copy of the template and read its sections.

    The active template is never modified. Working copies older than
    FILE_RETENTION_DAYS are removed after each request.

    **Example body:**
    ```json
    [{"sheet": "Loan Sizer", "cell": "B3", "value": "0.045"}]
    ```
    """
    logger.info(f"Update request with {len(updates)} cell updates")

    sections = service.update_and_read([update.to_update() for update in updates])
    return to_section_response(sections)
