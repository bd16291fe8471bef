"""
Pydantic schemas for request/response validation.

This package contains all Pydantic models used for API request validation
and response serialization.
"""

from api.schemas.common import ErrorResponse, SuccessResponse, HealthCheckResponse
from api.schemas.excel_schema import (
    CellUpdateRequest, KeyValueResponse, SectionResponse,
    UploadResponse, to_section_response
)

__all__ = [
    # Common
    'ErrorResponse',
    'SuccessResponse',
    'HealthCheckResponse',

    # Excel
    'CellUpdateRequest',
    'KeyValueResponse',
    'SectionResponse',
    'UploadResponse',
    'to_section_response',
]
