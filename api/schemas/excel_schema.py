"""
Excel section Pydantic schemas.

This module contains schemas for cell update requests and extracted
key/value sections.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from services.models import CellUpdate, KeyValueEntry, SectionMap


class CellUpdateRequest(BaseModel):
    """A single cell value to write before reading sections."""

    sheet: str = Field(..., min_length=1, description="Worksheet name")
    cell: str = Field(..., min_length=1, description="Cell address (e.g., B12)")
    value: str = Field("", description="New cell value")

    def to_update(self) -> CellUpdate:
        return CellUpdate(sheet=self.sheet, cell=self.cell, value=self.value)

    class Config:
        json_schema_extra = {
            "example": {
                "sheet": "Loan Sizer",
                "cell": "B3",
                "value": "0.045"
            }
        }


class KeyValueResponse(BaseModel):
    """One extracted key/value pair."""

    key_cell: str = Field(..., alias="KeyCell", description="Address of the key cell")
    key: str = Field(..., alias="Key", description="Key text")
    value_cell: str = Field(..., alias="ValueCell", description="Address of the value cell")
    value: Optional[str] = Field(None, alias="Value", description="Display value")
    formula: str = Field("", alias="Formula", description="Formula of the value cell, if any")

    @classmethod
    def from_entry(cls, entry: KeyValueEntry) -> 'KeyValueResponse':
        return cls(**entry.to_dict())

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "KeyCell": "A2",
                "Key": "Rate",
                "ValueCell": "B2",
                "Value": "4.50%",
                "Formula": ""
            }
        }


# Section name -> entries
SectionResponse = Dict[str, List[KeyValueResponse]]


def to_section_response(sections: SectionMap) -> SectionResponse:
    """Convert a SectionMap into response models, keeping section order."""
    return {
        name: [KeyValueResponse.from_entry(entry) for entry in entries]
        for name, entries in sections.items()
    }


class UploadResponse(BaseModel):
    """Response after a template upload."""

    message: str = Field(..., description="Result message")
    file_name: str = Field(..., description="Stored template file name")
    size_mb: float = Field(..., description="Stored file size in MB")
    backup: Optional[str] = Field(None, description="Name of the backup of the previous template")

    class Config:
        json_schema_extra = {
            "example": {
                "message": "File uploaded successfully as Unitas.xlsx.",
                "file_name": "Unitas.xlsx",
                "size_mb": 0.42,
                "backup": "Unitas_20250115_093000.xlsx"
            }
        }
