"""
Exception hierarchy for the section extraction service.

Address and range errors signal a configuration mistake and abort an
extraction run. Adapter errors come from the workbook backend and are
propagated unchanged.
"""

from typing import Optional


class ExcelSectionError(Exception):
    """Base class for all errors raised by the service layer."""


class CellReferenceError(ExcelSectionError, ValueError):
    """
    Base class for address and range errors.

    The section extractor attaches the section name and the range text it
    was expanding, so the caller sees which configuration entry is broken.
    """

    def __init__(self, message: str, text: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.text = text
        self.section: Optional[str] = None
        self.range_text: Optional[str] = None

    def attach_context(self, section: str, range_text: str):
        """Record the section and range being processed when this was raised."""
        self.section = section
        self.range_text = range_text
        return self

    def __str__(self):
        if self.section is None:
            return self.message
        return f"Section '{self.section}' range '{self.range_text}': {self.message}"


class MalformedAddressError(CellReferenceError):
    """Address text is not letters followed by a positive row number."""


class MalformedRangeError(CellReferenceError):
    """Range text does not split into exactly two address texts."""


class UnsupportedRangeError(CellReferenceError):
    """Range spans more than one column."""


class AdapterError(ExcelSectionError):
    """Base class for errors raised by cell fact adapters."""


class DocumentNotFoundError(AdapterError, FileNotFoundError):
    """Workbook file does not exist."""


class DocumentFormatError(AdapterError):
    """Workbook file could not be parsed."""


class SheetNotFoundError(AdapterError, LookupError):
    """Requested worksheet does not exist in the workbook."""


class IndexOutOfRangeError(AdapterError, IndexError):
    """Shared string index is outside the shared string table."""


class UnsupportedOperationError(AdapterError):
    """Adapter does not provide the requested capability."""


class ConfigurationError(ExcelSectionError, ValueError):
    """Section configuration is missing or invalid."""


class RecalculationError(ExcelSectionError):
    """External recalculation of a workbook failed."""
