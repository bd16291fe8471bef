"""
Workbook Section Service - Framework-agnostic update-then-read workflow.

This module ties together template storage, the write path of a cell fact
adapter, optional recalculation and section extraction, with progress
callback support for API and CLI integration.
"""

import logging
from typing import Callable, Optional, Sequence

from services.adapters.base import CellFactAdapter, SheetSelector
from services.address_service import AddressParser
from services.exceptions import UnsupportedOperationError
from services.models import CellUpdate, SectionConfig, SectionMap
from services.number_format_service import NumberFormatter
from services.section_service import SectionExtractor
from services.storage_service import DEFAULT_FILE_RETENTION_DAYS, StorageService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float, str], None]


class WorkbookSectionService:
    """
    Read configured sections from the template workbook, optionally after
    applying cell updates to a private working copy.
    """

    def __init__(
        self,
        sections: Sequence[SectionConfig],
        storage: StorageService,
        read_adapter: CellFactAdapter,
        write_adapter: Optional[CellFactAdapter] = None,
        sheet: SheetSelector = 0,
        formatter: Optional[NumberFormatter] = None,
        recalculator=None,
        file_retention_days: int = DEFAULT_FILE_RETENTION_DAYS,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """
        Initialize workbook section service.

        Args:
            sections: Section definitions, in output order
            storage: Template storage
            read_adapter: Adapter used to read sections
            write_adapter: Adapter used to apply updates (default: read_adapter)
            sheet: Sheet name or zero-based index to read sections from
            formatter: Number formatter for display values
            recalculator: Optional object with recalculate(path) run after updates
            file_retention_days: Age after which working copies are deleted
            progress_callback: Optional callback for progress updates
                               Signature: callback(stage: str, percent: float, message: str)
        """
        self.sections = list(sections)
        self.storage = storage
        self.read_adapter = read_adapter
        self.write_adapter = write_adapter or read_adapter
        self.sheet = sheet
        self.recalculator = recalculator
        self.file_retention_days = file_retention_days
        self.progress_callback = progress_callback or (lambda *args: None)

        self.extractor = SectionExtractor(read_adapter, formatter)

    def _emit_progress(self, stage: str, percent: float, message: str):
        """Emit progress update via callback."""
        self.progress_callback(stage, percent, message)
        logger.info(f"Progress: {stage} ({percent:.1f}%) - {message}")

    def read_sections(self, path: Optional[str] = None) -> SectionMap:
        """
        Extract all configured sections from a workbook.

        Args:
            path: Workbook to read (default: the active template)

        Returns:
            Section name -> entries
        """
        path = path or str(self.storage.template_path)
        self._emit_progress('reading', 70, f"Reading sections from {path}")

        document = self.read_adapter.open_for_read(path)
        try:
            sheet = self.read_adapter.get_sheet(document, self.sheet)
            return self.extractor.extract(document, sheet, self.sections)
        finally:
            self.read_adapter.close(document)

    def apply_updates(self, path: str, updates: Sequence[CellUpdate]) -> None:
        """
        Write cell values into a workbook and save it for recalculation.

        Raises:
            UnsupportedOperationError: If the write adapter is read-only
            MalformedAddressError: If an update's cell reference is invalid
            SheetNotFoundError: If an update targets an unknown sheet
        """
        if not updates:
            return

        if not self.write_adapter.supports_write:
            raise UnsupportedOperationError(
                f"The '{self.write_adapter.name}' backend cannot apply updates"
            )

        # Validate every reference before touching the file
        targets = [(update, AddressParser.parse(update.cell)) for update in updates]

        document = self.write_adapter.open_for_write(path)
        try:
            for update, address in targets:
                sheet = self.write_adapter.get_sheet(document, update.sheet)
                self.write_adapter.set_cell_value(sheet, address, update.value)
                logger.info(f"Updated cell {update.cell} in sheet {update.sheet} with value '{update.value}'")
            self.write_adapter.save(document)
        finally:
            self.write_adapter.close(document)

        if self.recalculator is not None:
            self._emit_progress('recalculating', 50, "Recalculating formulas")
            self.recalculator.recalculate(path)

    def update_and_read(self, updates: Sequence[CellUpdate]) -> SectionMap:
        """
        Apply updates to a fresh working copy of the template and read it back.

        The template itself is never modified. Working copies older than the
        retention period are removed afterwards.

        Returns:
            Section name -> entries, as read from the updated copy
        """
        self._emit_progress('copying', 10, "Creating working copy")
        working_copy = self.storage.create_working_copy()

        self._emit_progress('updating', 30, f"Applying {len(updates)} updates")
        self.apply_updates(working_copy, updates)

        result = self.read_sections(working_copy)
        logger.info(f"Successfully read section data from: {working_copy}")

        self._emit_progress('cleanup', 90, "Removing old working copies")
        self.storage.cleanup_old_files(self.storage.work_dir, self.file_retention_days)

        self._emit_progress('complete', 100, f"Read {len(result)} sections")
        return result
