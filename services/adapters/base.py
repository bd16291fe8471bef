"""
Cell fact adapter interface.

An adapter hides one spreadsheet backend behind a small set of primitive
operations. The extraction engine only ever talks to this interface and
never branches on which backend is in use.
"""

from abc import ABC, abstractmethod
from typing import Any, Union

from services.address_service import CellAddress
from services.exceptions import UnsupportedOperationError
from services.models import CellFact

SheetSelector = Union[str, int]


class CellFactAdapter(ABC):
    """
    Read (and optionally write) primitive cell facts from a workbook.

    Document and sheet handles are opaque to callers; they are only passed
    back into the adapter that produced them.
    """

    # Backend name used in configuration
    name: str = 'base'

    # Whether open_for_write / set_cell_value / save are available
    supports_write: bool = False

    @abstractmethod
    def open_for_read(self, path: str) -> Any:
        """
        Open a workbook for reading.

        Raises:
            DocumentNotFoundError: If the file does not exist
            DocumentFormatError: If the file is not a readable workbook
        """

    def open_for_write(self, path: str) -> Any:
        """
        Open a workbook for modification.

        Raises:
            UnsupportedOperationError: If this backend is read-only
        """
        raise UnsupportedOperationError(f"The '{self.name}' backend is read-only")

    @abstractmethod
    def get_sheet(self, document: Any, sheet: SheetSelector) -> Any:
        """
        Select a worksheet by name (case-insensitive) or zero-based index.

        Raises:
            SheetNotFoundError: If no such sheet exists
        """

    @abstractmethod
    def get_cell_fact(self, sheet: Any, address: CellAddress) -> CellFact:
        """Return the facts for one cell; an absent cell yields CellFact.empty()."""

    @abstractmethod
    def resolve_shared_string(self, document: Any, index: int) -> str:
        """
        Look up a shared string by index.

        Raises:
            IndexOutOfRangeError: If the index is outside the table
        """

    def set_cell_value(self, sheet: Any, address: CellAddress, text: str) -> None:
        raise UnsupportedOperationError(f"The '{self.name}' backend is read-only")

    def save(self, document: Any) -> None:
        """Persist changes, flagging the workbook for full recalculation on load."""
        raise UnsupportedOperationError(f"The '{self.name}' backend is read-only")

    def close(self, document: Any) -> None:
        """Release resources held by a document handle."""
