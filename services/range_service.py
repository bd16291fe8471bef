"""
Range service for expanding "A2:A10"-style ranges into cell addresses.

Only single-column (vertical) ranges are supported.
"""

from dataclasses import dataclass
from typing import List

from services.address_service import AddressParser, CellAddress
from services.exceptions import MalformedRangeError, UnsupportedRangeError


@dataclass(frozen=True)
class CellRange:
    """Inclusive span between two addresses."""
    start: CellAddress
    end: CellAddress


class RangeExpander:
    """Parse and expand range references."""

    SEPARATOR = ':'

    @staticmethod
    def parse(range_text: str) -> CellRange:
        """
        Parse range text into its start and end addresses.

        Examples:
            A2:A10 → CellRange(A2, A10)

        Raises:
            MalformedRangeError: If the text does not split into exactly two parts
            MalformedAddressError: If either part is not a valid address
        """
        if not isinstance(range_text, str):
            raise MalformedRangeError(f"Invalid range: {range_text!r}", str(range_text))

        parts = range_text.split(RangeExpander.SEPARATOR)
        if len(parts) != 2:
            raise MalformedRangeError(f"Invalid range: {range_text!r}", range_text)

        start_text, end_text = parts
        return CellRange(
            start=AddressParser.parse(start_text),
            end=AddressParser.parse(end_text)
        )

    @staticmethod
    def expand(range_text: str) -> List[CellAddress]:
        """
        Enumerate every address covered by a vertical range, top to bottom.

        A range whose start row is below its end row covers no cells and
        yields an empty list.

        Examples:
            A2:A4 → [A2, A3, A4]
            A5:A3 → []

        Raises:
            MalformedRangeError: If the text does not split into exactly two parts
            MalformedAddressError: If either part is not a valid address
            UnsupportedRangeError: If the range spans more than one column
        """
        cell_range = RangeExpander.parse(range_text)
        start, end = cell_range.start, cell_range.end

        if start.column != end.column:
            raise UnsupportedRangeError(
                f"Only vertical ranges (e.g., A2:A10) are supported: {range_text!r}",
                range_text
            )

        return [
            CellAddress(column=start.column, row=row)
            for row in range(start.row, end.row + 1)
        ]
