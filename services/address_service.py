"""
Address service for converting between A1-style cell references and
zero-based coordinates.

Column letters form a bijective base-26 numeral system: A=1 .. Z=26,
AA=27, with no zero digit.
"""

import re
from dataclasses import dataclass

from services.exceptions import MalformedAddressError


@dataclass(frozen=True, order=True)
class CellAddress:
    """Zero-based cell coordinate (column 0 = 'A', row 0 = '1')."""
    column: int
    row: int

    def __post_init__(self):
        if self.column < 0 or self.row < 0:
            raise ValueError(
                f"Row and column must be non-negative: row={self.row}, column={self.column}"
            )

    def __str__(self):
        return AddressParser.format(self)


class AddressParser:
    """Parse and format A1-style cell references."""

    # Letters then digits, nothing else
    ADDRESS_PATTERN = re.compile(r'^([A-Z]+)([0-9]+)$')

    @staticmethod
    def column_to_index(letters: str) -> int:
        """
        Convert column letters to a zero-based column index.

        Examples:
            A → 0
            Z → 25
            AA → 26
            AZ → 51
            BA → 52

        Raises:
            MalformedAddressError: If letters is empty or not A-Z
        """
        letters = letters.upper()
        if not letters or not letters.isalpha() or not letters.isascii():
            raise MalformedAddressError(f"Invalid column letters: {letters!r}", letters)

        col = 0
        for char in letters:
            col = col * 26 + (ord(char) - ord('A') + 1)
        return col - 1

    @staticmethod
    def index_to_column(index: int) -> str:
        """
        Convert a zero-based column index to column letters.

        Raises:
            ValueError: If index is negative
        """
        if index < 0:
            raise ValueError(f"Column index must be non-negative: {index}")

        col_letters = ''
        col_num = index + 1

        while col_num > 0:
            col_num -= 1  # no zero digit
            col_letters = chr(ord('A') + (col_num % 26)) + col_letters
            col_num //= 26

        return col_letters

    @staticmethod
    def parse(text: str) -> CellAddress:
        """
        Parse an address such as "B12" into a CellAddress.

        Lower-case letters and leading zeros in the row are accepted.

        Examples:
            A1 → CellAddress(column=0, row=0)
            b24 → CellAddress(column=1, row=23)
            AA0100 → CellAddress(column=26, row=99)

        Raises:
            MalformedAddressError: If the text is not letters followed by
                                   digits, or the row number is not positive
        """
        if not isinstance(text, str):
            raise MalformedAddressError(f"Invalid cell reference: {text!r}", str(text))

        match = AddressParser.ADDRESS_PATTERN.match(text.strip().upper())
        if not match:
            raise MalformedAddressError(f"Invalid cell reference: {text!r}", text)

        col_letters, row_str = match.groups()
        row_num = int(row_str)
        if row_num < 1:
            raise MalformedAddressError(
                f"Invalid cell reference: {text!r} (row must be positive)", text
            )

        return CellAddress(
            column=AddressParser.column_to_index(col_letters),
            row=row_num - 1
        )

    @staticmethod
    def format(address: CellAddress) -> str:
        """Format a CellAddress as an A1-style reference."""
        return f"{AddressParser.index_to_column(address.column)}{address.row + 1}"

    @staticmethod
    def canonicalize(text: str) -> str:
        """Upper-case the letters and strip leading zeros from the row."""
        return AddressParser.format(AddressParser.parse(text))
