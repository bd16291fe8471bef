"""
openpyxl-backed cell fact adapter.

The workbook is loaded twice: once with formulas and once with the cached
values Excel stored at last save (data_only=True). openpyxl resolves shared
strings and converts date-formatted numbers to datetimes on load; this
adapter converts those back into primitive facts.
"""

import datetime
import logging
import os
import zipfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.styles.numbers import is_date_format
from openpyxl.utils.datetime import to_excel
from openpyxl.utils.exceptions import InvalidFileException

from services.address_service import CellAddress
from services.adapters.base import CellFactAdapter, SheetSelector
from services.adapters.ooxml_adapter import read_custom_formats, read_shared_strings
from services.exceptions import (
    DocumentFormatError, DocumentNotFoundError, IndexOutOfRangeError, SheetNotFoundError
)
from services.models import CellFact, CellKind

logger = logging.getLogger(__name__)


@dataclass
class OpenpyxlDocument:
    """Handle for a workbook opened through openpyxl."""
    path: str
    workbook: Any
    values_workbook: Optional[Any] = None
    shared_strings: Optional[List[str]] = None
    # Stored formatCode -> numFmtId for custom formats, read on first use
    stored_format_ids: Optional[Dict[str, int]] = None


@dataclass
class OpenpyxlSheet:
    """Handle pairing the formula and cached-value views of one worksheet."""
    worksheet: Any
    values_worksheet: Optional[Any] = None
    document: Optional[OpenpyxlDocument] = None


class OpenpyxlAdapter(CellFactAdapter):
    """Cell fact adapter on top of openpyxl; supports the write path."""

    name = 'openpyxl'
    supports_write = True

    def _load(self, path: str, data_only: bool):
        if not os.path.exists(path):
            raise DocumentNotFoundError(f"Workbook not found: {path}")

        try:
            return openpyxl.load_workbook(
                path,
                data_only=data_only,
                keep_vba=path.lower().endswith('.xlsm')
            )
        except (InvalidFileException, zipfile.BadZipFile, KeyError, TypeError, ValueError, OSError) as e:
            # openpyxl descriptors raise TypeError on malformed parts, e.g. a <fill/> without a pattern
            raise DocumentFormatError(f"Cannot read workbook {path}: {e}") from e

    def open_for_read(self, path: str) -> OpenpyxlDocument:
        logger.debug(f"Opening workbook for read: {path}")
        return OpenpyxlDocument(
            path=path,
            workbook=self._load(path, data_only=False),
            values_workbook=self._load(path, data_only=True)
        )

    def open_for_write(self, path: str) -> OpenpyxlDocument:
        logger.debug(f"Opening workbook for write: {path}")
        return OpenpyxlDocument(path=path, workbook=self._load(path, data_only=False))

    def get_sheet(self, document: OpenpyxlDocument, sheet: SheetSelector) -> OpenpyxlSheet:
        sheet_names = document.workbook.sheetnames

        if isinstance(sheet, int):
            if not 0 <= sheet < len(sheet_names):
                raise SheetNotFoundError(
                    f"Sheet index {sheet} out of range (workbook has {len(sheet_names)} sheets)"
                )
            sheet_name = sheet_names[sheet]
        else:
            matches = [name for name in sheet_names if name.lower() == str(sheet).lower()]
            if not matches:
                raise SheetNotFoundError(f"Sheet '{sheet}' not found.")
            sheet_name = matches[0]

        values_ws = None
        if document.values_workbook is not None:
            values_ws = document.values_workbook[sheet_name]

        return OpenpyxlSheet(
            worksheet=document.workbook[sheet_name],
            values_worksheet=values_ws,
            document=document
        )

    def get_cell_fact(self, sheet: OpenpyxlSheet, address: CellAddress) -> CellFact:
        key = (address.row + 1, address.column + 1)
        # Look cells up without Worksheet.cell(), which creates missing ones
        cell = sheet.worksheet._cells.get(key)

        if cell is None:
            return CellFact.empty()

        if cell.data_type != 'f':
            return self._value_fact(sheet, cell)

        # Handle ArrayFormula objects from openpyxl
        formula = cell.value.text if hasattr(cell.value, 'text') else str(cell.value)
        if formula.startswith('='):
            formula = formula[1:]

        cached = None
        if sheet.values_worksheet is not None:
            value_cell = sheet.values_worksheet._cells.get(key)
            if value_cell is not None and value_cell.value is not None:
                cached = self._value_fact(sheet, value_cell)

        return CellFact(
            kind=CellKind.FORMULA,
            formula_text=formula,
            number_format_id=self._number_format_id(sheet, cell),
            is_date_formatted=is_date_format(cell.number_format),
            cached_result=cached
        )

    def resolve_shared_string(self, document: OpenpyxlDocument, index: int) -> str:
        # openpyxl inlines shared strings on load; read the table from the package on demand
        if document.shared_strings is None:
            document.shared_strings = read_shared_strings(document.path)

        if not 0 <= index < len(document.shared_strings):
            raise IndexOutOfRangeError(
                f"Shared string index {index} out of range ({len(document.shared_strings)} entries)"
            )
        return document.shared_strings[index]

    def set_cell_value(self, sheet: OpenpyxlSheet, address: CellAddress, text: str) -> None:
        cell = sheet.worksheet.cell(row=address.row + 1, column=address.column + 1)
        cell.value = _coerce_input(text)
        logger.debug(f"Set {cell.coordinate} = {cell.value!r}")

    def save(self, document: OpenpyxlDocument) -> None:
        # Cached formula results are not written back, so ask Excel to recalculate
        calculation = document.workbook.calculation
        calculation.fullCalcOnLoad = True
        calculation.forceFullCalc = True

        try:
            document.workbook.save(document.path)
        except OSError as e:
            raise DocumentFormatError(f"Cannot save workbook {document.path}: {e}") from e
        logger.info(f"Saved workbook: {document.path}")

    def close(self, document: OpenpyxlDocument) -> None:
        document.workbook.close()
        if document.values_workbook is not None:
            document.values_workbook.close()

    def _number_format_id(self, sheet: OpenpyxlSheet, cell) -> Optional[int]:
        """
        Number format id of a cell as stored in the file.

        openpyxl keeps built-in ids but renumbers custom formats from 164 in
        order of first use, so custom ids are mapped back through the stored
        numFmts by format code.
        """
        style = getattr(cell, '_style', None)
        format_id = getattr(style, 'numFmtId', None)

        if format_id is None or format_id < 164 or sheet.document is None:
            return format_id

        return self._stored_format_ids(sheet.document).get(cell.number_format, format_id)

    @staticmethod
    def _stored_format_ids(document: OpenpyxlDocument) -> Dict[str, int]:
        if document.stored_format_ids is None:
            format_ids: Dict[str, int] = {}
            for format_id, code in sorted(read_custom_formats(document.path).items()):
                format_ids.setdefault(code, format_id)
            document.stored_format_ids = format_ids
        return document.stored_format_ids

    def _value_fact(self, sheet: OpenpyxlSheet, cell) -> CellFact:
        value = cell.value

        if value is None:
            return CellFact.empty()

        if cell.data_type == 'e':
            return CellFact(kind=CellKind.ERROR, raw_value=str(value))

        if isinstance(value, bool):
            return CellFact(kind=CellKind.BOOLEAN, raw_value=str(value))

        format_id = self._number_format_id(sheet, cell)

        if isinstance(value, (int, float)):
            return CellFact(
                kind=CellKind.NUMBER,
                raw_value=repr(value),
                number_format_id=format_id,
                is_date_formatted=is_date_format(cell.number_format)
            )

        if isinstance(value, (datetime.datetime, datetime.date, datetime.time, datetime.timedelta)):
            # Serial numbers are always expressed in the 1900 date system
            serial = to_excel(value)
            return CellFact(
                kind=CellKind.NUMBER,
                raw_value=repr(float(serial)),
                number_format_id=format_id,
                is_date_formatted=True
            )

        return CellFact(kind=CellKind.TEXT, raw_value=str(value), number_format_id=format_id)


def _coerce_input(text: str):
    """Store numeric-looking input as a number so dependent formulas stay numeric."""
    if text is None:
        return None

    stripped = text.strip()
    if not stripped:
        return text

    try:
        return int(stripped)
    except ValueError:
        pass

    try:
        number = float(stripped)
    except ValueError:
        return text

    # Keep 'nan' / 'inf' spelled out as text
    if number != number or number in (float('inf'), float('-inf')):
        return text
    return number
