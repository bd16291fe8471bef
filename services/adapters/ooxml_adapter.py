"""
Read-only cell fact adapter that parses the .xlsx package parts directly.

XLSX files are ZIP archives containing XML parts:
- xl/workbook.xml: sheet names and relationship ids
- xl/_rels/workbook.xml.rels: relationship id -> worksheet part
- xl/sharedStrings.xml: the shared string table
- xl/styles.xml: cell formats (cellXfs) and custom number formats
- xl/worksheets/sheetN.xml: cells, e.g. <c r="B2" s="3" t="s"><v>7</v></c>

Unlike openpyxl, this adapter reports shared string indices and style
number format ids exactly as stored in the file.
"""

import logging
import os
import zipfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from openpyxl.formula.translate import Translator
from openpyxl.styles.numbers import BUILTIN_FORMATS, is_date_format

from services.address_service import AddressParser, CellAddress
from services.adapters.base import CellFactAdapter, SheetSelector
from services.exceptions import (
    DocumentFormatError, DocumentNotFoundError, IndexOutOfRangeError,
    MalformedAddressError, SheetNotFoundError
)
from services.models import CellFact, CellKind

logger = logging.getLogger(__name__)

WORKBOOK_PART = 'xl/workbook.xml'
WORKBOOK_RELS_PART = 'xl/_rels/workbook.xml.rels'
SHARED_STRINGS_PART = 'xl/sharedStrings.xml'
STYLES_PART = 'xl/styles.xml'

# Days between the 1900 and 1904 date system epochs
DATE_1904_OFFSET = 1462


def _local_tag(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def _children(elem: ET.Element, name: str) -> List[ET.Element]:
    return [child for child in elem if _local_tag(child.tag) == name]


def _first_child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for child in elem:
        if _local_tag(child.tag) == name:
            return child
    return None


def _joined_text(elem: ET.Element) -> str:
    """Concatenate <t> runs, skipping phonetic hints (<rPh>)."""
    parts = []
    for child in elem:
        tag = _local_tag(child.tag)
        if tag == 't':
            parts.append(child.text or '')
        elif tag == 'r':
            parts.extend(t.text or '' for t in _children(child, 't'))
    return ''.join(parts)


def _open_archive(path: str) -> zipfile.ZipFile:
    if not os.path.exists(path):
        raise DocumentNotFoundError(f"Workbook not found: {path}")
    try:
        return zipfile.ZipFile(path, 'r')
    except (zipfile.BadZipFile, OSError) as e:
        raise DocumentFormatError(f"Invalid XLSX file (not a valid ZIP): {path}") from e


def _parse_part(archive: zipfile.ZipFile, part: str) -> Optional[ET.Element]:
    """Parse an XML part, or return None if the package does not contain it."""
    if part not in archive.namelist():
        return None
    try:
        return ET.fromstring(archive.read(part))
    except ET.ParseError as e:
        raise DocumentFormatError(f"Malformed XML in {part}: {e}") from e


def _shared_strings_from_archive(archive: zipfile.ZipFile) -> List[str]:
    root = _parse_part(archive, SHARED_STRINGS_PART)
    if root is None:
        return []
    return [_joined_text(si) for si in _children(root, 'si')]


def read_shared_strings(path: str) -> List[str]:
    """Read the shared string table of a workbook file."""
    with _open_archive(path) as archive:
        return _shared_strings_from_archive(archive)


def _custom_formats_from_styles(styles_root: Optional[ET.Element]) -> Dict[int, str]:
    custom_formats: Dict[int, str] = {}
    if styles_root is None:
        return custom_formats

    num_fmts = _first_child(styles_root, 'numFmts')
    if num_fmts is not None:
        for num_fmt in _children(num_fmts, 'numFmt'):
            try:
                custom_formats[int(num_fmt.get('numFmtId'))] = num_fmt.get('formatCode', '')
            except (TypeError, ValueError):
                continue
    return custom_formats


def read_custom_formats(path: str) -> Dict[int, str]:
    """
    Read the custom number formats of a workbook file as stored.

    Returns:
        Mapping of numFmtId -> formatCode, e.g. {164: '0.00 %'}
    """
    with _open_archive(path) as archive:
        return _custom_formats_from_styles(_parse_part(archive, STYLES_PART))


@dataclass
class OoxmlDocument:
    """Parsed workbook-level parts of an .xlsx package."""
    path: str
    archive: zipfile.ZipFile
    sheets: List[Tuple[str, str]]
    shared_strings: List[str]
    cell_format_ids: List[int]
    custom_formats: Dict[int, str]
    date1904: bool = False


@dataclass
class OoxmlSheet:
    """Cells of one worksheet keyed by (column, row), zero-based."""
    name: str
    cells: Dict[Tuple[int, int], ET.Element] = field(default_factory=dict)
    document: Optional[OoxmlDocument] = None
    # Shared formula group id -> (anchor cell reference, anchor formula text)
    shared_formulas: Dict[str, Tuple[str, str]] = field(default_factory=dict)


class OoxmlAdapter(CellFactAdapter):
    """Cell fact adapter reading the OOXML package with zipfile and ElementTree."""

    name = 'ooxml'
    supports_write = False

    def open_for_read(self, path: str) -> OoxmlDocument:
        logger.debug(f"Opening XLSX package: {path}")
        archive = _open_archive(path)

        try:
            workbook_root = _parse_part(archive, WORKBOOK_PART)
            if workbook_root is None:
                raise DocumentFormatError(f"{WORKBOOK_PART} not found in {path}")

            cell_format_ids, custom_formats = self._read_styles(archive)
            document = OoxmlDocument(
                path=path,
                archive=archive,
                sheets=self._read_sheet_entries(archive, workbook_root),
                shared_strings=_shared_strings_from_archive(archive),
                cell_format_ids=cell_format_ids,
                custom_formats=custom_formats,
                date1904=self._is_date1904(workbook_root)
            )
        except Exception:
            archive.close()
            raise

        logger.debug(f"Found {len(document.sheets)} sheets, "
                     f"{len(document.shared_strings)} shared strings")
        return document

    def get_sheet(self, document: OoxmlDocument, sheet: SheetSelector) -> OoxmlSheet:
        if isinstance(sheet, int):
            if not 0 <= sheet < len(document.sheets):
                raise SheetNotFoundError(
                    f"Sheet index {sheet} out of range (workbook has {len(document.sheets)} sheets)"
                )
            name, part = document.sheets[sheet]
        else:
            matches = [entry for entry in document.sheets if entry[0].lower() == str(sheet).lower()]
            if not matches:
                raise SheetNotFoundError(f"Sheet '{sheet}' not found.")
            name, part = matches[0]

        root = _parse_part(document.archive, part)
        if root is None:
            raise DocumentFormatError(f"Worksheet part {part} not found in {document.path}")

        worksheet = OoxmlSheet(name=name, document=document)
        sheet_data = _first_child(root, 'sheetData')
        if sheet_data is None:
            return worksheet

        for row in _children(sheet_data, 'row'):
            for cell in _children(row, 'c'):
                ref = cell.get('r')
                if not ref:
                    continue
                try:
                    address = AddressParser.parse(ref)
                except MalformedAddressError:
                    logger.debug(f"Skipping cell with unreadable reference {ref!r} in {name}")
                    continue
                worksheet.cells[(address.column, address.row)] = cell

                formula = _first_child(cell, 'f')
                if formula is not None and formula.get('t') == 'shared' and formula.text:
                    anchor = (AddressParser.format(address), formula.text)
                    worksheet.shared_formulas[formula.get('si')] = anchor

        return worksheet

    def get_cell_fact(self, sheet: OoxmlSheet, address: CellAddress) -> CellFact:
        cell = sheet.cells.get((address.column, address.row))
        if cell is None:
            return CellFact.empty()

        document = sheet.document
        format_id, is_date = self._number_format(document, cell.get('s'))

        formula = _first_child(cell, 'f')
        if formula is not None:
            cached = self._value_fact(document, cell, format_id, is_date)
            return CellFact(
                kind=CellKind.FORMULA,
                formula_text=formula.text or self._shared_formula_text(sheet, formula, address),
                number_format_id=format_id,
                is_date_formatted=is_date,
                cached_result=None if cached.kind == CellKind.EMPTY else cached
            )

        return self._value_fact(document, cell, format_id, is_date)

    def resolve_shared_string(self, document: OoxmlDocument, index: int) -> str:
        if not 0 <= index < len(document.shared_strings):
            raise IndexOutOfRangeError(
                f"Shared string index {index} out of range ({len(document.shared_strings)} entries)"
            )
        return document.shared_strings[index]

    def close(self, document: OoxmlDocument) -> None:
        document.archive.close()

    def _value_fact(self, document: OoxmlDocument, cell: ET.Element,
                    format_id: Optional[int], is_date: bool) -> CellFact:
        cell_type = cell.get('t', 'n')

        if cell_type == 'inlineStr':
            inline = _first_child(cell, 'is')
            text = _joined_text(inline) if inline is not None else ''
            return CellFact(kind=CellKind.TEXT, raw_value=text, number_format_id=format_id)

        value = _first_child(cell, 'v')
        if value is None or value.text is None:
            return CellFact.empty()
        raw = value.text

        if cell_type == 's':
            return CellFact(kind=CellKind.SHARED_STRING_REF, raw_value=raw.strip())
        if cell_type == 'b':
            return CellFact(kind=CellKind.BOOLEAN, raw_value='True' if raw.strip() == '1' else 'False')
        if cell_type == 'e':
            return CellFact(kind=CellKind.ERROR, raw_value=raw)
        if cell_type in ('str', 'd'):
            return CellFact(kind=CellKind.TEXT, raw_value=raw, number_format_id=format_id)

        if is_date and document.date1904:
            try:
                raw = repr(float(raw) + DATE_1904_OFFSET)
            except ValueError:
                pass

        return CellFact(
            kind=CellKind.NUMBER,
            raw_value=raw,
            number_format_id=format_id,
            is_date_formatted=is_date
        )

    @staticmethod
    def _shared_formula_text(sheet: OoxmlSheet, formula: ET.Element, address: CellAddress) -> str:
        """
        Formula text of a non-anchor cell in a shared formula group.

        Only the anchor cell stores the text; other cells in the group carry
        <f t="shared" si="0"/> and get the anchor's formula shifted to their
        own position, e.g. anchor B1 'A1*2' -> B2 'A2*2'.
        """
        if formula.get('t') != 'shared':
            return ''

        anchor = sheet.shared_formulas.get(formula.get('si'))
        if anchor is None:
            logger.debug(f"No anchor for shared formula group {formula.get('si')!r} in {sheet.name}")
            return ''

        origin, text = anchor
        translated = Translator(f"={text}", origin=origin).translate_formula(AddressParser.format(address))
        return translated[1:] if translated.startswith('=') else translated

    @staticmethod
    def _number_format(document: OoxmlDocument, style_index: Optional[str]) -> Tuple[Optional[int], bool]:
        if style_index is None:
            return None, False
        try:
            format_id = document.cell_format_ids[int(style_index)]
        except (ValueError, IndexError):
            logger.debug(f"Unknown style index {style_index!r}")
            return None, False

        code = document.custom_formats.get(format_id, BUILTIN_FORMATS.get(format_id, 'General'))
        return format_id, is_date_format(code)

    @staticmethod
    def _read_sheet_entries(archive: zipfile.ZipFile, workbook_root: ET.Element) -> List[Tuple[str, str]]:
        rel_map: Dict[str, str] = {}
        rels_root = _parse_part(archive, WORKBOOK_RELS_PART)
        if rels_root is not None:
            for rel in _children(rels_root, 'Relationship'):
                rel_id, target = rel.get('Id'), rel.get('Target')
                if not rel_id or not target:
                    continue
                # Target is relative to xl/ or absolute from the package root
                target = target.replace('\\', '/')
                if target.startswith('/'):
                    target = target.lstrip('/')
                elif not target.startswith('xl/'):
                    target = f"xl/{target}"
                rel_map[rel_id] = target

        entries = []
        sheets = _first_child(workbook_root, 'sheets')
        if sheets is None:
            return entries

        for position, node in enumerate(_children(sheets, 'sheet'), 1):
            rel_id = next((v for k, v in node.attrib.items() if _local_tag(k) == 'id'), None)
            target = rel_map.get(rel_id, f"xl/worksheets/sheet{position}.xml")
            entries.append((node.get('name', f"Sheet{position}"), target))

        return entries

    @staticmethod
    def _read_styles(archive: zipfile.ZipFile) -> Tuple[List[int], Dict[int, str]]:
        root = _parse_part(archive, STYLES_PART)
        if root is None:
            return [], {}

        custom_formats = _custom_formats_from_styles(root)

        cell_format_ids: List[int] = []
        cell_xfs = _first_child(root, 'cellXfs')
        if cell_xfs is not None:
            for xf in _children(cell_xfs, 'xf'):
                try:
                    cell_format_ids.append(int(xf.get('numFmtId', 0)))
                except ValueError:
                    cell_format_ids.append(0)

        return cell_format_ids, custom_formats

    @staticmethod
    def _is_date1904(workbook_root: ET.Element) -> bool:
        workbook_pr = _first_child(workbook_root, 'workbookPr')
        if workbook_pr is None:
            return False
        return workbook_pr.get('date1904', 'false').lower() in ('1', 'true')
