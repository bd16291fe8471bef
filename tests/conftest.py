"""
Pytest configuration and fixtures for section extraction tests.
"""

import datetime
import json
import zipfile
from pathlib import Path

import pytest
from openpyxl import Workbook

from services.address_service import AddressParser
from services.adapters.base import CellFactAdapter
from services.exceptions import IndexOutOfRangeError, SheetNotFoundError
from services.models import CellFact, CellKind, SectionConfig


MAIN_NS = 'http://schemas.openxmlformats.org/spreadsheetml/2006/main'
REL_NS = 'http://schemas.openxmlformats.org/officeDocument/2006/relationships'
PACKAGE_REL_NS = 'http://schemas.openxmlformats.org/package/2006/relationships'

# cellXfs used by the hand-built package: index -> numFmtId
#   0 General, 1 0.00%, 2 custom "0.00 %", 3 m/d/yyyy, 4 #,##0.00
STYLES_XML = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<styleSheet xmlns="{MAIN_NS}">
  <numFmts count="1"><numFmt numFmtId="164" formatCode="0.00 %"/></numFmts>
  <cellXfs count="5">
    <xf numFmtId="0"/>
    <xf numFmtId="10"/>
    <xf numFmtId="164"/>
    <xf numFmtId="14"/>
    <xf numFmtId="4"/>
  </cellXfs>
</styleSheet>"""

SHARED_STRINGS = ['Rate', 'Term', 'Payment', 'Spread', 'Error', 'Pending']

SHARED_STRINGS_XML = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<sst xmlns="{MAIN_NS}" count="6" uniqueCount="6">
  <si><t>Rate</t></si>
  <si><t>Term</t></si>
  <si><t>Payment</t></si>
  <si><r><t>Sp</t></r><r><t>read</t></r><rPh><t>ignored</t></rPh></si>
  <si><t>Error</t></si>
  <si><t>Pending</t></si>
</sst>"""

LOAN_SHEET_XML = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<worksheet xmlns="{MAIN_NS}">
  <sheetData>
    <row r="2"><c r="A2" t="s"><v>0</v></c><c r="B2" s="1"><v>0.045</v></c></row>
    <row r="3"><c r="A3" t="s"><v>1</v></c><c r="B3"><v>30</v></c></row>
    <row r="4"><c r="A4" t="s"><v>2</v></c><c r="B4" s="4"><f>B5*2</f><v>1234.5</v></c></row>
    <row r="5"><c r="A5" t="inlineStr"><is><t>Start</t></is></c><c r="B5" s="3"><v>45322</v></c></row>
    <row r="6"><c r="B6"><v>1</v></c></row>
    <row r="7"><c r="A7" t="str"><v>Flag</v></c><c r="B7" t="b"><v>1</v></c></row>
    <row r="8"><c r="A8" t="s"><v>3</v></c><c r="B8" s="2"><v>0.0125</v></c></row>
    <row r="9"><c r="A9" t="s"><v>4</v></c><c r="B9" t="e"><v>#DIV/0!</v></c></row>
    <row r="10"><c r="A10" t="s"><v>5</v></c><c r="B10"><f>SUM(B2:B3)</f></c></row>
  </sheetData>
</worksheet>"""

NOTES_SHEET_XML = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<worksheet xmlns="{MAIN_NS}">
  <sheetData>
    <row r="1"><c r="A1" t="inlineStr"><is><t>Notes</t></is></c></row>
  </sheetData>
</worksheet>"""


def write_xlsx_package(path: Path, date1904: bool = False) -> Path:
    """
    Write a minimal .xlsx package by hand.

    Sheets: 'Loan Sizer' (sheet1.xml) and 'Notes' (sheet2.xml, absolute
    relationship target).
    """
    workbook_pr = '<workbookPr date1904="1"/>' if date1904 else ''
    workbook_xml = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}">
  {workbook_pr}
  <sheets>
    <sheet name="Loan Sizer" sheetId="1" r:id="rId1"/>
    <sheet name="Notes" sheetId="2" r:id="rId2"/>
  </sheets>
</workbook>"""
    rels_xml = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Relationships xmlns="{PACKAGE_REL_NS}">
  <Relationship Id="rId1" Type="{REL_NS}/worksheet" Target="worksheets/sheet1.xml"/>
  <Relationship Id="rId2" Type="{REL_NS}/worksheet" Target="/xl/worksheets/sheet2.xml"/>
</Relationships>"""

    with zipfile.ZipFile(path, 'w') as archive:
        archive.writestr('xl/workbook.xml', workbook_xml)
        archive.writestr('xl/_rels/workbook.xml.rels', rels_xml)
        archive.writestr('xl/sharedStrings.xml', SHARED_STRINGS_XML)
        archive.writestr('xl/styles.xml', STYLES_XML)
        archive.writestr('xl/worksheets/sheet1.xml', LOAN_SHEET_XML)
        archive.writestr('xl/worksheets/sheet2.xml', NOTES_SHEET_XML)

    return path


CONTENT_TYPES_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">
  <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>
  <Default Extension="xml" ContentType="application/xml"/>
  <Override PartName="/xl/workbook.xml"
            ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet.main+xml"/>
  <Override PartName="/xl/worksheets/sheet1.xml"
            ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.worksheet+xml"/>
  <Override PartName="/xl/styles.xml"
            ContentType="application/vnd.openxmlformats-officedocument.spreadsheetml.styles+xml"/>
</Types>"""


def styles_with_formats(num_fmts: str, cell_xfs: str, fills: str = None) -> str:
    """Complete styles part, as Excel writes it, around the given numFmts and cellXfs."""
    if fills is None:
        fills = '<fill><patternFill patternType="none"/></fill><fill><patternFill patternType="gray125"/></fill>'
    return f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<styleSheet xmlns="{MAIN_NS}">
  <numFmts>{num_fmts}</numFmts>
  <fonts count="1"><font><sz val="11"/><name val="Calibri"/></font></fonts>
  <fills>{fills}</fills>
  <borders count="1"><border><left/><right/><top/><bottom/><diagonal/></border></borders>
  <cellStyleXfs count="1"><xf numFmtId="0" fontId="0" fillId="0" borderId="0"/></cellStyleXfs>
  <cellXfs>{cell_xfs}</cellXfs>
  <cellStyles count="1"><cellStyle name="Normal" xfId="0" builtinId="0"/></cellStyles>
</styleSheet>"""


def write_single_sheet_package(path: Path, rows_xml: str, styles_xml: str) -> Path:
    """
    Write a one-sheet .xlsx package ('Sheet1') complete enough for openpyxl.

    rows_xml is the content of <sheetData>.
    """
    workbook_xml = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}">
  <sheets><sheet name="Sheet1" sheetId="1" r:id="rId1"/></sheets>
</workbook>"""
    package_rels_xml = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Relationships xmlns="{PACKAGE_REL_NS}">
  <Relationship Id="rId1" Type="{REL_NS}/officeDocument" Target="xl/workbook.xml"/>
</Relationships>"""
    workbook_rels_xml = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Relationships xmlns="{PACKAGE_REL_NS}">
  <Relationship Id="rId1" Type="{REL_NS}/worksheet" Target="worksheets/sheet1.xml"/>
  <Relationship Id="rId2" Type="{REL_NS}/styles" Target="styles.xml"/>
</Relationships>"""
    sheet_xml = f"""<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<worksheet xmlns="{MAIN_NS}"><sheetData>{rows_xml}</sheetData></worksheet>"""

    with zipfile.ZipFile(path, 'w') as archive:
        archive.writestr('[Content_Types].xml', CONTENT_TYPES_XML)
        archive.writestr('_rels/.rels', package_rels_xml)
        archive.writestr('xl/workbook.xml', workbook_xml)
        archive.writestr('xl/_rels/workbook.xml.rels', workbook_rels_xml)
        archive.writestr('xl/styles.xml', styles_xml)
        archive.writestr('xl/worksheets/sheet1.xml', sheet_xml)

    return path


def build_loan_workbook(path: Path) -> Path:
    """
    Write a loan template with openpyxl.

    'Loan Sizer' sheet, keys in column A and values in column B:
        A2 Rate     B2 0.045 (0.00%)
        A3 Term     B3 30
        A4 (blank)  B4 999
        A5 Amount   B5 1234.5 (#,##0.00)
        A6 Start    B6 2024-01-31 (yyyy-mm-dd)
        A7 Payment  B7 =B5*2 (no cached value)
    """
    wb = Workbook()
    ws = wb.active
    ws.title = 'Loan Sizer'

    ws['A1'] = 'Key'
    ws['B1'] = 'Value'
    ws['A2'] = 'Rate'
    ws['B2'] = 0.045
    ws['B2'].number_format = '0.00%'
    ws['A3'] = 'Term'
    ws['B3'] = 30
    ws['B4'] = 999
    ws['A5'] = '  Amount  '
    ws['B5'] = 1234.5
    ws['B5'].number_format = '#,##0.00'
    ws['A6'] = 'Start'
    ws['B6'] = datetime.datetime(2024, 1, 31)
    ws['B6'].number_format = 'yyyy-mm-dd'
    ws['A7'] = 'Payment'
    ws['B7'] = '=B5*2'

    notes = wb.create_sheet('Notes')
    notes['A1'] = 'Notes'

    wb.save(path)
    wb.close()
    return path


@pytest.fixture
def xlsx_package(tmp_path):
    """Hand-built .xlsx package with shared strings, styles and cached formula results."""
    return write_xlsx_package(tmp_path / 'package.xlsx')


@pytest.fixture
def loan_workbook(tmp_path):
    """Loan template written with openpyxl."""
    return build_loan_workbook(tmp_path / 'loan.xlsx')


@pytest.fixture
def loan_sections():
    """Section definitions matching the loan template."""
    return [SectionConfig(name='Loan', key_range='A2:A7', value_range='B2:B7')]


@pytest.fixture
def sections_file(tmp_path):
    """Section configuration file in the ExcelSections layout."""
    path = tmp_path / 'sections.json'
    path.write_text(json.dumps({
        'ExcelSections': {
            'Loan': {'KeyRange': 'A2:A7', 'ValueRange': 'B2:B7'},
            'Empty': {'KeyRange': 'D2:D4', 'ValueRange': 'E2:E4'}
        }
    }), encoding='utf-8')
    return path


class FakeAdapter(CellFactAdapter):
    """
    In-memory adapter for resolver and extractor tests.

    Sheets are dicts of address text -> CellFact; the document handle is
    the adapter itself.
    """

    name = 'fake'

    def __init__(self, sheets=None, shared_strings=None):
        self.sheets = {name: {AddressParser.canonicalize(k): v for k, v in cells.items()}
                       for name, cells in (sheets or {}).items()}
        self.shared_strings = list(shared_strings or [])
        self.requested = []

    def open_for_read(self, path):
        return self

    def get_sheet(self, document, sheet):
        names = list(self.sheets)
        if isinstance(sheet, int):
            if not 0 <= sheet < len(names):
                raise SheetNotFoundError(f"Sheet index {sheet} out of range")
            return self.sheets[names[sheet]]
        for name in names:
            if name.lower() == sheet.lower():
                return self.sheets[name]
        raise SheetNotFoundError(f"Sheet '{sheet}' not found.")

    def get_cell_fact(self, sheet, address):
        self.requested.append(str(address))
        return sheet.get(str(address), CellFact.empty())

    def resolve_shared_string(self, document, index):
        if not 0 <= index < len(self.shared_strings):
            raise IndexOutOfRangeError(f"Shared string index {index} out of range")
        return self.shared_strings[index]


def text(value):
    return CellFact(kind=CellKind.TEXT, raw_value=value)


def number(value, format_id=None, is_date=False):
    return CellFact(kind=CellKind.NUMBER, raw_value=value, number_format_id=format_id,
                    is_date_formatted=is_date)


def formula(formula_text, cached=None, format_id=None):
    return CellFact(kind=CellKind.FORMULA, formula_text=formula_text,
                    number_format_id=format_id, cached_result=cached)


@pytest.fixture
def fake_adapter():
    """Fake adapter with a small 'Loan Sizer' sheet."""
    return FakeAdapter(
        sheets={
            'Loan Sizer': {
                'A2': text('Rate'),
                'B2': number('0.045', format_id=10),
                'A3': CellFact(kind=CellKind.SHARED_STRING_REF, raw_value='0'),
                'B3': number('30'),
                'A4': text('   '),
                'B4': number('999'),
                'A5': text('Payment'),
                'B5': formula('B3*2', cached=number('60')),
                'A6': text('Pending'),
                'B6': formula('SUM(B2:B3)'),
            }
        },
        shared_strings=['Term']
    )
