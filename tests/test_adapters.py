"""
Tests for the openpyxl and OOXML cell fact adapters.
"""

import zipfile

import openpyxl
import pytest
from conftest import styles_with_formats, write_single_sheet_package, write_xlsx_package
from services.address_service import AddressParser
from services.adapters import ADAPTERS, OoxmlAdapter, OpenpyxlAdapter, get_adapter
from services.exceptions import (
    DocumentFormatError, DocumentNotFoundError, IndexOutOfRangeError,
    SheetNotFoundError, UnsupportedOperationError
)
from services.models import CellKind, SectionConfig
from services.section_service import SectionExtractor


def fact(adapter, sheet, ref):
    return adapter.get_cell_fact(sheet, AddressParser.parse(ref))


class TestGetAdapter:
    """Test backend selection."""

    def test_known_backends(self):
        assert isinstance(get_adapter('openpyxl'), OpenpyxlAdapter)
        assert isinstance(get_adapter(' OOXML '), OoxmlAdapter)
        assert set(ADAPTERS) == {'openpyxl', 'ooxml'}

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_adapter('xlrd')

    def test_capabilities(self):
        assert OpenpyxlAdapter.supports_write is True
        assert OoxmlAdapter.supports_write is False


@pytest.mark.parametrize('adapter_cls', [OpenpyxlAdapter, OoxmlAdapter])
class TestOpenErrors:
    """Test document-level errors common to both backends."""

    def test_missing_file(self, adapter_cls, tmp_path):
        with pytest.raises(DocumentNotFoundError):
            adapter_cls().open_for_read(str(tmp_path / 'missing.xlsx'))

    def test_not_a_workbook(self, adapter_cls, tmp_path):
        path = tmp_path / 'bad.xlsx'
        path.write_text('not a zip file')

        with pytest.raises(DocumentFormatError):
            adapter_cls().open_for_read(str(path))

    def test_sheet_selection(self, adapter_cls, loan_workbook):
        adapter = adapter_cls()
        document = adapter.open_for_read(str(loan_workbook))
        try:
            assert fact(adapter, adapter.get_sheet(document, 1), 'A1').kind != CellKind.EMPTY
            assert fact(adapter, adapter.get_sheet(document, 'NOTES'), 'A1').kind != CellKind.EMPTY

            with pytest.raises(SheetNotFoundError):
                adapter.get_sheet(document, 'Missing')
            with pytest.raises(SheetNotFoundError):
                adapter.get_sheet(document, 5)
        finally:
            adapter.close(document)


class TestOpenpyxlAdapter:
    """Test the openpyxl backend."""

    @pytest.fixture
    def opened(self, loan_workbook):
        adapter = OpenpyxlAdapter()
        document = adapter.open_for_read(str(loan_workbook))
        yield adapter, document, adapter.get_sheet(document, 'Loan Sizer')
        adapter.close(document)

    def test_text_and_empty(self, opened):
        adapter, _, sheet = opened

        rate = fact(adapter, sheet, 'A2')
        assert rate.kind == CellKind.TEXT
        assert rate.raw_value == 'Rate'
        assert fact(adapter, sheet, 'A4').kind == CellKind.EMPTY
        assert fact(adapter, sheet, 'Z100').kind == CellKind.EMPTY

    def test_number_format_ids(self, opened):
        adapter, _, sheet = opened

        rate = fact(adapter, sheet, 'B2')
        assert rate.kind == CellKind.NUMBER
        assert rate.raw_value == '0.045'
        assert rate.number_format_id == 10

        assert fact(adapter, sheet, 'B5').number_format_id == 4
        assert fact(adapter, sheet, 'B3').number_format_id == 0

    def test_date_cell(self, opened):
        adapter, _, sheet = opened

        start = fact(adapter, sheet, 'B6')
        assert start.kind == CellKind.NUMBER
        assert start.is_date_formatted is True
        assert float(start.raw_value) == 45322

    def test_formula_cell(self, opened):
        adapter, _, sheet = opened

        payment = fact(adapter, sheet, 'B7')
        assert payment.kind == CellKind.FORMULA
        assert payment.formula_text == 'B5*2'
        assert payment.cached_result is None

    def test_custom_format_id(self, tmp_path):
        """Test that the first custom number format gets id 164."""
        path = tmp_path / 'custom.xlsx'
        wb = openpyxl.Workbook()
        wb.active['A1'] = 0.0125
        wb.active['A1'].number_format = '0.00 %'
        wb.save(path)

        adapter = OpenpyxlAdapter()
        document = adapter.open_for_read(str(path))
        try:
            assert fact(adapter, adapter.get_sheet(document, 0), 'A1').number_format_id == 164
        finally:
            adapter.close(document)

    def test_shared_strings(self, tmp_path):
        path = tmp_path / 'strings.xlsx'
        wb = openpyxl.Workbook()
        wb.active['A1'] = 'Only string'
        wb.save(path)

        adapter = OpenpyxlAdapter()
        document = adapter.open_for_read(str(path))
        try:
            assert adapter.resolve_shared_string(document, 0) == 'Only string'
            with pytest.raises(IndexOutOfRangeError):
                adapter.resolve_shared_string(document, 1)
        finally:
            adapter.close(document)


class TestOpenpyxlWrite:
    """Test the openpyxl write path."""

    def test_set_and_save(self, loan_workbook):
        adapter = OpenpyxlAdapter()
        document = adapter.open_for_write(str(loan_workbook))
        sheet = adapter.get_sheet(document, 'Loan Sizer')
        adapter.set_cell_value(sheet, AddressParser.parse('B2'), '0.05')
        adapter.set_cell_value(sheet, AddressParser.parse('B3'), '360')
        adapter.set_cell_value(sheet, AddressParser.parse('C3'), 'months')
        adapter.set_cell_value(sheet, AddressParser.parse('C4'), 'nan')
        adapter.save(document)
        adapter.close(document)

        wb = openpyxl.load_workbook(loan_workbook)
        ws = wb['Loan Sizer']
        assert ws['B2'].value == 0.05
        assert ws['B2'].number_format == '0.00%'
        assert ws['B3'].value == 360
        assert ws['C3'].value == 'months'
        assert ws['C4'].value == 'nan'
        assert ws['B7'].value == '=B5*2'
        assert wb.calculation.fullCalcOnLoad is True
        assert wb.calculation.forceFullCalc is True
        wb.close()

    def test_formulas_survive_read_after_write(self, loan_workbook):
        adapter = OpenpyxlAdapter()
        document = adapter.open_for_write(str(loan_workbook))
        adapter.save(document)
        adapter.close(document)

        document = adapter.open_for_read(str(loan_workbook))
        try:
            sheet = adapter.get_sheet(document, 0)
            assert fact(adapter, sheet, 'B7').formula_text == 'B5*2'
        finally:
            adapter.close(document)


class TestOoxmlAdapter:
    """Test the OOXML package reader."""

    @pytest.fixture
    def opened(self, xlsx_package):
        adapter = OoxmlAdapter()
        document = adapter.open_for_read(str(xlsx_package))
        yield adapter, document, adapter.get_sheet(document, 'Loan Sizer')
        adapter.close(document)

    def test_shared_string_references(self, opened):
        """Test that shared strings are reported by index."""
        adapter, document, sheet = opened

        rate = fact(adapter, sheet, 'A2')
        assert rate.kind == CellKind.SHARED_STRING_REF
        assert rate.raw_value == '0'
        assert adapter.resolve_shared_string(document, 0) == 'Rate'

    def test_rich_text_shared_string(self, opened):
        """Test that rich text runs are joined and phonetic hints skipped."""
        adapter, document, _ = opened
        assert adapter.resolve_shared_string(document, 3) == 'Spread'

    def test_shared_string_out_of_range(self, opened):
        adapter, document, _ = opened
        with pytest.raises(IndexOutOfRangeError):
            adapter.resolve_shared_string(document, 6)

    def test_style_number_format_ids(self, opened):
        adapter, _, sheet = opened

        assert fact(adapter, sheet, 'B2').number_format_id == 10
        assert fact(adapter, sheet, 'B8').number_format_id == 164
        assert fact(adapter, sheet, 'B3').number_format_id is None

        start = fact(adapter, sheet, 'B5')
        assert start.number_format_id == 14
        assert start.is_date_formatted is True

    def test_formula_with_cached_value(self, opened):
        adapter, _, sheet = opened

        payment = fact(adapter, sheet, 'B4')
        assert payment.kind == CellKind.FORMULA
        assert payment.formula_text == 'B5*2'
        assert payment.cached_result.kind == CellKind.NUMBER
        assert payment.cached_result.raw_value == '1234.5'
        assert payment.cached_result.number_format_id == 4

    def test_formula_without_cached_value(self, opened):
        adapter, _, sheet = opened

        pending = fact(adapter, sheet, 'B10')
        assert pending.kind == CellKind.FORMULA
        assert pending.cached_result is None

    def test_other_cell_types(self, opened):
        adapter, _, sheet = opened

        assert fact(adapter, sheet, 'A5').kind == CellKind.TEXT
        assert fact(adapter, sheet, 'A5').raw_value == 'Start'
        assert fact(adapter, sheet, 'A7').raw_value == 'Flag'
        assert fact(adapter, sheet, 'B7').kind == CellKind.BOOLEAN
        assert fact(adapter, sheet, 'B9').kind == CellKind.ERROR
        assert fact(adapter, sheet, 'B9').raw_value == '#DIV/0!'
        assert fact(adapter, sheet, 'A6').kind == CellKind.EMPTY

    def test_absolute_relationship_target(self, opened):
        adapter, document, _ = opened

        notes = adapter.get_sheet(document, 'notes')
        assert fact(adapter, notes, 'A1').raw_value == 'Notes'

    def test_date1904_serials(self, tmp_path):
        """Test that 1904-system serials are shifted to the 1900 system."""
        path = write_xlsx_package(tmp_path / 'mac.xlsx', date1904=True)

        adapter = OoxmlAdapter()
        document = adapter.open_for_read(str(path))
        try:
            sheet = adapter.get_sheet(document, 0)
            assert float(fact(adapter, sheet, 'B5').raw_value) == 45322 + 1462
            assert fact(adapter, sheet, 'B3').raw_value == '30'
        finally:
            adapter.close(document)

    def test_missing_workbook_part(self, tmp_path):
        path = tmp_path / 'empty.xlsx'
        with zipfile.ZipFile(path, 'w') as archive:
            archive.writestr('docProps/app.xml', '<Properties/>')

        with pytest.raises(DocumentFormatError):
            OoxmlAdapter().open_for_read(str(path))

    def test_reads_openpyxl_workbooks(self, loan_workbook):
        adapter = OoxmlAdapter()
        document = adapter.open_for_read(str(loan_workbook))
        try:
            sheet = adapter.get_sheet(document, 0)
            rate_key = fact(adapter, sheet, 'A2')
            assert rate_key.kind == CellKind.SHARED_STRING_REF
            assert adapter.resolve_shared_string(document, int(rate_key.raw_value)) == 'Rate'
            assert fact(adapter, sheet, 'B2').number_format_id == 10
        finally:
            adapter.close(document)

    def test_read_only(self, xlsx_package):
        adapter = OoxmlAdapter()
        with pytest.raises(UnsupportedOperationError):
            adapter.open_for_write(str(xlsx_package))


# Stored custom ids 164 and 165, with 165 used by an earlier cellXfs entry than 164
OUT_OF_ORDER_FORMATS = styles_with_formats(
    num_fmts='<numFmt numFmtId="164" formatCode="0.00 %"/><numFmt numFmtId="165" formatCode="0.0"/>',
    cell_xfs='<xf numFmtId="0" fontId="0" fillId="0" borderId="0" xfId="0"/>'
             '<xf numFmtId="165" fontId="0" fillId="0" borderId="0" xfId="0" applyNumberFormat="1"/>'
             '<xf numFmtId="164" fontId="0" fillId="0" borderId="0" xfId="0" applyNumberFormat="1"/>'
)

OUT_OF_ORDER_ROWS = (
    '<row r="1"><c r="A1" t="inlineStr"><is><t>Amount</t></is></c><c r="B1" s="1"><v>1234.5</v></c></row>'
    '<row r="2"><c r="A2" t="inlineStr"><is><t>Spread</t></is></c><c r="B2" s="2"><v>0.0125</v></c></row>'
)

SHARED_FORMULA_ROWS = (
    '<row r="1"><c r="A1"><v>1</v></c><c r="B1"><f t="shared" ref="B1:B3" si="0">A1*2</f><v>2</v></c></row>'
    '<row r="2"><c r="A2"><v>2</v></c><c r="B2"><f t="shared" si="0"/><v>4</v></c></row>'
    '<row r="3"><c r="A3"><v>3</v></c><c r="B3"><f t="shared" si="0"/><v>6</v></c></row>'
)


@pytest.mark.parametrize('adapter_cls', [OpenpyxlAdapter, OoxmlAdapter])
class TestBackendAgreement:
    """Test that both backends report the same facts for the same package."""

    def test_custom_format_ids_as_stored(self, adapter_cls, tmp_path):
        """Test that custom number format ids are the file's ids, not renumbered by use."""
        path = write_single_sheet_package(tmp_path / 'formats.xlsx', OUT_OF_ORDER_ROWS, OUT_OF_ORDER_FORMATS)

        adapter = adapter_cls()
        document = adapter.open_for_read(str(path))
        try:
            sheet = adapter.get_sheet(document, 0)
            assert fact(adapter, sheet, 'B1').number_format_id == 165
            assert fact(adapter, sheet, 'B2').number_format_id == 164

            result = SectionExtractor(adapter).extract(
                document, sheet, [SectionConfig(name='Rates', key_range='A1:A2', value_range='B1:B2')]
            )
        finally:
            adapter.close(document)

        assert [(entry.key, entry.value) for entry in result['Rates']] == [
            ('Amount', '1234.5'),
            ('Spread', '1.25 %'),
        ]

    def test_shared_formula_text(self, adapter_cls, tmp_path):
        """Test that cells of a shared formula group get the anchor formula shifted to their row."""
        styles = styles_with_formats(num_fmts='', cell_xfs='<xf numFmtId="0" fontId="0" fillId="0" borderId="0"/>')
        path = write_single_sheet_package(tmp_path / 'shared.xlsx', SHARED_FORMULA_ROWS, styles)

        adapter = adapter_cls()
        document = adapter.open_for_read(str(path))
        try:
            sheet = adapter.get_sheet(document, 0)
            assert [fact(adapter, sheet, ref).formula_text for ref in ('B1', 'B2', 'B3')] == [
                'A1*2', 'A2*2', 'A3*2'
            ]
            assert fact(adapter, sheet, 'B3').cached_result.raw_value == '6'
        finally:
            adapter.close(document)


class TestOpenpyxlMalformedParts:
    """Test that openpyxl validation failures surface as format errors."""

    def test_fill_without_pattern(self, tmp_path):
        styles = styles_with_formats(
            num_fmts='',
            cell_xfs='<xf numFmtId="0" fontId="0" fillId="0" borderId="0"/>',
            fills='<fill/>'
        )
        path = write_single_sheet_package(tmp_path / 'broken.xlsx', OUT_OF_ORDER_ROWS, styles)

        with pytest.raises(DocumentFormatError):
            OpenpyxlAdapter().open_for_read(str(path))


class TestOpenpyxlCellLookup:
    """Test that reading leaves both in-memory worksheets unchanged."""

    def test_reading_does_not_create_cells(self, loan_workbook):
        adapter = OpenpyxlAdapter()
        document = adapter.open_for_read(str(loan_workbook))
        try:
            sheet = adapter.get_sheet(document, 'Loan Sizer')
            before = len(sheet.worksheet._cells), len(sheet.values_worksheet._cells)

            assert fact(adapter, sheet, 'Z100').kind == CellKind.EMPTY
            assert fact(adapter, sheet, 'B7').kind == CellKind.FORMULA

            assert (len(sheet.worksheet._cells), len(sheet.values_worksheet._cells)) == before
        finally:
            adapter.close(document)
