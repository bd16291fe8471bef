#!/usr/bin/env python3
"""
Excel Section Reader CLI - Dual Mode

This script can operate in two modes:
1. Direct mode (default): Reads workbooks using the services directly
2. API mode: Makes HTTP requests to the FastAPI backend

Usage:
    # Read the configured sections of a workbook
    python scripts/section_reader_cli.py read --file Unitas.xlsx --sections sections.json

    # Update cells on a working copy of the template, then read it back
    python scripts/section_reader_cli.py update --set "Loan Sizer!B3=0.045"

    # Same, through the FastAPI backend
    python scripts/section_reader_cli.py update --set "Loan Sizer!B3=0.045" --api-url http://localhost:8000

    # Upload a new template
    python scripts/section_reader_cli.py upload --file Unitas.xlsx [--api-url http://localhost:8000]
"""

import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import json
import logging
from typing import List, Optional, Tuple

import click
from dotenv import load_dotenv
import requests

from services.adapters import get_adapter, OpenpyxlAdapter
from services.exceptions import ExcelSectionError
from services.models import CellUpdate, section_map_to_dict
from services.number_format_service import NumberFormatter
from services.section_config import load_section_configs
from services.section_service import SectionExtractor
from services.storage_service import StorageService
from services.workbook_service import WorkbookSectionService

# Load environment variables
load_dotenv()

# Configure logging
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FILE = os.getenv('LOG_FILE', 'cli.log')

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOG_FILE),
        logging.StreamHandler(sys.stderr)
    ]
)

logger = logging.getLogger('section_reader_cli')

# Configuration
DEFAULT_SECTIONS_FILE = os.getenv('SECTIONS_FILE', 'sections.json')
DEFAULT_BACKEND = os.getenv('SPREADSHEET_BACKEND', 'openpyxl')
DEFAULT_TEMPLATE_DIR = os.getenv('TEMPLATE_DIR', 'wwwroot/Upload/Templates')
DEFAULT_CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '$')

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def parse_assignment(text: str) -> CellUpdate:
    """
    Parse a SHEET!CELL=VALUE assignment.

    The value starts after the first '=' that follows the '!'.

    Examples:
        'Loan Sizer!B3=0.045' → CellUpdate('Loan Sizer', 'B3', '0.045')
        'Sheet1!A1=' → CellUpdate('Sheet1', 'A1', '')
    """
    target, sep, value = text.partition('=')
    if '!' in value and '!' not in target:
        target, sep, value = text.rpartition('=')

    sheet, bang, cell = target.rpartition('!')
    if not sep or not bang or not sheet or not cell:
        raise click.BadParameter(f"Expected SHEET!CELL=VALUE, got '{text}'")

    return CellUpdate(sheet=sheet, cell=cell.strip(), value=value)


def _parse_assignments(ctx, param, values) -> List[CellUpdate]:
    return [parse_assignment(v) for v in values]


def _parse_sheet(sheet: Optional[str]):
    """Sheet option: a name, a zero-based index, or None for the first sheet."""
    if sheet is None:
        return 0
    return int(sheet) if sheet.isdigit() else sheet


def _echo_sections(sections: dict, output: Optional[str]):
    text = json.dumps(sections, indent=2, ensure_ascii=False)
    if output:
        Path(output).write_text(text, encoding='utf-8')
        click.echo(f"✓ Sections written to {output}", err=True)
    else:
        click.echo(text)


def _on_progress(stage: str, percent: float, message: str):
    bar_length = 40
    filled = int(bar_length * percent / 100)
    bar = '█' * filled + '░' * (bar_length - filled)
    click.echo(f"\r[{bar}] {percent:.1f}% - {stage}: {message}", nl=False, err=True)


@click.group()
def cli():
    """Excel Section Reader CLI - Dual Mode Support"""


@cli.command('read')
@click.option('--file', '-f', 'file_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Path to the workbook to read')
@click.option('--sheet', '-s', default=None, help='Sheet name or zero-based index (default: first sheet)')
@click.option('--sections', default=DEFAULT_SECTIONS_FILE, show_default=True,
              help='Section configuration JSON file')
@click.option('--backend', '-b', default=DEFAULT_BACKEND, show_default=True,
              type=click.Choice(['openpyxl', 'ooxml'], case_sensitive=False),
              help='Spreadsheet backend')
@click.option('--output', '-o', default=None, help='Write JSON to this file instead of stdout')
def read_cmd(file_path: str, sheet: Optional[str], sections: str, backend: str, output: Optional[str]):
    """Read the configured sections of a workbook."""
    click.echo(f"📁 Reading: {file_path}", err=True)

    try:
        configs = load_section_configs(sections)
        adapter = get_adapter(backend)
        extractor = SectionExtractor(adapter, NumberFormatter(DEFAULT_CURRENCY_SYMBOL))

        document = adapter.open_for_read(file_path)
        try:
            worksheet = adapter.get_sheet(document, _parse_sheet(sheet))
            result = extractor.extract(document, worksheet, configs)
        finally:
            adapter.close(document)

    except ExcelSectionError as e:
        logger.error(f"Read failed: {e}")
        click.echo(f"✗ Read failed: {e}", err=True)
        sys.exit(1)

    _echo_sections(section_map_to_dict(result), output)


@cli.command('update')
@click.option('--set', 'updates', multiple=True, required=True, callback=_parse_assignments,
              metavar='SHEET!CELL=VALUE', help='Cell assignment (repeatable)')
@click.option('--sheet', '-s', default=None, help='Sheet to read sections from (default: first sheet)')
@click.option('--sections', default=DEFAULT_SECTIONS_FILE, show_default=True,
              help='Section configuration JSON file (direct mode)')
@click.option('--template-dir', default=DEFAULT_TEMPLATE_DIR, show_default=True,
              help='Template directory (direct mode)')
@click.option('--backend', '-b', default=DEFAULT_BACKEND, show_default=True,
              type=click.Choice(['openpyxl', 'ooxml'], case_sensitive=False),
              help='Spreadsheet backend used for reading (direct mode)')
@click.option('--output', '-o', default=None, help='Write JSON to this file instead of stdout')
@click.option('--api-url', envvar='API_URL', help='FastAPI backend URL (enables API mode)')
def update_cmd(updates: Tuple[CellUpdate, ...], sheet: Optional[str], sections: str, template_dir: str,
               backend: str, output: Optional[str], api_url: Optional[str]):
    """Update cells on a copy of the template and read its sections."""
    if api_url:
        click.echo(f"🌐 API Mode: Using backend at {api_url}", err=True)
        result = update_via_api(api_url, list(updates))
    else:
        click.echo("💾 Direct Mode: Using local template", err=True)
        result = update_direct(list(updates), _parse_sheet(sheet), sections, template_dir, backend)

    _echo_sections(result, output)


@cli.command('upload')
@click.option('--file', '-f', 'file_path', required=True, type=click.Path(exists=True, dir_okay=False),
              help='Path to the new template workbook')
@click.option('--template-dir', default=DEFAULT_TEMPLATE_DIR, show_default=True,
              help='Template directory (direct mode)')
@click.option('--api-url', envvar='API_URL', help='FastAPI backend URL (enables API mode)')
def upload_cmd(file_path: str, template_dir: str, api_url: Optional[str]):
    """Upload a new active template workbook."""
    if api_url:
        click.echo(f"🌐 API Mode: Using backend at {api_url}", err=True)
        upload_via_api(api_url, file_path)
    else:
        click.echo("💾 Direct Mode: Using local template directory", err=True)
        upload_direct(file_path, template_dir)


# ============================================================================
# Direct Mode Implementation (Uses Services Directly)
# ============================================================================

def update_direct(updates: List[CellUpdate], sheet, sections_file: str,
                  template_dir: str, backend: str) -> dict:
    """Apply updates to a working copy of the local template."""
    try:
        read_adapter = get_adapter(backend)
        write_adapter = read_adapter if read_adapter.supports_write else OpenpyxlAdapter()

        service = WorkbookSectionService(
            sections=load_section_configs(sections_file),
            storage=StorageService(template_dir=template_dir),
            read_adapter=read_adapter,
            write_adapter=write_adapter,
            sheet=sheet,
            formatter=NumberFormatter(DEFAULT_CURRENCY_SYMBOL),
            progress_callback=_on_progress
        )
        result = service.update_and_read(updates)
        click.echo(err=True)  # New line after progress bar

    except ExcelSectionError as e:
        click.echo(err=True)
        logger.error(f"Update failed: {e}")
        click.echo(f"✗ Update failed: {e}", err=True)
        sys.exit(1)

    return section_map_to_dict(result)


def upload_direct(file_path: str, template_dir: str):
    """Store a template in the local template directory."""
    storage = StorageService(template_dir=template_dir)

    if not StorageService.validate_file_extension(file_path):
        click.echo(f"✗ Unsupported file type: {file_path}", err=True)
        sys.exit(1)

    template_path, backup = storage.store_template(file_path)

    if backup:
        click.echo(f"ℹ️  Previous template backed up as {Path(backup).name}", err=True)
    click.echo(f"✓ Template stored at {template_path}", err=True)


# ============================================================================
# API Mode Implementation (Uses FastAPI Backend)
# ============================================================================

def update_via_api(api_url: str, updates: List[CellUpdate]) -> dict:
    """Run update-then-read via FastAPI backend."""
    payload = [{'sheet': u.sheet, 'cell': u.cell, 'value': u.value} for u in updates]

    try:
        response = requests.post(f"{api_url}/api/excel/update-excel", json=payload, timeout=300)
    except requests.exceptions.RequestException as e:
        click.echo(f"❌ Network error: {e}", err=True)
        sys.exit(1)

    if response.status_code != 200:
        click.echo(f"❌ Update failed ({response.status_code}): {response.text}", err=True)
        sys.exit(1)

    return response.json()


def upload_via_api(api_url: str, file_path: str):
    """Upload a template via FastAPI backend."""
    click.echo(f"\n📤 Uploading {file_path} to {api_url}...", err=True)

    try:
        with open(file_path, 'rb') as f:
            files = {'file': (Path(file_path).name, f, XLSX_CONTENT_TYPE)}
            response = requests.post(f"{api_url}/api/excel/upload", files=files, timeout=60)
    except requests.exceptions.RequestException as e:
        click.echo(f"❌ Network error: {e}", err=True)
        sys.exit(1)

    if response.status_code != 200:
        click.echo(f"❌ Upload failed ({response.status_code}): {response.text}", err=True)
        sys.exit(1)

    result = response.json()
    click.echo(f"✓ {result['message']} ({result['size_mb']} MB)", err=True)
    if result.get('backup'):
        click.echo(f"ℹ️  Previous template backed up as {result['backup']}", err=True)


if __name__ == '__main__':
    cli()
