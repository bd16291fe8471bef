"""
Recalculation service - refresh cached formula results via an external engine.

openpyxl does not evaluate formulas, so after cell values change the
workbook's cached results are stale. The workbook is saved with the
full-calculation-on-load flag; a headless LibreOffice honours that flag when
it opens the file, and converting it back to .xlsx writes fresh cached values.
"""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path

from services.exceptions import RecalculationError

logger = logging.getLogger(__name__)

DEFAULT_RECALC_COMMAND = 'soffice'
DEFAULT_RECALC_TIMEOUT = 120


class LibreOfficeRecalculator:
    """Interface to a headless LibreOffice via subprocess."""

    def __init__(self, command: str = DEFAULT_RECALC_COMMAND, timeout: int = DEFAULT_RECALC_TIMEOUT):
        self.command = command
        self.timeout = timeout

        if shutil.which(command) is None:
            logger.warning(f"Recalculation command not found on PATH: {command}")

    def recalculate(self, path: str) -> None:
        """
        Recalculate a workbook in place.

        Args:
            path: Path to the .xlsx workbook

        Raises:
            RecalculationError: If the command is missing, times out or fails
        """
        source = Path(path)

        with tempfile.TemporaryDirectory(prefix='recalc_') as out_dir:
            args = [
                self.command, '--headless', '--norestore',
                '--convert-to', source.suffix.lstrip('.') or 'xlsx',
                '--outdir', out_dir, str(source)
            ]
            logger.debug(f"Running: {' '.join(args)}")

            try:
                process = subprocess.run(
                    args,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    timeout=self.timeout
                )
            except FileNotFoundError as e:
                raise RecalculationError(f"Recalculation command not found: {self.command}") from e
            except subprocess.TimeoutExpired as e:
                raise RecalculationError(f"Recalculation timed out after {self.timeout}s: {path}") from e

            if process.returncode != 0:
                logger.error(f"Recalculation error (exit {process.returncode}): {process.stderr}")
                raise RecalculationError(
                    f"Recalculation failed (exit {process.returncode}): {process.stderr.strip()}"
                )

            converted = Path(out_dir) / source.name
            if not converted.exists():
                raise RecalculationError(f"Recalculation produced no output for {path}")

            shutil.move(str(converted), str(source))

        logger.info(f"Recalculated workbook: {path}")
