"""
Storage Service - Template workbook storage and retention.

This module manages the single active template workbook: uploading a new
template (backing up the previous one), creating per-request working copies,
and removing old backups and working copies.
"""

import logging
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, List, Optional, Tuple, Union

from services.exceptions import DocumentNotFoundError

logger = logging.getLogger(__name__)

# Defaults (can be overridden)
DEFAULT_TEMPLATE_DIR = 'Upload/Templates'
DEFAULT_TEMPLATE_FILE_NAME = 'Unitas.xlsx'
DEFAULT_WORK_DIR_NAME = 'execute'
DEFAULT_MAX_BACKUP_FILES = 10
DEFAULT_FILE_RETENTION_DAYS = 5
DEFAULT_ALLOWED_EXTENSIONS = ['.xlsx', '.xlsm']


class StorageService:
    """
    Framework-agnostic storage service for template workbooks.

    Layout:
        <template_dir>/Unitas.xlsx                   active template
        <template_dir>/Unitas_20250115_093000.xlsx   backups of earlier uploads
        <template_dir>/execute/Unitas_<uuid>.xlsx    working copies
    """

    def __init__(self, template_dir: str = DEFAULT_TEMPLATE_DIR,
                 template_file_name: str = DEFAULT_TEMPLATE_FILE_NAME,
                 work_dir_name: str = DEFAULT_WORK_DIR_NAME,
                 max_backup_files: int = DEFAULT_MAX_BACKUP_FILES):
        """
        Initialize storage service.

        Args:
            template_dir: Directory holding the active template and its backups
            template_file_name: File name of the active template
            work_dir_name: Sub-directory for working copies
            max_backup_files: Number of backups to keep
        """
        self.template_dir = Path(template_dir)
        self.template_file_name = template_file_name
        self.work_dir = self.template_dir / work_dir_name
        self.max_backup_files = max_backup_files

    @property
    def template_path(self) -> Path:
        return self.template_dir / self.template_file_name

    @property
    def _stem(self) -> str:
        return Path(self.template_file_name).stem

    @property
    def _suffix(self) -> str:
        return Path(self.template_file_name).suffix

    def _ensure_directory_exists(self, directory: Path):
        directory.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Storage directory ensured: {directory}")

    def has_template(self) -> bool:
        return self.template_path.is_file()

    def store_template(self, source: Union[str, Path, BinaryIO]) -> Tuple[str, Optional[str]]:
        """
        Store a new active template, backing up the current one first.

        Args:
            source: Path to the uploaded file, or a readable binary stream

        Returns:
            Tuple of (path to the active template, path to the backup or None)
        """
        self._ensure_directory_exists(self.template_dir)

        backup = self.backup_template()
        if backup:
            logger.info(f"Existing {self.template_file_name} backed up as {Path(backup).name}")

        if isinstance(source, (str, Path)):
            shutil.copyfile(source, self.template_path)
        else:
            with open(self.template_path, 'wb') as dest:
                shutil.copyfileobj(source, dest)

        logger.info(f"New file saved as {self.template_file_name}")
        self.cleanup_old_backups()

        return str(self.template_path), backup

    def backup_template(self) -> Optional[str]:
        """
        Rename the active template to a timestamped backup.

        Returns:
            Path to the backup, or None if there was no active template
        """
        if not self.has_template():
            return None

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        backup_path = self.template_dir / f"{self._stem}_{timestamp}{self._suffix}"
        counter = 1
        while backup_path.exists():
            backup_path = self.template_dir / f"{self._stem}_{timestamp}_{counter}{self._suffix}"
            counter += 1

        shutil.move(str(self.template_path), str(backup_path))
        return str(backup_path)

    def list_backups(self) -> List[Path]:
        """List backups, newest first."""
        if not self.template_dir.exists():
            return []

        backups = [
            f for f in self.template_dir.glob(f"{self._stem}_*{self._suffix}")
            if f.is_file()
        ]
        return sorted(backups, key=lambda f: f.stat().st_mtime, reverse=True)

    def cleanup_old_backups(self) -> int:
        """
        Delete backups beyond the newest max_backup_files.

        Returns:
            Number of backups deleted
        """
        backups = self.list_backups()
        if len(backups) <= self.max_backup_files:
            return 0

        deleted_count = 0
        for file_path in backups[self.max_backup_files:]:
            try:
                file_path.unlink()
                deleted_count += 1
                logger.info(f"Old backup deleted: {file_path.name}")
            except OSError as e:
                logger.warning(f"Failed to delete old backup {file_path}: {e}")

        return deleted_count

    def create_working_copy(self) -> str:
        """
        Copy the active template to a uniquely named working file.

        Returns:
            Path to the working copy

        Raises:
            DocumentNotFoundError: If no template has been uploaded
        """
        if not self.has_template():
            raise DocumentNotFoundError(f"Template workbook not found: {self.template_path}")

        self._ensure_directory_exists(self.work_dir)

        dest_path = self.work_dir / f"{self._stem}_{uuid.uuid4().hex}{self._suffix}"
        # copyfile rather than copy2: retention is based on the copy's own mtime
        shutil.copyfile(self.template_path, dest_path)
        logger.info(f"Copied file to: {dest_path}")

        return str(dest_path)

    def cleanup_old_files(self, directory: Union[str, Path, None] = None,
                          older_than_days: int = DEFAULT_FILE_RETENTION_DAYS) -> int:
        """
        Delete files older than the retention period.

        Args:
            directory: Directory to clean (default: working copy directory)
            older_than_days: Remove files last modified before this many days ago

        Returns:
            Number of files deleted
        """
        target = Path(directory) if directory is not None else self.work_dir

        if not target.exists():
            return 0

        cutoff_time = datetime.now().timestamp() - older_than_days * 86400

        deleted_count = 0
        for file_path in target.glob("*"):
            if not file_path.is_file():
                continue
            try:
                if file_path.stat().st_mtime < cutoff_time:
                    file_path.unlink()
                    deleted_count += 1
                    logger.info(f"Deleted old file: {file_path.name}")
            except OSError as e:
                logger.warning(f"Failed to clean up {file_path}: {e}")

        return deleted_count

    @staticmethod
    def validate_file_extension(file_name: str, allowed_extensions: Optional[List[str]] = None) -> bool:
        """Check an upload's suffix against the allowed workbook extensions (case-insensitive)."""
        allowed = [e.lower() for e in (allowed_extensions or DEFAULT_ALLOWED_EXTENSIONS)]
        ext = Path(file_name).suffix.lower()

        if ext not in allowed:
            logger.warning(f"Rejected upload {file_name!r}: extension {ext or '(none)'} not in {allowed}")
            return False
        return True

    @staticmethod
    def validate_file_size(size_bytes: int, max_size_mb: int = 100) -> bool:
        """True when size_bytes fits within max_size_mb megabytes."""
        if size_bytes > max_size_mb * 1024 * 1024:
            logger.warning(f"Rejected upload of {size_bytes / 1024 / 1024:.1f} MB (limit {max_size_mb} MB)")
            return False
        return True
