"""
Local backup directory catalog.

Backups live flat in BACKUP_DIR:
{backup_dir}/backup-{YYYY-MM-DD-HHMM}.tar.gz
{backup_dir}/backup-{YYYY-MM-DD-HHMM}.tar.gz.{sha256|md5}
"""

import shutil
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from tierbackup.config import Config
from tierbackup.exceptions import ArchiveNotFoundError, ConfigError, InsufficientSpaceError
from .checksum import CHECKSUM_SUFFIXES
from .compression import ARCHIVE_PREFIX, ARCHIVE_EXTENSION, parse_archive_timestamp


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackupRecord:
    """One archive in the backup directory.

    ``id`` is the minute-resolution timestamp from the archive name, so ids
    order the same way as creation time.
    """

    id: datetime
    archive_path: Path
    checksum_path: Optional[Path]
    created_at: datetime
    size: int = 0

    @property
    def name(self) -> str:
        return self.archive_path.name

    def companion_paths(self) -> List[Path]:
        """All checksum files that may accompany this archive."""
        return [Path(f"{self.archive_path}{suffix}") for suffix in CHECKSUM_SUFFIXES]


class BackupStorage:
    """
    Read-only view of the backup directory plus space checks.
    """

    def __init__(self, config: Config):
        """
        Initialize storage handler.

        Args:
            config: Backup configuration
        """
        self.config = config
        self.base_path = config.backup_dir

    def list_backups(self) -> List[BackupRecord]:
        """
        List backup archives, newest first.

        Files whose names do not follow the backup naming scheme are ignored.

        Returns:
            List of BackupRecord
        """
        if not self.base_path.exists():
            return []

        records = []
        pattern = f"{ARCHIVE_PREFIX}*{ARCHIVE_EXTENSION}"

        for file_path in self.base_path.glob(pattern):
            if not file_path.is_file():
                continue

            timestamp = parse_archive_timestamp(file_path.name)
            if timestamp is None:
                logger.debug(f"Ignoring unrecognized file {file_path.name}")
                continue

            records.append(self._make_record(file_path, timestamp))

        records.sort(key=lambda r: r.id, reverse=True)
        return records

    def _make_record(self, file_path: Path, timestamp: datetime) -> BackupRecord:
        checksum_path = None
        for suffix in CHECKSUM_SUFFIXES:
            candidate = Path(f"{file_path}{suffix}")
            if candidate.exists():
                checksum_path = candidate
                break

        try:
            size = file_path.stat().st_size
        except OSError:
            size = 0

        return BackupRecord(
            id=timestamp,
            archive_path=file_path,
            checksum_path=checksum_path,
            created_at=timestamp,
            size=size
        )

    def resolve_archive(self, name_or_path: str) -> Path:
        """
        Locate an archive given either a path or a name inside BACKUP_DIR.

        Raises:
            ArchiveNotFoundError: If neither location holds a file
        """
        candidate = Path(name_or_path).expanduser()
        if candidate.is_file():
            return candidate

        in_backup_dir = self.base_path / name_or_path
        if in_backup_dir.is_file():
            return in_backup_dir

        raise ArchiveNotFoundError(f"Restore file not found: {name_or_path}")

    def free_bytes(self) -> int:
        """Free space available on the backup directory's filesystem."""
        try:
            return shutil.disk_usage(self.base_path).free
        except OSError as e:
            raise ConfigError(f"Cannot read free space of {self.base_path}: {e}")

    def check_free_space(self, required: Optional[int] = None) -> int:
        """
        Ensure at least ``required`` bytes are free in BACKUP_DIR.

        Args:
            required: Bytes required, defaults to MIN_FREE_SPACE

        Returns:
            Free bytes available

        Raises:
            InsufficientSpaceError: If free space is below the requirement
            ConfigError: If the backup directory cannot be inspected
        """
        required = self.config.min_free_bytes if required is None else required
        available = self.free_bytes()
        if available < required:
            raise InsufficientSpaceError(required, available)
        return available
