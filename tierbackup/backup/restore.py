"""
Restore and list operations.

Both are read-only with respect to the backup directory and do not take the
backup lock.
"""

import logging
import tarfile
import zlib
from pathlib import Path
from typing import List, Optional

from tierbackup import SUCCESS
from tierbackup.config import Config
from tierbackup.exceptions import RestoreError, RestoreTargetError, RestoreExtractionError
from tierbackup.notify import Notifier
from .compression import TIMESTAMP_FORMAT
from .storage import BackupRecord, BackupStorage


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def extract_archive(archive_path, target_dir):
    """
    Extract a gzip tar archive into target_dir.

    Raises:
        RestoreExtractionError: If the archive cannot be read or extracted
    """
    try:
        with tarfile.open(archive_path, 'r:gz') as tar:
            if hasattr(tarfile, 'data_filter'):
                tar.extractall(target_dir, filter='data')
            else:
                tar.extractall(target_dir)
    except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
        raise RestoreExtractionError(f"Could not extract {archive_path}: {e}")


class RestoreExecutor:
    """
    Restores a backup archive into a target directory.
    """

    def __init__(self, config: Config, archive: str, target_dir: str, dry_run: bool = False):
        """
        Initialize restore executor.

        Args:
            config: Backup configuration
            archive: Archive path, or archive name inside BACKUP_DIR
            target_dir: Directory to extract into (created if missing)
            dry_run: Resolve and validate only
        """
        self.config = config
        self.archive = archive
        self.target_dir = Path(target_dir).expanduser()
        self.dry_run = dry_run
        self.storage = BackupStorage(config)
        self.notifier = Notifier(config)
        self.archive_path: Optional[Path] = None
        self.error: Optional[RestoreError] = None

    def execute(self) -> int:
        """
        Run the restore.

        Returns:
            Process exit code (0 on success or dry run, 1 on failure)
        """
        try:
            self._restore()
        except RestoreError as e:
            self.error = e
            logger.error(f"{e.stage}: {e}")
            self.notifier.alert(str(e))
            self.notifier.send_email("Restore failed", str(e))
            return EXIT_FAILURE
        return EXIT_OK

    def _restore(self):
        self.archive_path = self.storage.resolve_archive(self.archive)

        try:
            self.target_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RestoreTargetError(f"Cannot create restore dir {self.target_dir}: {e}")

        if self.dry_run:
            logger.info(f"DRY RUN: Would restore {self.archive_path} to {self.target_dir}")
            return

        logger.info(f"Restoring {self.archive_path} to {self.target_dir}")
        extract_archive(self.archive_path, self.target_dir)
        logger.log(SUCCESS, "Restore complete")
        self.notifier.send_email("Restore successful", f"Restored to {self.target_dir}")


def format_backup_list(backup_dir, records: List[BackupRecord]) -> str:
    """
    Render the backup listing table, oldest first.

    Args:
        backup_dir: Directory shown in the header
        records: Backups to list

    Returns:
        Multi-line table text
    """
    lines = [
        f"Backups in {backup_dir}:",
        f"{'FILE':<35} {'DATE':<20} {'SIZE':<10}",
    ]
    for record in sorted(records, key=lambda r: r.id):
        lines.append(
            f"{record.name:<35} {record.id.strftime(TIMESTAMP_FORMAT):<20} {record.size:<10}"
        )
    return '\n'.join(lines)
