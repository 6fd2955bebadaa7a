"""
Archive creation and inspection.

Backups are gzip-compressed tar archives named
``backup-YYYY-MM-DD-HHMM.tar.gz``. The source directory is stored under its
own basename, so extracting into a directory recreates ``<dir>/<basename>``.
"""

import os
import re
import logging
import tarfile
import zlib
from datetime import datetime
from fnmatch import fnmatch
from pathlib import Path
from typing import List, Optional

from tierbackup.exceptions import ArchiveCreationError


logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = 'backup-'
ARCHIVE_EXTENSION = '.tar.gz'
TIMESTAMP_FORMAT = '%Y-%m-%d-%H%M'
ARCHIVE_NAME_RE = re.compile(r'^backup-(\d{4}-\d{2}-\d{2}-\d{4})\.tar\.gz$')


def should_exclude(arcname: str, exclude_patterns: List[str]) -> bool:
    """
    Check if an archive member should be excluded.

    A pattern matches the member's base name or its full path inside the
    archive. Excluded directories are pruned, so a match on a directory
    name also drops everything below it.

    Args:
        arcname: Member name inside the archive
        exclude_patterns: Glob patterns (e.g. .git, *.pyc, node_modules)

    Returns:
        True if the member matches any exclude pattern
    """
    if not exclude_patterns:
        return False

    path_name = os.path.basename(arcname)

    for pattern in exclude_patterns:
        # Match against full path or just the name
        if fnmatch(arcname, pattern) or fnmatch(path_name, pattern):
            return True
        if pattern.startswith('**/') and fnmatch(path_name, pattern[3:]):
            return True

    return False


def create_archive(
    source_path: str,
    archive_path: str,
    exclude_patterns: Optional[List[str]] = None
) -> str:
    """
    Create a gzip tar archive of a source directory.

    Args:
        source_path: Directory to archive
        archive_path: Full path of the archive to write
        exclude_patterns: Glob patterns for members to skip

    Returns:
        Path to the created archive file

    Raises:
        ArchiveCreationError: If archive creation fails
    """
    source = Path(source_path).expanduser()
    patterns = exclude_patterns or []

    if not source.is_dir():
        raise ArchiveCreationError(f"Source is not a directory: {source_path}")

    # Returning None drops the member and, for directories, its whole subtree
    def exclude_filter(tarinfo: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
        if tarinfo.name != source.name and should_exclude(tarinfo.name, patterns):
            logger.debug(f"Excluding {tarinfo.name}")
            return None
        return tarinfo

    try:
        with tarfile.open(archive_path, 'w:gz') as tar:
            tar.add(source, arcname=source.name, recursive=True, filter=exclude_filter)
        return str(archive_path)
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(archive_path):
            try:
                os.remove(archive_path)
            except OSError as cleanup_error:
                logger.warning(f"Failed to remove partial archive {archive_path}: {cleanup_error}")
        raise ArchiveCreationError(f"Failed to create archive: {e}")


def check_archive_integrity(archive_path: str) -> bool:
    """
    Read every member of an archive to confirm it is readable.

    Args:
        archive_path: Path to the archive

    Returns:
        True if the whole archive can be read
    """
    try:
        with tarfile.open(archive_path, 'r:gz') as tar:
            for member in tar:
                if member.isfile():
                    extracted = tar.extractfile(member)
                    if extracted is not None:
                        while extracted.read(1024 * 1024):
                            pass
        return True
    except (tarfile.TarError, OSError, EOFError, zlib.error) as e:
        logger.debug(f"Archive integrity check failed for {archive_path}: {e}")
        return False


def generate_archive_filename(when: Optional[datetime] = None) -> str:
    """
    Generate a standardized archive filename.

    Format: backup-{YYYY-MM-DD-HHMM}.tar.gz
    """
    when = when or datetime.now()
    return f"{ARCHIVE_PREFIX}{when.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_EXTENSION}"


def parse_archive_timestamp(filename: str) -> Optional[datetime]:
    """
    Extract the backup timestamp from an archive filename.

    Returns:
        Timestamp, or None if the name is not a backup archive
    """
    match = ARCHIVE_NAME_RE.match(os.path.basename(filename))
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        ArchiveCreationError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise ArchiveCreationError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise ArchiveCreationError(f"Failed to get archive size: {e}")
