"""
Checksum creation and verification.

Digest files use the ``sha256sum``/``md5sum`` text format::

    <hexdigest>  <archive basename>

and sit next to the archive with the algorithm name as suffix
(``backup-2024-01-15-0200.tar.gz.sha256``).
"""

import hashlib
import logging
from pathlib import Path
from typing import Optional

from tierbackup.exceptions import ChecksumToolUnavailableError


logger = logging.getLogger(__name__)

# Fallback order when the preferred algorithm is unusable
FALLBACK_ALGORITHMS = ('sha256', 'md5', 'sha1')
CHECKSUM_SUFFIXES = tuple(f".{algo}" for algo in FALLBACK_ALGORITHMS)

CHUNK_SIZE = 1024 * 1024


def _is_usable(algo: str) -> bool:
    if algo not in hashlib.algorithms_available:
        return False
    try:
        hashlib.new(algo)
    except ValueError:
        # e.g. md5 blocked by a FIPS-enabled OpenSSL
        return False
    return True


def resolve_algorithm(preferred: str) -> str:
    """
    Pick the digest algorithm to use.

    Args:
        preferred: Configured algorithm name ('sha256' or 'md5')

    Returns:
        The preferred algorithm if usable, else the first usable fallback

    Raises:
        ChecksumToolUnavailableError: If no algorithm is usable
    """
    preferred = (preferred or '').lower()
    if preferred in FALLBACK_ALGORITHMS and _is_usable(preferred):
        return preferred

    for algo in FALLBACK_ALGORITHMS:
        if _is_usable(algo):
            logger.warning(f"Checksum algorithm {preferred!r} unavailable, using {algo}")
            return algo

    raise ChecksumToolUnavailableError("No checksum tool available")


def checksum_path_for(archive_path, algo: str) -> Path:
    return Path(f"{archive_path}.{algo}")


def algorithm_from_path(checksum_path) -> Optional[str]:
    suffix = Path(checksum_path).suffix.lstrip('.').lower()
    return suffix if suffix in FALLBACK_ALGORITHMS else None


def compute_digest(path, algo: str) -> str:
    """Return the hex digest of a file."""
    digest = hashlib.new(algo)
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def write_checksum_file(archive_path, algo: str) -> Path:
    """
    Compute the archive digest and write the companion checksum file.

    Returns:
        Path to the checksum file
    """
    checksum_path = checksum_path_for(archive_path, algo)
    hexdigest = compute_digest(archive_path, algo)
    checksum_path.write_text(f"{hexdigest}  {Path(archive_path).name}\n")
    return checksum_path


def read_checksum_file(checksum_path) -> str:
    """Return the digest recorded in a checksum file."""
    content = Path(checksum_path).read_text().strip()
    if not content:
        raise ValueError(f"Empty checksum file: {checksum_path}")
    return content.split()[0].lower()


def verify_checksum(archive_path, checksum_path) -> bool:
    """
    Re-compute the archive digest and compare it to the checksum file.

    Returns:
        True if the digests match; False on mismatch or unreadable files
    """
    algo = algorithm_from_path(checksum_path)
    if algo is None:
        logger.error(f"Unknown checksum file type: {checksum_path}")
        return False

    try:
        expected = read_checksum_file(checksum_path)
        actual = compute_digest(archive_path, algo)
    except (OSError, ValueError) as e:
        logger.error(f"Checksum verification could not run: {e}")
        return False

    return expected == actual
