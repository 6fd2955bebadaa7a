"""
Filesystem lock guaranteeing a single running backup.

The lock file stores only the owning process id. A lock whose owner is no
longer running is stale and is reclaimed by the next acquirer.
"""

import os
import logging
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from tierbackup.exceptions import LockHeldError


logger = logging.getLogger(__name__)

MAX_ACQUIRE_ATTEMPTS = 3


@dataclass(frozen=True)
class LockToken:
    """Proof of lock ownership held by the running process."""

    owner_id: int
    acquired_at: datetime


class LockManager:
    """
    Mutual exclusion through a pid lock file.
    """

    def __init__(self, lock_path):
        """
        Initialize lock manager.

        Args:
            lock_path: Path of the lock file
        """
        self.lock_path = Path(lock_path)

    def read_owner(self) -> Optional[int]:
        """
        Read the owner recorded in the lock file.

        Returns:
            Owner pid, or None if the file is missing, unreadable or garbage
        """
        return self._parse_owner(self.lock_path)

    @staticmethod
    def _parse_owner(path: Path) -> Optional[int]:
        try:
            content = path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot read lock file {path}: {e}")
            return None

        try:
            return int(content)
        except ValueError:
            return None

    @staticmethod
    def is_owner_alive(pid: Optional[int]) -> bool:
        """
        Check if a process with the given pid is running.

        Uses os.kill(pid, 0), which probes without delivering a signal.
        """
        if pid is None or pid <= 0:
            return False
        try:
            os.kill(pid, 0)
            return True
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but owned by another user
            return True
        except OSError:
            return False

    def acquire(self, owner_id: int) -> LockToken:
        """
        Acquire the lock for owner_id.

        A stale lock is first renamed to a private recovery path. Only the
        process whose rename succeeds removes it, then every contender goes
        back to the exclusive create, so exactly one of them wins.

        Args:
            owner_id: Process id of the caller

        Returns:
            LockToken for the new owner

        Raises:
            LockHeldError: If a live process owns the lock
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)

        for _ in range(MAX_ACQUIRE_ATTEMPTS):
            if self._create(owner_id):
                return LockToken(owner_id=owner_id, acquired_at=datetime.now())

            current = self.read_owner()
            if self.is_owner_alive(current):
                raise LockHeldError(current)
            if self._recover_stale_lock(current, owner_id):
                logger.info(f"Reclaimed stale lock (recorded owner: {current})")

        raise LockHeldError(self.read_owner())

    def release(self, owner_id: int) -> bool:
        """
        Remove the lock file if owner_id owns it.

        Returns:
            True if the lock file was removed
        """
        if self.read_owner() != owner_id:
            return False
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            return False
        return True

    @contextmanager
    def hold(self, owner_id: int) -> Iterator[LockToken]:
        """
        Hold the lock for the duration of a with-block.

        The lock is released on every exit path, including exceptions and
        KeyboardInterrupt. If acquisition fails nothing is released.
        """
        token = self.acquire(owner_id)
        try:
            yield token
        finally:
            if self.release(owner_id):
                logger.debug(f"Released lock {self.lock_path}")

    def _create(self, owner_id: int) -> bool:
        """
        Publish a lock file that already holds owner_id.

        The pid is written to a temp file and hard-linked into place, so the
        lock file is never observed empty.

        Returns:
            True if this call created the lock file
        """
        fd, tmp_path = tempfile.mkstemp(
            prefix='.backup-lock-', dir=str(self.lock_path.parent)
        )
        try:
            with os.fdopen(fd, 'w') as f:
                f.write(f"{owner_id}\n")
            os.chmod(tmp_path, 0o644)
            os.link(tmp_path, self.lock_path)
            return True
        except FileExistsError:
            return False
        finally:
            os.remove(tmp_path)

    def _recover_stale_lock(self, stale_owner: Optional[int], owner_id: int) -> bool:
        """
        Remove a stale lock file, letting only one contender do it.

        The file is renamed to a recovery path unique to owner_id. If what
        was renamed turns out to be a fresh lock from a live owner, it is
        linked back into place.

        Returns:
            True if this call removed the stale lock
        """
        recovery_path = self.lock_path.with_name(f"{self.lock_path.name}.recovery.{owner_id}")
        try:
            os.rename(self.lock_path, recovery_path)
        except FileNotFoundError:
            # Another contender already recovered it
            return False

        try:
            recovered = self._parse_owner(recovery_path)
            if recovered != stale_owner and self.is_owner_alive(recovered):
                try:
                    os.link(recovery_path, self.lock_path)
                except FileExistsError:
                    logger.warning(f"Lost lock of live owner {recovered} during recovery")
                return False
            return True
        finally:
            recovery_path.unlink()
