"""
Backup executor - the backup lifecycle state machine.

States:
    IDLE -> LOCKED -> ARCHIVING -> VERIFYING -> ROTATING -> DONE
    any state -> FAILED(stage)

Workflow:
1. Acquire the lock (held for the whole run, released on every exit path)
2. Validate source directory, checksum algorithm and free space
3. Create compressed archive and its checksum file
4. Re-check checksum and read the archive back
5. Classify existing backups and delete the ones outside retention

A failed verification is alerted but does not stop the run: rotation still
happens afterwards.
"""

import os
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from tierbackup import SUCCESS
from tierbackup.config import Config, ensure_backup_dir
from tierbackup.exceptions import (
    ArchiveCreationError,
    BackupError,
    SourceMissingError,
    VerificationError,
)
from tierbackup.notify import Notifier
from .checksum import resolve_algorithm, write_checksum_file, verify_checksum, checksum_path_for
from .compression import create_archive, check_archive_integrity, generate_archive_filename, get_archive_size
from .lock import LockManager
from .retention import RetentionClassifier
from .rotation import RotationExecutor
from .storage import BackupStorage


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 2


class BackupState(enum.Enum):
    IDLE = 'idle'
    LOCKED = 'locked'
    ARCHIVING = 'archiving'
    VERIFYING = 'verifying'
    ROTATING = 'rotating'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class BackupResult:
    """Outcome of one backup run."""

    state: BackupState = BackupState.IDLE
    failed_stage: Optional[str] = None
    error_message: Optional[str] = None
    archive_path: Optional[Path] = None
    checksum_path: Optional[Path] = None
    verified: Optional[bool] = None
    rotation: Optional[Dict[str, Any]] = None
    dry_run: bool = False
    interrupted: bool = False
    history: List[BackupState] = field(default_factory=lambda: [BackupState.IDLE])

    @property
    def succeeded(self) -> bool:
        return self.state == BackupState.DONE

    @property
    def exit_code(self) -> int:
        if self.succeeded:
            return EXIT_OK
        if self.interrupted:
            return EXIT_INTERRUPTED
        return EXIT_FAILURE


class BackupExecutor:
    """
    Orchestrates one backup run for a source directory.
    """

    def __init__(
        self,
        config: Config,
        source_path: str,
        dry_run: bool = False,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None
    ):
        """
        Initialize backup executor.

        Args:
            config: Backup configuration
            source_path: Directory to back up
            dry_run: Validate only; skip archive, checksum and rotation
            owner_id: Lock owner id, defaults to the current pid
            now: Timestamp for the archive name, defaults to datetime.now()
        """
        self.config = config
        self.source_path = Path(source_path).expanduser()
        self.dry_run = dry_run
        self.owner_id = owner_id if owner_id is not None else os.getpid()
        self.now = now

        self.lock_manager = LockManager(config.lock_path)
        self.storage = BackupStorage(config)
        self.classifier = RetentionClassifier.from_config(config)
        self.notifier = Notifier(config)

        self.result = BackupResult(dry_run=dry_run)
        self.checksum_algo = None

    def execute(self) -> BackupResult:
        """
        Execute the backup run.

        Failures from the error taxonomy are logged, alerted and recorded in
        the result instead of being raised.

        Returns:
            BackupResult with final state and exit code
        """
        try:
            with self.lock_manager.hold(self.owner_id):
                self._transition(BackupState.LOCKED)
                self._execute_workflow()
        except BackupError as e:
            # LockHeldError lands here too; hold() never acquired, so nothing to release
            self._fail(e)
        except KeyboardInterrupt:
            self.result.interrupted = True
            self.result.failed_stage = 'Interrupted'
            self.result.state = BackupState.FAILED
            self.result.history.append(BackupState.FAILED)
            logger.warning("Interrupted")

        return self.result

    def _execute_workflow(self):
        """Run validation, archive, verify and rotate while holding the lock."""
        # Validation
        ensure_backup_dir(self.config)
        self._validate_source()
        self.checksum_algo = resolve_algorithm(self.config.CHECKSUM_ALGO)
        free = self.storage.check_free_space()
        logger.debug(f"Free space in {self.config.backup_dir}: {free / 1024 / 1024:.2f} MB")

        archive_path = self.config.backup_dir / generate_archive_filename(self.now or datetime.now())
        self.result.archive_path = archive_path

        if self.dry_run:
            logger.info(f"DRY RUN: Would backup {self.source_path} to {archive_path}")
            logger.info(
                f"DRY RUN: Would write {checksum_path_for(archive_path, self.checksum_algo).name}"
            )
            self._rotate()
            self._transition(BackupState.DONE)
            return

        # Archiving
        self._transition(BackupState.ARCHIVING)
        logger.info(f"Starting backup of {self.source_path}")
        create_archive(str(self.source_path), str(archive_path), self.config.exclude_patterns)
        file_size = get_archive_size(str(archive_path))
        logger.log(SUCCESS, f"Backup created: {archive_path.name} ({file_size / 1024 / 1024:.2f} MB)")

        try:
            self.result.checksum_path = write_checksum_file(archive_path, self.checksum_algo)
        except OSError as e:
            raise ArchiveCreationError(f"Failed to write checksum file: {e}")
        logger.info(f"Checksum created: {self.result.checksum_path.name}")

        # Verifying
        self._transition(BackupState.VERIFYING)
        try:
            self._verify(archive_path)
            self.result.verified = True
        except VerificationError as e:
            # Recorded and alerted, but the run carries on into rotation
            self.result.verified = False
            self._report(e)

        # Rotating
        self._rotate()

        self._transition(BackupState.DONE)
        logger.log(SUCCESS, f"Backup job completed for {self.source_path}")
        self.notifier.send_email("Backup successful", f"Backup completed for {self.source_path}")

    def _validate_source(self):
        if not self.source_path.exists():
            raise SourceMissingError(f"Source directory missing: {self.source_path}")
        if not self.source_path.is_dir():
            raise SourceMissingError(f"Source is not a directory: {self.source_path}")

    def _verify(self, archive_path: Path):
        """
        Re-check the checksum file and read the archive back.

        Raises:
            VerificationError: On digest mismatch or unreadable archive
        """
        problems = []
        if verify_checksum(archive_path, self.result.checksum_path):
            logger.info("Checksum verified")
        else:
            problems.append("checksum mismatch")

        if check_archive_integrity(str(archive_path)):
            logger.info("Archive integrity OK")
        else:
            problems.append("archive unreadable")

        if problems:
            raise VerificationError(f"Corrupted archive: {archive_path} ({', '.join(problems)})")

    def _rotate(self):
        if not self.dry_run:
            self._transition(BackupState.ROTATING)
        logger.info("Applying retention policy")
        decision = self.classifier.classify(self.storage.list_backups())
        self.result.rotation = RotationExecutor(dry_run=self.dry_run).apply(decision)

    def _transition(self, state: BackupState):
        logger.debug(f"State: {self.result.state.value} -> {state.value}")
        self.result.state = state
        self.result.history.append(state)

    def _report(self, error: BackupError):
        """Log an error and duplicate it to the alert channel if it affects the user."""
        logger.error(f"{error.stage}: {error}")
        if error.user_impact:
            self.notifier.alert(str(error))

    def _fail(self, error: BackupError):
        self.result.state = BackupState.FAILED
        self.result.history.append(BackupState.FAILED)
        self.result.failed_stage = error.stage
        self.result.error_message = str(error)
        self._report(error)
        if error.user_impact:
            self.notifier.send_email("Backup failed", f"Backup of {self.source_path} failed: {error}")


def execute_backup(config: Config, source_path: str, dry_run: bool = False) -> BackupResult:
    """
    Run a single backup for source_path.

    Returns:
        BackupResult with execution results
    """
    executor = BackupExecutor(config, source_path, dry_run=dry_run)
    return executor.execute()
