"""
Error taxonomy for tierbackup.

Every failure raised by the pipeline derives from BackupError. The ``stage``
attribute names the lifecycle stage the failure belongs to and
``user_impact`` decides whether it is duplicated to the alert channel.
"""


class BackupError(Exception):
    """Base class for all backup failures."""

    stage = 'Backup'
    user_impact = False
    fatal = True


class ConfigError(BackupError):
    """Raised when configuration cannot be loaded or is invalid."""

    stage = 'Config'


class ConfigMissingError(ConfigError):
    """Raised when the configuration file does not exist."""

    stage = 'ConfigMissing'


class LockHeldError(BackupError):
    """Raised when another live process owns the backup lock."""

    stage = 'AnotherRunning'

    def __init__(self, owner_id: int):
        super().__init__(f"Another backup is running (PID {owner_id})")
        self.owner_id = owner_id


class SourceMissingError(BackupError):
    """Raised when the source path is missing or not a directory."""

    stage = 'SourceMissing'
    user_impact = True


class InsufficientSpaceError(BackupError):
    """Raised when the backup directory has less free space than required."""

    stage = 'InsufficientSpace'
    user_impact = True

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient disk space: {available / 1024 / 1024:.2f} MB free, "
            f"{required / 1024 / 1024:.2f} MB required"
        )
        self.required = required
        self.available = available


class ArchiveCreationError(BackupError):
    """Raised when archive creation fails."""

    stage = 'ArchiveFailed'
    user_impact = True


class ChecksumToolUnavailableError(BackupError):
    """Raised when no digest algorithm can be used."""

    stage = 'ChecksumToolUnavailable'


class VerificationError(BackupError):
    """Raised when a checksum re-check or archive read fails.

    Not fatal: the lifecycle records it and keeps going.
    """

    stage = 'VerificationFailed'
    user_impact = True
    fatal = False


class RestoreError(BackupError):
    """Base class for restore failures."""

    stage = 'Restore'
    user_impact = True


class ArchiveNotFoundError(RestoreError):
    """Raised when the archive to restore cannot be located."""

    stage = 'RestoreArchiveMissing'


class RestoreTargetError(RestoreError):
    """Raised when the restore target directory cannot be created."""

    stage = 'RestoreTargetUncreatable'


class RestoreExtractionError(RestoreError):
    """Raised when archive extraction fails."""

    stage = 'RestoreExtractionFailed'
