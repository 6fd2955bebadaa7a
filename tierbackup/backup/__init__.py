"""
Backup module for tierbackup.

This module handles the core backup functionality including:
- Exclusive-run locking
- Compression and checksums
- Tiered retention and rotation
- Execution orchestration
- Restore and listing
"""

from .executor import BackupExecutor, BackupResult, BackupState, execute_backup
from .lock import LockManager, LockToken
from .compression import create_archive
from .storage import BackupRecord, BackupStorage
from .retention import RetentionClassifier, RetentionDecision, RetentionTier
from .rotation import RotationExecutor
from .restore import RestoreExecutor, format_backup_list

__all__ = [
    'BackupExecutor',
    'BackupResult',
    'BackupState',
    'execute_backup',
    'LockManager',
    'LockToken',
    'create_archive',
    'BackupRecord',
    'BackupStorage',
    'RetentionClassifier',
    'RetentionDecision',
    'RetentionTier',
    'RotationExecutor',
    'RestoreExecutor',
    'format_backup_list',
]
