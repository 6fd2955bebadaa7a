"""
Rotation: apply a retention decision to the backup directory.
"""

import logging
from typing import Any, Dict

from .retention import RetentionDecision


logger = logging.getLogger(__name__)


class RotationExecutor:
    """
    Deletes the archives a RetentionDecision marks for deletion.

    Cleanup is best effort: a failed removal is logged and the remaining
    deletions still run. Nothing is retried.
    """

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def apply(self, decision: RetentionDecision) -> Dict[str, Any]:
        """
        Apply a retention decision.

        Args:
            decision: Output of RetentionClassifier.classify

        Returns:
            Dict with summary:
            {
                'kept': int,
                'deleted': int,
                'errors': List[str]
            }
        """
        summary = {
            'kept': len(decision.kept),
            'deleted': 0,
            'errors': []
        }

        prefix = "DRY RUN: Would keep" if self.dry_run else "Keeping"
        for record, tier in decision.kept:
            logger.info(f"{prefix} {record.name} ({tier})")

        for record in decision.deleted:
            if self.dry_run:
                logger.info(f"DRY RUN: Would delete {record.name}")
                continue

            logger.info(f"Deleting {record.name}")
            failed = False
            for path in [record.archive_path] + record.companion_paths():
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    failed = True
                    error_msg = f"Failed to delete {path}: {e}"
                    logger.error(error_msg)
                    summary['errors'].append(error_msg)

            if not failed:
                summary['deleted'] += 1

        return summary
