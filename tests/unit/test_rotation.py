"""
Unit tests for rotation (tierbackup/backup/rotation.py).
"""

import logging
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from tierbackup.backup.retention import RetentionClassifier
from tierbackup.backup.rotation import RotationExecutor
from tierbackup.backup.storage import BackupStorage


def backups_on_days(make_backup, days, month=11, year=2021):
    return [make_backup(datetime(year, month, day, 2, 0)) for day in days]


class TestRotationExecutor:
    """Test RotationExecutor.apply."""

    def test_deletes_archive_and_checksum(self, config, make_backup):
        archives = backups_on_days(make_backup, [1, 2, 3, 4, 5])
        decision = RetentionClassifier(2, 1, 1).classify(BackupStorage(config).list_backups())

        summary = RotationExecutor().apply(decision)

        assert summary == {'kept': 4, 'deleted': 1, 'errors': []}
        oldest = archives[0]
        assert not oldest.exists()
        assert not Path(f"{oldest}.sha256").exists()
        for archive in archives[1:]:
            assert archive.exists()
            assert Path(f"{archive}.sha256").exists()

    def test_removes_every_companion_checksum(self, config, make_backup):
        archive = make_backup(datetime(2021, 11, 1, 2, 0))
        Path(f"{archive}.md5").write_text('0  x\n')
        decision = RetentionClassifier(0, 0, 0).classify(BackupStorage(config).list_backups())

        RotationExecutor().apply(decision)

        assert list(config.backup_dir.iterdir()) == []

    def test_missing_checksum_is_not_an_error(self, config, make_backup):
        make_backup(datetime(2021, 11, 1, 2, 0), checksum_suffix=None)
        decision = RetentionClassifier(0, 0, 0).classify(BackupStorage(config).list_backups())

        summary = RotationExecutor().apply(decision)

        assert summary['deleted'] == 1
        assert summary['errors'] == []

    def test_failures_are_logged_and_do_not_abort(self, config, make_backup, caplog):
        archives = backups_on_days(make_backup, [1, 2, 3])
        decision = RetentionClassifier(0, 0, 0).classify(BackupStorage(config).list_backups())
        failing = archives[1]
        real_unlink = Path.unlink

        def flaky_unlink(self, *args, **kwargs):
            if self == failing:
                raise PermissionError('read-only')
            return real_unlink(self, *args, **kwargs)

        with patch.object(Path, 'unlink', flaky_unlink):
            with caplog.at_level(logging.ERROR, logger='tierbackup'):
                summary = RotationExecutor().apply(decision)

        assert summary['deleted'] == 2
        assert len(summary['errors']) == 1
        assert 'read-only' in summary['errors'][0]
        assert failing.exists()
        assert not archives[0].exists()
        assert not archives[2].exists()
        assert any('Failed to delete' in r.message for r in caplog.records)

    def test_dry_run_deletes_nothing(self, config, make_backup, caplog):
        archives = backups_on_days(make_backup, [1, 2, 3])
        decision = RetentionClassifier(1, 0, 0).classify(BackupStorage(config).list_backups())

        with caplog.at_level(logging.INFO, logger='tierbackup'):
            summary = RotationExecutor(dry_run=True).apply(decision)

        assert summary['deleted'] == 0
        assert all(archive.exists() for archive in archives)
        assert sum('DRY RUN: Would delete' in r.message for r in caplog.records) == 2
