"""
Unit tests for the command line interface (tierbackup/cli.py).
"""

import os
import signal
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tierbackup.cli import cli, install_signal_handlers, _raise_interrupt


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def backup_dir(tmp_path):
    return tmp_path / 'backups'


def invoke(runner, config_file, *args):
    return runner.invoke(cli, ['--config', str(config_file), *args])


class TestHelpAndConfig:
    """Test help output and config errors."""

    def test_help(self, runner):
        result = runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert '--restore' in result.output
        assert '--dry-run' in result.output

    def test_missing_config(self, runner, tmp_path):
        result = runner.invoke(cli, ['--config', str(tmp_path / 'nope.conf'), '--list'])

        assert result.exit_code == 1
        assert 'Config file not found' in result.output

    def test_config_from_environment(self, runner, config_file, backup_dir):
        result = runner.invoke(cli, ['--list'], env={'BACKUP_CONFIG': str(config_file)})

        assert result.exit_code == 0
        assert f'Backups in {backup_dir}' in result.output


class TestBackupCommand:
    """Test backup mode."""

    def test_backup_success(self, runner, config_file, source_tree, backup_dir):
        result = invoke(runner, config_file, str(source_tree))

        assert result.exit_code == 0, result.output
        archives = list(backup_dir.glob('backup-*.tar.gz'))
        assert len(archives) == 1
        assert Path(f"{archives[0]}.sha256").exists()
        assert 'Backup job completed' in (backup_dir / 'backup.log').read_text()
        assert 'Subject: Backup successful' in (backup_dir / 'email.txt').read_text()

    def test_dry_run(self, runner, config_file, source_tree, backup_dir):
        result = invoke(runner, config_file, '--dry-run', str(source_tree))

        assert result.exit_code == 0
        assert list(backup_dir.glob('backup-*.tar.gz')) == []
        assert 'DRY RUN: Would backup' in result.output

    def test_source_argument_missing(self, runner, config_file):
        result = invoke(runner, config_file)

        assert result.exit_code == 1
        assert 'Source folder missing' in result.output

    def test_source_directory_missing(self, runner, config_file, tmp_path, backup_dir):
        result = invoke(runner, config_file, str(tmp_path / 'gone'))

        assert result.exit_code == 1
        assert 'Source directory missing' in (backup_dir / 'alert.log').read_text()
        assert 'ERROR' in (backup_dir / 'backup.log').read_text()

    def test_lock_held(self, runner, config_file, source_tree, tmp_path, backup_dir):
        lock = tmp_path / 'run' / 'backup.lock'
        lock.parent.mkdir(parents=True)
        lock.write_text(f"{os.getppid()}\n")

        result = invoke(runner, config_file, str(source_tree))

        assert result.exit_code == 1
        assert list(backup_dir.glob('backup-*.tar.gz')) == []
        assert 'Another backup is running' in (backup_dir / 'backup.log').read_text()


class TestListAndRestore:
    """Test list and restore modes."""

    def test_list(self, runner, config_file, source_tree):
        invoke(runner, config_file, str(source_tree))

        result = invoke(runner, config_file, '--list')

        assert result.exit_code == 0
        assert 'FILE' in result.output
        assert 'backup-' in result.output

    def test_restore(self, runner, config_file, source_tree, backup_dir, tmp_path):
        invoke(runner, config_file, str(source_tree))
        archive = next(backup_dir.glob('backup-*.tar.gz'))
        target = tmp_path / 'restored'

        result = invoke(runner, config_file, '--restore', archive.name, '--to', str(target))

        assert result.exit_code == 0, result.output
        assert (target / 'project' / 'src' / 'app.py').read_text() == 'print("hello")\n'

    def test_restore_requires_target(self, runner, config_file):
        result = invoke(runner, config_file, '--restore', 'backup-2024-01-15-0200.tar.gz')

        assert result.exit_code == 1
        assert 'Missing --restore or --to' in result.output

    def test_restore_missing_archive(self, runner, config_file, tmp_path):
        result = invoke(runner, config_file, '--restore', 'nope.tar.gz', '--to', str(tmp_path / 'x'))

        assert result.exit_code == 1

    def test_restore_dry_run(self, runner, config_file, source_tree, backup_dir, tmp_path):
        invoke(runner, config_file, str(source_tree))
        archive = next(backup_dir.glob('backup-*.tar.gz'))
        target = tmp_path / 'restored'

        result = invoke(runner, config_file, '--restore', archive.name, '--to', str(target), '--dry-run')

        assert result.exit_code == 0
        assert not (target / 'project').exists()


class TestScheduleMode:
    """Test --schedule."""

    @patch('tierbackup.scheduler.start_scheduler')
    @patch('tierbackup.scheduler.init_scheduler')
    def test_schedule(self, mock_init, mock_start, runner, config_file, source_tree):
        result = invoke(runner, config_file, '--schedule', '0 2 * * *', str(source_tree))

        assert result.exit_code == 0
        args = mock_init.call_args
        assert args[0][1:] == (str(source_tree), '0 2 * * *')
        assert args[1] == {'dry_run': False}
        mock_start.assert_called_once()

    @patch('tierbackup.scheduler.start_scheduler')
    @patch('tierbackup.scheduler.init_scheduler', side_effect=ValueError('bad cron'))
    def test_invalid_schedule(self, mock_init, mock_start, runner, config_file, source_tree):
        result = invoke(runner, config_file, '--schedule', 'whenever', str(source_tree))

        assert result.exit_code == 1
        mock_start.assert_not_called()


class TestSignals:
    """Test SIGTERM handling."""

    def test_sigterm_becomes_keyboard_interrupt(self):
        with pytest.raises(KeyboardInterrupt):
            _raise_interrupt(signal.SIGTERM, None)

    def test_install_signal_handlers(self):
        previous = signal.getsignal(signal.SIGTERM)
        try:
            install_signal_handlers()
            assert signal.getsignal(signal.SIGTERM) is _raise_interrupt
        finally:
            signal.signal(signal.SIGTERM, previous)
