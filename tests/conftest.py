"""
Shared pytest fixtures for tierbackup tests.

This module provides fixtures for:
- Configuration rooted in a temporary directory
- Config files on disk for the CLI
- Sample source trees with excludable content
- Pre-existing backup archives for retention/rotation tests
- Logging reset between tests
"""

import logging
import tarfile
from datetime import datetime

import pytest

from tierbackup import LOGGER_NAME, ALERT_LOGGER_NAME
from tierbackup.config import Config
from tierbackup.backup.compression import generate_archive_filename


def _config_values(tmp_path, **overrides):
    values = {
        'BACKUP_DIR': str(tmp_path / 'backups'),
        'LOCK_FILE': str(tmp_path / 'run' / 'backup.lock'),
        'DAILY_KEEP': '7',
        'WEEKLY_KEEP': '4',
        'MONTHLY_KEEP': '3',
        'CHECKSUM_ALGO': 'sha256',
        'NOTIFY_EMAIL': '',
        'MIN_FREE_SPACE': '0',
    }
    values.update({key: str(value) for key, value in overrides.items()})
    return values


@pytest.fixture
def make_config(tmp_path):
    """
    Factory building a Config in tmp_path with optional overrides.

    The backup directory is created.
    """
    def _make(**overrides):
        config = Config.from_mapping(_config_values(tmp_path, **overrides))
        config.backup_dir.mkdir(parents=True, exist_ok=True)
        return config

    return _make


@pytest.fixture
def config(make_config):
    """Default Config in tmp_path (7/4/3 retention, sha256, no e-mail)."""
    return make_config()


@pytest.fixture
def config_file(tmp_path):
    """
    Write a backup.conf in tmp_path and return its path.
    """
    path = tmp_path / 'backup.conf'
    values = _config_values(tmp_path, NOTIFY_EMAIL='ops@example.com')
    path.write_text(''.join(f'{key}="{value}"\n' for key, value in values.items()))
    return path


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a source directory to back up.

    Creates:
    - project/README.md
    - project/src/app.py
    - project/src/data/values.bin
    - project/.git/HEAD (excluded by default patterns)
    - project/node_modules/lib/index.js (excluded by default patterns)
    """
    root = tmp_path / 'project'
    (root / 'src' / 'data').mkdir(parents=True)
    (root / 'README.md').write_text('Project readme')
    (root / 'src' / 'app.py').write_text('print("hello")\n')
    (root / 'src' / 'data' / 'values.bin').write_bytes(bytes(range(256)) * 8)

    (root / '.git').mkdir()
    (root / '.git' / 'HEAD').write_text('ref: refs/heads/main')
    (root / 'node_modules' / 'lib').mkdir(parents=True)
    (root / 'node_modules' / 'lib' / 'index.js').write_text('module.exports = {}')

    return root


@pytest.fixture
def make_backup(config, tmp_path):
    """
    Factory creating a small, valid backup archive (plus checksum file)
    in the configured backup directory for a given timestamp.
    """
    payload = tmp_path / 'payload'
    payload.mkdir(exist_ok=True)
    (payload / 'file.txt').write_text('payload')

    def _make(when: datetime, checksum_suffix: str = '.sha256'):
        archive = config.backup_dir / generate_archive_filename(when)
        with tarfile.open(archive, 'w:gz') as tar:
            tar.add(payload, arcname='payload')
        if checksum_suffix:
            checksum = archive.parent / f"{archive.name}{checksum_suffix}"
            checksum.write_text(f"0000  {archive.name}\n")
        return archive

    return _make


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers installed by configure_logging so tests stay isolated."""
    yield
    for name in (LOGGER_NAME, ALERT_LOGGER_NAME):
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
