"""
Configuration loading.

The configuration file is a shell-style ``KEY=VALUE`` file (``backup.conf``).
Values are layered as: built-in defaults, then the file, then the process
environment. The result is an immutable Config passed to every component.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import dotenv_values

from .exceptions import ConfigError, ConfigMissingError


DEFAULT_CONFIG_NAME = 'backup.conf'
CONFIG_ENV_VAR = 'BACKUP_CONFIG'

DEFAULTS = {
    'BACKUP_DIR': '~/backups',
    'EXCLUDE_PATTERNS': '.git,node_modules,.cache',
    'DAILY_KEEP': '7',
    'WEEKLY_KEEP': '4',
    'MONTHLY_KEEP': '3',
    'CHECKSUM_ALGO': 'sha256',
    'LOG_FILE': 'backup.log',
    'ALERT_LOG': 'alert.log',
    'EMAIL_FILE': 'email.txt',
    'NOTIFY_EMAIL': '',
    'MIN_FREE_SPACE': '0',
    'LOCK_FILE': os.path.join(tempfile.gettempdir(), 'backup.lock'),
}


@dataclass(frozen=True)
class Config:
    """Immutable backup configuration."""

    BACKUP_DIR: str
    EXCLUDE_PATTERNS: str
    DAILY_KEEP: int
    WEEKLY_KEEP: int
    MONTHLY_KEEP: int
    CHECKSUM_ALGO: str
    LOG_FILE: str
    ALERT_LOG: str
    EMAIL_FILE: str
    NOTIFY_EMAIL: str
    MIN_FREE_SPACE: int
    LOCK_FILE: str

    @property
    def backup_dir(self) -> Path:
        return Path(self.BACKUP_DIR)

    @property
    def log_path(self) -> Path:
        return self._in_backup_dir(self.LOG_FILE)

    @property
    def alert_path(self) -> Path:
        return self._in_backup_dir(self.ALERT_LOG)

    @property
    def email_path(self) -> Path:
        return self._in_backup_dir(self.EMAIL_FILE)

    @property
    def lock_path(self) -> Path:
        return Path(self.LOCK_FILE)

    @property
    def exclude_patterns(self) -> List[str]:
        return [p.strip() for p in self.EXCLUDE_PATTERNS.split(',') if p.strip()]

    @property
    def min_free_bytes(self) -> int:
        return self.MIN_FREE_SPACE * 1024 * 1024

    def _in_backup_dir(self, name: str) -> Path:
        path = Path(name).expanduser()
        if path.is_absolute():
            return path
        return self.backup_dir / path

    @classmethod
    def from_mapping(cls, values: Mapping[str, Optional[str]]) -> 'Config':
        """
        Build a Config from raw string values, applying defaults.

        Args:
            values: Mapping of option names to raw string values

        Returns:
            Config instance

        Raises:
            ConfigError: If a numeric option is not a non-negative integer
        """
        merged = dict(DEFAULTS)
        for key, value in values.items():
            if key in DEFAULTS and value is not None:
                merged[key] = value

        return cls(
            BACKUP_DIR=str(Path(merged['BACKUP_DIR']).expanduser()),
            EXCLUDE_PATTERNS=merged['EXCLUDE_PATTERNS'],
            DAILY_KEEP=_parse_count('DAILY_KEEP', merged['DAILY_KEEP']),
            WEEKLY_KEEP=_parse_count('WEEKLY_KEEP', merged['WEEKLY_KEEP']),
            MONTHLY_KEEP=_parse_count('MONTHLY_KEEP', merged['MONTHLY_KEEP']),
            CHECKSUM_ALGO=merged['CHECKSUM_ALGO'].strip().lower(),
            LOG_FILE=merged['LOG_FILE'],
            ALERT_LOG=merged['ALERT_LOG'],
            EMAIL_FILE=merged['EMAIL_FILE'],
            NOTIFY_EMAIL=merged['NOTIFY_EMAIL'].strip(),
            MIN_FREE_SPACE=_parse_count('MIN_FREE_SPACE', merged['MIN_FREE_SPACE']),
            LOCK_FILE=str(Path(merged['LOCK_FILE']).expanduser()),
        )


def _parse_count(name: str, raw: str) -> int:
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def resolve_config_path(path: Optional[str] = None,
                        environ: Optional[Mapping[str, str]] = None) -> Path:
    """Pick the config file: explicit path, then $BACKUP_CONFIG, then ./backup.conf."""
    environ = os.environ if environ is None else environ
    if path:
        return Path(path).expanduser()
    if environ.get(CONFIG_ENV_VAR):
        return Path(environ[CONFIG_ENV_VAR]).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_NAME


def load_config(path: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Load configuration from file and environment.

    Args:
        path: Explicit config file path (optional)
        environ: Environment mapping, defaults to os.environ

    Returns:
        Config instance

    Raises:
        ConfigMissingError: If the config file does not exist
        ConfigError: If a value is invalid
    """
    environ = os.environ if environ is None else environ
    config_path = resolve_config_path(path, environ)

    if not config_path.is_file():
        raise ConfigMissingError(f"Config file not found: {config_path}")

    values = dict(dotenv_values(config_path))
    for key in DEFAULTS:
        if key in environ:
            values[key] = environ[key]

    return Config.from_mapping(values)


def ensure_backup_dir(config: Config) -> Path:
    """
    Create the backup directory if it does not exist.

    Raises:
        ConfigError: If the directory cannot be created
    """
    try:
        config.backup_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigError(f"Cannot create backup dir {config.backup_dir}: {e}")
    return config.backup_dir
