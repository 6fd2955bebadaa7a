"""
Command line interface.

Usage:
    backup [--dry-run] /path/to/source
    backup --list
    backup --restore backup-2024-01-15-0200.tar.gz --to /path/restore [--dry-run]
    backup --schedule "0 2 * * *" /path/to/source
"""

import signal
import logging

import click

from tierbackup import configure_logging
from tierbackup.config import load_config, ensure_backup_dir
from tierbackup.exceptions import BackupError
from tierbackup.backup.executor import BackupExecutor
from tierbackup.backup.restore import RestoreExecutor, format_backup_list
from tierbackup.backup.storage import BackupStorage


logger = logging.getLogger(__name__)

EXIT_FAILURE = 1


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"Received signal {signum}")


def install_signal_handlers():
    """Turn SIGTERM into KeyboardInterrupt so scoped cleanup runs."""
    signal.signal(signal.SIGTERM, _raise_interrupt)


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('source', required=False, type=click.Path())
@click.option('--dry-run', is_flag=True, help='Validate and report, change nothing.')
@click.option('--list', 'list_mode', is_flag=True, help='List existing backups.')
@click.option('--restore', 'restore_archive', metavar='ARCHIVE',
              help='Archive name (inside BACKUP_DIR) or path to restore.')
@click.option('--to', 'restore_to', metavar='DIR', help='Restore target directory.')
@click.option('--schedule', metavar='CRON', help='Run backups on a crontab schedule.')
@click.option('--config', 'config_path', type=click.Path(), envvar='BACKUP_CONFIG',
              help='Config file (default: ./backup.conf).')
@click.option('-v', '--verbose', is_flag=True, help='Debug logging.')
@click.pass_context
def cli(ctx, source, dry_run, list_mode, restore_archive, restore_to, schedule, config_path, verbose):
    """Verified, space-aware backups with daily/weekly/monthly retention."""
    try:
        config = load_config(config_path)
        ensure_backup_dir(config)
    except BackupError as e:
        click.echo(f"[ERROR] {e}", err=True)
        ctx.exit(EXIT_FAILURE)

    configure_logging(config, verbose=verbose)

    if list_mode:
        records = BackupStorage(config).list_backups()
        click.echo(format_backup_list(config.backup_dir, records))
        ctx.exit(0)

    if restore_archive is not None or restore_to is not None:
        if not restore_archive or not restore_to:
            click.echo("Missing --restore or --to", err=True)
            ctx.exit(EXIT_FAILURE)
        code = RestoreExecutor(config, restore_archive, restore_to, dry_run=dry_run).execute()
        ctx.exit(code)

    if not source:
        click.echo("Error: Source folder missing", err=True)
        ctx.exit(EXIT_FAILURE)

    if schedule:
        from tierbackup.scheduler import init_scheduler, start_scheduler
        try:
            init_scheduler(config, source, schedule, dry_run=dry_run)
        except ValueError as e:
            logger.error(f"Invalid schedule {schedule!r}: {e}")
            ctx.exit(EXIT_FAILURE)
        start_scheduler()
        ctx.exit(0)

    result = BackupExecutor(config, source, dry_run=dry_run).execute()
    ctx.exit(result.exit_code)


def main():
    install_signal_handlers()
    cli()
