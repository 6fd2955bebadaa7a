"""
APScheduler configuration for scheduled backups.

Manages:
- A cron-triggered backup job for one source directory
- Scheduler start/stop for the foreground ``--schedule`` mode

Each firing runs a full BackupExecutor, so the backup lock still guarantees a
single active run even if another process backs up the same tree.
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.executors.pool import ThreadPoolExecutor

from tierbackup.config import Config
from tierbackup.backup.executor import BackupExecutor


logger = logging.getLogger(__name__)

BACKUP_JOB_ID = 'scheduled_backup'

# Global scheduler instance
scheduler = None


def init_scheduler(config: Config, source_path: str, cron: str, dry_run: bool = False):
    """
    Initialize and configure APScheduler with the backup job.

    Args:
        config: Backup configuration
        source_path: Directory to back up on every firing
        cron: Crontab expression, e.g. '0 2 * * *'
        dry_run: Run every scheduled backup in dry-run mode

    Returns:
        Configured scheduler (not started)

    Raises:
        ValueError: If the cron expression is invalid
    """
    global scheduler

    if scheduler is not None:
        return scheduler

    trigger = CronTrigger.from_crontab(cron)

    executors = {
        'default': ThreadPoolExecutor(max_workers=1)
    }

    job_defaults = {
        'coalesce': True,  # Combine multiple pending instances into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfires
    }

    scheduler = BlockingScheduler(
        executors=executors,
        job_defaults=job_defaults
    )

    scheduler.add_job(
        func=_execute_backup_wrapper,
        args=[config, source_path, dry_run],
        trigger=trigger,
        id=BACKUP_JOB_ID,
        name=f"Backup: {source_path}",
        replace_existing=True
    )

    logger.info(f"Scheduled backup of {source_path} ({cron})")
    return scheduler


def start_scheduler():
    """
    Start the scheduler. Blocks until the scheduler is shut down.
    """
    if scheduler is None:
        raise RuntimeError("Scheduler not initialized. Call init_scheduler() first.")

    logger.info("Scheduler starting")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler interrupted")
        stop_scheduler()


def stop_scheduler():
    """Stop the scheduler."""
    global scheduler

    if scheduler is not None:
        if scheduler.running:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        scheduler = None


def _execute_backup_wrapper(config: Config, source_path: str, dry_run: bool = False):
    """
    Run one scheduled backup.

    Failures are already logged and alerted by the executor; the scheduler
    keeps running for the next firing.

    Returns:
        BackupResult of the run
    """
    logger.info(f"Scheduler executing backup of {source_path}")
    result = BackupExecutor(config, source_path, dry_run=dry_run).execute()
    if result.succeeded:
        logger.info(f"Scheduled backup of {source_path} completed")
    else:
        logger.error(f"Scheduled backup of {source_path} failed ({result.failed_stage})")
    return result
