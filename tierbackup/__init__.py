import logging
import sys
from logging.handlers import RotatingFileHandler

__version__ = '1.0.0'

SUCCESS = 25
logging.addLevelName(SUCCESS, 'SUCCESS')

LOGGER_NAME = 'tierbackup'
ALERT_LOGGER_NAME = 'tierbackup.alerts'

LOG_FORMAT = '[%(asctime)s] %(levelname)s: %(message)s'
ALERT_FORMAT = '[%(asctime)s] ALERT: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _reset_handlers(logger):
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def configure_logging(config, verbose=False):
    """Configure the backup log and the alert channel"""

    log_level = logging.DEBUG if verbose else logging.INFO

    # Main log: console + rotating file in the backup directory
    logger = logging.getLogger(LOGGER_NAME)
    _reset_handlers(logger)
    logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(console_handler)

    config.log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        config.log_path,
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    # Alert channel: separate file, never mixed into the main log
    alert_logger = logging.getLogger(ALERT_LOGGER_NAME)
    _reset_handlers(alert_logger)
    alert_logger.setLevel(logging.INFO)
    alert_logger.propagate = False

    alert_console = logging.StreamHandler(sys.stdout)
    alert_console.setFormatter(logging.Formatter(ALERT_FORMAT, DATE_FORMAT))
    alert_logger.addHandler(alert_console)

    config.alert_path.parent.mkdir(parents=True, exist_ok=True)
    alert_file = logging.FileHandler(config.alert_path)
    alert_file.setFormatter(logging.Formatter(ALERT_FORMAT, DATE_FORMAT))
    alert_logger.addHandler(alert_file)

    logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
    return logger
