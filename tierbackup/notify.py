"""
Alert and notification channels.

Alerts are appended to the alert log through the ``tierbackup.alerts``
logger. Notifications are simulated outgoing e-mails appended to a local file.
"""

import logging
from email.utils import formatdate

from . import ALERT_LOGGER_NAME
from .config import Config


logger = logging.getLogger(__name__)
alert_logger = logging.getLogger(ALERT_LOGGER_NAME)


class Notifier:
    """
    Writes alert entries and simulated notification e-mails.
    """

    def __init__(self, config: Config):
        self.config = config

    @property
    def email_enabled(self) -> bool:
        return bool(self.config.NOTIFY_EMAIL)

    def alert(self, message: str):
        """Duplicate a user-impacting event to the alert channel."""
        alert_logger.warning(message)

    def send_email(self, subject: str, body: str):
        """
        Append a notification message to the e-mail file.

        Does nothing when NOTIFY_EMAIL is empty. A write failure is logged
        and does not interrupt the caller.

        Args:
            subject: Message subject line
            body: Message body
        """
        if not self.email_enabled:
            return

        message = (
            f"To: {self.config.NOTIFY_EMAIL}\n"
            f"Subject: {subject}\n"
            f"Date: {formatdate(localtime=True)}\n"
            f"\n"
            f"{body}\n"
            f"-----\n"
        )

        try:
            with open(self.config.email_path, 'a') as f:
                f.write(message)
        except OSError as e:
            logger.error(f"Failed to write notification to {self.config.email_path}: {e}")
