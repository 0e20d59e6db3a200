"""
Console email sender adapter - Implements EmailSender protocol.

Used when EMAIL_BACKEND=console: OTP and welcome emails are written to
the application log instead of being delivered.
"""

import logging

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Never fails, so download requests always succeed in development.
    """

    def send_email(self, to: str, subject: str, html: str, text: str) -> None:
        """
        Log recipient, subject and plain-text body at INFO level.

        The HTML body is dropped; the text body carries the same OTP or
        access code and stays readable in docker-compose logs.
        """
        logger.info("[EMAIL] To: %s Subject: %s Body: %s", to, subject, text)
