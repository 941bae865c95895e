"""
auth/mailer.py -- Outbound verification email.

Email delivery is an external collaborator. The core only needs
send_verification(email, verify_url); which transport runs is decided once at
startup by build_mailer().

  SMTPMailer -- plain SMTP relay via smtplib, one connection per message.
  LogMailer  -- development default when SMTP_HOST is empty. Logs that a
                message would have been sent. The link itself is not logged:
                it is a bearer credential for the account.

Transport failures are raised as UpstreamError so callers see one error type.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import TYPE_CHECKING

from auth.errors import UpstreamError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("boxid.auth.mailer")

_SUBJECT = "Verify your email for The Box"

_BODY = """Welcome to The Box!

Confirm your email address by opening the link below. The link is valid for a limited time.

{url}

If you did not create an account, you can ignore this message.
"""


class Mailer:
    """Base class for verification mail transports."""

    def send_verification(self, email: str, verify_url: str) -> None:
        raise NotImplementedError


class LogMailer(Mailer):
    def send_verification(self, email: str, verify_url: str) -> None:
        logger.info("Verification email for %s not sent: no SMTP relay configured", email)


class SMTPMailer(Mailer):
    """Sends through an SMTP relay."""

    def __init__(self, host: str, port: int, sender: str, timeout: float = 10.0) -> None:
        self.host = host
        self.port = port
        self.sender = sender
        self.timeout = timeout

    def _build_message(self, email: str, verify_url: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = _SUBJECT
        message["From"] = self.sender
        message["To"] = email
        message.set_content(_BODY.format(url=verify_url))
        return message

    def send_verification(self, email: str, verify_url: str) -> None:
        message = self._build_message(email, verify_url)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as conn:
                conn.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("SMTP delivery to %s via %s:%d failed: %s", email, self.host, self.port, exc)
            raise UpstreamError() from exc
        logger.info("Verification email sent to %s", email)


def build_mailer(settings: Settings) -> Mailer:
    if settings.smtp_host:
        return SMTPMailer(settings.smtp_host, settings.smtp_port, settings.smtp_sender)
    return LogMailer()
