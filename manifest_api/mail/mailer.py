"""Outgoing email (OTP delivery).

The app holds one mailer on `app.state.mailer`; anything with a
`send(to, subject, body)` method works, which keeps handlers testable.
"""

from __future__ import annotations

import smtplib
import ssl
from email.mime.text import MIMEText
from typing import Tuple

from manifest_api.config import Config


def _debug(msg: str) -> None:
    print(f"[mail] {msg}")


class MailError(RuntimeError):
    pass


class SmtpMailer:
    def __init__(self, cfg: Config):
        self.host = cfg.SMTP_HOST
        self.port = int(cfg.SMTP_PORT)
        self.user = cfg.SMTP_USER
        self.password = cfg.SMTP_PASS
        self.sender = cfg.mail_sender
        self.use_ssl = bool(cfg.SMTP_USE_SSL)
        self.starttls = bool(cfg.SMTP_STARTTLS)
        self.timeout = float(cfg.SMTP_TIMEOUT_SECONDS)

    def _open(self) -> smtplib.SMTP:
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=ssl.create_default_context())
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        if self.starttls:
            server.starttls(context=ssl.create_default_context())
        return server

    def send(self, to: str, subject: str, body: str) -> None:
        if not self.sender:
            raise MailError("Sender not configured. Set SMTP_FROM or SMTP_USER.")

        message = MIMEText(body, "plain", "utf-8")
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject

        try:
            with self._open() as server:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            _debug(f"SMTP error sending '{subject}' to {to}: {e}")
            raise MailError(str(e)) from e

        _debug(f"Sent '{subject}' to {to}")


def registration_otp_message(cfg: Config, otp: str) -> Tuple[str, str]:
    subject = "Your Registration OTP"
    body = f"Your {cfg.MAIL_APP_NAME} Registration OTP is {otp}. It expires in {cfg.OTP_TTL_MINUTES} minutes."
    return subject, body


def resend_otp_message(cfg: Config, otp: str) -> Tuple[str, str]:
    return "Your New OTP", f"Your new OTP is {otp}. It expires in {cfg.OTP_TTL_MINUTES} minutes."


def password_reset_message(cfg: Config, otp: str) -> Tuple[str, str]:
    subject = "Your Password Reset OTP"
    body = (
        f"Your {cfg.MAIL_APP_NAME} password reset OTP is {otp}. "
        f"It expires in {cfg.OTP_TTL_MINUTES} minutes.\n\n"
        "If you did not request this, you can safely ignore this email."
    )
    return subject, body
