from __future__ import annotations

import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional, Protocol

from voyagevault.logging import get_logger

logger = get_logger(__name__)

SUBJECT = "VoyageVault Verification Code"


class CodeMailer(Protocol):
    def send_verification_code(self, to_email: str, code: str) -> bool: ...


def mask_recipient(email: str) -> str:
    local, sep, domain = email.partition("@")
    if not sep:
        return "redacted"
    return f"{local[:2]}***@{domain}"


class EmailService:
    """Delivers one-time codes over SMTP.

    With no SMTP host or sender configured the service only records that a code
    went out, which keeps local signup usable. Each code gets a single delivery
    attempt; ``False`` tells the caller it never left this process.
    """

    def __init__(
        self,
        *,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: bool = True,
        from_email: Optional[str] = None,
        from_name: str = "VoyageVault",
        support_email: str = "support@voyagevault.com",
        code_ttl_minutes: int = 10,
        timeout: float = 30.0,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user
        self.from_name = from_name
        self.support_email = support_email
        self.code_ttl_minutes = code_ttl_minutes
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.from_email)

    def compose(self, to_email: str, code: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = SUBJECT
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message.set_content(
            f"Your VoyageVault verification code is {code}.\n\n"
            f"It expires in {self.code_ttl_minutes} minutes. If you did not ask "
            "for it, ignore this email.\n\n"
            f"Questions? Write to {self.support_email}.\n"
        )
        message.add_alternative(
            "<html><body style=\"font-family: sans-serif; color: #1f2933\">"
            "<p>Your VoyageVault verification code:</p>"
            "<p style=\"font-size: 28px; font-weight: 700; letter-spacing: 6px\">"
            f"{code}</p>"
            f"<p>It expires in {self.code_ttl_minutes} minutes. If you did not ask "
            "for it, ignore this email.</p>"
            f"<p style=\"font-size: 12px; color: #5b6470\">Questions? Write to "
            f"{self.support_email}.</p>"
            "</body></html>",
            subtype="html",
        )
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as smtp:
            if self.smtp_use_tls:
                smtp.starttls(context=ssl.create_default_context())
            if self.smtp_user and self.smtp_password:
                smtp.login(self.smtp_user, self.smtp_password)
            smtp.send_message(message)

    def send_verification_code(self, to_email: str, code: str) -> bool:
        recipient = mask_recipient(to_email)
        if not self.is_configured:
            # the code itself is never logged
            logger.info("verification_code_dev_mode", to=recipient)
            return True
        try:
            self._deliver(self.compose(to_email, code))
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "verification_code_send_failed",
                to=recipient,
                host=self.smtp_host,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return False
        logger.info("verification_code_sent", to=recipient)
        return True
