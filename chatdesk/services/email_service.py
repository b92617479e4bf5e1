"""
Email service for sending verification and password reset emails.

Sends over SMTP (aiosmtplib) when SMTP_HOST is configured. Without it,
email is considered disabled and messages are only written to the log.
"""

import logging
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from urllib.parse import quote

import aiosmtplib

from chatdesk.core.config import settings

logger = logging.getLogger("chatdesk.email")


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """Send an email."""


class SMTPProvider(EmailProvider):
    """SMTP email provider using aiosmtplib."""

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = settings.EMAIL_FROM
        message["To"] = to

        if text_body:
            message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USER,
                password=settings.SMTP_PASSWORD,
                start_tls=settings.SMTP_PORT != 465,
                use_tls=settings.SMTP_PORT == 465,
            )
            logger.info("Sent '%s' email to %s", subject, to)
            return True
        except aiosmtplib.SMTPException as e:
            logger.error("SMTP email error: %s", e)
            return False


class ConsoleProvider(EmailProvider):
    """Logs emails instead of sending them (email disabled)."""

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        logger.info("Email disabled, not sending '%s' to %s:\n%s", subject, to, text_body or html_body)
        return True


class EmailService:
    """
    Service for sending verification and password reset emails.

    Selects SMTP when configured, otherwise the console provider.
    """

    def __init__(self):
        self._provider: EmailProvider | None = None

    @property
    def is_enabled(self) -> bool:
        return settings.email_enabled

    def _get_provider(self) -> EmailProvider:
        if self._provider is None:
            if settings.email_enabled:
                self._provider = SMTPProvider()
            else:
                logger.warning("SMTP_HOST not configured, using console output for email")
                self._provider = ConsoleProvider()
        return self._provider

    def _link(self, path: str, token: str) -> str:
        return f"{settings.APP_BASE_URL.rstrip('/')}{path}?token={quote(token)}"

    async def send_verification_email(self, email: str, first_name: str | None, token: str) -> bool:
        """
        Send the account verification link.

        Returns:
            True if email sent successfully, False otherwise.
        """
        link = self._link("/verify-email", token)
        greeting = f"Hi {first_name}," if first_name else "Hi,"
        subject = f"Verify your email - {settings.PROJECT_NAME}"

        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Verify your email address</h2>
            <p>{greeting}</p>
            <p>Thanks for signing up! Confirm your address to activate your account:</p>
            <p><a href="{link}">Verify email</a></p>
            <p>If you didn't create an account, you can safely ignore this email.</p>
        </body>
        </html>
        """

        text_body = f"""{greeting}

Thanks for signing up! Confirm your address to activate your account:

{link}

If you didn't create an account, you can safely ignore this email.
"""

        return await self._get_provider().send_email(email, subject, html_body, text_body)

    async def send_password_reset_email(self, email: str, first_name: str | None, token: str) -> bool:
        """
        Send the password reset link.

        Returns:
            True if email sent successfully, False otherwise.
        """
        link = self._link("/reset-password", token)
        greeting = f"Hi {first_name}," if first_name else "Hi,"
        subject = f"Reset your password - {settings.PROJECT_NAME}"
        expires = settings.PASSWORD_RESET_EXPIRE_MINUTES

        html_body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>Reset your password</h2>
            <p>{greeting}</p>
            <p>We received a request to reset your password:</p>
            <p><a href="{link}">Reset password</a></p>
            <p>This link will expire in {expires} minutes.</p>
            <p>If you didn't request a password reset, please ignore this email.</p>
        </body>
        </html>
        """

        text_body = f"""{greeting}

We received a request to reset your password:

{link}

This link will expire in {expires} minutes.

If you didn't request a password reset, please ignore this email.
"""

        return await self._get_provider().send_email(email, subject, html_body, text_body)


# Global instance
email_service = EmailService()
