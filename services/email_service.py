import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import NamedTuple
from urllib.parse import quote

from core.config import Settings
from services.security_codes import RESET_CODE_EXPIRE_MINUTES
from utils.logger import get_logger

logger = get_logger(__name__)


class SentEmail(NamedTuple):
    to: str
    subject: str
    body: str


class EmailService:
    """
    Delivers reset codes and verification links.

    One instance is created at startup and kept on app.state. In the testing
    environment nothing goes over SMTP; messages are appended to `outbox`.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.outbox: list[SentEmail] = []

    def verification_url(self, token: str) -> str:
        return f"{self.settings.FRONTEND_URL.rstrip('/')}/verify-email?token={quote(token)}"

    def send_email(self, to_email: str, subject: str, body: str):
        if self.settings.ENV == "testing":
            self.outbox.append(SentEmail(to=to_email, subject=subject, body=body))
            logger.info(
                "[TEST MODE] Email skipped",
                extra={"recipient": to_email, "subject": subject}
            )
            return

        logger.debug(
            "Attempting to send email",
            extra={"recipient": to_email, "subject": subject}
        )

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.settings.MAIL_FROM
        message["To"] = to_email
        message.attach(MIMEText(body, "html"))

        try:
            with smtplib.SMTP(self.settings.MAIL_SERVER, self.settings.MAIL_PORT) as server:
                server.starttls()
                if self.settings.MAIL_USERNAME:
                    server.login(self.settings.MAIL_USERNAME, self.settings.MAIL_PASSWORD)
                server.sendmail(self.settings.MAIL_FROM, to_email, message.as_string())

            logger.info(
                "Email sent successfully",
                extra={"recipient": to_email, "subject": subject}
            )

        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                f"Failed to send email: {str(e)}",
                extra={
                    "recipient": to_email,
                    "subject": subject,
                    "error_type": type(e).__name__
                },
                exc_info=True
            )
            raise

    def send_verification_email(self, to_email: str, username: str, token: str):
        url = self.verification_url(token)
        body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2>Hi {username},</h2>
                <p>Please verify your email address to activate your account.</p>
                <p><a href="{url}">Verify Email Address</a></p>
                <p>Or copy and paste this link into your browser:<br>{url}</p>
                <p style="color: #666; font-size: 14px;">This link expires in 24 hours.
                If you didn't create an account, you can safely ignore this email.</p>
            </div>
        </body>
        </html>
        """
        self.send_email(to_email=to_email, subject="Verify Your Email - Action Required", body=body)

    def send_password_reset_email(self, to_email: str, username: str, code: str):
        body = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2>Hi {username},</h2>
                <p>We received a request to reset your password. Your reset code is:</p>
                <h1 style="letter-spacing: 6px;">{code}</h1>
                <p style="color: #666; font-size: 14px;">This code expires in {RESET_CODE_EXPIRE_MINUTES} minutes.
                If you didn't request a reset, ignore this email; your password stays unchanged.</p>
            </div>
        </body>
        </html>
        """
        self.send_email(to_email=to_email, subject="Your Password Reset Code", body=body)
