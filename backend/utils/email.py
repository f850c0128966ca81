import asyncio
import html
import smtplib
from email.message import EmailMessage
from typing import Optional
from core.config import Settings
import logging

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SMTP transport failure while sending a message."""


class EmailService:
    """Outbound mail over SMTP. One instance is built at startup and injected."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return bool(self.settings.SMTP_HOST and self.settings.SMTP_FROM_EMAIL)

    def _build_message(self, subject: str, to_email: str, html_body: str, text_body: Optional[str] = None) -> EmailMessage:
        s = self.settings
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{s.SMTP_FROM_NAME} <{s.SMTP_FROM_EMAIL}>" if s.SMTP_FROM_NAME else s.SMTP_FROM_EMAIL
        msg["To"] = to_email
        if text_body:
            msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        s = self.settings
        timeout = s.SMTP_TIMEOUT or 15
        debug = 1 if s.SMTP_DEBUG else 0
        if s.SMTP_USE_SSL:
            with smtplib.SMTP_SSL(s.SMTP_HOST, s.SMTP_PORT, timeout=timeout) as server:
                server.set_debuglevel(debug)
                if s.SMTP_USERNAME and s.SMTP_PASSWORD:
                    server.login(s.SMTP_USERNAME, s.SMTP_PASSWORD)
                server.send_message(msg)
        else:
            with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=timeout) as server:
                server.set_debuglevel(debug)
                if s.SMTP_USE_TLS:
                    server.starttls()
                if s.SMTP_USERNAME and s.SMTP_PASSWORD:
                    server.login(s.SMTP_USERNAME, s.SMTP_PASSWORD)
                server.send_message(msg)

    async def send_email(self, subject: str, to_email: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """Send one message; False when SMTP is not configured, EmailDeliveryError on failure."""
        if not self.configured:
            logger.warning("SMTP not configured; skipping email send")
            return False
        msg = self._build_message(subject, to_email, html_body, text_body)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(f"Failed to send email to {to_email}: {exc}")
            raise EmailDeliveryError(str(exc)) from exc
        logger.info(f"Sent email to {to_email} with subject '{subject}'")
        return True

    async def send_verification_email(self, to_email: str, name: str, otp: str) -> bool:
        subject = "Verify Your Email Address"
        text = f"Hi {name}, your verification code is {otp}. It expires in 10 minutes."
        body = f"""
        <div style='max-width: 600px; margin: 0 auto; font-family: Arial, sans-serif;'>
          <h2>Welcome to {html.escape(self.settings.APP_NAME)}, {html.escape(name)}!</h2>
          <p>Thank you for signing up. Use the code below to verify your email address.</p>
          <p style='font-size: 24px; font-weight: bold; letter-spacing: 4px;'>{otp}</p>
          <p style='color: #666; font-size: 12px;'>This code will expire in <strong>10 minutes</strong>.</p>
          <p style='color: #666; font-size: 12px;'>If you didn't request this, please ignore this email.</p>
        </div>
        """
        return await self.send_email(subject, to_email, body, text)

    async def send_password_reset_email(self, to_email: str, name: str, reset_token: str) -> bool:
        reset_url = f"{self.settings.CLIENT_URL}/auth/reset-password?token={reset_token}"
        subject = "Reset Your Password"
        text = f"Hi {name}, reset your password using this link: {reset_url} (valid for 1 hour)."
        body = f"""
        <div style='max-width: 600px; margin: 0 auto; font-family: Arial, sans-serif;'>
          <h2>Password Reset Request</h2>
          <p>Hi {html.escape(name)},</p>
          <p>You requested to reset your password. Click the link below to reset it:</p>
          <p style='margin: 20px 0;'>
            <a href="{reset_url}" style='background-color: #dc3545; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block;'>Reset Password</a>
          </p>
          <p>Or copy and paste this link into your browser:</p>
          <p style='word-break: break-all; color: #666;'>{reset_url}</p>
          <p style='color: #666; font-size: 12px;'>This link will expire in <strong>1 hour</strong>.</p>
        </div>
        """
        return await self.send_email(subject, to_email, body, text)

    async def send_welcome_email(self, to_email: str, name: str) -> bool:
        subject = f"Welcome to {self.settings.APP_NAME}!"
        dashboard_url = f"{self.settings.CLIENT_URL}/dashboard"
        text = f"Welcome aboard, {name}! Your email has been verified. Visit {dashboard_url} to get started."
        body = f"""
        <div style='max-width: 600px; margin: 0 auto; font-family: Arial, sans-serif;'>
          <h2>Welcome aboard, {html.escape(name)}!</h2>
          <p>Your email has been verified successfully. You're all set to start managing your projects and issues.</p>
          <p style='margin: 20px 0;'>
            <a href="{dashboard_url}" style='background-color: #28a745; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; display: inline-block;'>Go to Dashboard</a>
          </p>
          <p>The {html.escape(self.settings.SMTP_FROM_NAME or self.settings.APP_NAME)} Team</p>
        </div>
        """
        return await self.send_email(subject, to_email, body, text)
