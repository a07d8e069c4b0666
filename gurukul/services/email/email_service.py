"""
Email service for OTP and welcome emails.

Supports SMTP, Resend API, and console logging modes.
"""

import html
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

import httpx
import aiosmtplib

from gurukul.auth.models import OtpPurpose
from gurukul.services.email.base import Notifier

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

_OTP_COPY = {
    OtpPurpose.SIGNUP: {
        "subject": "Email Verification OTP",
        "title": "Verify Your Email",
        "description": (
            "Please use the OTP code below to verify your email address "
            "and complete your registration."
        ),
    },
    OtpPurpose.PASSWORD_RESET: {
        "subject": "Password Reset OTP",
        "title": "Reset Your Password",
        "description": (
            "Please use the OTP code below to reset your password "
            "and regain access to your account."
        ),
    },
}


class EmailService(Notifier):
    """
    Email service with multi-mode support.

    Modes:
        - console: Log emails (development)
        - smtp: Send via SMTP
        - resend: Send via Resend HTTP API
    """

    def __init__(
        self,
        mode: str = "console",
        resend_api_key: Optional[str] = None,
        from_email: str = "noreply@atplgurukul.com",
        from_name: str = "ATPL Gurukul",
        app_url: str = "http://localhost:3000",
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        otp_expire_minutes: int = 10,
    ):
        """
        Initialize email service.

        Args:
            mode: "console", "smtp", or "resend"
            resend_api_key: Resend API key
            from_email: Sender email address
            from_name: Sender display name
            app_url: Base URL for frontend links in emails
            smtp_host: SMTP server host
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            otp_expire_minutes: Validity window quoted in OTP emails
        """
        self._mode = mode
        self._resend_api_key = resend_api_key
        self._from_email = from_email
        self._from_name = from_name
        self._app_url = app_url
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._otp_expire_minutes = otp_expire_minutes

        if self._mode == "resend" and not self._resend_api_key:
            logger.warning("Resend API key not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode == "smtp" and not self._smtp_host:
            logger.warning("SMTP host not configured, falling back to console mode")
            self._mode = "console"

        logger.info(f"Email service initialized in {self._mode} mode")

    @classmethod
    def from_settings(cls, settings) -> "EmailService":
        """Build an EmailService from application settings."""
        return cls(
            mode=settings.EMAIL_MODE,
            resend_api_key=settings.RESEND_API_KEY,
            from_email=settings.SMTP_FROM_EMAIL,
            from_name=settings.SMTP_FROM_NAME,
            app_url=settings.FRONTEND_URL,
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
            otp_expire_minutes=settings.OTP_EXPIRE_MINUTES,
        )

    @property
    def mode(self) -> str:
        return self._mode

    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> bool:
        """
        Send an OTP email for signup verification or password reset.

        Returns:
            True if the provider accepted the message
        """
        copy = _OTP_COPY[OtpPurpose(purpose)]

        html_content = f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{copy["title"]}</title>
</head>
<body style="margin: 0; padding: 0; background-color: #F8F8F8; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: #F8F8F8;">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <div style="background-color: #FFFFFF; border-radius: 16px; padding: 40px; max-width: 500px;">
                    <h2 style="color: #333333; font-size: 28px; text-align: center;">{copy["title"]}</h2>
                    <p style="color: #808080; font-size: 16px; line-height: 1.6; text-align: center;">{copy["description"]}</p>
                    <div style="background-color: #8A63C9; color: #FFFFFF; font-size: 32px; font-weight: 700; letter-spacing: 4px; padding: 20px; border-radius: 8px; text-align: center; font-family: 'Courier New', monospace;">
                        {code}
                    </div>
                    <p style="color: #666666; font-size: 12px; text-align: center;">This code will expire in {self._otp_expire_minutes} minutes</p>
                    <p style="color: #808080; font-size: 14px; text-align: center;">For security reasons, please do not share this code with anyone.<br>If you didn't request this, please ignore this email.</p>
                </div>
            </td>
        </tr>
    </table>
</body>
</html>
"""

        text_content = f"""
{copy["title"]}

{copy["description"]}

Your OTP code: {code}

This code will expire in {self._otp_expire_minutes} minutes.
For security reasons, please do not share this code with anyone.
If you didn't request this, please ignore this email.
"""

        result = await self._send(
            to=email,
            subject=copy["subject"],
            html=html_content,
            text=text_content,
        )
        if result.get("success"):
            logger.info(f"OTP email ({OtpPurpose(purpose).value}) sent to {email}")
        else:
            logger.error(f"Failed to send OTP email to {email}: {result.get('error')}")
        return bool(result.get("success"))

    async def send_welcome(self, email: str, name: str) -> bool:
        """
        Send the welcome email after a successful email verification.

        Returns:
            True if the provider accepted the message
        """
        html_content = f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Welcome to ATPL Gurukul!</title>
</head>
<body style="margin: 0; padding: 0; background-color: #F8F8F8; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: #F8F8F8;">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <div style="background-color: #FFFFFF; border-radius: 16px; padding: 40px; max-width: 500px;">
                    <h2 style="color: #333333; font-size: 32px; text-align: center;">Welcome!</h2>
                    <p style="color: #808080; font-size: 16px; line-height: 1.6; text-align: center;">
                        Hello <strong style="color: #333333;">{html.escape(name or "")}</strong>! Thank you for joining our platform.
                        We're thrilled to have you on board.
                    </p>
                    <div style="text-align: center;">
                        <a href="{self._app_url}" target="_blank" style="display: inline-block; background-color: #8A63C9; color: #FFFFFF; text-decoration: none; padding: 16px 32px; border-radius: 8px; font-weight: 600;">Get Started Now</a>
                    </div>
                </div>
            </td>
        </tr>
    </table>
</body>
</html>
"""

        text_content = f"""
Welcome!

Hello {name}! Thank you for joining our platform. We're thrilled to have you on board.

Get started: {self._app_url}
"""

        result = await self._send(
            to=email,
            subject="Welcome to ATPL Gurukul!",
            html=html_content,
            text=text_content,
        )
        if result.get("success"):
            logger.info(f"Welcome email sent to {email}")
        else:
            logger.error(f"Failed to send welcome email to {email}: {result.get('error')}")
        return bool(result.get("success"))

    # ─────────────────────────────────────────────────────────────────
    # Transports
    # ─────────────────────────────────────────────────────────────────

    async def _send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """
        Send email via configured provider.

        Returns:
            dict with success status and details
        """
        if self._mode == "console":
            return self._send_console(to, subject, text)
        elif self._mode == "smtp":
            return await self._send_smtp(to, subject, html, text)
        elif self._mode == "resend":
            return await self._send_resend(to, subject, html, text)
        else:
            logger.error(f"Unknown email mode: {self._mode}")
            return {"success": False, "error": f"Unknown email mode: {self._mode}"}

    def _send_console(self, to: str, subject: str, text: str) -> dict:
        """Log email (development mode). Bodies carry codes, so DEBUG only."""
        logger.info(f"EMAIL (console mode) to={to} subject={subject!r}")
        logger.debug(text)

        return {
            "success": True,
            "mode": "console",
            "message": "Email logged to console",
        }

    async def _send_smtp(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via SMTP."""
        try:
            message = MIMEMultipart("alternative")
            message["Subject"] = subject
            message["From"] = f"{self._from_name} <{self._from_email}>"
            message["To"] = to

            message.attach(MIMEText(text, "plain"))
            message.attach(MIMEText(html, "html"))

            # Port 465 is implicit TLS, anything else upgrades with STARTTLS
            use_tls = self._smtp_port == 465

            await aiosmtplib.send(
                message,
                hostname=self._smtp_host,
                port=self._smtp_port,
                username=self._smtp_user,
                password=self._smtp_password,
                use_tls=use_tls,
                start_tls=not use_tls,
            )

            return {
                "success": True,
                "mode": "smtp",
                "message": "Email sent via SMTP",
            }

        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email via SMTP: {e}")
            return {
                "success": False,
                "error": str(e),
            }

    async def _send_resend(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via Resend API."""
        async with httpx.AsyncClient(timeout=10.0) as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self._from_name} <{self._from_email}>",
                        "to": [to],
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )

                if response.status_code == 200:
                    data = response.json()
                    return {
                        "success": True,
                        "mode": "resend",
                        "messageId": data.get("id"),
                    }

                try:
                    error_msg = response.json().get("message", "Unknown error")
                except ValueError:
                    error_msg = f"HTTP {response.status_code}"
                logger.error(f"Resend API error: {error_msg}")
                return {
                    "success": False,
                    "error": error_msg,
                }

            except httpx.HTTPError as e:
                logger.error(f"Failed to send email via Resend: {e}")
                return {
                    "success": False,
                    "error": str(e),
                }
