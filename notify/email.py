"""
notify/email.py -- Outbound email over SMTP.

Best-effort by contract: every public method returns a result dict and
never raises. A failed welcome email must not undo the user creation that
triggered it, so the API schedules send_welcome_email() as a FastAPI
background task after the user row is committed and only logs the outcome.

Result shape:
  {"success": True,  "message_id": "<...@host>"}
  {"success": False, "error": "SMTP is not configured."}

Delivery is disabled when SMTP_HOST is empty; calls then return
success=False with a clear error instead of attempting a connection.
"""

from __future__ import annotations

import html
import logging
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid

from core.config import Settings

logger = logging.getLogger("credvault.email")


class EmailNotifier:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self._settings.smtp_host)

    def _connect(self) -> smtplib.SMTP:
        s = self._settings
        if s.smtp_use_ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds)
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds)
        try:
            if not s.smtp_use_ssl:
                server.starttls()
            if s.smtp_user:
                server.login(s.smtp_user, s.smtp_password)
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def verify_connection(self) -> dict:
        """Open and authenticate an SMTP session, then close it."""
        if not self.enabled:
            return {"success": False, "error": "SMTP is not configured."}
        try:
            server = self._connect()
            server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP connection check failed: %s", exc)
            return {"success": False, "error": str(exc)}
        return {"success": True, "message": "SMTP connection verified."}

    def send_email(self, to: str, subject: str, text: str, html_body: str | None = None) -> dict:
        if not self.enabled:
            logger.warning("Email to %s not sent: SMTP is not configured", to)
            return {"success": False, "error": "SMTP is not configured."}

        msg = EmailMessage()
        msg["From"] = self._settings.email_from or self._settings.smtp_user
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(text)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        try:
            server = self._connect()
            try:
                server.send_message(msg)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to, exc)
            return {"success": False, "error": str(exc)}

        logger.info("Email sent to %s (%s)", to, msg["Message-ID"])
        return {"success": True, "message_id": msg["Message-ID"]}

    def send_welcome_email(self, address: str, full_name: str, temporary_password: str) -> dict:
        """Send login credentials to a newly created account."""
        app_name = self._settings.app_name
        login_url = self._settings.login_url
        subject = f"Welcome to {app_name} - Your Login Credentials"
        text = (
            f"Dear {full_name},\n\n"
            f"Your {app_name} account has been created.\n\n"
            f"Email: {address}\n"
            f"Temporary password: {temporary_password}\n"
            f"Log in at: {login_url}\n\n"
            "Change this password immediately after your first login, do not share it, "
            "and delete this email once you have logged in.\n"
        )
        return self.send_email(address, subject, text, _welcome_html(app_name, full_name, address, temporary_password, login_url))


def _welcome_html(app_name: str, full_name: str, address: str, temporary_password: str, login_url: str) -> str:
    esc = html.escape
    return f"""<!DOCTYPE html>
<html lang="en">
<body style="font-family: Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto;">
  <h2>Hello {esc(full_name)},</h2>
  <p>Your {esc(app_name)} account has been created.</p>
  <p><strong>Email:</strong> {esc(address)}<br>
     <strong>Temporary password:</strong> {esc(temporary_password)}</p>
  <p><a href="{esc(login_url)}">Log in</a> and change this password immediately.</p>
  <p style="color: #92400e;">Do not share these credentials. Delete this email after logging in.</p>
</body>
</html>
"""
