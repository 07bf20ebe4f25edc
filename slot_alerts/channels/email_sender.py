"""
Send availability notifications by e-mail via SMTP.

Set SMTP_USER and SMTP_PASSWORD in .env (a Gmail App Password works).
If not configured, sends are reported as failed.
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import structlog

from slot_alerts.config import Settings, settings
from slot_alerts.schemas.notifications import EmailTemplateData

logger = structlog.get_logger(__name__)


def render_text(data: EmailTemplateData) -> str:
    """Plain-text body of the availability e-mail."""
    return "\n".join(
        [
            "נמצאו תורים פנויים",
            "",
            f"תאריך: {data.day_name}, {data.appointment_date.isoformat()}",
            "",
            "שעות זמינות:",
            ", ".join(data.times),
            "",
            f"להזמנה: {data.booking_url}",
            "",
            f"מצאתי תור מתאים: {data.approve_url}",
            f"אף תור לא מתאים: {data.decline_url}",
            "",
            f"ביטול הרשמה: {data.unsubscribe_url}",
        ]
    )


def render_html(data: EmailTemplateData) -> str:
    """HTML body of the availability e-mail."""
    chips = "".join(f'<span class="time-chip">{time}</span> ' for time in data.times)
    return f"""<!DOCTYPE html>
<html dir="rtl" lang="he">
<head><meta charset="UTF-8"><title>תורים פנויים</title></head>
<body>
  <h1>נמצאו תורים פנויים</h1>
  <p><strong>{data.day_name}</strong> {data.appointment_date.isoformat()}</p>
  <div>{chips}</div>
  <p><a href="{data.booking_url}">להזמנת תור</a></p>
  <p><a href="{data.approve_url}">מצאתי תור מתאים</a></p>
  <p><a href="{data.decline_url}">אף תור לא מתאים</a></p>
  <p><a href="{data.unsubscribe_url}">ביטול הרשמה</a></p>
</body>
</html>"""


class SmtpEmailSender:
    """Direct message sender backed by an SMTP server."""

    def __init__(self, config: Settings = settings):
        """Initialize with SMTP settings."""
        self.config = config

    def _from_address(self) -> str:
        if self.config.notify_from.strip():
            return self.config.notify_from.strip()
        return f"{self.config.app_name} <{self.config.smtp_user.strip()}>"

    def _send_sync(self, to: str, data: EmailTemplateData) -> bool:
        user = self.config.smtp_user.strip()
        password = self.config.smtp_password.strip()
        if not user or not password:
            logger.warning("smtp_not_configured")
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = f"תורים פנויים - {data.day_name} {data.appointment_date.isoformat()}"
        msg["From"] = self._from_address()
        msg["To"] = to
        msg.attach(MIMEText(render_text(data), "plain", "utf-8"))
        msg.attach(MIMEText(render_html(data), "html", "utf-8"))

        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=15) as server:
                server.starttls()
                server.login(user, password)
                server.sendmail(msg["From"], [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("email_send_failed", to=to, error=str(e))
            return False

        logger.info("email_sent", to=to, date=data.appointment_date.isoformat())
        return True

    async def send(self, to: str, template_data: EmailTemplateData) -> bool:
        """Send the availability e-mail without blocking the event loop."""
        return await asyncio.to_thread(self._send_sync, to, template_data)
