from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from relay.core.config import Settings

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Sends the "new client connected" email. Blocking; run it off the event loop."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return self.settings.email_configured

    def build_message(self, connection_id: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.settings.email_user or self.settings.notification_email
        msg["To"] = self.settings.notification_email
        msg["Subject"] = "New Client Connected"
        msg.set_content(f"A new client has connected to the relay with connection ID: {connection_id}")
        return msg

    def notify_connected(self, connection_id: str) -> bool:
        if not self.enabled:
            return False

        msg = self.build_message(connection_id)
        try:
            server = smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=20)
            try:
                server.starttls()
                if self.settings.email_user and self.settings.email_pass:
                    server.login(self.settings.email_user, self.settings.email_pass)
                server.send_message(msg)
            finally:
                try:
                    server.quit()
                except smtplib.SMTPException:  # pragma: no cover - best effort cleanup
                    pass
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("Error sending connect notification for %s: %s", connection_id, exc)
            return False

        logger.info("Connect notification sent for %s", connection_id)
        return True
