from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .settings import settings


def send_email(subject: str, body: str) -> bool:
    """Send an alert email if SMTP settings are configured.

    Used for conditions a human should look at, such as invariant violations.

    Environment variables:
      - FLEET_ENABLE_EMAIL=true
      - FLEET_SMTP_HOST / FLEET_SMTP_PORT
      - FLEET_SMTP_USER / FLEET_SMTP_PASSWORD
      - FLEET_EMAIL_FROM / FLEET_EMAIL_TO
    """
    if not settings.enable_email:
        return False
    if not all(
        [
            settings.smtp_host,
            settings.smtp_port,
            settings.smtp_user,
            settings.smtp_password,
            settings.email_from,
            settings.email_to,
        ]
    ):
        return False

    msg = MIMEMultipart()
    msg["From"] = settings.email_from
    msg["To"] = settings.email_to
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "plain"))

    try:
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10)
        try:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.email_from, [settings.email_to], msg.as_string())
        finally:
            server.quit()
        return True
    except (smtplib.SMTPException, OSError):
        return False
