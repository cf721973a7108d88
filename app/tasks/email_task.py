"""
Outbound e-mail (SMTP with STARTTLS).
"""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.config import get_config
from app.tasks import celery_app

logger = logging.getLogger(__name__)


def send_smtp_email(cfg, *, to_address: str, subject: str, html_body: str) -> None:
    sender = cfg.EMAIL_FROM or cfg.EMAIL_USER or "noreply@techacademy.com"

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = to_address
    msg.attach(MIMEText(html_body, "html", "utf-8"))

    with smtplib.SMTP(cfg.EMAIL_HOST, cfg.EMAIL_PORT, timeout=15) as server:
        server.ehlo()
        server.starttls()
        server.login(cfg.EMAIL_USER, cfg.EMAIL_PASS)
        server.sendmail(sender, [to_address], msg.as_string())


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def send_invite_email_task(self, to_address: str, subject: str, html_body: str):
    cfg = get_config()
    if not cfg.EMAIL_CONFIGURED:
        logger.warning("Email not configured; dropping message to %s", to_address)
        return {"task_id": self.request.id, "status": "skipped"}

    try:
        send_smtp_email(cfg, to_address=to_address, subject=subject, html_body=html_body)
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Invitation email to %s failed: %s", to_address, exc)
        raise self.retry(exc=exc)

    return {"task_id": self.request.id, "status": "sent", "to": to_address}
