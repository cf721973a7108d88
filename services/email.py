from __future__ import annotations

import html
import logging

logger = logging.getLogger(__name__)

INVITE_SUBJECT = "Welcome to Tech Academy - Your Account Details"


def render_invite_html(email: str, first_name: str, password: str) -> str:
    email_h = html.escape(str(email or ""))
    name_h = html.escape(str(first_name or ""))
    pwd_h = html.escape(str(password or ""))
    return f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #6366f1;">Welcome to Tech Academy!</h2>
        <p>Hello {name_h},</p>
        <p>You have been invited to join Tech Academy. Your account has been created with the following credentials:</p>
        <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
          <p><strong>Email:</strong> {email_h}</p>
          <p><strong>Password:</strong> {pwd_h}</p>
        </div>
        <p>Please log in using these credentials and change your password after your first login.</p>
        <p style="color: #ef4444; font-weight: bold;">Keep this password secure and do not share it with anyone.</p>
        <p>Best regards,<br>Tech Academy Team</p>
      </div>
    """


def send_invite_email(cfg, email: str, first_name: str, password: str) -> bool:
    """
    Queue the invitation e-mail. Returns True once the task is enqueued.

    Never raises: the invited user already exists, and the admin gets the
    generated password in the response to share manually.
    """
    if not cfg.EMAIL_CONFIGURED:
        logger.warning("Email not configured (EMAIL_USER/EMAIL_PASS); invite for %s not sent", email)
        return False

    from app.tasks.email_task import send_invite_email_task

    try:
        send_invite_email_task.delay(
            to_address=email,
            subject=INVITE_SUBJECT,
            html_body=render_invite_html(email, first_name, password),
        )
        return True
    except Exception:
        logger.exception("Failed to enqueue invitation email for %s", email)
        return False
