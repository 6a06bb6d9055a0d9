from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

logger = logging.getLogger(__name__)


def mail_enabled(config: dict) -> bool:
    return bool((config.get("SMTP_HOST") or "").strip())


def send_email(config: dict, *, to: str, subject: str, body: str) -> bool:
    """
    Send a plain-text email. Returns False (and logs) on failure; callers never fail a request on mail errors.
    """
    if not mail_enabled(config):
        logger.debug("SMTP_HOST not set; skipping email to %s (%s)", to, subject)
        return False

    msg = EmailMessage()
    msg["From"] = config.get("MAIL_FROM") or "no-reply@murrs.local"
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    host = config["SMTP_HOST"].strip()
    port = int(config.get("SMTP_PORT") or 587)
    user = (config.get("SMTP_USER") or "").strip()
    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if user:
                server.login(user, config.get("SMTP_PASSWORD") or "")
            server.send_message(msg)
        return True
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed for %s: %s", user, e)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email to %s failed: %s", to, e)
    return False
