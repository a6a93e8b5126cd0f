import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def _smtp_settings():
    cfg = current_app.config
    username = cfg.get("SMTP_USERNAME")
    return {
        "host": cfg.get("SMTP_HOST"),
        "port": cfg.get("SMTP_PORT", 587),
        "username": username,
        "password": cfg.get("SMTP_PASSWORD"),
        "sender": cfg.get("SMTP_FROM_EMAIL") or username,
        "use_tls": cfg.get("SMTP_USE_TLS", True),
        "timeout": cfg.get("SMTP_TIMEOUT_SECONDS", 10),
    }


def build_message(sender, to_email, subject, body) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    return msg


def send_email(to_email: str, subject: str, body: str):
    """Send a plain-text email. Returns (ok, error); SMTP failures are not raised."""
    if not to_email:
        return False, "No recipient"

    smtp = _smtp_settings()
    if not smtp["host"] or not smtp["sender"]:
        logger.debug("SMTP not configured, dropping %r to %s", subject, to_email)
        return False, "Email not configured"

    msg = build_message(smtp["sender"], to_email, subject, body)
    try:
        with smtplib.SMTP(smtp["host"], smtp["port"], timeout=smtp["timeout"]) as server:
            if smtp["use_tls"]:
                server.starttls()
            if smtp["username"] and smtp["password"]:
                server.login(smtp["username"], smtp["password"])
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        return False, str(exc)
    return True, None
