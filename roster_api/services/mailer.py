# roster_api/services/mailer.py
"""SMTP delivery for notification emails."""
from __future__ import annotations

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from flask import current_app

log = logging.getLogger(__name__)


def _build_message(sender: str, to: str, subject: str, html: str, text: str | None = None) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    if text:
        msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


def send_mail(to: str, subject: str, html: str, text: str | None = None) -> bool:
    """
    Send one email using the app's SMTP settings.

    Returns False (without connecting) when MAIL_ENABLED is off. SMTP errors
    propagate; notification code decides whether they matter.
    """
    cfg = current_app.config
    if not cfg.get("MAIL_ENABLED"):
        log.info("Mail disabled, not sending %r to %s", subject, to)
        return False

    host = cfg.get("SMTP_HOST", "smtp.gmail.com")
    port = int(cfg.get("SMTP_PORT", 465))
    user = cfg.get("SMTP_USER") or ""
    password = cfg.get("SMTP_PASS") or ""
    sender = formataddr((cfg.get("MAIL_FROM_NAME", "Roster Notifications"), user))

    msg = _build_message(sender, to, subject, html, text)
    context = ssl.create_default_context()

    use_ssl = cfg.get("SMTP_USE_SSL", True)
    if use_ssl:
        server = smtplib.SMTP_SSL(host, port, context=context, timeout=30)
    else:
        server = smtplib.SMTP(host, port, timeout=30)
    # leaving the block sends QUIT and closes; a dropped connection there does
    # not replace the error raised inside
    with server:
        if not use_ssl:
            server.starttls(context=context)
        if user:
            server.login(user, password)
        server.sendmail(user, [to], msg.as_string())

    log.info("Email sent to %s: %s", to, subject)
    return True
