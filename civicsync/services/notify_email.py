# File: civicsync/services/notify_email.py
import html
import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

import resend

from civicsync.core.config import settings

logger = logging.getLogger(__name__)

# ===================================================================
# BASE TEMPLATE
# ===================================================================

TPL_BASE = """
<div style="font-family:Arial,Helvetica,sans-serif;max-width:600px;margin:0 auto;color:#111827;">
  <h2 style="color:#2563eb;">%(heading)s</h2>
  %(body)s
  <hr style="margin:30px 0;border:none;border-top:1px solid #e5e7eb;">
  <p style="color:#6b7280;font-size:12px;">CivicSync - Smart City Issue Reporting</p>
</div>
"""


def _render(heading: str, body: str) -> str:
    return TPL_BASE % {"heading": html.escape(heading), "body": body}


def _build_url(path: str) -> str:
    """Full frontend URL when FRONTEND_BASE_URL is set, site-relative otherwise."""
    base = (settings.frontend_base_url or "").strip().rstrip("/")
    path = path.lstrip("/")
    if base:
        if not base.startswith("http://") and not base.startswith("https://"):
            base = f"https://{base}"
        return f"{base}/{path}" if path else base
    return f"/{path}" if path else "/"


def _issue_box(*rows: str) -> str:
    return (
        '<div style="background:#f3f4f6;padding:15px;border-radius:5px;margin:20px 0;">'
        + "".join(rows)
        + "</div>"
    )


# ===================================================================
# Providers
# ===================================================================

def _from_header() -> str:
    from_addr = settings.email_from_address
    return f"{settings.email_from_name} <{from_addr}>" if settings.email_from_name else from_addr


def _send_email_via_smtp(to_email: str, subject: str, html_content: str):
    if not settings.smtp_host or not settings.smtp_username or not settings.smtp_password \
            or not settings.email_from_address:
        logger.info("SMTP not configured; skipping email to %s", to_email)
        return

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = _from_header()
    msg["To"] = to_email
    msg.attach(MIMEText(html_content, "html"))

    if settings.smtp_use_ssl:
        server = smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=15)
    else:
        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15)
        server.starttls()
    try:
        server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(msg)
    finally:
        server.quit()


def _send_email_via_resend(to_email: str, subject: str, html_content: str):
    if not settings.resend_api_key or not settings.email_from_address:
        logger.info("Resend not configured; skipping email to %s", to_email)
        return
    resend.api_key = settings.resend_api_key
    resend.Emails.send({
        "from": _from_header(),
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    })


def send_email(to_email: str, subject: str, html_content: str) -> bool:
    """Deliver through the configured provider. Never raises; returns success."""
    try:
        if settings.email_provider.lower() == "resend":
            _send_email_via_resend(to_email, subject, html_content)
        else:
            _send_email_via_smtp(to_email, subject, html_content)
        return True
    except Exception:
        logger.error("Failed to send email to %s", to_email, exc_info=True)
        return False


# ===================================================================
# Templates
# ===================================================================

def send_issue_created(to_email: str, reporter_name: str, issue_id: int, title: str,
                       category: str, status: str, address: str) -> bool:
    link = _build_url(f"issues/{issue_id}")
    box = _issue_box(
        f'<h3 style="margin-top:0;">{html.escape(title)}</h3>',
        f"<p><strong>Category:</strong> {html.escape(category)}</p>",
        f"<p><strong>Status:</strong> {html.escape(status)}</p>",
        f"<p><strong>Location:</strong> {html.escape(address)}</p>",
    )
    body = f"""
    <p>Dear {html.escape(reporter_name)},</p>
    <p>Your issue has been successfully reported and is now being reviewed by our team.</p>
    {box}
    <p>We'll keep you updated on the progress: <a href="{link}">{link}</a></p>
    <p>Thank you for helping make our city better!</p>
    """
    return send_email(to_email, "Issue Reported Successfully - CivicSync", _render("Issue Reported Successfully", body))


def send_status_update(to_email: str, reporter_name: str, issue_id: int, title: str,
                       category: str, new_status: str) -> bool:
    link = _build_url(f"issues/{issue_id}")
    label = new_status.replace("_", " ").upper()
    box = _issue_box(
        f'<h3 style="margin-top:0;">{html.escape(title)}</h3>',
        f'<p><strong>New Status:</strong> <span style="color:#10b981;">{label}</span></p>',
        f"<p><strong>Category:</strong> {html.escape(category)}</p>",
    )
    body = f"""
    <p>Dear {html.escape(reporter_name)},</p>
    <p>The status of your reported issue has been updated.</p>
    {box}
    <p><a href="{link}">View the issue</a></p>
    <p>Thank you for your patience!</p>
    """
    return send_email(to_email, f"Issue Status Updated: {new_status} - CivicSync", _render("Issue Status Updated", body))
