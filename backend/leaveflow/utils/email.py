import smtplib
from email.message import EmailMessage
from html import escape
from leaveflow.config import settings


def _portal_link(cta_path: str | None) -> str:
    return f"{settings.LEAVE_PORTAL_URL.rstrip('/')}{cta_path or '/dashboard/leave'}"


def send_leave_workflow_email(
    to: list[str],
    subject: str,
    title: str,
    message: str,
    cta_path: str | None = None
) -> bool:
    """Send a leave workflow email; returns False when SMTP is not configured."""
    if not settings.SMTP_HOST:
        return False

    recipients = sorted({email.strip().lower() for email in to if email and email.strip()})
    if not recipients:
        return False

    link = _portal_link(cta_path)

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM_EMAIL
    msg["To"] = ", ".join(recipients)

    msg.set_content(f"""
{title}

{message}

Open the leave portal:
{link}

Regards,
HR Team
""")
    msg.add_alternative(f"""
<div style="font-family:Arial,sans-serif;max-width:620px;margin:0 auto;padding:24px;">
  <h2 style="margin:0 0 12px;">{escape(title)}</h2>
  <p style="margin:0 0 16px;line-height:1.6;">{escape(message)}</p>
  <a href="{escape(link)}">Open Leave Portal</a>
</div>
""", subtype="html")

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        if settings.SMTP_USERNAME:
            server.login(
                settings.SMTP_USERNAME,
                settings.SMTP_PASSWORD or ""
            )
        server.send_message(msg)
    return True
