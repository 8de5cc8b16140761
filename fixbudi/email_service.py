"""
Email Service using Resend
Transactional notifications for customers, repair centers and admins
"""

import logging
from html import escape
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY

BRAND_COLOR = "#0f766e"


def render_basic_html(title: str, lines: list[str]) -> str:
    """Wrap plain text lines in a minimal branded HTML body"""
    paragraphs = "".join(f"<p style=\"margin:0 0 12px\">{escape(line)}</p>" for line in lines)
    return (
        "<div style=\"font-family:Arial,sans-serif;max-width:560px;margin:0 auto\">"
        f"<h2 style=\"color:{BRAND_COLOR}\">{escape(title)}</h2>"
        f"{paragraphs}"
        "<p style=\"color:#6b7280;font-size:12px\">FixBudi Appliance Repair</p>"
        "</div>"
    )


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email using Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html_content: Rendered HTML body
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e
