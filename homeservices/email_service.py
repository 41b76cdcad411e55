"""
Email Service using Resend
Campaign, preference-managed and transactional emails all go through send_email
"""

import logging
from html import escape
from typing import Optional, Union

import resend

from .config import BUSINESS_PHONE, EMAIL_FROM_ADDRESS, EMAIL_REPLY_TO_ADDRESS, RESEND_API_KEY

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailServiceError(Exception):
    pass


def extract_message_id(response) -> Optional[str]:
    """Resend returns {"id": ...}; older SDKs wrap it in {"data": {...}}"""
    if not response:
        return None
    if isinstance(response, dict):
        return response.get("id") or (response.get("data") or {}).get("id")
    return getattr(response, "id", None)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_address: Optional[str] = None,
    reply_to: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
    tags: Optional[list[dict[str, str]]] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html: HTML body
        text: Optional plain-text body
        from_address: Optional custom from address
        reply_to: Optional reply-to address
        headers: Extra headers such as List-Unsubscribe
        tags: Resend tags ``[{"name": ..., "value": ...}]``

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailServiceError("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html,
    }
    if text:
        email_data["text"] = text
    if reply_to:
        email_data["reply_to"] = reply_to
    if headers:
        email_data["headers"] = headers
    if tags:
        email_data["tags"] = tags

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {extract_message_id(response)}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailServiceError(f"Failed to send email: {str(e)}") from e


async def send_booking_confirmation(
    to: str,
    customer_name: str,
    service: str,
    when: str,
    job_number: Optional[str] = None,
    unsubscribe_url: Optional[str] = None,
) -> dict:
    """Transactional confirmation after a website booking lands in ServiceTitan"""
    reference = f"<p>Your job number is <strong>{escape(job_number)}</strong>.</p>" if job_number else ""
    html = f"""<html><body style="font-family: Arial, sans-serif; color: #111827;">
<p>Hi {escape(customer_name)},</p>
<p>Thanks for booking <strong>{escape(service)}</strong> with us. We have you down for {escape(when)}.</p>
{reference}
<p>Questions or need to reschedule? Call us at {escape(BUSINESS_PHONE)}.</p>
</body></html>"""
    headers = {"List-Unsubscribe": f"<{unsubscribe_url}>"} if unsubscribe_url else None
    return await send_email(
        to=to,
        subject=f"Your {service} appointment is booked",
        html=html,
        reply_to=EMAIL_REPLY_TO_ADDRESS,
        headers=headers,
        tags=[{"name": "category", "value": "transactional"}],
    )
