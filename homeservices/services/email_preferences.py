"""
Email preference enforcement.

Every non-transactional email checks the recipient's preferences first and
carries a List-Unsubscribe header plus a footer linking to the preference
page (CAN-SPAM).
"""

import logging
from datetime import datetime
from html import escape
from typing import Optional

from sqlalchemy.orm import Session

from ..config import BUSINESS_ADDRESS, SITE_URL
from ..models_marketing import EmailPreference
from ..security_utils import generate_preference_token

logger = logging.getLogger(__name__)

EMAIL_CATEGORIES = ("marketing", "review", "referral", "service_reminder", "transactional")

# category -> (preference column, reason when opted out)
_CATEGORY_FLAGS = {
    "marketing": ("marketing_emails", "Recipient has opted out of marketing emails"),
    "review": ("review_requests", "Recipient has opted out of review requests"),
    "referral": ("referral_emails", "Recipient has opted out of referral emails"),
    "service_reminder": ("service_reminders", "Recipient has opted out of service reminders"),
}

UPDATABLE_FIELDS = (
    "marketing_emails",
    "review_requests",
    "referral_emails",
    "service_reminders",
    "transactional_only",
)


class UnknownEmailCategory(ValueError):
    pass


def preference_url(token: str) -> str:
    return f"{SITE_URL}/email-preferences/{token}"


def get_preferences_by_email(db: Session, email: str) -> Optional[EmailPreference]:
    return db.query(EmailPreference).filter(EmailPreference.email == email.strip().lower()).first()


def get_preferences_by_token(db: Session, token: str) -> Optional[EmailPreference]:
    return db.query(EmailPreference).filter(EmailPreference.unsubscribe_token == token).first()


def get_or_create_preferences(db: Session, email: str, customer_id: Optional[int] = None) -> EmailPreference:
    existing = get_preferences_by_email(db, email)
    if existing:
        return existing

    prefs = EmailPreference(
        email=email.strip().lower(),
        customer_id=customer_id,
        unsubscribe_token=generate_preference_token(),
        marketing_emails=True,
        review_requests=True,
        referral_emails=True,
        service_reminders=True,
        transactional_only=False,
    )
    db.add(prefs)
    db.commit()
    db.refresh(prefs)
    return prefs


def can_send_email(db: Session, email: str, category: str, customer_id: Optional[int] = None) -> dict:
    """
    Check whether an email of ``category`` may go to ``email``.

    Returns:
        ``{"allowed": bool, "reason"?, "unsubscribe_url"?, "list_unsubscribe_header"?, "token"?}``
    """
    if category not in EMAIL_CATEGORIES:
        raise UnknownEmailCategory(f"Unknown email category: {category}")

    prefs = get_or_create_preferences(db, email, customer_id)

    if category != "transactional":
        if prefs.transactional_only:
            return {
                "allowed": False,
                "reason": "Recipient has unsubscribed from all non-transactional emails",
            }
        flag, reason = _CATEGORY_FLAGS[category]
        if not getattr(prefs, flag):
            return {"allowed": False, "reason": reason}

    url = preference_url(prefs.unsubscribe_token)
    return {
        "allowed": True,
        "unsubscribe_url": url,
        "list_unsubscribe_header": f"<{url}>",
        "token": prefs.unsubscribe_token,
    }


def add_unsubscribe_footer(html: str, unsubscribe_url: str) -> str:
    url = escape(unsubscribe_url, quote=True)
    footer = f"""
<div style="margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; font-size: 12px; color: #6b7280; text-align: center;">
  <p style="margin: 0 0 8px 0;">You're receiving this email because you're a valued customer.</p>
  <p style="margin: 0;">
    <a href="{url}" style="color: #3b82f6; text-decoration: underline;">Manage your email preferences</a> or
    <a href="{url}" style="color: #3b82f6; text-decoration: underline;">unsubscribe</a>
  </p>
  <p style="margin: 8px 0 0 0; font-size: 11px;">{escape(BUSINESS_ADDRESS)}<br/>&copy; {datetime.utcnow().year} All rights reserved</p>
</div>
"""
    if "</body>" in html:
        return html.replace("</body>", f"{footer}</body>", 1)
    return html + footer


def add_unsubscribe_footer_text(text: str, unsubscribe_url: str) -> str:
    return (
        f"{text}\n\n---\n"
        "You're receiving this email because you're a valued customer.\n"
        f"Manage your email preferences: {unsubscribe_url}\n"
        f"Unsubscribe: {unsubscribe_url}\n\n"
        f"{BUSINESS_ADDRESS}\n"
        f"(c) {datetime.utcnow().year} All rights reserved\n"
    )


def update_preferences(db: Session, token: str, **changes) -> Optional[EmailPreference]:
    prefs = get_preferences_by_token(db, token)
    if not prefs:
        return None
    for field, value in changes.items():
        if field in UPDATABLE_FIELDS and value is not None:
            setattr(prefs, field, bool(value))
    db.commit()
    db.refresh(prefs)
    logger.info(f"📧 Email preferences updated for {prefs.email}")
    return prefs


def unsubscribe_all(db: Session, token: str) -> Optional[EmailPreference]:
    prefs = get_preferences_by_token(db, token)
    if not prefs:
        return None
    prefs.marketing_emails = False
    prefs.review_requests = False
    prefs.referral_emails = False
    prefs.service_reminders = False
    prefs.transactional_only = True
    db.commit()
    db.refresh(prefs)
    logger.info(f"📧 {prefs.email} unsubscribed from all non-transactional email")
    return prefs
