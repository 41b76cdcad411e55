"""
Campaign email sender.

Sends one marketing email per (campaign, customer) with suppression,
preference and idempotency checks. Bodies are stored HTML supplied by admins.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from ..email_service import extract_message_id, send_email
from ..models_marketing import CampaignSendIdempotency, EmailSendLog, SuppressedEmail
from .email_preferences import (
    add_unsubscribe_footer,
    can_send_email,
    get_preferences_by_email,
)

logger = logging.getLogger(__name__)

BATCH_SEND_DELAY_SECONDS = 0.1


@dataclass
class CampaignEmailParams:
    to: str
    subject: str
    html: str
    recipient_name: Optional[str] = None
    campaign_id: Optional[str] = None
    campaign_email_id: Optional[str] = None
    customer_id: Optional[int] = None
    merge_data: dict = field(default_factory=dict)


def idempotency_key(campaign_id: str, customer_id: int) -> str:
    return f"campaign:{campaign_id}:customer:{customer_id}:type:email"


def is_email_suppressed(db: Session, email: str) -> bool:
    return (
        db.query(SuppressedEmail.id).filter(SuppressedEmail.email == email.strip().lower()).first()
        is not None
    )


def _log_send(db: Session, params: CampaignEmailParams, status: str, resend_id=None, error=None) -> None:
    db.add(
        EmailSendLog(
            email=params.to,
            recipient_name=params.recipient_name,
            campaign_type="email_campaign",
            campaign_id=params.campaign_id,
            campaign_email_id=params.campaign_email_id,
            customer_id=params.customer_id,
            subject=params.subject,
            merge_data=params.merge_data or None,
            resend_id=resend_id,
            status=status,
            error_message=error,
        )
    )


async def send_campaign_email(db: Session, params: CampaignEmailParams) -> dict:
    """
    Returns:
        ``{"success": bool, "messageId"?, "error"?, "message"?}``
    """
    to = params.to.strip().lower()

    if is_email_suppressed(db, to):
        logger.info(f"📧 Skipping suppressed email: {to}")
        return {"success": False, "error": "Email is suppressed"}

    prefs = get_preferences_by_email(db, to)
    if prefs and prefs.transactional_only:
        logger.info(f"📧 Skipping unsubscribed email: {to}")
        return {"success": False, "error": "User unsubscribed from all"}
    if prefs and not prefs.marketing_emails:
        logger.info(f"📧 User opted out of marketing emails: {to}")
        return {"success": False, "error": "User opted out of marketing"}

    key = None
    if params.campaign_id and params.customer_id:
        key = idempotency_key(params.campaign_id, params.customer_id)
        existing = (
            db.query(CampaignSendIdempotency)
            .filter(CampaignSendIdempotency.idempotency_key == key)
            .first()
        )
        if existing:
            logger.info(f"📧 Duplicate send prevented (idempotency): {key}")
            return {
                "success": True,
                "messageId": existing.provider_message_id,
                "message": "Already sent (idempotent)",
            }

    check = can_send_email(db, to, "marketing", params.customer_id)

    try:
        response = await send_email(
            to=to,
            subject=params.subject,
            html=add_unsubscribe_footer(params.html, check["unsubscribe_url"]),
            headers={"List-Unsubscribe": check["list_unsubscribe_header"]},
            tags=[{"name": "campaign_type", "value": "email_campaign"}],
        )
    except Exception as e:
        logger.error(f"❌ Campaign email failed to {to}: {e}")
        _log_send(db, params, "failed", error=str(e))
        db.commit()
        return {"success": False, "error": str(e)}

    message_id = extract_message_id(response)
    _log_send(db, params, "sent", resend_id=message_id)
    if key:
        db.add(
            CampaignSendIdempotency(
                idempotency_key=key,
                campaign_type="email_campaign",
                campaign_id=params.campaign_id,
                campaign_email_id=params.campaign_email_id,
                customer_id=params.customer_id,
                send_status="sent",
                provider_message_id=message_id,
            )
        )
    db.commit()
    logger.info(f"✅ Campaign email sent to {to}: {message_id}")
    return {"success": True, "messageId": message_id}


async def send_campaign_batch(db: Session, items: list[CampaignEmailParams]) -> dict:
    summary = {"sent": 0, "skipped": 0, "failed": 0, "results": []}
    for index, params in enumerate(items):
        if index:
            await asyncio.sleep(BATCH_SEND_DELAY_SECONDS)
        result = await send_campaign_email(db, params)
        summary["results"].append(result)
        if result["success"] and result.get("message"):
            summary["skipped"] += 1
        elif result["success"]:
            summary["sent"] += 1
        elif result.get("error") in (
            "Email is suppressed",
            "User unsubscribed from all",
            "User opted out of marketing",
        ):
            summary["skipped"] += 1
        else:
            summary["failed"] += 1
    return summary
