"""
Custom Email Campaign Scheduler

Runs every 30 minutes from the arq worker:
- One-time blasts go to every segment member once ``scheduled_for`` passes
- Drip sequences send each member the next email once ``days_after_start``
  days have passed since their previous email (or since the campaign began)

Per-customer progress lives in custom_campaign_send_log.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..config import EMAIL_REPLY_TO_ADDRESS
from ..email_service import extract_message_id, send_email
from ..models import SystemSetting
from ..models_marketing import (
    CustomCampaign,
    CustomCampaignEmail,
    CustomCampaignSendLog,
    EmailSendLog,
    MarketingCustomer,
    SegmentMembership,
    SuppressedEmail,
)
from .email_preferences import add_unsubscribe_footer, add_unsubscribe_footer_text, can_send_email

logger = logging.getLogger(__name__)

SEND_DELAY_SECONDS = 0.1


def email_sending_enabled(db: Session) -> bool:
    """Master switch: system setting email_enabled == 'false' stops all campaign mail"""
    setting = db.query(SystemSetting).filter(SystemSetting.key == "email_enabled").first()
    return not (setting and (setting.value or "").strip().lower() == "false")


def _segment_customers(db: Session, segment_id: str) -> list[MarketingCustomer]:
    return (
        db.query(MarketingCustomer)
        .join(SegmentMembership, SegmentMembership.customer_id == MarketingCustomer.id)
        .filter(SegmentMembership.segment_id == segment_id)
        .order_by(SegmentMembership.id)
        .all()
    )


def _send_logs(db: Session, campaign_id: str, customer_id: int) -> list[CustomCampaignSendLog]:
    return (
        db.query(CustomCampaignSendLog)
        .filter(
            CustomCampaignSendLog.campaign_id == campaign_id,
            CustomCampaignSendLog.customer_id == customer_id,
        )
        .order_by(CustomCampaignSendLog.sent_at.desc())
        .all()
    )


async def send_custom_campaign_email(
    db: Session, campaign: CustomCampaign, email: CustomCampaignEmail, customer: MarketingCustomer
) -> bool:
    address = customer.email.strip().lower()
    try:
        suppressed = db.query(SuppressedEmail).filter(SuppressedEmail.email == address).first()
        if suppressed:
            logger.info(f"📧 {address} is suppressed ({suppressed.reason}), skipping")
            return False

        check = can_send_email(db, address, "marketing", customer.id)
        if not check["allowed"]:
            logger.info(f"📧 Skipping {address} - {check['reason']}")
            return False

        html = add_unsubscribe_footer(email.html_content, check["unsubscribe_url"])
        text = (
            add_unsubscribe_footer_text(email.plain_text_content, check["unsubscribe_url"])
            if email.plain_text_content
            else None
        )
        response = await send_email(
            to=address,
            subject=email.subject,
            html=html,
            text=text,
            reply_to=EMAIL_REPLY_TO_ADDRESS,
            headers={
                "List-Unsubscribe": check["list_unsubscribe_header"],
                "X-Campaign-ID": campaign.id,
                "X-Campaign-Email-ID": email.id,
                "X-Customer-ID": str(customer.id),
            },
            tags=[
                {"name": "campaign_type", "value": "custom"},
                {"name": "campaign_id", "value": campaign.id},
            ],
        )
        resend_id = extract_message_id(response) or ""

        now = datetime.utcnow()
        db.add(
            CustomCampaignSendLog(
                campaign_id=campaign.id,
                campaign_email_id=email.id,
                customer_id=customer.id,
                recipient_email=address,
                recipient_name=customer.name,
                subject=email.subject,
                resend_email_id=resend_id,
                sent_at=now,
            )
        )
        db.add(
            EmailSendLog(
                email=address,
                recipient_name=customer.name,
                campaign_type="custom_campaign",
                campaign_id=campaign.id,
                campaign_email_id=email.id,
                customer_id=customer.id,
                email_number=email.sequence_number,
                subject=email.subject,
                resend_id=resend_id,
                status="sent",
                sent_at=now,
            )
        )
        db.commit()
        logger.info(f"✅ Sent email {email.sequence_number} of {campaign.name} to {address}")
        return True
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error sending campaign {campaign.id} to {address}: {e}")
        return False


async def process_one_time_blasts(db: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    campaigns = (
        db.query(CustomCampaign)
        .filter(
            CustomCampaign.status == "active",
            CustomCampaign.campaign_type == "one_time",
            CustomCampaign.completed_at.is_(None),
        )
        .all()
    )

    sent_total = 0
    for campaign in campaigns:
        if campaign.scheduled_for and campaign.scheduled_for > now:
            continue
        if not campaign.emails:
            logger.warning(f"⚠️ No emails for campaign {campaign.id}, skipping")
            continue
        if not campaign.segment_id:
            logger.warning(f"⚠️ No segment for campaign {campaign.id}, skipping")
            continue

        customers = _segment_customers(db, campaign.segment_id)
        logger.info(f"📧 One-time blast {campaign.name}: {len(customers)} recipients")
        sent = 0
        for customer in customers:
            if not customer.email:
                continue
            if _send_logs(db, campaign.id, customer.id):
                continue
            if await send_custom_campaign_email(db, campaign, campaign.emails[0], customer):
                sent += 1
            await asyncio.sleep(SEND_DELAY_SECONDS)

        campaign.completed_at = datetime.utcnow()
        campaign.status = "completed"
        db.commit()
        sent_total += sent
        logger.info(f"✅ Completed one-time blast {campaign.id}: {sent} emails sent")
    return sent_total


async def process_drip_sequences(db: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    campaigns = (
        db.query(CustomCampaign)
        .filter(CustomCampaign.status == "active", CustomCampaign.campaign_type == "drip")
        .all()
    )

    sent_total = 0
    for campaign in campaigns:
        emails = sorted(campaign.emails, key=lambda email: (email.days_after_start, email.sequence_number))
        if not emails or not campaign.segment_id:
            logger.warning(f"⚠️ Drip campaign {campaign.id} has no emails or segment, skipping")
            continue

        for customer in _segment_customers(db, campaign.segment_id):
            if not customer.email:
                continue
            logs = _send_logs(db, campaign.id, customer.id)
            sent_ids = {log.campaign_email_id for log in logs}
            next_email = next((email for email in emails if email.id not in sent_ids), None)
            if next_email is None:
                continue

            reference = logs[0].sent_at if logs else campaign.created_at
            days_since = (now - reference).days
            if days_since < next_email.days_after_start:
                continue

            logger.info(
                f"📧 Drip {campaign.name}: email {next_email.sequence_number} to {customer.email} "
                f"({days_since} days since {'last email' if logs else 'campaign start'})"
            )
            if await send_custom_campaign_email(db, campaign, next_email, customer):
                sent_total += 1
            await asyncio.sleep(SEND_DELAY_SECONDS)
    return sent_total


async def process_custom_campaigns(db: Session, now: Optional[datetime] = None) -> dict:
    result = {"success": True, "oneTimeSent": 0, "dripSent": 0, "errors": []}
    if not email_sending_enabled(db):
        logger.info("ℹ️ Master email switch is disabled, skipping campaigns")
        result["message"] = "Master email switch is disabled"
        return result

    logger.info("🔄 Starting custom campaign processing cycle")
    try:
        result["oneTimeSent"] = await process_one_time_blasts(db, now)
    except Exception as e:
        logger.error(f"❌ One-time blast processing failed: {e}")
        result["errors"].append(f"one_time: {e}")
    try:
        result["dripSent"] = await process_drip_sequences(db, now)
    except Exception as e:
        logger.error(f"❌ Drip processing failed: {e}")
        result["errors"].append(f"drip: {e}")

    result["success"] = not result["errors"]
    logger.info(
        f"✅ Campaign cycle complete: {result['oneTimeSent']} one-time, {result['dripSent']} drip"
    )
    return result
