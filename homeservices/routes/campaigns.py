"""
Custom email campaign routes (admin)
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models_marketing import (
    CustomCampaign,
    CustomCampaignEmail,
    CustomerSegment,
    MarketingCustomer,
    SegmentMembership,
)
from ..schemas import (
    CampaignCreate,
    CampaignEmailCreate,
    CampaignResponse,
    SegmentMembersRequest,
    SingleCampaignEmailRequest,
)
from ..services.campaign_email_sender import (
    CampaignEmailParams,
    send_campaign_batch,
    send_campaign_email,
)
from ..services.custom_campaign_scheduler import process_custom_campaigns

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"], dependencies=[Depends(require_admin)])


def _get_campaign(db: Session, campaign_id: str) -> CustomCampaign:
    campaign = db.query(CustomCampaign).filter(CustomCampaign.id == campaign_id).first()
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


def _params(data: SingleCampaignEmailRequest) -> CampaignEmailParams:
    return CampaignEmailParams(
        to=data.to,
        subject=data.subject,
        html=data.html,
        recipient_name=data.recipient_name,
        campaign_id=data.campaign_id,
        campaign_email_id=data.campaign_email_id,
        customer_id=data.customer_id,
    )


@router.get("", response_model=List[CampaignResponse])
async def list_campaigns(db: Session = Depends(get_db)):
    return db.query(CustomCampaign).order_by(CustomCampaign.created_at.desc()).all()


@router.post("", response_model=CampaignResponse)
async def create_campaign(data: CampaignCreate, db: Session = Depends(get_db)):
    if data.segment_id and not db.query(CustomerSegment).filter(CustomerSegment.id == data.segment_id).first():
        raise HTTPException(status_code=404, detail="Segment not found")

    campaign = CustomCampaign(
        name=data.name,
        campaign_type=data.campaign_type,
        status=data.status,
        segment_id=data.segment_id,
        scheduled_for=data.scheduled_for,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    logger.info(f"✅ Created {campaign.campaign_type} campaign {campaign.id}: {campaign.name}")
    return campaign


@router.post("/{campaign_id}/status/{status}", response_model=CampaignResponse)
async def set_campaign_status(campaign_id: str, status: str, db: Session = Depends(get_db)):
    if status not in ("draft", "active", "paused"):
        raise HTTPException(status_code=400, detail="Status must be draft, active or paused")
    campaign = _get_campaign(db, campaign_id)
    if campaign.status == "completed":
        raise HTTPException(status_code=400, detail="Campaign already completed")
    campaign.status = status
    db.commit()
    db.refresh(campaign)
    return campaign


@router.post("/{campaign_id}/emails")
async def add_campaign_email(campaign_id: str, data: CampaignEmailCreate, db: Session = Depends(get_db)):
    campaign = _get_campaign(db, campaign_id)
    if campaign.campaign_type == "one_time" and campaign.emails:
        raise HTTPException(status_code=400, detail="One-time campaigns have a single email")

    email = CustomCampaignEmail(
        campaign_id=campaign.id,
        sequence_number=data.sequence_number or len(campaign.emails) + 1,
        subject=data.subject,
        html_content=data.html_content,
        plain_text_content=data.plain_text_content,
        days_after_start=data.days_after_start,
    )
    db.add(email)
    db.commit()
    db.refresh(email)
    return {
        "id": email.id,
        "sequence_number": email.sequence_number,
        "subject": email.subject,
        "days_after_start": email.days_after_start,
    }


@router.post("/{campaign_id}/segment-members")
async def add_segment_members(campaign_id: str, data: SegmentMembersRequest, db: Session = Depends(get_db)):
    """Upsert recipients and attach them to the campaign's segment (created on first use)"""
    campaign = _get_campaign(db, campaign_id)

    if not campaign.segment_id:
        segment = CustomerSegment(name=data.segment_name or f"{campaign.name} recipients")
        db.add(segment)
        db.flush()
        campaign.segment_id = segment.id

    existing_members = {
        row.customer_id
        for row in db.query(SegmentMembership.customer_id)
        .filter(SegmentMembership.segment_id == campaign.segment_id)
        .all()
    }

    added = 0
    for row in data.members:
        customer = db.get(MarketingCustomer, row.customer_id)
        if customer is None:
            customer = MarketingCustomer(id=row.customer_id)
            db.add(customer)
        customer.name = row.name or customer.name
        customer.email = row.email or customer.email
        customer.phone = row.phone or customer.phone

        if row.customer_id not in existing_members:
            db.add(SegmentMembership(segment_id=campaign.segment_id, customer_id=row.customer_id))
            existing_members.add(row.customer_id)
            added += 1

    db.commit()
    logger.info(f"✅ Added {added} members to segment {campaign.segment_id}")
    return {"segmentId": campaign.segment_id, "added": added, "total": len(existing_members)}


@router.post("/run")
async def run_campaign_scheduler(db: Session = Depends(get_db)):
    return await process_custom_campaigns(db)


@router.post("/send")
async def send_single_campaign_email(data: SingleCampaignEmailRequest, db: Session = Depends(get_db)):
    if not data.to:
        raise HTTPException(status_code=400, detail="Recipient email is required")
    return await send_campaign_email(db, _params(data))


@router.post("/send-batch")
async def send_campaign_email_batch(items: List[SingleCampaignEmailRequest], db: Session = Depends(get_db)):
    return await send_campaign_batch(db, [_params(item) for item in items if item.to])
