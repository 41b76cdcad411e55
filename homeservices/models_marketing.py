"""
Email marketing models: preferences, suppression, customer directory,
custom campaigns and their send/idempotency logs
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class EmailPreference(Base):
    __tablename__ = "email_preferences"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # stored lowercase
    customer_id = Column(Integer, nullable=True, index=True)
    unsubscribe_token = Column(String(64), unique=True, index=True, nullable=False)

    marketing_emails = Column(Boolean, default=True, nullable=False)
    review_requests = Column(Boolean, default=True, nullable=False)
    referral_emails = Column(Boolean, default=True, nullable=False)
    service_reminders = Column(Boolean, default=True, nullable=False)
    transactional_only = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class SuppressedEmail(Base):
    """Hard bounces and spam complaints; never mailed again"""

    __tablename__ = "email_suppression_list"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    reason = Column(String(50), nullable=False)  # hard_bounce, spam_complaint, manual
    created_at = Column(DateTime, server_default=func.now())


class MarketingCustomer(Base):
    """Customer directory imported from ServiceTitan exports (id is the ServiceTitan customer id)"""

    __tablename__ = "marketing_customers"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class CustomerSegment(Base):
    __tablename__ = "customer_segments"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class SegmentMembership(Base):
    __tablename__ = "segment_memberships"

    id = Column(Integer, primary_key=True, index=True)
    segment_id = Column(String(36), ForeignKey("customer_segments.id"), index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("marketing_customers.id"), index=True, nullable=False)
    added_at = Column(DateTime, server_default=func.now())


class CustomCampaign(Base):
    __tablename__ = "custom_email_campaigns"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    name = Column(String(255), nullable=False)
    campaign_type = Column(String(20), nullable=False)  # one_time, drip
    status = Column(String(20), default="draft", nullable=False)  # draft, active, paused, completed
    segment_id = Column(String(36), ForeignKey("customer_segments.id"), nullable=True)
    scheduled_for = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    emails = relationship(
        "CustomCampaignEmail",
        back_populates="campaign",
        order_by="CustomCampaignEmail.sequence_number",
        cascade="all, delete-orphan",
    )


class CustomCampaignEmail(Base):
    __tablename__ = "custom_campaign_emails"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    campaign_id = Column(String(36), ForeignKey("custom_email_campaigns.id"), index=True, nullable=False)
    sequence_number = Column(Integer, default=1, nullable=False)
    subject = Column(String(500), nullable=False)
    html_content = Column(Text, nullable=False)
    plain_text_content = Column(Text, nullable=True)
    days_after_start = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    campaign = relationship("CustomCampaign", back_populates="emails")


class CustomCampaignSendLog(Base):
    """Per-customer progress through a custom campaign"""

    __tablename__ = "custom_campaign_send_log"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(String(36), index=True, nullable=False)
    campaign_email_id = Column(String(36), nullable=False)
    customer_id = Column(Integer, index=True, nullable=False)
    recipient_email = Column(String(255), nullable=False)
    recipient_name = Column(String(255), nullable=True)
    subject = Column(String(500), nullable=True)
    resend_email_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime, server_default=func.now(), nullable=False)


class EmailSendLog(Base):
    """Unified log of every marketing email attempt"""

    __tablename__ = "email_send_log"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=False)
    recipient_name = Column(String(255), nullable=True)
    campaign_type = Column(String(50), nullable=False)  # email_campaign, custom_campaign
    campaign_id = Column(String(36), nullable=True, index=True)
    campaign_email_id = Column(String(36), nullable=True)
    customer_id = Column(Integer, nullable=True)
    email_number = Column(Integer, nullable=True)
    subject = Column(String(500), nullable=True)
    merge_data = Column(JSON, nullable=True)
    resend_id = Column(String(255), nullable=True)
    status = Column(String(20), default="sent", nullable=False)  # sent, failed
    error_message = Column(Text, nullable=True)
    sent_at = Column(DateTime, server_default=func.now(), nullable=False)


class CampaignSendIdempotency(Base):
    __tablename__ = "campaign_send_idempotency"

    id = Column(Integer, primary_key=True, index=True)
    idempotency_key = Column(String(255), unique=True, index=True, nullable=False)
    campaign_type = Column(String(50), nullable=False)
    campaign_id = Column(String(36), nullable=False)
    campaign_email_id = Column(String(36), nullable=True)
    customer_id = Column(Integer, nullable=False)
    send_status = Column(String(20), default="sent", nullable=False)
    provider_message_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime, server_default=func.now(), nullable=False)
