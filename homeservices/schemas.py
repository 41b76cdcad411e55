from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .shared.validators import validate_email, validate_us_phone, validate_zip_code


class MessageResponse(BaseModel):
    message: str


# Scheduler / booking
class BookingRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    phone: str
    email: Optional[str] = None
    address: str = Field(..., min_length=1, max_length=500)
    unit: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = "TX"
    zip_code: Optional[str] = None
    requested_service: str = Field(..., min_length=1, max_length=255)
    preferred_date: Optional[date] = None
    preferred_time_slot: Optional[str] = Field(None, pattern="^(morning|afternoon|evening)$")
    arrival_window_start: Optional[str] = None
    arrival_window_end: Optional[str] = None
    special_instructions: Optional[str] = Field(None, max_length=2000)
    utm_source: Optional[str] = None
    booking_source: str = "website"

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, value):
        return validate_us_phone(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        return validate_email(value)

    @field_validator("zip_code")
    @classmethod
    def normalize_zip(cls, value):
        return validate_zip_code(value)


class BookingResponse(BaseModel):
    id: str
    status: str
    job_id: Optional[int] = None
    job_number: Optional[str] = None
    appointment_id: Optional[int] = None
    zone: Optional[str] = None
    message: str


# ServiceTitan admin actions
class MembershipSaleRequest(BaseModel):
    customer_id: int
    location_id: int
    business_unit_id: int
    sale_task_id: int
    duration_billing_id: int
    recurring_service_action: str = "All"
    recurring_location_id: Optional[int] = None


class CancelJobRequest(BaseModel):
    reason_id: int
    memo: str = ""


class RescheduleRequest(BaseModel):
    start: Optional[str] = None
    end: Optional[str] = None
    arrival_window_start: Optional[str] = None
    arrival_window_end: Optional[str] = None


class NoteRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=5000)
    pinned: Optional[bool] = None


class AssignTechnicianRequest(BaseModel):
    technician_id: int


# Zones
class ZoneResponse(BaseModel):
    id: int
    servicetitan_id: Optional[int]
    name: str
    zip_codes: List[str]
    cities: Optional[List[str]]
    sort_order: int
    active: bool

    class Config:
        from_attributes = True


# Photos
class PhotoResponse(BaseModel):
    id: str
    photo_url: str
    job_id: Optional[str]
    source: str
    category: str
    quality_score: int
    is_production_quality: bool
    ai_description: Optional[str]
    tags: List[str]
    focal_point_x: float
    focal_point_y: float
    uploaded_at: Optional[datetime]

    class Config:
        from_attributes = True


class CompositeResponse(BaseModel):
    id: int
    before_photo_id: str
    after_photo_id: str
    composite_url: str
    caption: Optional[str]
    category: Optional[str]
    job_id: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


# Google Drive
class OAuthCallbackRequest(BaseModel):
    code: str
    folder_id: Optional[str] = None


# Campaigns
class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    campaign_type: str = Field(..., pattern="^(one_time|drip)$")
    segment_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    status: str = Field("draft", pattern="^(draft|active|paused)$")


class CampaignEmailCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=500)
    html_content: str
    plain_text_content: Optional[str] = None
    days_after_start: int = Field(0, ge=0)
    sequence_number: Optional[int] = None


class SegmentMemberRow(BaseModel):
    customer_id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value):
        return validate_email(value)


class SegmentMembersRequest(BaseModel):
    segment_name: Optional[str] = None
    members: List[SegmentMemberRow]


class CampaignResponse(BaseModel):
    id: str
    name: str
    campaign_type: str
    status: str
    segment_id: Optional[str]
    scheduled_for: Optional[datetime]
    completed_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class SingleCampaignEmailRequest(BaseModel):
    to: str
    subject: str
    html: str
    recipient_name: Optional[str] = None
    campaign_id: Optional[str] = None
    campaign_email_id: Optional[str] = None
    customer_id: Optional[int] = None

    @field_validator("to")
    @classmethod
    def normalize_to(cls, value):
        return validate_email(value)


# Email preferences
class EmailPreferenceResponse(BaseModel):
    email: str
    marketing_emails: bool
    review_requests: bool
    referral_emails: bool
    service_reminders: bool
    transactional_only: bool

    class Config:
        from_attributes = True


class EmailPreferenceUpdate(BaseModel):
    marketing_emails: Optional[bool] = None
    review_requests: Optional[bool] = None
    referral_emails: Optional[bool] = None
    service_reminders: Optional[bool] = None
    transactional_only: Optional[bool] = None
