"""
Website booking -> ServiceTitan job.

The request is stored locally first so a ServiceTitan outage never loses a
lead; the row is then marked confirmed (with ServiceTitan ids) or failed.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..config import (
    SERVICETITAN_DEFAULT_BUSINESS_UNIT_ID,
    SERVICETITAN_DEFAULT_CAMPAIGN_ID,
    SERVICETITAN_DEFAULT_JOB_TYPE_ID,
)
from ..email_service import send_booking_confirmation
from ..integrations.servicetitan.crm import ServiceTitanCRM, servicetitan_crm
from ..integrations.servicetitan.jobs import ServiceTitanJobs, servicetitan_jobs
from ..integrations.servicetitan.settings import ServiceTitanSettings, servicetitan_settings
from ..models import SchedulerRequest
from ..schemas import BookingRequest
from .email_preferences import can_send_email
from .zone_sync import find_zone_for_zip

logger = logging.getLogger(__name__)

DEFAULT_CITY = "Austin"
DEFAULT_STATE = "TX"


class BookingFailed(Exception):
    def __init__(self, request: SchedulerRequest, message: str):
        super().__init__(message)
        self.request = request


async def resolve_job_settings(
    requested_service: str, utm_source: Optional[str], settings: ServiceTitanSettings
) -> tuple[int, int, int]:
    """(business_unit_id, job_type_id, campaign_id) for a website booking"""
    business_unit_id = SERVICETITAN_DEFAULT_BUSINESS_UNIT_ID
    job_type_id = SERVICETITAN_DEFAULT_JOB_TYPE_ID
    campaign_id = SERVICETITAN_DEFAULT_CAMPAIGN_ID

    job_type = await settings.find_job_type_by_name(requested_service)
    if job_type:
        job_type_id = job_type["id"]
        business_units = job_type.get("businessUnitIds") or []
        if business_units:
            business_unit_id = business_units[0]
    else:
        logger.warning(f"⚠️ No job type matches '{requested_service}', using default {job_type_id}")

    if utm_source:
        campaign = await settings.find_campaign_by_utm_source(utm_source)
        if campaign:
            campaign_id = campaign["id"]

    return business_unit_id, job_type_id, campaign_id


async def book_appointment(
    db: Session,
    request: BookingRequest,
    crm: Optional[ServiceTitanCRM] = None,
    jobs: Optional[ServiceTitanJobs] = None,
    settings: Optional[ServiceTitanSettings] = None,
) -> SchedulerRequest:
    """
    Persist the request, then create customer, location and job in ServiceTitan.

    Raises:
        BookingFailed: carrying the failed SchedulerRequest row
    """
    crm = crm or servicetitan_crm
    jobs = jobs or servicetitan_jobs
    settings = settings or servicetitan_settings

    record = SchedulerRequest(
        customer_name=request.customer_name,
        customer_email=request.email,
        customer_phone=request.phone,
        address=request.address,
        unit=request.unit,
        city=request.city,
        state=request.state or DEFAULT_STATE,
        zip_code=request.zip_code,
        requested_service=request.requested_service,
        preferred_date=request.preferred_date,
        preferred_time_slot=request.preferred_time_slot,
        special_instructions=request.special_instructions,
        booking_source=request.booking_source,
        utm_source=request.utm_source,
        status="pending",
    )
    db.add(record)
    db.commit()
    db.refresh(record)

    address = {
        "street": request.address,
        "unit": request.unit,
        "city": request.city or DEFAULT_CITY,
        "state": request.state or DEFAULT_STATE,
        "zip": request.zip_code or "",
    }

    try:
        logger.info(f"🔄 Booking {request.requested_service} for {request.customer_name}")
        customer = await crm.ensure_customer(
            name=request.customer_name, phone=request.phone, address=address, email=request.email
        )
        location = await crm.ensure_location(
            customer["id"], address, phone=request.phone, email=request.email
        )
        business_unit_id, job_type_id, campaign_id = await resolve_job_settings(
            request.requested_service, request.utm_source, settings
        )
        job = await jobs.create_job(
            customer_id=customer["id"],
            location_id=location["id"],
            business_unit_id=business_unit_id,
            job_type_id=job_type_id,
            summary=f"{request.requested_service} - Booked via website",
            campaign_id=campaign_id,
            preferred_date=request.preferred_date,
            preferred_time_slot=request.preferred_time_slot,
            arrival_window_start=request.arrival_window_start,
            arrival_window_end=request.arrival_window_end,
            special_instructions=request.special_instructions,
        )
    except Exception as e:
        db.rollback()
        record.status = "failed"
        record.error_message = str(e) or "Unknown error during booking"
        db.commit()
        logger.error(f"❌ Booking {record.public_id} failed: {e}")
        raise BookingFailed(record, record.error_message) from e

    record.servicetitan_customer_id = customer["id"]
    record.servicetitan_location_id = location["id"]
    record.servicetitan_job_id = job.get("id")
    record.servicetitan_job_number = str(job["jobNumber"]) if job.get("jobNumber") else None
    record.servicetitan_appointment_id = job.get("firstAppointmentId")
    record.status = "confirmed"
    record.booked_at = datetime.utcnow()
    db.commit()
    db.refresh(record)
    logger.info(f"✅ Booked job {record.servicetitan_job_number} for request {record.public_id}")

    if record.customer_email:
        await _send_confirmation(db, record)
    return record


async def _send_confirmation(db: Session, record: SchedulerRequest) -> None:
    """Best effort; a failed confirmation email never fails the booking"""
    try:
        check = can_send_email(db, record.customer_email, "transactional", record.servicetitan_customer_id)
        when = record.preferred_date.strftime("%A, %B %d") if record.preferred_date else "the next available slot"
        if record.preferred_time_slot:
            when = f"{when} ({record.preferred_time_slot})"
        await send_booking_confirmation(
            to=record.customer_email,
            customer_name=record.customer_name,
            service=record.requested_service,
            when=when,
            job_number=record.servicetitan_job_number,
            unsubscribe_url=check.get("unsubscribe_url"),
        )
    except Exception as e:
        logger.warning(f"⚠️ Booking confirmation email failed for {record.public_id}: {e}")


def zone_name_for(db: Session, zip_code: Optional[str]) -> Optional[str]:
    zone = find_zone_for_zip(db, zip_code) if zip_code else None
    return zone.name if zone else None
