"""
Public website scheduler
Availability lookup and booking straight into ServiceTitan
"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..config import SERVICETITAN_DEFAULT_BUSINESS_UNIT_ID, SERVICETITAN_DEFAULT_JOB_TYPE_ID
from ..database import get_db
from ..integrations.servicetitan.auth import ServiceTitanNotConfigured
from ..integrations.servicetitan.settings import servicetitan_settings
from ..rate_limiter import create_rate_limiter
from ..schemas import BookingRequest, BookingResponse
from ..services.booking_service import BookingFailed, book_appointment, zone_name_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduler", tags=["scheduler"])

booking_rate_limit = create_rate_limiter(limit=5, window_seconds=3600, key_prefix="scheduler_book")
availability_rate_limit = create_rate_limiter(limit=60, window_seconds=60, key_prefix="scheduler_availability")


@router.get("/availability")
async def get_availability(
    day: date = Query(..., alias="date"),
    job_type: Optional[str] = Query(None, alias="jobType"),
    _: None = Depends(availability_rate_limit),
):
    if day < date.today():
        raise HTTPException(status_code=400, detail="Date is in the past")

    business_unit_id = SERVICETITAN_DEFAULT_BUSINESS_UNIT_ID
    job_type_id = SERVICETITAN_DEFAULT_JOB_TYPE_ID or None
    if job_type:
        match = await servicetitan_settings.find_job_type_by_name(job_type)
        if match:
            job_type_id = match["id"]
            business_unit_id = (match.get("businessUnitIds") or [business_unit_id])[0]

    slots = await servicetitan_settings.get_available_slots_for_day(day, business_unit_id, job_type_id)
    windows = await servicetitan_settings.get_arrival_windows()
    return {"date": day.isoformat(), "slots": slots, "arrivalWindows": windows}


@router.post("/book", response_model=BookingResponse)
async def book(
    data: BookingRequest,
    db: Session = Depends(get_db),
    _: None = Depends(booking_rate_limit),
):
    zone = zone_name_for(db, data.zip_code)
    try:
        record = await book_appointment(db, data)
    except BookingFailed as e:
        cause = e.__cause__
        status = 503 if isinstance(cause, ServiceTitanNotConfigured) else 502
        raise HTTPException(
            status_code=status,
            detail={
                "message": "We couldn't complete your booking. Please call us to schedule.",
                "request_id": e.request.public_id,
            },
        ) from e

    return BookingResponse(
        id=record.public_id,
        status=record.status,
        job_id=record.servicetitan_job_id,
        job_number=record.servicetitan_job_number,
        appointment_id=record.servicetitan_appointment_id,
        zone=zone,
        message="Your appointment request has been booked",
    )
