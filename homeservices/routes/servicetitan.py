"""
ServiceTitan admin routes
Reference data, memberships, estimates, forms and job dispatch actions
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import require_admin
from ..integrations.servicetitan.auth import ServiceTitanAPIError
from ..integrations.servicetitan.crm import servicetitan_crm
from ..integrations.servicetitan.estimates import servicetitan_estimates
from ..integrations.servicetitan.forms import servicetitan_forms
from ..integrations.servicetitan.jobs import servicetitan_jobs
from ..integrations.servicetitan.memberships import servicetitan_memberships
from ..integrations.servicetitan.pricebook import servicetitan_pricebook
from ..integrations.servicetitan.settings import servicetitan_settings
from ..schemas import (
    AssignTechnicianRequest,
    CancelJobRequest,
    MembershipSaleRequest,
    NoteRequest,
    RescheduleRequest,
)
from ..shared.errors import servicetitan_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/servicetitan", tags=["servicetitan"], dependencies=[Depends(require_admin)])


def _parse_ids(value: Optional[str]) -> Optional[list[int]]:
    if not value:
        return None
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError as e:
        raise HTTPException(status_code=400, detail="IDs must be comma-separated integers") from e


# Reference data
@router.get("/job-types")
async def list_job_types():
    return {"jobTypes": await servicetitan_settings.get_job_types()}


@router.get("/business-units")
async def list_business_units():
    return {"businessUnits": await servicetitan_settings.get_business_units()}


@router.get("/campaigns")
async def list_campaigns():
    return {"campaigns": await servicetitan_settings.get_campaigns()}


@router.get("/technicians")
async def list_technicians():
    return {"technicians": await servicetitan_settings.get_technicians()}


@router.get("/arrival-windows")
async def list_arrival_windows():
    return {"arrivalWindows": await servicetitan_settings.get_arrival_windows()}


# Memberships
@router.get("/memberships/types")
async def list_membership_types(
    active: Optional[bool] = None,
    duration: Optional[int] = None,
    billing_frequency: Optional[str] = Query(None, alias="billingFrequency"),
):
    try:
        types = await servicetitan_memberships.get_membership_types(active, duration, billing_frequency)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"membershipTypes": types}


@router.get("/memberships/types/{membership_type_id}")
async def get_membership_type_details(membership_type_id: int):
    """Discounts, recurring services and duration/billing options for one plan"""
    try:
        return {
            "discounts": await servicetitan_memberships.get_membership_discounts(membership_type_id),
            "recurringServices": await servicetitan_memberships.get_recurring_services(
                membership_type_id
            ),
            "durationBilling": await servicetitan_memberships.get_duration_billing_options(
                membership_type_id
            ),
        }
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.get("/customers/{customer_id}/memberships")
async def list_customer_memberships(customer_id: int, status: Optional[str] = None):
    try:
        memberships = await servicetitan_memberships.get_customer_memberships(customer_id, status=status)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"memberships": memberships}


@router.post("/memberships/sale")
async def create_membership_sale(data: MembershipSaleRequest):
    try:
        sale = await servicetitan_memberships.create_membership_sale(
            customer_id=data.customer_id,
            business_unit_id=data.business_unit_id,
            sale_task_id=data.sale_task_id,
            duration_billing_id=data.duration_billing_id,
            location_id=data.location_id,
            recurring_service_action=data.recurring_service_action,
            recurring_location_id=data.recurring_location_id,
        )
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"success": True, **sale}


# Customers and locations
@router.get("/customers/{customer_id}")
async def get_customer(customer_id: int):
    try:
        customer = await servicetitan_crm.get_customer(customer_id)
        contacts = await servicetitan_crm.get_customer_contacts(customer_id)
        locations = await servicetitan_crm.get_customer_locations(customer_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"customer": customer, "contacts": contacts, "locations": locations}


@router.get("/locations/{location_id}")
async def get_location(location_id: int):
    try:
        return await servicetitan_crm.get_location(location_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.post("/locations/{location_id}/notes")
async def add_location_note(location_id: int, data: NoteRequest):
    """Pinned by default so technicians see gate codes and pet warnings"""
    pinned = True if data.pinned is None else data.pinned
    try:
        return await servicetitan_crm.create_location_note(location_id, data.text, pinned=pinned)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


# Estimates
@router.get("/customers/{customer_id}/estimates")
async def list_customer_estimates(
    customer_id: int,
    include_inactive: bool = Query(False, alias="includeInactive"),
    sold_only: bool = Query(False, alias="soldOnly"),
    enrich: bool = True,
):
    """Estimates with pricebook images attached to each line item"""
    if sold_only:
        estimates = await servicetitan_estimates.get_sold_estimates(customer_id)
    else:
        estimates = await servicetitan_estimates.get_estimates(customer_id, include_inactive)
    if enrich and estimates:
        estimates = await servicetitan_estimates.enrich_estimates_with_pricebook(estimates)
    return {"estimates": estimates}


@router.get("/estimates/{estimate_id}")
async def get_estimate(estimate_id: int):
    estimate = await servicetitan_estimates.get_estimate_by_id(estimate_id)
    if not estimate:
        raise HTTPException(status_code=404, detail="Estimate not found")
    enriched = await servicetitan_estimates.enrich_estimates_with_pricebook([estimate])
    return enriched[0]


# Forms
@router.get("/forms")
async def list_forms(
    status: Optional[str] = None, active: Optional[bool] = None, name: Optional[str] = None
):
    try:
        forms = await servicetitan_forms.get_forms(status=status, active=active, name=name)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"forms": forms}


@router.get("/forms/submissions")
async def list_form_submissions(
    form_ids: Optional[str] = Query(None, alias="formIds"),
    status: Optional[str] = None,
    owner_type: Optional[str] = Query(None, alias="ownerType"),
    owner_ids: Optional[str] = Query(None, alias="ownerIds"),
    submitted_on_or_after: Optional[datetime] = Query(None, alias="submittedOnOrAfter"),
    submitted_before: Optional[datetime] = Query(None, alias="submittedBefore"),
    page: Optional[int] = None,
    page_size: Optional[int] = Query(None, alias="pageSize"),
):
    try:
        submissions = await servicetitan_forms.get_form_submissions(
            form_ids=_parse_ids(form_ids),
            status=status,
            submitted_on_or_after=submitted_on_or_after,
            submitted_before=submitted_before,
            owner_type=owner_type,
            owner_ids=_parse_ids(owner_ids),
            page=page,
            page_size=page_size,
        )
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"submissions": submissions}


@router.get("/customers/{customer_id}/form-submissions")
async def list_customer_form_submissions(customer_id: int):
    try:
        submissions = await servicetitan_forms.get_customer_form_submissions(customer_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"submissions": submissions}


@router.get("/jobs/{job_id}/form-submissions")
async def list_job_form_submissions(job_id: int):
    try:
        submissions = await servicetitan_forms.get_job_form_submissions(job_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"submissions": submissions}


# Jobs and dispatch
@router.get("/jobs")
async def list_jobs(start: datetime, end: datetime):
    if end <= start:
        raise HTTPException(status_code=400, detail="end must be after start")
    jobs = await servicetitan_jobs.get_jobs_for_date_range(start, end)
    return {"jobs": jobs, "count": len(jobs)}


@router.get("/jobs/{job_id}")
async def get_job(job_id: int):
    try:
        return await servicetitan_jobs.get_job(job_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.post("/jobs/{job_id}/notes")
async def add_job_note(job_id: int, data: NoteRequest):
    try:
        return await servicetitan_jobs.create_job_note(job_id, data.text, pinned=bool(data.pinned))
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.get("/appointments/assignments")
async def list_technician_assignments(appointment_ids: str = Query(..., alias="appointmentIds")):
    assignments = await servicetitan_jobs.get_technician_assignments(_parse_ids(appointment_ids) or [])
    return {"assignments": {str(k): v for k, v in assignments.items()}}


@router.get("/appointments/{appointment_id}")
async def get_appointment(appointment_id: int):
    try:
        return await servicetitan_jobs.get_appointment(appointment_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.post("/appointments/{appointment_id}/assign")
async def assign_technician(appointment_id: int, data: AssignTechnicianRequest):
    try:
        await servicetitan_jobs.assign_technician(appointment_id, data.technician_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"success": True}


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: int, data: CancelJobRequest):
    try:
        await servicetitan_jobs.cancel_job(job_id, data.reason_id, data.memo)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"success": True, "message": f"Job {job_id} cancelled"}


@router.post("/appointments/{appointment_id}/reschedule")
async def reschedule_appointment(appointment_id: int, data: RescheduleRequest):
    if not any([data.start, data.end, data.arrival_window_start, data.arrival_window_end]):
        raise HTTPException(status_code=400, detail="Nothing to reschedule")
    try:
        await servicetitan_jobs.reschedule_appointment(
            appointment_id,
            start=data.start,
            end=data.end,
            arrival_window_start=data.arrival_window_start,
            arrival_window_end=data.arrival_window_end,
        )
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e
    return {"success": True, "message": f"Appointment {appointment_id} rescheduled"}


@router.post("/cache/clear")
async def clear_caches():
    servicetitan_settings.clear_cache()
    servicetitan_memberships.clear_cache()
    servicetitan_forms.clear_cache()
    servicetitan_pricebook.clear_cache()
    logger.info("🧹 All ServiceTitan caches cleared")
    return {"success": True, "message": "ServiceTitan caches cleared"}
