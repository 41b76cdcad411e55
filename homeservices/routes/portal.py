"""
Customer portal routes
Customer-scoped ServiceTitan lookups for the portal pages, issued by the admin app
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import require_admin
from ..integrations.servicetitan.auth import ServiceTitanAPIError
from ..integrations.servicetitan.portal import PortalAccessDenied, servicetitan_portal
from ..rate_limiter import create_rate_limiter
from ..shared.errors import servicetitan_http_error

logger = logging.getLogger(__name__)

portal_rate_limit = create_rate_limiter(limit=60, window_seconds=60, key_prefix="portal")

router = APIRouter(
    prefix="/portal",
    tags=["portal"],
    dependencies=[Depends(require_admin), Depends(portal_rate_limit)],
)


@router.get("/customers/{customer_id}")
async def get_portal_data(customer_id: int):
    try:
        return await servicetitan_portal.get_customer_portal_data(customer_id)
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.get("/customers/{customer_id}/locations/{location_id}")
async def get_location_details(customer_id: int, location_id: int):
    try:
        return await servicetitan_portal.get_location_details(customer_id, location_id)
    except PortalAccessDenied as e:
        logger.warning(f"⚠️ Customer {customer_id} requested foreign location {location_id}")
        raise HTTPException(status_code=403, detail="Location does not belong to this customer") from e
    except ServiceTitanAPIError as e:
        raise servicetitan_http_error(e) from e


@router.get("/customers/{customer_id}/recent-jobs")
async def get_recent_jobs(customer_id: int, limit: int = Query(10, ge=1, le=50)):
    jobs = await servicetitan_portal.get_recent_jobs(customer_id, limit)
    return {"jobs": jobs}


@router.post("/customers/{customer_id}/invalidate")
async def invalidate_portal_cache(customer_id: int):
    cleared = servicetitan_portal.invalidate_customer_cache(customer_id)
    return {"success": True, "cleared": cleared}
