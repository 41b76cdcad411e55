"""
Customer portal aggregation over ServiceTitan.

Fans out to CRM, JPM, accounting and memberships for a single customer and
caches the assembled result in memory for a couple of minutes so a portal
page refresh does not hammer ServiceTitan.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from ...database import SessionLocal
from ...models import Referral
from .auth import ServiceTitanAuth, format_st_datetime, servicetitan_auth

logger = logging.getLogger(__name__)

PORTAL_CACHE_TTL = 2 * 60  # 2 minutes
MAX_CONCURRENT_REQUESTS = 5
ACTIVE_APPOINTMENT_STATUSES = {"Scheduled", "Dispatched", "Working", "OnMyWay"}
MAX_REFERRALS = 20
MAX_INVOICES = 10


class PortalAccessDenied(Exception):
    """Location requested does not belong to the customer"""


def format_address(address: Optional[dict]) -> str:
    if not address:
        return ""
    parts = [address.get(key) for key in ("street", "unit", "city", "state", "zip")]
    return ", ".join(str(part).strip() for part in parts if part and str(part).strip())


def _format_time(value: str) -> str:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed.strftime("%I:%M %p").lstrip("0")


def format_arrival_window(start: Optional[str], end: Optional[str]) -> Optional[str]:
    if not start or not end:
        return None
    return f"{_format_time(start)} - {_format_time(end)}"


class ServiceTitanPortalService:
    def __init__(
        self,
        auth: Optional[ServiceTitanAuth] = None,
        session_factory: Callable = SessionLocal,
    ):
        self.auth = auth or servicetitan_auth
        self.session_factory = session_factory
        self._cache: dict[str, dict] = {}
        self._limiter = asyncio.Semaphore(MAX_CONCURRENT_REQUESTS)

    # Cache -----------------------------------------------------------------

    def _get_cached(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if not entry:
            return None
        if time.monotonic() > entry["expires_at"]:
            del self._cache[key]
            return None
        return entry["data"]

    def _set_cache(self, key: str, data: Any) -> None:
        now = time.monotonic()
        self._cache[key] = {"data": data, "timestamp": now, "expires_at": now + PORTAL_CACHE_TTL}

    def invalidate_customer_cache(self, customer_id: int) -> int:
        prefix = f"customer:{customer_id}:"
        keys = [key for key in self._cache if key.startswith(prefix)]
        for key in keys:
            del self._cache[key]
        logger.info(f"🧹 Cleared {len(keys)} portal cache entries for customer {customer_id}")
        return len(keys)

    async def _limited(self, method: str, path: str, params: Optional[dict] = None) -> Any:
        async with self._limiter:
            return await self.auth.make_request(method, path, params=params)

    def _tenant_path(self, api: str, suffix: str) -> str:
        return f"{api}/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    # Customer overview -------------------------------------------------------

    async def get_customer_portal_data(self, customer_id: int) -> dict:
        cache_key = f"customer:{customer_id}:portal-data"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        customer = await self._limited("GET", self._tenant_path("crm", f"customers/{customer_id}"))

        locations, referrals = await asyncio.gather(
            self._fetch_locations(customer_id),
            asyncio.to_thread(self._fetch_referrals, customer_id),
        )

        data = {
            "id": customer.get("id", customer_id),
            "name": customer.get("name") or "Customer",
            "email": customer.get("email") or "",
            "phone": customer.get("phoneNumber") or "",
            "address": format_address(customer.get("address")),
            "locations": locations,
            "referrals": referrals,
            "credits": 0,
        }
        self._set_cache(cache_key, data)
        return data

    async def _fetch_locations(self, customer_id: int) -> list[dict]:
        fallback = [{"id": 0, "name": "Primary Location", "address": ""}]
        try:
            response = await self._limited(
                "GET",
                self._tenant_path("crm", "locations"),
                params={"customerId": customer_id, "active": "true", "pageSize": 100},
            )
            locations = [
                {
                    "id": location.get("id"),
                    "name": location.get("name")
                    or format_address(location.get("address"))
                    or "Unnamed Location",
                    "address": format_address(location.get("address")),
                }
                for location in response.get("data") or []
            ]
            return locations or fallback
        except Exception as e:
            logger.error(f"❌ Error fetching locations for customer {customer_id}: {e}")
            return fallback

    def _fetch_referrals(self, customer_id: int) -> list[dict]:
        db = self.session_factory()
        try:
            rows = (
                db.query(Referral)
                .filter(Referral.referrer_customer_id == customer_id)
                .order_by(Referral.submitted_at.desc())
                .limit(MAX_REFERRALS)
                .all()
            )
            return [
                {
                    "id": index + 1,
                    "refereeName": row.referee_name,
                    "refereePhone": row.referee_phone,
                    "status": row.status,
                    "createdAt": row.submitted_at.isoformat() if row.submitted_at else None,
                }
                for index, row in enumerate(rows)
            ]
        except Exception as e:
            logger.error(f"❌ Error fetching referrals for customer {customer_id}: {e}")
            return []
        finally:
            db.close()

    # Location details --------------------------------------------------------

    async def get_location_details(self, customer_id: int, location_id: int) -> dict:
        """
        Upcoming appointments, recent invoices and memberships for one location.

        ``location_id == 0`` means "all locations for the customer".

        Raises:
            PortalAccessDenied: if the location belongs to another customer
        """
        cache_key = f"customer:{customer_id}:location:{location_id}:details"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        if location_id:
            location = await self._limited(
                "GET", self._tenant_path("crm", f"locations/{location_id}")
            )
            if location.get("customerId") != customer_id:
                logger.warning(
                    f"⚠️ Customer {customer_id} requested location {location_id} "
                    f"owned by {location.get('customerId')}"
                )
                raise PortalAccessDenied(f"Location {location_id} does not belong to customer")

        appointments, invoices, memberships = await asyncio.gather(
            self._fetch_appointments(customer_id, location_id),
            self._fetch_invoices(customer_id, location_id),
            self._fetch_memberships(customer_id, location_id),
        )
        data = {"appointments": appointments, "invoices": invoices, "memberships": memberships}
        self._set_cache(cache_key, data)
        return data

    def _scope(self, customer_id: int, location_id: int, **extra) -> dict:
        params = {"customerId": customer_id, **extra}
        if location_id:
            params["locationId"] = location_id
        return params

    async def _fetch_appointments(self, customer_id: int, location_id: int) -> list[dict]:
        try:
            response = await self._limited(
                "GET",
                self._tenant_path("jpm", "jobs"),
                params=self._scope(customer_id, location_id, active="Any", pageSize=100),
            )
            jobs = response.get("data") or []
            per_job = await asyncio.gather(*(self._fetch_job_appointments(job) for job in jobs))
            return [appointment for batch in per_job for appointment in batch]
        except Exception as e:
            logger.error(f"❌ Error fetching appointments for customer {customer_id}: {e}")
            return []

    async def _fetch_job_appointments(self, job: dict) -> list[dict]:
        try:
            response = await self._limited(
                "GET", self._tenant_path("jpm", "appointments"), params={"jobId": job.get("id")}
            )
        except Exception as e:
            logger.error(f"❌ Error fetching appointments for job {job.get('id')}: {e}")
            return []

        service_name = (
            (job.get("businessUnit") or {}).get("name")
            or (job.get("jobType") or {}).get("name")
            or "Service"
        )
        appointments = []
        for appointment in response.get("data") or []:
            if appointment.get("status") not in ACTIVE_APPOINTMENT_STATUSES:
                continue
            appointments.append(
                {
                    "id": appointment.get("id"),
                    "jobId": job.get("id"),
                    "serviceName": service_name,
                    "start": appointment.get("start"),
                    "end": appointment.get("end"),
                    "status": appointment.get("status"),
                    "arrivalWindow": format_arrival_window(
                        appointment.get("arrivalWindowStart"), appointment.get("arrivalWindowEnd")
                    ),
                    "technicianName": (appointment.get("technician") or {}).get("name"),
                    "locationName": (job.get("location") or {}).get("name"),
                }
            )
        return appointments

    async def _fetch_invoices(self, customer_id: int, location_id: int) -> list[dict]:
        try:
            response = await self._limited(
                "GET",
                self._tenant_path("accounting", "invoices"),
                params=self._scope(customer_id, location_id, pageSize=50),
            )
            invoices = [
                {
                    "id": invoice.get("id"),
                    "number": invoice.get("invoiceNumber")
                    or invoice.get("number")
                    or f"INV-{invoice.get('id')}",
                    "date": invoice.get("createdOn") or invoice.get("invoiceDate"),
                    "total": invoice.get("total") or 0,
                    "paid": (invoice.get("balance") or 0) == 0,
                    "balance": invoice.get("balance") or 0,
                }
                for invoice in response.get("data") or []
            ]
            invoices.sort(key=lambda invoice: invoice["date"] or "", reverse=True)
            return invoices[:MAX_INVOICES]
        except Exception as e:
            logger.error(f"❌ Error fetching invoices for customer {customer_id}: {e}")
            return []

    async def _fetch_memberships(self, customer_id: int, location_id: int) -> list[dict]:
        try:
            response = await self._limited(
                "GET",
                self._tenant_path("memberships", "memberships"),
                params=self._scope(customer_id, location_id),
            )
            return [
                {
                    "id": membership.get("id"),
                    "name": (membership.get("type") or {}).get("name") or "Membership",
                    "status": membership.get("status"),
                    "startDate": membership.get("from"),
                    "expiryDate": membership.get("to"),
                }
                for membership in response.get("data") or []
            ]
        except Exception as e:
            logger.error(f"❌ Error fetching memberships for customer {customer_id}: {e}")
            return []

    # Job history -------------------------------------------------------------

    async def get_recent_jobs(self, customer_id: int, limit: int = 10) -> list[dict]:
        cache_key = f"customer:{customer_id}:recent-jobs:{limit}"
        cached = self._get_cached(cache_key)
        if cached is not None:
            return cached

        completed_after = datetime.now(timezone.utc) - timedelta(days=182)
        try:
            response = await self._limited(
                "GET",
                self._tenant_path("jpm", "jobs"),
                params={
                    "customerId": customer_id,
                    "completedAfter": format_st_datetime(completed_after),
                    "pageSize": limit,
                },
            )
        except Exception as e:
            logger.error(f"❌ Error fetching recent jobs for customer {customer_id}: {e}")
            return []

        jobs = [
            {
                "id": job.get("id"),
                "jobNumber": job.get("jobNumber"),
                "serviceName": (job.get("jobType") or {}).get("name")
                or (job.get("businessUnit") or {}).get("name")
                or "Service",
                "completionDate": job.get("completedOn"),
                "total": job.get("total") or 0,
                "locationName": (job.get("location") or {}).get("name"),
            }
            for job in response.get("data") or []
            if job.get("completedOn")
        ]
        jobs.sort(key=lambda job: job["completionDate"], reverse=True)
        self._set_cache(cache_key, jobs)
        return jobs


servicetitan_portal = ServiceTitanPortalService()
