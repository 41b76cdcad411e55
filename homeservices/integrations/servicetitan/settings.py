"""
ServiceTitan Settings API - Job Types, Business Units, Campaigns, Technicians
Reference data for scheduler configuration plus the dispatch capacity check
"""

import logging
import re
import time
from datetime import date, datetime
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from ...config import BUSINESS_TIMEZONE
from .auth import ServiceTitanAuth, format_st_datetime, servicetitan_auth

logger = logging.getLogger(__name__)

REFERENCE_CACHE_TTL = 6 * 60 * 60  # 6 hours

FALLBACK_ARRIVAL_WINDOWS = [
    {"id": 1, "name": "Morning", "start": "08:00", "end": "12:00", "durationHours": 4},
    {"id": 2, "name": "Afternoon", "start": "13:00", "end": "17:00", "durationHours": 4},
]

# Business day searched for bookable slots (local time)
DAY_START_HOUR = 8
DAY_END_HOUR = 17

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_name(value: str) -> str:
    return _NON_ALNUM.sub("", (value or "").lower())


def window_duration_hours(start: str, end: str) -> float:
    start_hour, start_min = (int(part) for part in start.split(":")[:2])
    end_hour, end_min = (int(part) for part in end.split(":")[:2])
    return (end_hour * 60 + end_min - (start_hour * 60 + start_min)) / 60


class ServiceTitanSettings:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth
        self._caches: dict[str, tuple[list, float]] = {}

    async def _cached_list(self, key: str, fetch: Callable[[], Awaitable[dict]]) -> list[dict]:
        """6-hour cache that serves stale data when ServiceTitan is unreachable"""
        cached = self._caches.get(key)
        if cached and time.monotonic() - cached[1] < REFERENCE_CACHE_TTL:
            return cached[0]
        try:
            response = await fetch()
            data = response.get("data") or []
            self._caches[key] = (data, time.monotonic())
            logger.info(f"✅ Cached {len(data)} {key}")
            return data
        except Exception as e:
            logger.error(f"❌ Error fetching {key}: {e}")
            return cached[0] if cached else []

    async def get_job_types(self) -> list[dict]:
        tenant = self.auth.get_tenant_id()
        return await self._cached_list(
            "job types",
            lambda: self.auth.make_request(
                "GET", f"jpm/v2/tenant/{tenant}/job-types", params={"active": "True"}
            ),
        )

    async def get_business_units(self) -> list[dict]:
        tenant = self.auth.get_tenant_id()
        return await self._cached_list(
            "business units",
            lambda: self.auth.make_request(
                "GET", f"settings/v2/tenant/{tenant}/business-units", params={"isActive": "true"}
            ),
        )

    async def get_campaigns(self) -> list[dict]:
        tenant = self.auth.get_tenant_id()
        return await self._cached_list(
            "campaigns",
            lambda: self.auth.make_request(
                "GET", f"marketing/v2/tenant/{tenant}/campaigns", params={"status": "Active"}
            ),
        )

    async def get_technicians(self) -> list[dict]:
        tenant = self.auth.get_tenant_id()
        return await self._cached_list(
            "technicians",
            lambda: self.auth.make_request(
                "GET",
                f"settings/v2/tenant/{tenant}/employees",
                params={"active": "true", "pageSize": 200},
            ),
        )

    async def find_job_type_by_name(self, service_name: str) -> Optional[dict]:
        wanted = normalize_name(service_name)
        if not wanted:
            return None
        job_types = await self.get_job_types()

        for job_type in job_types:
            if normalize_name(job_type.get("name", "")) == wanted:
                return job_type

        for job_type in job_types:
            candidate = normalize_name(job_type.get("name", ""))
            if candidate and (wanted in candidate or candidate in wanted):
                return job_type
        return None

    async def find_campaign_by_utm_source(self, utm_source: str) -> Optional[dict]:
        wanted = (utm_source or "").lower()
        if not wanted:
            return None
        campaigns = await self.get_campaigns()

        for campaign in campaigns:
            if (campaign.get("source") or "").lower() == wanted:
                return campaign

        for campaign in campaigns:
            if wanted in (campaign.get("name") or "").lower() or (
                (campaign.get("externalId") or "").lower() == wanted
            ):
                return campaign
        return None

    async def check_capacity(
        self,
        start: datetime,
        end: datetime,
        business_unit_id: int,
        job_type_id: Optional[int] = None,
        skill_based_availability: bool = True,
    ) -> list[dict]:
        """
        Bookable slots from the dispatch Capacity API.

        Capacity accounts for job appointments, non-job events (lunch, PTO) and
        technician skills. A slot is only offered when ServiceTitan flags it
        available AND it has open capacity. Returns an empty list on error.
        """
        try:
            response = await self.auth.make_request(
                "POST",
                f"dispatch/v2/tenant/{self.auth.get_tenant_id()}/capacity",
                json={
                    "startsOnOrAfter": format_st_datetime(start),
                    "endsOnOrBefore": format_st_datetime(end),
                    "businessUnitIds": [business_unit_id],
                    "jobTypeId": job_type_id,
                    "skillBasedAvailability": skill_based_availability,
                },
            )
            slots = []
            for availability in response.get("availabilities") or []:
                open_capacity = availability.get("openAvailability") or 0
                reported_available = bool(availability.get("isAvailable"))
                if reported_available and open_capacity <= 0:
                    logger.warning(
                        f"⚠️ Slot {availability.get('start')} marked isAvailable=true "
                        f"but openAvailability={open_capacity}"
                    )
                slots.append(
                    {
                        "start": availability.get("startUtc"),
                        "end": availability.get("endUtc"),
                        "isAvailable": reported_available and open_capacity > 0,
                        "availableCapacity": open_capacity,
                        "totalCapacity": availability.get("totalAvailability"),
                        "technicianIds": [
                            tech["id"]
                            for tech in availability.get("technicians") or []
                            if tech.get("status") == "Available"
                        ],
                    }
                )
            available = sum(1 for slot in slots if slot["isAvailable"])
            logger.info(f"📅 Capacity: {len(slots)} slots, {available} available")
            return slots
        except Exception as e:
            logger.error(f"❌ Error checking capacity: {e}")
            return []

    async def get_available_slots_for_day(
        self, day: date, business_unit_id: int, job_type_id: Optional[int] = None
    ) -> list[dict]:
        tz = ZoneInfo(BUSINESS_TIMEZONE)
        start = datetime(day.year, day.month, day.day, DAY_START_HOUR, tzinfo=tz)
        end = datetime(day.year, day.month, day.day, DAY_END_HOUR, tzinfo=tz)
        slots = await self.check_capacity(start, end, business_unit_id, job_type_id)
        return [slot for slot in slots if slot["isAvailable"]]

    async def get_arrival_windows(self) -> list[dict]:
        try:
            response = await self.auth.make_request(
                "GET", f"settings/v2/tenant/{self.auth.get_tenant_id()}/arrival-windows"
            )
            windows = [
                {
                    "id": window.get("id"),
                    "name": window.get("name") or f"{window['start']} - {window['end']}",
                    "start": window["start"],
                    "end": window["end"],
                    "durationHours": window_duration_hours(window["start"], window["end"]),
                }
                for window in response.get("data") or []
            ]
            logger.info(f"✅ Found {len(windows)} arrival windows")
            return windows
        except Exception as e:
            logger.error(f"❌ Error fetching arrival windows, using fallback: {e}")
            return [dict(window) for window in FALLBACK_ARRIVAL_WINDOWS]

    def clear_cache(self) -> None:
        self._caches.clear()
        logger.info("🧹 ServiceTitan settings caches cleared")


servicetitan_settings = ServiceTitanSettings()
