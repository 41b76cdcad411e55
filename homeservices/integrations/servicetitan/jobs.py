"""
ServiceTitan Jobs API - jobs, appointments and technician assignments
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ...config import BUSINESS_TIMEZONE
from .auth import ServiceTitanAuth, format_st_datetime, servicetitan_auth

logger = logging.getLogger(__name__)

# Arrival window start hour (local time) per booking time slot
TIME_SLOT_START_HOURS = {
    "morning": 8,
    "afternoon": 13,
    "evening": 17,
}
DEFAULT_START_HOUR = 9
ARRIVAL_WINDOW_HOURS = 4
APPOINTMENT_DURATION_HOURS = 2


def get_arrival_window(
    preferred_date: date, time_slot: Optional[str] = None, tz_name: str = BUSINESS_TIMEZONE
) -> tuple[datetime, datetime]:
    """4-hour customer arrival window starting at the slot's local start hour"""
    if isinstance(preferred_date, datetime):
        preferred_date = preferred_date.date()
    hour = TIME_SLOT_START_HOURS.get((time_slot or "").lower(), DEFAULT_START_HOUR)
    start = datetime(
        preferred_date.year, preferred_date.month, preferred_date.day, hour, tzinfo=ZoneInfo(tz_name)
    )
    return start, start + timedelta(hours=ARRIVAL_WINDOW_HOURS)


class ServiceTitanJobs:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth

    def _jpm(self, suffix: str) -> str:
        return f"jpm/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    def _dispatch(self, suffix: str) -> str:
        return f"dispatch/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    async def get_jobs_for_date_range(self, start: datetime, end: datetime) -> list[dict]:
        """
        Scheduled jobs with location data for a date range.

        Reads the appointments list and resolves each appointment's job and
        location. Returns an empty list on any top-level failure.
        """
        try:
            response = await self.auth.make_request(
                "GET",
                self._jpm("appointments"),
                params={
                    "startsOnOrAfter": format_st_datetime(start),
                    "startsOnOrBefore": format_st_datetime(end),
                    "page": 1,
                    "pageSize": 500,
                },
            )
            appointments = response.get("data") or []
            logger.info(f"📅 ServiceTitan returned {len(appointments)} appointments")

            job_cache: dict[int, dict] = {}
            location_cache: dict[int, dict] = {}
            results = []

            for appointment in appointments:
                job_id = appointment.get("jobId")
                job = job_cache.get(job_id)
                if job is None:
                    try:
                        job = await self.auth.make_request("GET", self._jpm(f"jobs/{job_id}"))
                        job_cache[job_id] = job
                    except Exception as e:
                        logger.error(f"❌ Error fetching job {job_id}: {e}")
                        continue

                location = None
                location_id = job.get("locationId")
                if location_id:
                    location = location_cache.get(location_id)
                    if location is None:
                        try:
                            location = await self.auth.make_request(
                                "GET",
                                f"crm/v2/tenant/{self.auth.get_tenant_id()}/locations/{location_id}",
                            )
                            location_cache[location_id] = location
                        except Exception as e:
                            logger.error(f"❌ Error fetching location {location_id}: {e}")

                address = (location or {}).get("address") or {}
                results.append(
                    {
                        "id": job_id,
                        "jobNumber": job.get("jobNumber") or appointment.get("appointmentNumber"),
                        "appointmentId": appointment.get("id"),
                        "appointmentStart": appointment.get("arrivalWindowStart")
                        or appointment.get("start"),
                        "appointmentEnd": appointment.get("arrivalWindowEnd") or appointment.get("end"),
                        "locationZip": address.get("zip"),
                        "locationAddress": address.get("street"),
                        "locationCity": address.get("city"),
                    }
                )

            logger.info(
                f"✅ Resolved {len(job_cache)} jobs and {len(location_cache)} locations "
                f"for {len(results)} appointments"
            )
            return results
        except Exception as e:
            logger.error(f"❌ Error fetching jobs for date range: {e}")
            return []

    async def assign_technician(self, appointment_id: int, technician_id: int) -> None:
        await self.auth.make_request(
            "POST",
            self._dispatch("appointment-assignments/assign-technicians"),
            json={
                "appointmentId": appointment_id,
                "technicianIds": [technician_id],
                "status": "Scheduled",
            },
        )
        logger.info(f"✅ Assigned technician {technician_id} to appointment {appointment_id}")

    async def create_job_note(self, job_id: int, text: str, pinned: bool = False) -> dict:
        note = await self.auth.make_request(
            "POST", self._jpm(f"jobs/{job_id}/notes"), json={"text": text, "pinned": pinned}
        )
        logger.info(f"✅ Created {'pinned ' if pinned else ''}note on job {job_id}: {note.get('id')}")
        return note

    async def get_technician_assignments(self, appointment_ids: list[int]) -> dict[int, int]:
        """Map of appointmentId -> technicianId; empty on error"""
        if not appointment_ids:
            return {}
        try:
            response = await self.auth.make_request(
                "GET",
                self._dispatch("appointment-assignments"),
                params={
                    "appointmentIds": ",".join(str(i) for i in appointment_ids),
                    "pageSize": 500,
                },
            )
            assignments = {}
            for assignment in response.get("data") or []:
                tech_id = assignment.get("technicianId") or assignment.get("assignedTechnicianId")
                appointment_id = assignment.get("appointmentId")
                if tech_id and appointment_id:
                    assignments[appointment_id] = tech_id
            logger.info(
                f"✅ Found {len(assignments)}/{len(appointment_ids)} technician assignments"
            )
            return assignments
        except Exception as e:
            logger.error(f"❌ Error fetching technician assignments: {e}")
            return {}

    async def create_job(
        self,
        customer_id: int,
        location_id: int,
        business_unit_id: int,
        job_type_id: int,
        summary: str,
        campaign_id: int,
        preferred_date: Optional[date] = None,
        preferred_time_slot: Optional[str] = None,
        arrival_window_start: Optional[str] = None,
        arrival_window_end: Optional[str] = None,
        appointment_start: Optional[str] = None,
        appointment_end: Optional[str] = None,
        special_instructions: Optional[str] = None,
        technician_id: Optional[int] = None,
        booking_provider_id: Optional[int] = None,
    ) -> dict:
        """Create a job with a single appointment"""
        if arrival_window_start and arrival_window_end:
            window_start, window_end = arrival_window_start, arrival_window_end
            window_start_dt = datetime.fromisoformat(window_start.replace("Z", "+00:00"))
        elif preferred_date:
            start_dt, end_dt = get_arrival_window(preferred_date, preferred_time_slot)
            window_start, window_end = format_st_datetime(start_dt), format_st_datetime(end_dt)
            window_start_dt = start_dt
        else:
            start_dt = datetime.now(timezone.utc) + timedelta(days=1)
            window_start = format_st_datetime(start_dt)
            window_end = format_st_datetime(start_dt + timedelta(hours=ARRIVAL_WINDOW_HOURS))
            window_start_dt = start_dt

        if not (appointment_start and appointment_end):
            appointment_start = format_st_datetime(window_start_dt)
            appointment_end = format_st_datetime(
                window_start_dt + timedelta(hours=APPOINTMENT_DURATION_HOURS)
            )

        appointment = {
            "start": appointment_start,
            "end": appointment_end,
            "arrivalWindowStart": window_start,
            "arrivalWindowEnd": window_end,
        }
        if special_instructions:
            appointment["specialInstructions"] = special_instructions
        if technician_id:
            appointment["technicianIds"] = [technician_id]

        payload = {
            "customerId": customer_id,
            "locationId": location_id,
            "businessUnitId": business_unit_id,
            "jobTypeId": job_type_id,
            "priority": "Normal",
            "summary": summary,
            "campaignId": campaign_id,
            "appointments": [appointment],
        }
        if booking_provider_id:
            payload["bookingProviderId"] = booking_provider_id

        job = await self.auth.make_request("POST", self._jpm("jobs"), json=payload)
        logger.info(
            f"✅ Created job {job.get('jobNumber')} (ID: {job.get('id')}) "
            f"with appointment {job.get('firstAppointmentId')}"
        )
        return job

    async def get_job(self, job_id: int) -> dict:
        return await self.auth.make_request("GET", self._jpm(f"jobs/{job_id}"))

    async def get_appointment(self, appointment_id: int) -> dict:
        return await self.auth.make_request("GET", self._jpm(f"appointments/{appointment_id}"))

    async def cancel_job(self, job_id: int, reason_id: int, memo: str) -> None:
        await self.auth.make_request(
            "PUT", self._jpm(f"jobs/{job_id}/cancel"), json={"reasonId": reason_id, "memo": memo}
        )
        logger.info(f"✅ Cancelled job {job_id}")

    async def reschedule_appointment(
        self,
        appointment_id: int,
        start: Optional[str] = None,
        end: Optional[str] = None,
        arrival_window_start: Optional[str] = None,
        arrival_window_end: Optional[str] = None,
    ) -> None:
        body = {
            "start": start,
            "end": end,
            "arrivalWindowStart": arrival_window_start,
            "arrivalWindowEnd": arrival_window_end,
        }
        await self.auth.make_request(
            "PATCH",
            self._jpm(f"appointments/{appointment_id}/reschedule"),
            json={k: v for k, v in body.items() if v is not None},
        )
        logger.info(f"✅ Rescheduled appointment {appointment_id}")


servicetitan_jobs = ServiceTitanJobs()
