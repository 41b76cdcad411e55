import json
from datetime import date, datetime, timezone

import httpx

from homeservices.integrations.servicetitan.dispatch import ServiceTitanDispatch, normalize_zone
from homeservices.integrations.servicetitan.forms import ServiceTitanForms
from homeservices.integrations.servicetitan.memberships import ServiceTitanMemberships
from homeservices.integrations.servicetitan.settings import (
    FALLBACK_ARRIVAL_WINDOWS,
    ServiceTitanSettings,
    window_duration_hours,
)

JOB_TYPES = {
    "data": [
        {"id": 1, "name": "Drain Cleaning", "businessUnitIds": [9]},
        {"id": 2, "name": "Water Heater Repair"},
    ]
}


class TestReferenceData:
    async def test_job_types_are_cached(self, make_st_auth):
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json=JOB_TYPES))
        settings = ServiceTitanSettings(auth)

        await settings.get_job_types()
        await settings.get_job_types()

        assert len(handler.requests) == 1
        settings.clear_cache()
        await settings.get_job_types()
        assert len(handler.requests) == 2

    async def test_find_job_type_exact_then_partial(self, make_st_auth):
        auth, _ = make_st_auth(lambda request: httpx.Response(200, json=JOB_TYPES))
        settings = ServiceTitanSettings(auth)

        assert (await settings.find_job_type_by_name("drain-cleaning"))["id"] == 1
        assert (await settings.find_job_type_by_name("Water Heater"))["id"] == 2
        assert await settings.find_job_type_by_name("Roofing") is None
        assert await settings.find_job_type_by_name("") is None

    async def test_find_campaign_by_utm_source(self, make_st_auth):
        campaigns = {
            "data": [
                {"id": 1, "name": "Google Ads", "source": "google"},
                {"id": 2, "name": "Facebook Spring Promo"},
            ]
        }
        auth, _ = make_st_auth(lambda request: httpx.Response(200, json=campaigns))
        settings = ServiceTitanSettings(auth)

        assert (await settings.find_campaign_by_utm_source("Google"))["id"] == 1
        assert (await settings.find_campaign_by_utm_source("facebook"))["id"] == 2
        assert await settings.find_campaign_by_utm_source("tiktok") is None

    async def test_failure_without_cache_is_empty(self, make_st_auth):
        auth, _ = make_st_auth(lambda request: httpx.Response(503))
        assert await ServiceTitanSettings(auth).get_technicians() == []


class TestCapacity:
    async def test_slot_needs_flag_and_open_capacity(self, make_st_auth):
        captured = {}

        def responder(request):
            captured.update(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "availabilities": [
                        {
                            "startUtc": "a",
                            "endUtc": "b",
                            "isAvailable": True,
                            "openAvailability": 2,
                            "technicians": [{"id": 5, "status": "Available"}, {"id": 6, "status": "Busy"}],
                        },
                        {"startUtc": "c", "endUtc": "d", "isAvailable": True, "openAvailability": 0},
                        {"startUtc": "e", "endUtc": "f", "isAvailable": False, "openAvailability": 3},
                    ]
                },
            )

        auth, _ = make_st_auth(responder)
        slots = await ServiceTitanSettings(auth).check_capacity(
            datetime(2024, 1, 15, 14, tzinfo=timezone.utc),
            datetime(2024, 1, 15, 23, tzinfo=timezone.utc),
            business_unit_id=9,
        )

        assert [slot["isAvailable"] for slot in slots] == [True, False, False]
        assert slots[0]["technicianIds"] == [5]
        assert captured["businessUnitIds"] == [9]
        assert captured["skillBasedAvailability"] is True

    async def test_available_slots_for_day(self, make_st_auth):
        data = {
            "availabilities": [
                {"startUtc": "a", "isAvailable": True, "openAvailability": 1},
                {"startUtc": "b", "isAvailable": False, "openAvailability": 1},
            ]
        }
        auth, _ = make_st_auth(lambda request: httpx.Response(200, json=data))

        slots = await ServiceTitanSettings(auth).get_available_slots_for_day(date(2024, 1, 15), 9)

        assert [slot["start"] for slot in slots] == ["a"]

    async def test_capacity_error_is_empty(self, make_st_auth):
        auth, _ = make_st_auth(lambda request: httpx.Response(500))
        now = datetime.now(timezone.utc)
        assert await ServiceTitanSettings(auth).check_capacity(now, now, 1) == []


class TestArrivalWindows:
    async def test_windows_from_api(self, make_st_auth):
        data = {"data": [{"id": 3, "start": "07:30", "end": "10:00"}]}
        auth, _ = make_st_auth(lambda request: httpx.Response(200, json=data))

        windows = await ServiceTitanSettings(auth).get_arrival_windows()

        assert windows == [
            {"id": 3, "name": "07:30 - 10:00", "start": "07:30", "end": "10:00", "durationHours": 2.5}
        ]

    async def test_fallback_windows(self, make_st_auth):
        auth, _ = make_st_auth(lambda request: httpx.Response(500))
        assert await ServiceTitanSettings(auth).get_arrival_windows() == FALLBACK_ARRIVAL_WINDOWS

    def test_duration(self):
        assert window_duration_hours("08:00", "12:00") == 4


class TestMembershipsAndForms:
    async def test_membership_sale_payload(self, make_st_auth):
        captured = {}

        def responder(request):
            captured.update(json.loads(request.content))
            return httpx.Response(200, json={"invoiceId": 11, "customerMembershipId": 22})

        auth, handler = make_st_auth(responder)
        sale = await ServiceTitanMemberships(auth).create_membership_sale(
            customer_id=1, business_unit_id=2, sale_task_id=3, duration_billing_id=4
        )

        assert sale == {"invoiceId": 11, "customerMembershipId": 22}
        assert handler.paths() == ["/memberships/v2/tenant/12345/memberships/sale"]
        assert captured["recurringServiceAction"] == "All"
        assert captured["locationId"] is None

    async def test_membership_types_cache_only_unfiltered(self, make_st_auth):
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json={"data": [{"id": 1}]}))
        memberships = ServiceTitanMemberships(auth)

        await memberships.get_membership_types()
        await memberships.get_membership_types()
        await memberships.get_membership_types(active=True)

        assert len(handler.requests) == 2
        assert handler.requests[1].url.params["active"] == "True"

    async def test_form_submission_filters(self, make_st_auth):
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json={"data": [{"id": 1}]}))

        submissions = await ServiceTitanForms(auth).get_customer_form_submissions(42)

        assert submissions == [{"id": 1}]
        params = handler.requests[0].url.params
        assert params["ownerType"] == "Customer"
        assert params["ownerIds"] == "42"
        assert params["status"] == "Completed"


class TestDispatchZones:
    def test_normalize_zone_shapes(self):
        zone = normalize_zone({"id": 4, "zipCodes": ["78701 ", ""], "cities": ["Austin", " "]})
        assert zone == {"id": 4, "name": "Zone 4", "zips": ["78701"], "cities": ["Austin"], "active": True}

    async def test_get_zones(self, make_st_auth):
        data = {"data": [{"id": 1, "name": "1 - Central", "zips": ["78701"], "active": False}]}
        auth, _ = make_st_auth(lambda request: httpx.Response(200, json=data))

        zones = await ServiceTitanDispatch(auth).get_zones()

        assert zones[0]["active"] is False
        assert zones[0]["zips"] == ["78701"]
