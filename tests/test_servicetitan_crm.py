import json

import httpx

from homeservices.integrations.servicetitan.crm import ServiceTitanCRM, normalize_street

ADDRESS = {"street": "123 Main St.", "unit": None, "city": "Austin", "state": "TX", "zip": "78701"}


class TestEnsureCustomer:
    async def test_found_by_phone(self, make_st_auth):
        def responder(request):
            assert request.url.params["phone"] == "+15125550100"
            return httpx.Response(200, json={"data": [{"id": 77, "name": "Jane"}]})

        auth, handler = make_st_auth(responder)
        customer = await ServiceTitanCRM(auth).ensure_customer("Jane", "+15125550100", ADDRESS)

        assert customer["id"] == 77
        assert len(handler.requests) == 1

    async def test_falls_back_to_email_then_creates(self, make_st_auth):
        def responder(request):
            if request.method == "POST":
                body = json.loads(request.content)
                assert body["type"] == "Residential"
                assert body["address"]["country"] == "USA"
                assert {"type": "Email", "value": "jane@example.com"} in body["contacts"]
                return httpx.Response(200, json={"id": 501})
            return httpx.Response(200, json={"data": []})

        auth, handler = make_st_auth(responder)
        customer = await ServiceTitanCRM(auth).ensure_customer(
            "Jane", "+15125550100", ADDRESS, email="jane@example.com"
        )

        assert customer["id"] == 501
        methods = [request.method for request in handler.requests]
        assert methods == ["GET", "GET", "POST"]
        assert handler.requests[1].url.params["email"] == "jane@example.com"


class TestEnsureLocation:
    async def test_fuzzy_street_match(self, make_st_auth):
        locations = [
            {"id": 1, "address": {"street": "9 Other Rd"}},
            {"id": 2, "address": {"street": "123 MAIN ST"}},
        ]
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json={"data": locations}))

        location = await ServiceTitanCRM(auth).ensure_location(10, ADDRESS)

        assert location["id"] == 2
        assert len(handler.requests) == 1

    async def test_creates_when_no_match(self, make_st_auth):
        def responder(request):
            if request.method == "POST":
                body = json.loads(request.content)
                assert body["customerId"] == 10
                assert body["name"] == "123 Main St."
                return httpx.Response(200, json={"id": 900})
            return httpx.Response(200, json={"data": [{"id": 1, "address": {"street": "9 Other Rd"}}]})

        auth, _ = make_st_auth(responder)
        location = await ServiceTitanCRM(auth).ensure_location(10, ADDRESS, phone="+15125550100")

        assert location["id"] == 900


def test_normalize_street():
    assert normalize_street("123 Main St., Apt #4") == "123 main st apt 4"


class TestLookupsAndNotes:
    async def test_location_note_is_pinned_by_default(self, make_st_auth):
        def responder(request):
            assert json.loads(request.content) == {"text": "Gate code 1234", "pinned": True}
            return httpx.Response(200, json={"id": 9})

        auth, handler = make_st_auth(responder)
        note = await ServiceTitanCRM(auth).create_location_note(70, "Gate code 1234")

        assert note == {"id": 9}
        assert handler.paths() == ["/crm/v2/tenant/12345/locations/70/notes"]

    async def test_contacts_and_locations_unwrap_data(self, make_st_auth):
        def responder(request):
            if request.url.path.endswith("/contacts"):
                return httpx.Response(200, json={"data": [{"type": "Email", "value": "a@b.co"}]})
            return httpx.Response(200, json={"data": [{"id": 70}]})

        auth, handler = make_st_auth(responder)
        crm = ServiceTitanCRM(auth)

        assert await crm.get_customer_contacts(7) == [{"type": "Email", "value": "a@b.co"}]
        assert await crm.get_customer_locations(7) == [{"id": 70}]
        assert handler.requests[1].url.params["customerId"] == "7"

    async def test_single_record_getters(self, make_st_auth):
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json={"id": 1}))
        crm = ServiceTitanCRM(auth)

        await crm.get_customer(7)
        await crm.get_location(70)

        assert handler.paths() == [
            "/crm/v2/tenant/12345/customers/7",
            "/crm/v2/tenant/12345/locations/70",
        ]
