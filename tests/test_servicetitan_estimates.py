import math

import httpx
import pytest

from homeservices.integrations.servicetitan.estimates import (
    ServiceTitanEstimates,
    calculate_sold_hours,
    extract_numeric_value,
    normalize_estimate,
    normalize_status,
)
from homeservices.integrations.servicetitan.pricebook import ServiceTitanPricebook, parse_images


class TestExtractNumericValue:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (100, 100),
            (12.5, 12.5),
            ("42.10", 42.10),
            ({"amount": 100}, 100),
            ({"amount": {"value": 75}}, 75),
            ({"unitPrice": 9}, 9),
            (None, 0),
            (True, 0),
            ("n/a", 0),
            ({"amount": "n/a", "unitPrice": 125}, 125),
            ({"total": "89.50"}, 89.5),
            (math.inf, 0),
            ({"currency": "USD"}, 0),
        ],
    )
    def test_shapes(self, value, expected):
        assert extract_numeric_value(value) == pytest.approx(expected)


class TestNormalizeEstimate:
    def test_status_mapping(self):
        assert normalize_status("sold") == "Sold"
        assert normalize_status("Dismissed by customer") == "Dismissed"
        assert normalize_status(None) == "Open"
        assert normalize_status("Pending") == "Open"

    def test_defaults_and_item_totals(self):
        estimate = normalize_estimate(
            {
                "id": 8,
                "status": {"name": "Sold"},
                "items": [
                    {"sku": {"id": 3, "displayName": "Flush"}, "quantity": 2, "price": {"amount": 50}},
                ],
                "total": {"amount": 100},
            },
            customer_id=5,
        )

        assert estimate["name"] == "Estimate #8"
        assert estimate["estimateNumber"] == "EST-8"
        # non-string status falls back to Open
        assert estimate["status"] == "Open"
        assert estimate["customerId"] == 5
        assert estimate["active"] is True
        item = estimate["items"][0]
        assert item["skuId"] == 3
        assert item["skuName"] == "Flush"
        assert item["total"] == 100

    def test_sold_hours_only_counts_service_lines(self):
        estimate = {
            "items": [
                {"type": "Service", "soldHours": 1.5, "quantity": 2},
                {"type": "Material", "soldHours": 4, "quantity": 1},
                {"type": "Service", "soldHours": None},
            ]
        }
        assert calculate_sold_hours(estimate) == 3


class TestEnrichment:
    async def test_items_get_pricebook_details(self, make_st_auth):
        def responder(request):
            if request.url.path.endswith("/services/3"):
                return httpx.Response(
                    200,
                    json={"id": 3, "displayName": "Drain Flush", "images": [{"url": "https://img/1.jpg"}]},
                )
            return httpx.Response(404)

        auth, handler = make_st_auth(responder)
        estimates = ServiceTitanEstimates(auth, ServiceTitanPricebook(auth))
        estimate = normalize_estimate(
            {"id": 1, "items": [{"skuId": 3, "type": "Service"}, {"skuId": 4, "type": "Material"}]}
        )

        enriched = await estimates.enrich_estimates_with_pricebook([estimate, estimate])

        first, second = enriched[0]["items"]
        assert first["pricebookDetails"]["imageUrl"] == "https://img/1.jpg"
        assert first["pricebookDetails"]["displayName"] == "Drain Flush"
        assert second["pricebookDetails"] is None
        # duplicate SKUs across estimates are looked up once
        assert handler.paths().count("/pricebook/v2/tenant/12345/services/3") == 1

    async def test_get_estimates_failure_is_empty(self, make_st_auth):
        auth, _ = make_st_auth(lambda request: httpx.Response(500))
        assert await ServiceTitanEstimates(auth).get_estimates(1) == []

    async def test_sold_estimates_filter(self, make_st_auth):
        data = {"data": [{"id": 1, "status": "Sold"}, {"id": 2, "status": "Open"}]}
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json=data))

        sold = await ServiceTitanEstimates(auth).get_sold_estimates(9)

        assert [estimate["id"] for estimate in sold] == [1]
        assert handler.requests[0].url.params["active"] == "true"


class TestPricebook:
    def test_parse_images_shapes(self):
        assert parse_images("https://a") == [{"url": "https://a", "description": None}]
        assert parse_images({"imageUrl": "https://b", "alt": "pipe"}) == [
            {"url": "https://b", "description": "pipe"}
        ]
        assert parse_images([{"url": "https://c"}, {"description": "no url"}]) == [
            {"url": "https://c", "description": None}
        ]
        assert parse_images(None) == []

    async def test_cache_and_unknown_type(self, make_st_auth):
        auth, handler = make_st_auth(lambda request: httpx.Response(200, json={"id": 5, "code": "M5"}))
        pricebook = ServiceTitanPricebook(auth)

        first = await pricebook.get_pricebook_item(5, "Material")
        second = await pricebook.get_pricebook_item(5, "Material")

        assert first == second
        assert first["displayName"] == "M5"
        assert len(handler.requests) == 1
        assert await pricebook.get_pricebook_item(5, "Widget") is None

        pricebook.clear_cache()
        await pricebook.get_pricebook_item(5, "Material")
        assert len(handler.requests) == 2
