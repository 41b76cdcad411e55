"""
ServiceTitan Estimates API - Sales Estimates

Estimates carry pricebook items (services, materials, equipment). ServiceTitan
returns monetary fields in several nested shapes, so every amount goes through
``extract_numeric_value`` before it reaches the portal.
"""

import logging
import math
from typing import Any, Optional

from .auth import ServiceTitanAuth, servicetitan_auth
from .pricebook import ServiceTitanPricebook, servicetitan_pricebook

logger = logging.getLogger(__name__)

# Probe order for nested monetary objects
_MONETARY_KEYS = ("amount", "unitPrice", "total", "value", "price", "unitCost")


def extract_numeric_value(value: Any) -> float:
    """
    Pull a number out of a flat or nested ServiceTitan monetary value.

    Handles ``100``, ``{"amount": 100}``, ``{"amount": {"value": 100}}`` and
    ``{"unitPrice": 100}``. Anything unparseable or non-finite becomes 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            logger.warning(f"⚠️ Non-finite monetary value: {value}")
            return 0
        return value
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return 0
        return parsed if math.isfinite(parsed) else 0
    if not isinstance(value, dict):
        return 0

    for key in _MONETARY_KEYS:
        attempt = value.get(key)
        if attempt is None:
            continue
        if isinstance(attempt, str):
            try:
                parsed = float(attempt)
            except ValueError:
                continue
            if math.isfinite(parsed):
                return parsed
            continue
        if isinstance(attempt, (int, float)) and not isinstance(attempt, bool):
            return extract_numeric_value(attempt)
        if isinstance(attempt, dict):
            return extract_numeric_value(attempt)

    logger.warning(f"⚠️ Could not extract numeric value from: {value}")
    return 0


def normalize_status(status: Any) -> str:
    """Map ServiceTitan's free-form status to Open / Sold / Dismissed"""
    if not status or not isinstance(status, str):
        return "Open"
    upper = status.upper()
    if "SOLD" in upper:
        return "Sold"
    if "DISMISS" in upper:
        return "Dismissed"
    return "Open"


def parse_estimate_items(items: list[dict]) -> list[dict]:
    parsed = []
    for item in items or []:
        sku = item.get("sku") or {}
        quantity = item.get("quantity") or 1
        unit_price = extract_numeric_value(item.get("price"))
        total = extract_numeric_value(item.get("total")) or unit_price * quantity
        parsed.append(
            {
                "id": item.get("id"),
                "type": item.get("type") or "Service",
                "skuId": item.get("skuId") or sku.get("id"),
                "skuName": item.get("skuName") or sku.get("displayName") or sku.get("code") or "Unknown",
                "description": item.get("description") or sku.get("description") or "",
                "quantity": quantity,
                "cost": extract_numeric_value(item.get("cost")),
                "price": unit_price,
                "total": total,
                "memberPrice": extract_numeric_value(item["memberPrice"]) if item.get("memberPrice") else None,
                "soldHours": item.get("soldHours") or sku.get("soldHours"),
            }
        )
    return parsed


def normalize_estimate(raw: dict, customer_id: Optional[int] = None) -> dict:
    estimate_id = raw.get("id")
    active = raw.get("active")
    return {
        "id": estimate_id,
        "jobId": raw.get("jobId"),
        "projectId": raw.get("projectId"),
        "name": raw.get("name") or raw.get("summary") or f"Estimate #{estimate_id}",
        "estimateNumber": raw.get("estimateNumber") or raw.get("number") or f"EST-{estimate_id}",
        "summary": raw.get("summary") or raw.get("name"),
        "jobNumber": raw.get("jobNumber") or (raw.get("job") or {}).get("number"),
        "expiresOn": raw.get("expiresOn") or raw.get("expirationDate"),
        "status": normalize_status(raw.get("status")),
        "soldBy": raw.get("soldBy"),
        "soldOn": raw.get("soldOn"),
        "items": parse_estimate_items(raw.get("items") or []),
        "subtotal": extract_numeric_value(raw.get("subtotal")),
        "total": extract_numeric_value(raw.get("total")),
        "active": True if active is None else active,
        "createdOn": raw.get("createdOn"),
        "modifiedOn": raw.get("modifiedOn"),
        "customerId": customer_id if customer_id is not None else raw.get("customerId"),
    }


def calculate_sold_hours(estimate: dict) -> float:
    """Hours of labor sold on Service lines; drives scheduler capacity checks"""
    return sum(
        (item.get("soldHours") or 0) * (item.get("quantity") or 1)
        for item in estimate.get("items", [])
        if item.get("type") == "Service" and item.get("soldHours")
    )


class ServiceTitanEstimates:
    def __init__(
        self,
        auth: Optional[ServiceTitanAuth] = None,
        pricebook: Optional[ServiceTitanPricebook] = None,
    ):
        self.auth = auth or servicetitan_auth
        self.pricebook = pricebook or servicetitan_pricebook

    def _path(self, suffix: str) -> str:
        return f"sales/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    async def get_estimates(self, customer_id: int, include_inactive: bool = False) -> list[dict]:
        try:
            params = {"customerId": customer_id, "pageSize": 100, "page": 1}
            if not include_inactive:
                params["active"] = "true"
            response = await self.auth.make_request("GET", self._path("estimates"), params=params)
            data = response.get("data") or []
            logger.info(f"✅ Found {len(data)} estimates for customer {customer_id}")
            return [normalize_estimate(raw, customer_id) for raw in data]
        except Exception as e:
            logger.error(f"❌ Error fetching estimates for customer {customer_id}: {e}")
            return []

    async def get_estimate_by_id(self, estimate_id: int) -> Optional[dict]:
        try:
            response = await self.auth.make_request("GET", self._path(f"estimates/{estimate_id}"))
            if not response:
                logger.info(f"ℹ️ Estimate {estimate_id} not found")
                return None
            return normalize_estimate(response)
        except Exception as e:
            logger.error(f"❌ Error fetching estimate {estimate_id}: {e}")
            return None

    async def get_sold_estimates(self, customer_id: int) -> list[dict]:
        estimates = await self.get_estimates(customer_id)
        return [estimate for estimate in estimates if estimate["status"] == "Sold"]

    async def enrich_estimates_with_pricebook(self, estimates: list[dict]) -> list[dict]:
        """Attach pricebook images/descriptions to every estimate item"""
        requests: dict[str, dict] = {}
        for estimate in estimates:
            for item in estimate.get("items", []):
                if item.get("skuId") and item.get("type"):
                    requests[f"{item['type']}-{item['skuId']}"] = {
                        "skuId": item["skuId"],
                        "type": item["type"],
                    }

        pricebook_data = await self.pricebook.get_pricebook_items(list(requests.values()))

        enriched = []
        for estimate in estimates:
            items = []
            for item in estimate.get("items", []):
                pricebook_item = pricebook_data.get(f"{item.get('type')}-{item.get('skuId')}")
                details = None
                if pricebook_item:
                    images = pricebook_item["images"]
                    details = {
                        "imageUrl": images[0]["url"] if images else None,
                        "images": images,
                        "description": pricebook_item["description"],
                        "displayName": pricebook_item["displayName"],
                    }
                items.append({**item, "pricebookDetails": details})
            enriched.append({**estimate, "items": items})
        return enriched


servicetitan_estimates = ServiceTitanEstimates()
