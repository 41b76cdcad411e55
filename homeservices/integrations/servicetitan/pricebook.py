"""
ServiceTitan Pricebook API - Materials, Equipment, Services
Fetches pricebook items with images for display alongside estimates
"""

import asyncio
import logging
import time
from typing import Any, Optional

from .auth import ServiceTitanAuth, servicetitan_auth

logger = logging.getLogger(__name__)

PRICEBOOK_CACHE_TTL = 30 * 60  # 30 minutes

SKU_TYPE_ENDPOINTS = {
    "Material": "materials",
    "Equipment": "equipment",
    "Service": "services",
}


def parse_images(image_data: Any) -> list[dict]:
    """Normalize the handful of shapes ServiceTitan uses for item images"""
    if not image_data:
        return []

    if isinstance(image_data, list):
        return [
            {"url": img.get("url") or img.get("imageUrl"), "description": img.get("description") or img.get("alt")}
            for img in image_data
            if isinstance(img, dict) and (img.get("url") or img.get("imageUrl"))
        ]

    if isinstance(image_data, dict) and (image_data.get("url") or image_data.get("imageUrl")):
        return [
            {
                "url": image_data.get("url") or image_data.get("imageUrl"),
                "description": image_data.get("description") or image_data.get("alt"),
            }
        ]

    if isinstance(image_data, str):
        return [{"url": image_data, "description": None}]

    return []


def normalize_pricebook_item(raw: dict, sku_type: str) -> dict:
    active = raw.get("active")
    return {
        "id": raw.get("id"),
        "type": sku_type,
        "code": raw.get("code") or raw.get("displayName"),
        "displayName": raw.get("displayName") or raw.get("code") or f"{sku_type} #{raw.get('id')}",
        "description": raw.get("description") or "",
        "cost": raw.get("cost") or 0,
        "price": raw.get("price") or 0,
        "memberPrice": raw.get("memberPrice"),
        "images": parse_images(raw.get("images") or raw.get("imageUrls") or []),
        "active": True if active is None else active,
        "soldHours": raw.get("soldHours"),
    }


class ServiceTitanPricebook:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth
        self._cache: dict[str, tuple[dict, float]] = {}

    async def get_pricebook_item(self, sku_id: int, sku_type: str) -> Optional[dict]:
        """
        Get a material, equipment or service item by SKU id.

        Returns None when the item is missing or the lookup fails.
        """
        cache_key = f"{sku_type}-{sku_id}"
        cached = self._cache.get(cache_key)
        if cached and time.monotonic() - cached[1] < PRICEBOOK_CACHE_TTL:
            logger.debug(f"✅ Pricebook cache HIT: {cache_key}")
            return cached[0]

        endpoint = SKU_TYPE_ENDPOINTS.get(sku_type)
        if not endpoint:
            logger.warning(f"⚠️ Unknown pricebook SKU type: {sku_type}")
            return None

        try:
            response = await self.auth.make_request(
                "GET", f"pricebook/v2/tenant/{self.auth.get_tenant_id()}/{endpoint}/{sku_id}"
            )
            if not response:
                logger.info(f"ℹ️ {sku_type} {sku_id} not found in pricebook")
                return None

            item = normalize_pricebook_item(response, sku_type)
            self._cache[cache_key] = (item, time.monotonic())
            logger.info(
                f"✅ Retrieved {sku_type} {sku_id}: {item['displayName']} ({len(item['images'])} images)"
            )
            return item
        except Exception as e:
            logger.error(f"❌ Error fetching {sku_type} {sku_id}: {e}")
            return None

    async def get_pricebook_items(self, items: list[dict]) -> dict[str, dict]:
        """Batch lookup of ``[{"skuId", "type"}]``; keyed by ``{type}-{skuId}``"""
        found = await asyncio.gather(
            *(self.get_pricebook_item(item["skuId"], item["type"]) for item in items)
        )
        return {
            f"{item['type']}-{item['skuId']}": result
            for item, result in zip(items, found)
            if result is not None
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("🧹 Pricebook cache cleared")


servicetitan_pricebook = ServiceTitanPricebook()
