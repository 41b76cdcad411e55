"""ServiceTitan Dispatch API - service zones"""

import logging
from typing import Optional

from .auth import ServiceTitanAuth, servicetitan_auth

logger = logging.getLogger(__name__)


def normalize_zone(raw: dict) -> dict:
    active = raw.get("active")
    return {
        "id": raw.get("id"),
        "name": raw.get("name") or f"Zone {raw.get('id')}",
        "zips": [str(z).strip() for z in (raw.get("zips") or raw.get("zipCodes") or []) if str(z).strip()],
        "cities": [c.strip() for c in (raw.get("cities") or []) if c and c.strip()],
        "active": True if active is None else bool(active),
    }


class ServiceTitanDispatch:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth

    async def get_zones(self) -> list[dict]:
        response = await self.auth.make_request(
            "GET", f"dispatch/v2/tenant/{self.auth.get_tenant_id()}/zones", params={"pageSize": 500}
        )
        zones = [normalize_zone(raw) for raw in response.get("data") or []]
        logger.info(f"✅ Fetched {len(zones)} dispatch zones")
        return zones


servicetitan_dispatch = ServiceTitanDispatch()
