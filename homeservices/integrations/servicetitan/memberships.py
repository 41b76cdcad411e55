"""
ServiceTitan Memberships API
Membership types, customer memberships and membership sales
"""

import logging
import time
from typing import Optional

from .auth import ServiceTitanAuth, servicetitan_auth

logger = logging.getLogger(__name__)

MEMBERSHIP_TYPES_CACHE_TTL = 5 * 60  # 5 minutes


def _as_list(response) -> list:
    # Sub-resource endpoints return a bare array, list endpoints wrap it in "data"
    if isinstance(response, list):
        return response
    return response.get("data") or []


def _bool_param(value: Optional[bool]) -> Optional[str]:
    if value is None:
        return None
    return "True" if value else "False"


class ServiceTitanMemberships:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth
        self._types_cache: Optional[tuple[list, float]] = None

    def _path(self, suffix: str) -> str:
        return f"memberships/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    async def get_membership_types(
        self,
        active: Optional[bool] = None,
        duration: Optional[int] = None,
        billing_frequency: Optional[str] = None,
    ) -> list[dict]:
        """Membership plans; the unfiltered list is cached for 5 minutes"""
        unfiltered = active is None and duration is None and billing_frequency is None
        if unfiltered and self._types_cache:
            data, fetched_at = self._types_cache
            if time.monotonic() - fetched_at < MEMBERSHIP_TYPES_CACHE_TTL:
                return data

        response = await self.auth.make_request(
            "GET",
            self._path("membership-types"),
            params={
                "active": _bool_param(active),
                "duration": duration,
                "billingFrequency": billing_frequency,
                "includeDurationBilling": "true",
            },
        )
        types = _as_list(response)
        if unfiltered:
            self._types_cache = (types, time.monotonic())
        logger.info(f"✅ Fetched {len(types)} membership types")
        return types

    async def get_customer_memberships(
        self, customer_id: int, status: Optional[str] = None, active: Optional[bool] = None
    ) -> list[dict]:
        response = await self.auth.make_request(
            "GET",
            self._path("memberships"),
            params={"customerIds": customer_id, "status": status, "active": _bool_param(active)},
        )
        memberships = _as_list(response)
        logger.info(f"✅ Fetched {len(memberships)} memberships for customer {customer_id}")
        return memberships

    async def get_membership_discounts(self, membership_type_id: int) -> list[dict]:
        return _as_list(
            await self.auth.make_request(
                "GET", self._path(f"membership-types/{membership_type_id}/discounts")
            )
        )

    async def get_recurring_services(self, membership_type_id: int) -> list[dict]:
        return _as_list(
            await self.auth.make_request(
                "GET", self._path(f"membership-types/{membership_type_id}/recurring-service-items")
            )
        )

    async def get_duration_billing_options(self, membership_type_id: int) -> list[dict]:
        return _as_list(
            await self.auth.make_request(
                "GET", self._path(f"membership-types/{membership_type_id}/duration-billing-items")
            )
        )

    async def create_membership_sale(
        self,
        customer_id: int,
        business_unit_id: int,
        sale_task_id: int,
        duration_billing_id: int,
        location_id: Optional[int] = None,
        recurring_service_action: str = "All",
        recurring_location_id: Optional[int] = None,
    ) -> dict:
        """Creates the membership and its sale invoice in one call"""
        payload = {
            "customerId": customer_id,
            "businessUnitId": business_unit_id,
            "saleTaskId": sale_task_id,
            "durationBillingId": duration_billing_id,
            "locationId": location_id or None,
            "recurringServiceAction": recurring_service_action or "All",
            "recurringLocationId": recurring_location_id or None,
        }
        response = await self.auth.make_request("POST", self._path("memberships/sale"), json=payload)
        logger.info(
            f"✅ Created membership sale - Invoice: {response.get('invoiceId')}, "
            f"Membership: {response.get('customerMembershipId')}"
        )
        return {
            "invoiceId": response.get("invoiceId"),
            "customerMembershipId": response.get("customerMembershipId"),
        }

    def clear_cache(self) -> None:
        self._types_cache = None


servicetitan_memberships = ServiceTitanMemberships()
