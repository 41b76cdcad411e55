"""
ServiceTitan Forms API - form definitions and submissions
"""

import logging
import time
from datetime import datetime
from typing import Optional

from .auth import ServiceTitanAuth, format_st_datetime, servicetitan_auth

logger = logging.getLogger(__name__)

FORMS_CACHE_TTL = 10 * 60  # 10 minutes


def _bool_param(value: Optional[bool], title_case: bool = True) -> Optional[str]:
    if value is None:
        return None
    if title_case:
        return "True" if value else "False"
    return "true" if value else "false"


def _csv(values: Optional[list[int]]) -> Optional[str]:
    if not values:
        return None
    return ",".join(str(v) for v in values)


class ServiceTitanForms:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth
        self._forms_cache: Optional[tuple[list, float]] = None

    def _path(self, suffix: str) -> str:
        return f"forms/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    async def get_forms(
        self,
        status: Optional[str] = None,
        active: Optional[bool] = None,
        has_conditional_logic: Optional[bool] = None,
        has_triggers: Optional[bool] = None,
        name: Optional[str] = None,
    ) -> list[dict]:
        """Form definitions; the unfiltered list is cached for 10 minutes"""
        unfiltered = all(
            value is None for value in (status, active, has_conditional_logic, has_triggers, name)
        )
        if unfiltered and self._forms_cache:
            data, fetched_at = self._forms_cache
            if time.monotonic() - fetched_at < FORMS_CACHE_TTL:
                return data

        response = await self.auth.make_request(
            "GET",
            self._path("forms"),
            params={
                "status": status,
                "active": _bool_param(active),
                "hasConditionalLogic": _bool_param(has_conditional_logic, title_case=False),
                "hasTriggers": _bool_param(has_triggers, title_case=False),
                "name": name,
            },
        )
        forms = response.get("data") or []
        if unfiltered:
            self._forms_cache = (forms, time.monotonic())
        logger.info(f"✅ Fetched {len(forms)} forms")
        return forms

    async def get_form_submissions(
        self,
        form_ids: Optional[list[int]] = None,
        status: Optional[str] = None,
        active: Optional[bool] = None,
        created_by_id: Optional[int] = None,
        submitted_on_or_after: Optional[datetime] = None,
        submitted_before: Optional[datetime] = None,
        owner_type: Optional[str] = None,
        owner_ids: Optional[list[int]] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
    ) -> list[dict]:
        response = await self.auth.make_request(
            "GET",
            self._path("submissions"),
            params={
                "formIds": _csv(form_ids),
                "status": status,
                "active": _bool_param(active),
                "createdById": created_by_id,
                "submittedOnOrAfter": format_st_datetime(submitted_on_or_after)
                if submitted_on_or_after
                else None,
                "submittedBefore": format_st_datetime(submitted_before) if submitted_before else None,
                "ownerType": owner_type,
                "ownerIds": _csv(owner_ids),
                "page": page,
                "pageSize": page_size,
            },
        )
        submissions = response.get("data") or []
        logger.info(f"✅ Fetched {len(submissions)} form submissions")
        return submissions

    async def get_customer_form_submissions(self, customer_id: int) -> list[dict]:
        return await self.get_form_submissions(
            owner_type="Customer", owner_ids=[customer_id], status="Completed"
        )

    async def get_job_form_submissions(self, job_id: int) -> list[dict]:
        return await self.get_form_submissions(owner_type="Job", owner_ids=[job_id], status="Completed")

    def clear_cache(self) -> None:
        self._forms_cache = None


servicetitan_forms = ServiceTitanForms()
