"""
ServiceTitan CRM API - Customers and Locations
Handles customer and location creation/lookup with duplicate detection
"""

import logging
import re
from typing import Optional

from .auth import ServiceTitanAuth, servicetitan_auth

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")


def normalize_street(street: str) -> str:
    return _NON_WORD.sub("", (street or "").lower()).strip()


def _contacts(phone: Optional[str], email: Optional[str]) -> list[dict]:
    contacts = []
    if phone:
        contacts.append({"type": "MobilePhone", "value": phone})
    if email:
        contacts.append({"type": "Email", "value": email})
    return contacts


def _address(address: dict) -> dict:
    return {
        "street": address.get("street", ""),
        "unit": address.get("unit"),
        "city": address.get("city", ""),
        "state": address.get("state", ""),
        "zip": address.get("zip", ""),
        "country": "USA",
    }


class ServiceTitanCRM:
    def __init__(self, auth: Optional[ServiceTitanAuth] = None):
        self.auth = auth or servicetitan_auth

    def _path(self, suffix: str) -> str:
        return f"crm/v2/tenant/{self.auth.get_tenant_id()}/{suffix}"

    async def find_customer(self, phone: str, email: Optional[str] = None) -> Optional[dict]:
        """Duplicate check: phone first (most reliable), then email"""
        phone_search = await self.auth.make_request(
            "GET", self._path("customers"), params={"phone": phone, "active": "true"}
        )
        if phone_search.get("data"):
            customer = phone_search["data"][0]
            logger.info(f"✅ Found existing ServiceTitan customer by phone: {customer['id']}")
            return customer

        if email:
            email_search = await self.auth.make_request(
                "GET", self._path("customers"), params={"email": email, "active": "true"}
            )
            if email_search.get("data"):
                customer = email_search["data"][0]
                logger.info(f"✅ Found existing ServiceTitan customer by email: {customer['id']}")
                return customer

        return None

    async def create_customer(
        self, name: str, phone: str, address: dict, email: Optional[str] = None
    ) -> dict:
        payload = {
            "name": name,
            "type": "Residential",
            "address": _address(address),
            "contacts": _contacts(phone, email),
        }
        customer = await self.auth.make_request("POST", self._path("customers"), json=payload)
        logger.info(f"✅ Created ServiceTitan customer: {customer.get('id')}")
        return customer

    async def ensure_customer(
        self, name: str, phone: str, address: dict, email: Optional[str] = None
    ) -> dict:
        existing = await self.find_customer(phone, email)
        if existing:
            return existing
        return await self.create_customer(name=name, phone=phone, address=address, email=email)

    async def find_location(self, customer_id: int, street: str) -> Optional[dict]:
        """Fuzzy street match among the customer's active locations"""
        response = await self.auth.make_request(
            "GET",
            self._path("locations"),
            params={"customerId": customer_id, "active": "true"},
        )
        locations = response.get("data") or []
        if not locations:
            return None

        wanted = normalize_street(street)
        for location in locations:
            candidate = normalize_street((location.get("address") or {}).get("street", ""))
            if candidate and wanted and (wanted in candidate or candidate in wanted):
                logger.info(f"✅ Found existing ServiceTitan location: {location['id']}")
                return location
        return None

    async def create_location(
        self,
        customer_id: int,
        address: dict,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> dict:
        payload = {
            "customerId": customer_id,
            "name": name or address.get("street", "Primary Location"),
            "address": _address(address),
            "contacts": _contacts(phone, email),
        }
        location = await self.auth.make_request("POST", self._path("locations"), json=payload)
        logger.info(f"✅ Created ServiceTitan location: {location.get('id')}")
        return location

    async def ensure_location(
        self,
        customer_id: int,
        address: dict,
        phone: Optional[str] = None,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> dict:
        existing = await self.find_location(customer_id, address.get("street", ""))
        if existing:
            return existing
        return await self.create_location(customer_id, address, phone=phone, email=email, name=name)

    async def create_location_note(self, location_id: int, text: str, pinned: bool = True) -> dict:
        """Pinned notes hold things like gate codes for technicians"""
        note = await self.auth.make_request(
            "POST",
            self._path(f"locations/{location_id}/notes"),
            json={"text": text, "pinned": pinned},
        )
        logger.info(
            f"✅ Created {'pinned ' if pinned else ''}note on location {location_id}: {note.get('id')}"
        )
        return note

    async def get_customer(self, customer_id: int) -> dict:
        return await self.auth.make_request("GET", self._path(f"customers/{customer_id}"))

    async def get_customer_contacts(self, customer_id: int) -> list[dict]:
        response = await self.auth.make_request("GET", self._path(f"customers/{customer_id}/contacts"))
        return response.get("data") or []

    async def get_location(self, location_id: int) -> dict:
        return await self.auth.make_request("GET", self._path(f"locations/{location_id}"))

    async def get_customer_locations(self, customer_id: int) -> list[dict]:
        response = await self.auth.make_request(
            "GET",
            self._path("locations"),
            params={"customerId": customer_id, "active": "true", "pageSize": 50},
        )
        return response.get("data") or []


servicetitan_crm = ServiceTitanCRM()
