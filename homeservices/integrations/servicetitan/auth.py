"""
ServiceTitan OAuth client-credentials auth and shared request helper.

Every ServiceTitan module goes through ``ServiceTitanAuth.make_request`` so the
bearer token, app key header and error mapping live in one place.
"""

import asyncio
import logging
import time
from datetime import timezone
from typing import Any, Optional

import httpx

from ...config import (
    SERVICETITAN_API_URL,
    SERVICETITAN_APP_KEY,
    SERVICETITAN_AUTH_URL,
    SERVICETITAN_CLIENT_ID,
    SERVICETITAN_CLIENT_SECRET,
    SERVICETITAN_TENANT_ID,
)

logger = logging.getLogger(__name__)

# Refresh this many seconds before ServiceTitan says the token expires
TOKEN_EXPIRY_BUFFER_SECONDS = 60
REQUEST_TIMEOUT = 30.0


class ServiceTitanAPIError(Exception):
    """Raised for any non-2xx response from ServiceTitan"""

    def __init__(self, status_code: int, message: str, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ServiceTitanNotConfigured(ServiceTitanAPIError):
    def __init__(self):
        super().__init__(503, "ServiceTitan integration not configured")


class ServiceTitanAuth:
    def __init__(
        self,
        client_id: Optional[str] = SERVICETITAN_CLIENT_ID,
        client_secret: Optional[str] = SERVICETITAN_CLIENT_SECRET,
        tenant_id: Optional[str] = SERVICETITAN_TENANT_ID,
        app_key: Optional[str] = SERVICETITAN_APP_KEY,
        auth_url: str = SERVICETITAN_AUTH_URL,
        api_url: str = SERVICETITAN_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.tenant_id = tenant_id
        self.app_key = app_key
        self.auth_url = auth_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.transport = transport

        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._lock = asyncio.Lock()

    def is_configured(self) -> bool:
        return all([self.client_id, self.client_secret, self.tenant_id, self.app_key])

    def get_tenant_id(self) -> str:
        if not self.tenant_id:
            raise ServiceTitanNotConfigured()
        return self.tenant_id

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self.transport)

    async def get_access_token(self) -> str:
        """Return a cached token, fetching a new one when it is close to expiry"""
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        if not self.is_configured():
            raise ServiceTitanNotConfigured()

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self._access_token and time.time() < self._token_expires_at:
                return self._access_token

            logger.info("🔄 Requesting new ServiceTitan access token")
            async with self._client() as client:
                response = await client.post(
                    f"{self.auth_url}/connect/token",
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self.client_secret),
                )

            if response.status_code != 200:
                logger.error(
                    f"❌ ServiceTitan auth failed: HTTP {response.status_code} - {response.text}"
                )
                raise ServiceTitanAPIError(
                    response.status_code, "ServiceTitan authentication failed", response.text
                )

            data = response.json()
            self._access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 900))
            self._token_expires_at = time.time() + expires_in - TOKEN_EXPIRY_BUFFER_SECONDS
            logger.info(f"✅ ServiceTitan token acquired (expires in {expires_in}s)")
            return self._access_token

    def clear_token(self) -> None:
        self._access_token = None
        self._token_expires_at = 0.0

    async def make_request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Call a ServiceTitan endpoint relative to the API base URL.

        Args:
            method: HTTP verb
            path: Path such as ``crm/v2/tenant/{tenant}/customers``
            json: Optional JSON body
            params: Optional query parameters (None values are dropped)

        Returns:
            Parsed JSON body, or ``{}`` when the response body is empty
        """
        token = await self.get_access_token()
        url = f"{self.api_url}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {token}",
            "ST-App-Key": self.app_key,
            "Content-Type": "application/json",
        }
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}

        async with self._client() as client:
            response = await client.request(
                method.upper(), url, headers=headers, json=json, params=clean_params or None
            )

        if response.status_code >= 400:
            logger.error(
                f"❌ ServiceTitan {method.upper()} {path} failed: "
                f"HTTP {response.status_code} - {response.text[:500]}"
            )
            if response.status_code == 401:
                self.clear_token()
            raise ServiceTitanAPIError(
                response.status_code,
                f"ServiceTitan API error {response.status_code} for {method.upper()} {path}",
                response.text,
            )

        if not response.content or not response.content.strip():
            return {}
        return response.json()


def format_st_datetime(value) -> str:
    """ISO-8601 UTC string in the shape ServiceTitan expects"""
    if isinstance(value, str):
        return value
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime("%Y-%m-%dT%H:%M:%S.000Z")


servicetitan_auth = ServiceTitanAuth()
