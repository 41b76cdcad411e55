"""ServiceTitan REST API clients (OAuth client credentials, tenant-scoped paths)"""

from .auth import ServiceTitanAPIError, ServiceTitanNotConfigured, servicetitan_auth

__all__ = ["ServiceTitanAPIError", "ServiceTitanNotConfigured", "servicetitan_auth"]
