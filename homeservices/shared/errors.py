import logging

from fastapi import HTTPException

from ..integrations.servicetitan.auth import ServiceTitanAPIError, ServiceTitanNotConfigured

logger = logging.getLogger(__name__)


def servicetitan_http_error(error: ServiceTitanAPIError) -> HTTPException:
    """Map a ServiceTitan failure onto the response our API returns"""
    if isinstance(error, ServiceTitanNotConfigured):
        return HTTPException(status_code=503, detail=str(error))
    if error.status_code == 404:
        return HTTPException(status_code=404, detail="Not found in ServiceTitan")
    logger.error(f"❌ ServiceTitan error {error.status_code}: {error}")
    return HTTPException(status_code=502, detail=f"ServiceTitan request failed: {error}")
