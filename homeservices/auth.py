import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import config
from .security_utils import constant_time_compare, mask_sensitive_data

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def require_admin(credentials: HTTPAuthorizationCredentials = Depends(security)) -> str:
    """Admin dashboard calls carry ``Authorization: Bearer <ADMIN_API_TOKEN>``"""
    expected = config.ADMIN_API_TOKEN
    if not expected:
        logger.error("❌ ADMIN_API_TOKEN not configured - admin API disabled")
        raise HTTPException(status_code=503, detail="Admin API not configured")

    token = credentials.credentials
    if not constant_time_compare(token, expected):
        logger.warning(f"⚠️ Rejected admin token {mask_sensitive_data(token)}")
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return token
