"""
Google Drive Integration Routes
Handles OAuth connection and photo imports from the shared job-photo folder
"""

import logging
from datetime import datetime, timedelta
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_DRIVE_REDIRECT_URI
from ..database import get_db
from ..models_google_drive import GoogleDriveIntegration
from ..schemas import OAuthCallbackRequest
from ..security_utils import decrypt_token, encrypt_token
from ..services.google_drive_service import GOOGLE_TOKEN_URL, get_integration, import_from_drive
from ..services.openai_client import OpenAINotConfigured

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-drive", tags=["google-drive"], dependencies=[Depends(require_admin)])

# Google OAuth URLs
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_DRIVE_SCOPES = [
    "https://www.googleapis.com/auth/drive.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]


@router.get("/status")
async def get_google_drive_status(db: Session = Depends(get_db)):
    """Get Google Drive connection status"""
    integration = get_integration(db)

    if not integration:
        return {"connected": False, "user_email": None, "folder_id": None, "last_import_at": None}

    return {
        "connected": True,
        "user_email": integration.google_user_email,
        "folder_id": integration.folder_id,
        "last_import_at": integration.last_import_at,
    }


@router.get("/connect")
async def initiate_google_drive_oauth():
    """Initiate Google Drive OAuth flow"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google Drive not configured")

    query = urlencode(
        {
            "client_id": GOOGLE_CLIENT_ID,
            "redirect_uri": GOOGLE_DRIVE_REDIRECT_URI,
            "response_type": "code",
            "scope": " ".join(GOOGLE_DRIVE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
        }
    )
    logger.info("Google Drive OAuth initiated")
    return {"authorization_url": f"{GOOGLE_AUTH_URL}?{query}"}


@router.post("/callback")
async def handle_google_drive_callback(data: OAuthCallbackRequest, db: Session = Depends(get_db)):
    """Handle Google Drive OAuth callback"""
    try:
        # Exchange code for tokens
        async with httpx.AsyncClient() as client:
            token_response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": data.code,
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "redirect_uri": GOOGLE_DRIVE_REDIRECT_URI,
                    "grant_type": "authorization_code",
                },
            )

            if token_response.status_code != 200:
                logger.error(f"Token exchange failed: {token_response.text}")
                raise HTTPException(status_code=400, detail="Failed to exchange authorization code")

            tokens = token_response.json()
            access_token = tokens.get("access_token")
            refresh_token = tokens.get("refresh_token")
            expires_in = tokens.get("expires_in", 3600)

            if not access_token or not refresh_token:
                raise HTTPException(status_code=400, detail="Invalid token response")

            user_info_response = await client.get(
                GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )

            if user_info_response.status_code != 200:
                logger.error(f"Failed to get user info: {user_info_response.text}")
                raise HTTPException(status_code=400, detail="Failed to get user info")

            google_email = user_info_response.json().get("email")

        token_expires_at = datetime.utcnow() + timedelta(seconds=expires_in)

        # Single shared connection: replace whatever was there
        integration = get_integration(db)
        if integration:
            integration.access_token = encrypt_token(access_token)
            integration.refresh_token = encrypt_token(refresh_token)
            integration.token_expires_at = token_expires_at
            integration.google_user_email = google_email
            if data.folder_id:
                integration.folder_id = data.folder_id
        else:
            integration = GoogleDriveIntegration(
                access_token=encrypt_token(access_token),
                refresh_token=encrypt_token(refresh_token),
                token_expires_at=token_expires_at,
                google_user_email=google_email,
                folder_id=data.folder_id,
            )
            db.add(integration)

        db.commit()

        logger.info(f"✅ Google Drive connected: {google_email}")

        return {
            "success": True,
            "message": "Google Drive connected successfully",
            "user_email": google_email,
        }

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Google Drive callback error: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to connect Google Drive: {str(e)}") from e


@router.post("/disconnect")
async def disconnect_google_drive(db: Session = Depends(get_db)):
    """Disconnect Google Drive integration"""
    integration = get_integration(db)

    if not integration:
        raise HTTPException(status_code=404, detail="Google Drive not connected")

    # Revoke Google tokens
    try:
        access_token = decrypt_token(integration.access_token)
        async with httpx.AsyncClient() as client:
            await client.post(GOOGLE_REVOKE_URL, params={"token": access_token})
    except Exception as e:
        logger.warning(f"Failed to revoke Google tokens: {str(e)}")

    db.delete(integration)
    db.commit()

    logger.info("✅ Google Drive disconnected")

    return {"success": True, "message": "Google Drive disconnected"}


@router.post("/import")
async def run_google_drive_import(db: Session = Depends(get_db)):
    try:
        result = await import_from_drive(db)
    except OpenAINotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if not result["success"] and "message" in result:
        raise HTTPException(status_code=400, detail=result["message"])
    return result
