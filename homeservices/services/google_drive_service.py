"""
Google Drive photo ingestion.

An admin connects a Drive account once (OAuth, tokens encrypted at rest).
Every 6 hours the worker lists new images in the watched folder, scores them
with the production photo analyzer and imports the keepers as WebP into R2.
"""

import asyncio
import io
import logging
import time
from datetime import datetime, timedelta
from typing import Optional

import httpx
from openai import AsyncOpenAI
from PIL import Image, UnidentifiedImageError
from sqlalchemy.orm import Session

from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_DRIVE_FOLDER_ID
from ..models_google_drive import GoogleDriveIntegration, ImportedDriveFile
from ..models_photos import Photo
from ..security_utils import decrypt_token, encrypt_token
from .photo_analyzer import analyze_production_photo
from .photo_storage import sanitize_filename, upload_photo

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
MIN_IMPORT_QUALITY_SCORE = 60
IMPORT_DELAY_SECONDS = 0.5
WEBP_QUALITY = 85

# Checked in order; first hit wins
CATEGORY_KEYWORDS = [
    ("water_heater", ("water heater", "tank", "heater")),
    ("drain", ("drain", "clog")),
    ("leak", ("leak", "drip")),
    ("toilet", ("toilet",)),
    ("faucet", ("faucet", "sink")),
    ("gas", ("gas", "line")),
    ("backflow", ("backflow", "prevention")),
    ("commercial", ("commercial", "business")),
]


def categorize_drive_photo(filename: str, description: str, tags: Optional[list[str]] = None) -> str:
    combined = f"{filename} {description} {' '.join(tags or [])}".lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in combined for keyword in keywords):
            return category
    return "general"


def get_integration(db: Session) -> Optional[GoogleDriveIntegration]:
    return db.query(GoogleDriveIntegration).order_by(GoogleDriveIntegration.id).first()


async def get_valid_access_token(
    integration: GoogleDriveIntegration,
    db: Session,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """
    Get a valid access token, refreshing if necessary
    Returns None if refresh fails
    """
    try:
        # Check if token is expired or about to expire (within 5 minutes)
        if integration.token_expires_at > datetime.utcnow() + timedelta(minutes=5):
            return decrypt_token(integration.access_token)

        logger.info("🔄 Google Drive token expired, refreshing...")
        refresh_token = decrypt_token(integration.refresh_token)
        async with httpx.AsyncClient(transport=transport) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": GOOGLE_CLIENT_ID,
                    "client_secret": GOOGLE_CLIENT_SECRET,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )

        if response.status_code != 200:
            logger.error(f"❌ Token refresh failed: {response.text}")
            return None

        tokens = response.json()
        new_access_token = tokens.get("access_token")
        if not new_access_token:
            logger.error("❌ No access token in refresh response")
            return None

        integration.access_token = encrypt_token(new_access_token)
        integration.token_expires_at = datetime.utcnow() + timedelta(seconds=tokens.get("expires_in", 3600))
        db.commit()
        logger.info("✅ Google Drive token refreshed successfully")
        return new_access_token

    except Exception as e:
        logger.error(f"❌ Error getting valid access token: {str(e)}")
        return None


async def list_folder_images(client: httpx.AsyncClient, access_token: str, folder_id: str) -> list[dict]:
    response = await client.get(
        DRIVE_FILES_URL,
        headers={"Authorization": f"Bearer {access_token}"},
        params={
            "q": f"'{folder_id}' in parents and trashed=false and (mimeType contains 'image/')",
            "fields": "files(id, name, mimeType, createdTime)",
            "orderBy": "createdTime desc",
            "pageSize": 100,
        },
    )
    response.raise_for_status()
    return response.json().get("files", [])


async def download_drive_file(client: httpx.AsyncClient, access_token: str, file_id: str) -> bytes:
    response = await client.get(
        f"{DRIVE_FILES_URL}/{file_id}",
        headers={"Authorization": f"Bearer {access_token}"},
        params={"alt": "media"},
    )
    response.raise_for_status()
    return response.content


def convert_to_webp(content: bytes) -> bytes:
    image = Image.open(io.BytesIO(content))
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGB")
    output = io.BytesIO()
    image.save(output, format="WEBP", quality=WEBP_QUALITY)
    return output.getvalue()


def _record(db: Session, file: dict, status: str, reason: Optional[str] = None, photo_id: Optional[str] = None):
    db.add(
        ImportedDriveFile(
            drive_file_id=file["id"],
            file_name=file.get("name"),
            status=status,
            reason=reason,
            photo_id=photo_id,
        )
    )
    db.commit()


async def import_from_drive(
    db: Session,
    client: Optional[AsyncOpenAI] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    upload=upload_photo,
) -> dict:
    integration = get_integration(db)
    if not integration:
        logger.info("ℹ️ Google Drive not connected - skipping import")
        return {"success": False, "message": "Google Drive not connected"}

    folder_id = integration.folder_id or GOOGLE_DRIVE_FOLDER_ID
    if not folder_id:
        logger.info("ℹ️ GOOGLE_DRIVE_FOLDER_ID not configured - skipping import")
        return {"success": False, "message": "Google Drive folder not configured"}

    access_token = await get_valid_access_token(integration, db, transport=transport)
    if not access_token:
        return {"success": False, "message": "Could not obtain Google Drive access token"}

    result = {"success": True, "imported": 0, "skipped": 0, "rejected": 0, "errors": []}

    async with httpx.AsyncClient(timeout=60.0, transport=transport) as http:
        try:
            files = await list_folder_images(http, access_token, folder_id)
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to list Google Drive folder {folder_id}: {e}")
            return {"success": False, "message": f"Failed to list folder: {e}"}

        logger.info(f"📸 Found {len(files)} images in Drive folder {folder_id}")
        known = {
            row.drive_file_id
            for row in db.query(ImportedDriveFile.drive_file_id)
            .filter(ImportedDriveFile.drive_file_id.in_([file["id"] for file in files]))
            .all()
        }

        for file in files:
            name = file.get("name") or "unnamed"
            if file["id"] in known:
                result["skipped"] += 1
                continue

            try:
                content = await download_drive_file(http, access_token, file["id"])
                try:
                    webp = convert_to_webp(content)
                except UnidentifiedImageError:
                    _record(db, file, "skipped", "Not a readable image")
                    result["skipped"] += 1
                    continue

                analysis = await analyze_production_photo(content, name, client=client)
                if (
                    not analysis["isProductionQuality"]
                    or analysis["qualityScore"] < MIN_IMPORT_QUALITY_SCORE
                ):
                    logger.info(f"❌ Rejected {name} - {analysis['qualityReason']}")
                    _record(db, file, "rejected", analysis["qualityReason"])
                    result["rejected"] += 1
                    continue

                folder = categorize_drive_photo(name, analysis["description"], analysis["tags"])
                key = f"imported_photos/{folder}/{int(time.time() * 1000)}_{sanitize_filename(name)}.webp"
                url = upload(webp, key, "image/webp")

                photo = Photo(
                    photo_url=url,
                    storage_key=key,
                    source="google_drive",
                    original_filename=name,
                    category=analysis["category"],
                    quality_score=analysis["qualityScore"],
                    is_production_quality=analysis["isProductionQuality"],
                    quality_reason=analysis["qualityReason"],
                    ai_description=analysis["description"],
                    tags=analysis["tags"],
                    focal_point_x=analysis["focalPointX"],
                    focal_point_y=analysis["focalPointY"],
                    focal_point_reason=analysis["focalPointReason"],
                    uploaded_at=datetime.utcnow(),
                )
                db.add(photo)
                db.flush()
                _record(db, file, "imported", photo_id=photo.id)
                result["imported"] += 1
                logger.info(f"✅ Imported {name} - {analysis['category']}, score {analysis['qualityScore']}")

                await asyncio.sleep(IMPORT_DELAY_SECONDS)
            except Exception as e:
                db.rollback()
                logger.error(f"❌ Error importing {name}: {e}")
                result["errors"].append(f"{name}: {e}")

    integration.last_import_at = datetime.utcnow()
    db.commit()
    logger.info(
        f"✅ Drive import complete: {result['imported']} imported, "
        f"{result['skipped']} skipped, {result['rejected']} rejected"
    )
    return result
