"""
Automated duplicate-photo cleanup.
Runs daily from the arq worker and on demand from the admin photos API.
"""

import logging
import time
from datetime import datetime
from typing import Optional

from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from ..models_photos import Photo
from .photo_storage import delete_photo_object, download_photo
from .similar_photo_detector import find_similar_photos

logger = logging.getLogger(__name__)

_is_running = False


def is_cleanup_running() -> bool:
    return _is_running


async def _download(photo: Photo) -> bytes:
    return await download_photo(photo.photo_url)


async def execute_photo_cleanup(db: Session, client: Optional[AsyncOpenAI] = None, download=None) -> dict:
    """Find near-duplicate active photos and soft-delete all but the best of each group"""
    global _is_running
    if _is_running:
        logger.warning("⚠️ Photo cleanup already in progress, skipping this run")
        return {
            "success": False,
            "message": "Cleanup already in progress",
            "groupsFound": 0,
            "photosDeleted": 0,
        }

    _is_running = True
    started = time.monotonic()
    try:
        photos = db.query(Photo).filter(Photo.active.is_(True)).all()
        if len(photos) < 2:
            return {
                "success": True,
                "message": "Not enough photos to compare",
                "groupsFound": 0,
                "photosDeleted": 0,
            }

        logger.info(f"📸 Analyzing {len(photos)} photos for similarity")
        groups = await find_similar_photos(photos, download or _download, client=client)
        if not groups:
            return {
                "success": True,
                "message": "No similar photos found",
                "groupsFound": 0,
                "photosDeleted": 0,
            }

        by_id = {photo.id: photo for photo in photos}
        removed_keys = []
        now = datetime.utcnow()
        for group in groups:
            logger.info(
                f"🗑️ Deleting {len(group['deletePhotoIds'])} similar photos, keeping {group['keepPhotoId']}"
            )
            for photo_id in group["deletePhotoIds"]:
                photo = by_id[photo_id]
                photo.active = False
                photo.deleted_at = now
                removed_keys.append(photo.storage_key)
        db.commit()

        # Rows must be committed before their objects leave R2
        for key in removed_keys:
            delete_photo_object(key)
        deleted = len(removed_keys)

        logger.info(
            f"✅ Photo cleanup complete in {time.monotonic() - started:.1f}s: "
            f"{len(groups)} groups, {deleted} photos deleted"
        )
        return {
            "success": True,
            "message": f"Found {len(groups)} groups of similar photos and deleted {deleted} duplicates",
            "groupsFound": len(groups),
            "photosDeleted": deleted,
            "groups": [
                {
                    "photoCount": len(group["photoIds"]),
                    "keptPhotoId": group["keepPhotoId"],
                    "deletedCount": len(group["deletePhotoIds"]),
                }
                for group in groups
            ],
        }
    finally:
        _is_running = False
