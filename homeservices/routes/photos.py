"""
Photo pipeline routes
Upload + AI quality analysis, duplicate cleanup and before/after composites
"""

import logging
import time
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from PIL import UnidentifiedImageError
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models_photos import BeforeAfterComposite, Photo
from ..schemas import CompositeResponse, PhotoResponse
from ..services.before_after_composer import process_before_after_pairs
from ..services.google_drive_service import convert_to_webp
from ..services.openai_client import OpenAINotConfigured
from ..services.photo_analyzer import analyze_production_photo
from ..services.photo_cleanup import execute_photo_cleanup, is_cleanup_running
from ..services.photo_storage import sanitize_filename, upload_photo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/photos", tags=["photos"], dependencies=[Depends(require_admin)])

MAX_UPLOAD_BYTES = 20 * 1024 * 1024


@router.get("", response_model=List[PhotoResponse])
async def list_photos(
    category: Optional[str] = None,
    job_id: Optional[str] = None,
    production_only: bool = False,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    query = db.query(Photo).filter(Photo.active.is_(True))
    if category:
        query = query.filter(Photo.category == category)
    if job_id:
        query = query.filter(Photo.job_id == job_id)
    if production_only:
        query = query.filter(Photo.is_production_quality.is_(True))
    return query.order_by(Photo.fetched_at.desc()).limit(min(limit, 500)).all()


@router.post("/analyze")
async def analyze_photo_upload(
    file: UploadFile = File(...),
    job_id: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    """Score an uploaded photo and keep it in the library"""
    if not (file.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Image exceeds 20MB limit")

    try:
        webp = convert_to_webp(content)
    except UnidentifiedImageError as e:
        raise HTTPException(status_code=400, detail="Could not read image") from e

    filename = file.filename or "upload"
    try:
        analysis = await analyze_production_photo(content, filename)
    except OpenAINotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ValueError as e:
        logger.error(f"❌ Photo analysis failed for {filename}: {e}")
        raise HTTPException(status_code=502, detail="Photo analysis failed") from e

    key = f"photos/{job_id or 'unassigned'}/{int(time.time() * 1000)}_{sanitize_filename(filename)}.webp"
    url = upload_photo(webp, key, "image/webp")

    photo = Photo(
        photo_url=url,
        storage_key=key,
        job_id=job_id,
        source="upload",
        original_filename=filename,
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
    db.commit()
    db.refresh(photo)
    logger.info(f"📸 Stored {filename} as {photo.id} (score {analysis['qualityScore']})")

    return {"photo": PhotoResponse.model_validate(photo), "analysis": analysis}


@router.post("/cleanup")
async def run_photo_cleanup(db: Session = Depends(get_db)):
    if is_cleanup_running():
        raise HTTPException(status_code=409, detail="Cleanup already in progress")
    try:
        return await execute_photo_cleanup(db)
    except OpenAINotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.post("/jobs/{job_id}/composites", response_model=List[CompositeResponse])
async def create_job_composites(job_id: str, db: Session = Depends(get_db)):
    photos = db.query(Photo).filter(Photo.job_id == job_id, Photo.active.is_(True)).all()
    if len(photos) < 2:
        raise HTTPException(status_code=400, detail="Need at least two photos for a before/after")
    try:
        return await process_before_after_pairs(db, photos, job_id)
    except OpenAINotConfigured as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@router.get("/composites", response_model=List[CompositeResponse])
async def list_composites(
    job_id: Optional[str] = None, limit: int = 50, db: Session = Depends(get_db)
):
    query = db.query(BeforeAfterComposite)
    if job_id:
        query = query.filter(BeforeAfterComposite.job_id == job_id)
    return query.order_by(BeforeAfterComposite.created_at.desc()).limit(min(limit, 200)).all()
