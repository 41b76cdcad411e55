"""
Daily before/after composite job (02:00 via the arq worker)
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from openai import AsyncOpenAI
from sqlalchemy.orm import Session

from ..models_photos import BeforeAfterComposite, Photo
from .before_after_composer import process_before_after_pairs

logger = logging.getLogger(__name__)


def already_ran_today(db: Session, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return (
        db.query(BeforeAfterComposite.id)
        .filter(BeforeAfterComposite.created_at >= start_of_day)
        .first()
        is not None
    )


async def run_daily_composite_job(
    db: Session, client: Optional[AsyncOpenAI] = None, **composer_kwargs
) -> dict:
    result = {"success": True, "jobsProcessed": 0, "compositesCreated": 0, "errors": []}

    if already_ran_today(db):
        logger.info("ℹ️ Composites already created today, skipping")
        result["message"] = "Already ran today"
        return result

    since = datetime.utcnow() - timedelta(hours=24)
    photos = (
        db.query(Photo)
        .filter(Photo.active.is_(True), Photo.uploaded_at >= since, Photo.job_id.isnot(None))
        .all()
    )

    by_job: dict[str, list[Photo]] = defaultdict(list)
    for photo in photos:
        by_job[photo.job_id].append(photo)
    jobs = {job_id: group for job_id, group in by_job.items() if len(group) >= 2}

    logger.info(f"📸 {len(photos)} recent photos across {len(jobs)} jobs with 2+ photos")

    for job_id, job_photos in jobs.items():
        try:
            composites = await process_before_after_pairs(
                db, job_photos, job_id, client=client, **composer_kwargs
            )
            result["jobsProcessed"] += 1
            result["compositesCreated"] += len(composites)
        except Exception as e:
            logger.error(f"❌ Composite job failed for job {job_id}: {e}")
            result["errors"].append(f"{job_id}: {e}")

    logger.info(
        f"✅ Daily composite job complete: {result['jobsProcessed']} jobs, "
        f"{result['compositesCreated']} composites"
    )
    return result
