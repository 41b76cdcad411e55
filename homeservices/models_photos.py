from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class Photo(Base):
    """Job photo scored by the vision model and eligible for marketing use"""

    __tablename__ = "photos"

    id = Column(String(36), primary_key=True, default=generate_public_id)
    photo_url = Column(String(1000), nullable=False)
    storage_key = Column(String(500), nullable=True)  # R2 key, NULL for external URLs
    job_id = Column(String(100), index=True, nullable=True)
    source = Column(String(30), default="upload", nullable=False)  # servicetitan, google_drive, upload
    original_filename = Column(String(255), nullable=True)

    category = Column(String(50), default="general-plumbing", nullable=False, index=True)
    quality_score = Column(Integer, default=0, nullable=False)
    is_production_quality = Column(Boolean, default=False, nullable=False)
    quality_reason = Column(Text, nullable=True)
    ai_description = Column(Text, nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    focal_point_x = Column(Float, default=50, nullable=False)
    focal_point_y = Column(Float, default=50, nullable=False)
    focal_point_reason = Column(String(255), nullable=True)

    # Soft delete for duplicate cleanup
    active = Column(Boolean, default=True, nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    uploaded_at = Column(DateTime, nullable=True)  # When the photo was taken/uploaded at the source
    fetched_at = Column(DateTime, server_default=func.now())


class BeforeAfterComposite(Base):
    __tablename__ = "before_after_composites"

    id = Column(Integer, primary_key=True, index=True)
    before_photo_id = Column(String(36), nullable=False)
    after_photo_id = Column(String(36), nullable=False)
    composite_url = Column(String(1000), nullable=False)
    storage_key = Column(String(500), nullable=True)
    caption = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)
    job_id = Column(String(100), index=True, nullable=True)
    posted_to_social = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)
