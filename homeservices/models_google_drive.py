"""
Google Drive Integration Models
"""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class GoogleDriveIntegration(Base):
    """Single shared connection to the Drive account that receives job photos"""

    __tablename__ = "google_drive_integrations"

    id = Column(Integer, primary_key=True, index=True)

    # OAuth tokens (encrypted)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    token_expires_at = Column(DateTime, nullable=False)

    google_user_email = Column(String(255), nullable=True)
    folder_id = Column(String(255), nullable=True)  # Overrides GOOGLE_DRIVE_FOLDER_ID
    last_import_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ImportedDriveFile(Base):
    __tablename__ = "imported_drive_files"

    id = Column(Integer, primary_key=True, index=True)
    drive_file_id = Column(String(255), unique=True, index=True, nullable=False)
    file_name = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False)  # imported, skipped, rejected
    reason = Column(Text, nullable=True)
    photo_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
