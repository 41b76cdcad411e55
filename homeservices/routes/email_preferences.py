"""
Public email preference center, reached from the link in every marketing email
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import EmailPreferenceResponse, EmailPreferenceUpdate
from ..services.email_preferences import get_preferences_by_token, unsubscribe_all, update_preferences

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email-preferences", tags=["email-preferences"])


@router.get("/{token}", response_model=EmailPreferenceResponse)
async def get_email_preferences(token: str, db: Session = Depends(get_db)):
    prefs = get_preferences_by_token(db, token)
    if not prefs:
        raise HTTPException(status_code=404, detail="Preference link is invalid or expired")
    return prefs


@router.put("/{token}", response_model=EmailPreferenceResponse)
async def update_email_preferences(token: str, data: EmailPreferenceUpdate, db: Session = Depends(get_db)):
    prefs = update_preferences(db, token, **data.model_dump(exclude_none=True))
    if not prefs:
        raise HTTPException(status_code=404, detail="Preference link is invalid or expired")
    return prefs


@router.post("/{token}/unsubscribe", response_model=EmailPreferenceResponse)
async def unsubscribe_from_all(token: str, db: Session = Depends(get_db)):
    prefs = unsubscribe_all(db, token)
    if not prefs:
        raise HTTPException(status_code=404, detail="Preference link is invalid or expired")
    return prefs
