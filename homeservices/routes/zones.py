import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import ServiceZone
from ..schemas import ZoneResponse
from ..services.zone_sync import find_zone_for_zip, sync_zones_from_servicetitan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/zones", tags=["zones"])


@router.get("", response_model=List[ZoneResponse])
async def list_zones(include_inactive: bool = False, db: Session = Depends(get_db)):
    query = db.query(ServiceZone)
    if not include_inactive:
        query = query.filter(ServiceZone.active.is_(True))
    return query.order_by(ServiceZone.sort_order, ServiceZone.name).all()


@router.get("/lookup/{zip_code}", response_model=Optional[ZoneResponse])
async def lookup_zone(zip_code: str, db: Session = Depends(get_db)):
    zone = find_zone_for_zip(db, zip_code)
    if not zone:
        raise HTTPException(status_code=404, detail="ZIP code is outside our service area")
    return zone


@router.post("/sync", dependencies=[Depends(require_admin)])
async def sync_zones(db: Session = Depends(get_db)):
    result = await sync_zones_from_servicetitan(db)
    if not result["success"]:
        raise HTTPException(status_code=502, detail=result)
    return result
