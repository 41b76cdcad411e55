"""
Zone Sync Service
Mirrors ServiceTitan dispatch zones into the local servicetitan_zones table.
ServiceTitan is the source of truth; local zones it no longer lists are
deactivated rather than deleted.
"""

import logging
import re
from typing import Optional

from sqlalchemy.orm import Session

from ..integrations.servicetitan.dispatch import ServiceTitanDispatch, servicetitan_dispatch
from ..models import ServiceZone

logger = logging.getLogger(__name__)

DEFAULT_SORT_ORDER = 999
_LEADING_NUMBER = re.compile(r"^(\d+)")


def sort_order_from_name(name: str) -> int:
    """'3 - North Austin' sorts as 3; unnumbered zones go last"""
    match = _LEADING_NUMBER.match((name or "").strip())
    return int(match.group(1)) if match else DEFAULT_SORT_ORDER


async def sync_zones_from_servicetitan(
    db: Session, dispatch: Optional[ServiceTitanDispatch] = None
) -> dict:
    dispatch = dispatch or servicetitan_dispatch
    result = {
        "success": True,
        "zonesAdded": 0,
        "zonesUpdated": 0,
        "zonesDeactivated": 0,
        "zipsAdded": 0,
        "zipsRemoved": 0,
        "errors": [],
    }

    try:
        logger.info("🔄 Starting zone sync from ServiceTitan")
        st_zones = await dispatch.get_zones()

        db_zones = {
            zone.servicetitan_id: zone
            for zone in db.query(ServiceZone).filter(ServiceZone.servicetitan_id.isnot(None)).all()
        }

        for st_zone in st_zones:
            cities = st_zone["cities"] or None
            existing = db_zones.get(st_zone["id"])

            if existing is None:
                db.add(
                    ServiceZone(
                        servicetitan_id=st_zone["id"],
                        name=st_zone["name"],
                        zip_codes=st_zone["zips"],
                        cities=cities,
                        sort_order=sort_order_from_name(st_zone["name"]),
                        active=st_zone["active"],
                    )
                )
                result["zonesAdded"] += 1
                result["zipsAdded"] += len(st_zone["zips"])
                logger.info(f"✅ Added zone {st_zone['name']} ({len(st_zone['zips'])} zips)")
                continue

            old_zips = set(existing.zip_codes or [])
            new_zips = set(st_zone["zips"])
            changed = (
                existing.name != st_zone["name"]
                or old_zips != new_zips
                or sorted(existing.cities or []) != sorted(cities or [])
                or existing.active != st_zone["active"]
            )
            if not changed:
                continue

            existing.name = st_zone["name"]
            existing.zip_codes = st_zone["zips"]
            existing.cities = cities
            existing.active = st_zone["active"]
            existing.sort_order = sort_order_from_name(st_zone["name"])
            result["zonesUpdated"] += 1
            result["zipsAdded"] += len(new_zips - old_zips)
            result["zipsRemoved"] += len(old_zips - new_zips)
            logger.info(f"🔄 Updated zone {st_zone['name']}")

        st_ids = {st_zone["id"] for st_zone in st_zones}
        for servicetitan_id, zone in db_zones.items():
            if servicetitan_id not in st_ids and zone.active:
                zone.active = False
                result["zonesDeactivated"] += 1
                logger.info(f"⚠️ Deactivated zone {zone.name} (removed from ServiceTitan)")

        db.commit()
        logger.info(
            f"✅ Zone sync complete: +{result['zonesAdded']} ~{result['zonesUpdated']} "
            f"-{result['zonesDeactivated']} zones"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Zone sync failed: {e}")
        result["success"] = False
        result["errors"].append(str(e))

    return result


def find_zone_for_zip(db: Session, zip_code: str) -> Optional[ServiceZone]:
    """Lowest sort_order active zone that serves the ZIP"""
    wanted = (zip_code or "").strip()[:5]
    if not wanted:
        return None
    zones = (
        db.query(ServiceZone)
        .filter(ServiceZone.active.is_(True))
        .order_by(ServiceZone.sort_order, ServiceZone.name)
        .all()
    )
    for zone in zones:
        if wanted in (zone.zip_codes or []):
            return zone
    return None
