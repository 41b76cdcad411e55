from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from homeservices.models import ServiceZone
from homeservices.services.zone_sync import (
    DEFAULT_SORT_ORDER,
    find_zone_for_zip,
    sort_order_from_name,
    sync_zones_from_servicetitan,
)


def fake_dispatch(zones=None, error=None):
    get_zones = AsyncMock(return_value=zones or [], side_effect=error)
    return SimpleNamespace(get_zones=get_zones)


def st_zone(zone_id, name, zips, cities=None, active=True):
    return {"id": zone_id, "name": name, "zips": zips, "cities": cities or [], "active": active}


class TestSortOrder:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("3 - North Austin", 3),
            ("12 Round Rock", 12),
            ("  7-Kyle", 7),
            ("Downtown", DEFAULT_SORT_ORDER),
            ("", DEFAULT_SORT_ORDER),
            (None, DEFAULT_SORT_ORDER),
        ],
    )
    def test_leading_number(self, name, expected):
        assert sort_order_from_name(name) == expected


class TestZoneSync:
    async def test_adds_new_zones(self, db):
        dispatch = fake_dispatch([st_zone(1, "1 - Central", ["78701", "78702"], ["Austin"])])

        result = await sync_zones_from_servicetitan(db, dispatch=dispatch)

        assert result["success"] is True
        assert result["zonesAdded"] == 1
        assert result["zipsAdded"] == 2
        zone = db.query(ServiceZone).one()
        assert zone.servicetitan_id == 1
        assert zone.sort_order == 1
        assert zone.cities == ["Austin"]

    async def test_empty_cities_stored_as_null(self, db):
        await sync_zones_from_servicetitan(db, dispatch=fake_dispatch([st_zone(1, "East", ["78721"])]))
        assert db.query(ServiceZone).one().cities is None

    async def test_updates_changed_zone_and_counts_zip_diff(self, db):
        db.add(ServiceZone(servicetitan_id=1, name="1 - Central", zip_codes=["78701", "78702"], sort_order=1))
        db.commit()

        dispatch = fake_dispatch([st_zone(1, "2 - Central", ["78702", "78703", "78704"])])
        result = await sync_zones_from_servicetitan(db, dispatch=dispatch)

        assert result["zonesUpdated"] == 1
        assert result["zipsAdded"] == 2
        assert result["zipsRemoved"] == 1
        zone = db.query(ServiceZone).one()
        assert zone.name == "2 - Central"
        assert zone.sort_order == 2
        assert sorted(zone.zip_codes) == ["78702", "78703", "78704"]

    async def test_unchanged_zone_not_counted(self, db):
        db.add(ServiceZone(servicetitan_id=1, name="Central", zip_codes=["78701"], sort_order=999))
        db.commit()

        result = await sync_zones_from_servicetitan(
            db, dispatch=fake_dispatch([st_zone(1, "Central", ["78701"])])
        )

        assert result["zonesUpdated"] == 0
        assert result["zonesAdded"] == 0

    async def test_deactivates_zones_missing_upstream(self, db):
        db.add(ServiceZone(servicetitan_id=1, name="Keep", zip_codes=["78701"]))
        db.add(ServiceZone(servicetitan_id=2, name="Gone", zip_codes=["78660"]))
        db.add(ServiceZone(servicetitan_id=None, name="Manual", zip_codes=["78610"]))
        db.commit()

        result = await sync_zones_from_servicetitan(
            db, dispatch=fake_dispatch([st_zone(1, "Keep", ["78701"])])
        )

        assert result["zonesDeactivated"] == 1
        zones = {zone.name: zone for zone in db.query(ServiceZone).all()}
        assert zones["Keep"].active is True
        assert zones["Gone"].active is False
        assert zones["Manual"].active is True

    async def test_upstream_failure_reports_error(self, db):
        result = await sync_zones_from_servicetitan(
            db, dispatch=fake_dispatch(error=RuntimeError("boom"))
        )

        assert result["success"] is False
        assert result["errors"] == ["boom"]


class TestFindZoneForZip:
    def test_lowest_sort_order_active_zone_wins(self, db):
        db.add(ServiceZone(name="B", zip_codes=["78701"], sort_order=5))
        db.add(ServiceZone(name="A", zip_codes=["78701"], sort_order=2))
        db.add(ServiceZone(name="Inactive", zip_codes=["78701"], sort_order=1, active=False))
        db.commit()

        assert find_zone_for_zip(db, "78701").name == "A"

    def test_zip_plus_four_is_truncated(self, db):
        db.add(ServiceZone(name="A", zip_codes=["78701"], sort_order=1))
        db.commit()

        assert find_zone_for_zip(db, "78701-1234").name == "A"

    def test_unknown_or_blank_zip(self, db):
        db.add(ServiceZone(name="A", zip_codes=["78701"], sort_order=1))
        db.commit()

        assert find_zone_for_zip(db, "90210") is None
        assert find_zone_for_zip(db, "") is None
