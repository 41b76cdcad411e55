import io
import logging
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from homeservices import config
from homeservices.integrations.servicetitan.auth import ServiceTitanAPIError, ServiceTitanNotConfigured
from homeservices.integrations.servicetitan.portal import PortalAccessDenied
from homeservices.models import SchedulerRequest, ServiceZone
from homeservices.models_marketing import CustomCampaign, MarketingCustomer, SegmentMembership
from homeservices.models_photos import Photo
from homeservices.routes import google_drive as drive_routes
from homeservices.routes import photos as photo_routes
from homeservices.routes import portal as portal_routes
from homeservices.routes import scheduler as scheduler_routes
from homeservices.routes import servicetitan as servicetitan_routes
from homeservices.services.booking_service import BookingFailed
from homeservices.services.email_preferences import get_or_create_preferences

BOOKING = {
    "customer_name": "Pat Doe",
    "phone": "512-555-0100",
    "email": "pat@example.com",
    "address": "1 Elm St",
    "zip_code": "78701",
    "requested_service": "Drain Cleaning",
}


class TestHealth:
    def test_root_and_health(self, api_client):
        assert api_client.get("/").json() == {"message": "Home Services API is running"}
        assert api_client.get("/health").json() == {"status": "healthy"}

    def test_requests_are_logged(self, api_client, caplog):
        with caplog.at_level(logging.INFO, logger="homeservices.main"):
            api_client.get("/health")

        assert any("GET /health - 200" in record.getMessage() for record in caplog.records)


class TestAdminAuth:
    def test_missing_header_is_401(self, api_client):
        response = api_client.get("/servicetitan/job-types")

        assert response.status_code in (401, 403)

    def test_wrong_token_is_401(self, api_client):
        response = api_client.get("/campaigns", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    def test_unconfigured_admin_token_is_503(self, api_client, admin_headers, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_API_TOKEN", None)

        assert api_client.get("/campaigns", headers=admin_headers).status_code == 503

    def test_valid_token(self, api_client, admin_headers):
        assert api_client.get("/campaigns", headers=admin_headers).json() == []


class TestZones:
    def test_list_and_lookup_are_public(self, api_client, db):
        db.add(ServiceZone(name="1 - Central", zip_codes=["78701"], sort_order=1))
        db.add(ServiceZone(name="Old", zip_codes=["78702"], sort_order=2, active=False))
        db.commit()

        assert [zone["name"] for zone in api_client.get("/zones").json()] == ["1 - Central"]
        assert len(api_client.get("/zones", params={"include_inactive": True}).json()) == 2
        assert api_client.get("/zones/lookup/78701").json()["name"] == "1 - Central"
        assert api_client.get("/zones/lookup/90210").status_code == 404

    def test_sync_requires_admin(self, api_client):
        assert api_client.post("/zones/sync", headers={"Authorization": "Bearer nope"}).status_code == 401


class TestScheduler:
    def test_book_success(self, api_client, db, monkeypatch):
        async def fake_book(session, request):
            record = SchedulerRequest(
                customer_name=request.customer_name,
                customer_phone=request.phone,
                address=request.address,
                requested_service=request.requested_service,
                status="confirmed",
                servicetitan_job_id=900,
                servicetitan_job_number="1234",
            )
            session.add(record)
            session.commit()
            return record

        monkeypatch.setattr(scheduler_routes, "book_appointment", fake_book)
        db.add(ServiceZone(name="1 - Central", zip_codes=["78701"], sort_order=1))
        db.commit()

        response = api_client.post("/scheduler/book", json=BOOKING)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "confirmed"
        assert body["job_number"] == "1234"
        assert body["zone"] == "1 - Central"

    @pytest.mark.parametrize(
        "cause,status",
        [(RuntimeError("timeout"), 502), (ServiceTitanNotConfigured(), 503)],
    )
    def test_book_failure_returns_request_id(self, api_client, db, monkeypatch, cause, status):
        record = SchedulerRequest(
            customer_name="Pat", customer_phone="+15125550100", address="1 Elm St",
            requested_service="Drain Cleaning", status="failed",
        )
        db.add(record)
        db.commit()
        error = BookingFailed(record, str(cause))
        error.__cause__ = cause
        monkeypatch.setattr(scheduler_routes, "book_appointment", AsyncMock(side_effect=error))

        response = api_client.post("/scheduler/book", json=BOOKING)

        assert response.status_code == status
        assert response.json()["detail"]["request_id"] == record.public_id

    def test_invalid_phone_is_422(self, api_client):
        response = api_client.post("/scheduler/book", json={**BOOKING, "phone": "12"})

        assert response.status_code == 422

    def test_past_date_rejected(self, api_client):
        yesterday = (date.today() - timedelta(days=1)).isoformat()

        assert api_client.get("/scheduler/availability", params={"date": yesterday}).status_code == 400

    def test_availability(self, api_client, monkeypatch):
        settings = MagicMock()
        settings.find_job_type_by_name = AsyncMock(return_value={"id": 5, "businessUnitIds": [9]})
        settings.get_available_slots_for_day = AsyncMock(return_value=[{"start": "08:00", "available": True}])
        settings.get_arrival_windows = AsyncMock(return_value=[{"start": "08:00", "end": "12:00"}])
        monkeypatch.setattr(scheduler_routes, "servicetitan_settings", settings)
        day = date.today() + timedelta(days=2)

        response = api_client.get("/scheduler/availability", params={"date": day.isoformat(), "jobType": "Drain"})

        assert response.status_code == 200
        assert response.json()["slots"] == [{"start": "08:00", "available": True}]
        settings.get_available_slots_for_day.assert_awaited_once_with(day, 9, 5)


class TestEmailPreferenceRoutes:
    def test_get_update_and_unsubscribe(self, api_client, db):
        token = get_or_create_preferences(db, "pat@example.com").unsubscribe_token

        assert api_client.get(f"/email-preferences/{token}").json()["marketing_emails"] is True

        updated = api_client.put(f"/email-preferences/{token}", json={"review_requests": False}).json()
        assert updated["review_requests"] is False
        assert updated["marketing_emails"] is True

        unsubscribed = api_client.post(f"/email-preferences/{token}/unsubscribe").json()
        assert unsubscribed["transactional_only"] is True

    def test_unknown_token_is_404(self, api_client):
        assert api_client.get("/email-preferences/unknown").status_code == 404
        assert api_client.post("/email-preferences/unknown/unsubscribe").status_code == 404


class TestCampaignRoutes:
    def test_create_campaign_and_emails(self, api_client, admin_headers, db):
        created = api_client.post(
            "/campaigns", json={"name": "Spring", "campaign_type": "one_time"}, headers=admin_headers
        ).json()
        assert created["status"] == "draft"

        first = api_client.post(
            f"/campaigns/{created['id']}/emails",
            json={"subject": "Hello", "html_content": "<p>Hi</p>"},
            headers=admin_headers,
        )
        assert first.json()["sequence_number"] == 1

        second = api_client.post(
            f"/campaigns/{created['id']}/emails",
            json={"subject": "Again", "html_content": "<p>Hi</p>"},
            headers=admin_headers,
        )
        assert second.status_code == 400

    def test_invalid_type_is_422(self, api_client, admin_headers):
        response = api_client.post("/campaigns", json={"name": "X", "campaign_type": "weekly"}, headers=admin_headers)

        assert response.status_code == 422

    def test_segment_members_upsert(self, api_client, admin_headers, db):
        campaign = CustomCampaign(name="Drip", campaign_type="drip")
        db.add(campaign)
        db.commit()
        url = f"/campaigns/{campaign.id}/segment-members"

        first = api_client.post(
            url,
            json={"members": [{"customer_id": 1, "email": "A@Example.com"}, {"customer_id": 2, "name": "Bo"}]},
            headers=admin_headers,
        ).json()
        second = api_client.post(
            url, json={"members": [{"customer_id": 1, "name": "Al"}]}, headers=admin_headers
        ).json()

        assert first["added"] == 2
        assert second == {"segmentId": first["segmentId"], "added": 0, "total": 2}
        customer = db.get(MarketingCustomer, 1)
        db.refresh(customer)
        assert customer.email == "a@example.com"
        assert customer.name == "Al"
        assert db.query(SegmentMembership).count() == 2

    def test_status_change(self, api_client, admin_headers, db):
        campaign = CustomCampaign(name="Drip", campaign_type="drip", status="completed")
        db.add(campaign)
        db.commit()

        assert api_client.post(f"/campaigns/{campaign.id}/status/active", headers=admin_headers).status_code == 400
        assert api_client.post(f"/campaigns/{campaign.id}/status/bogus", headers=admin_headers).status_code == 400
        assert api_client.post("/campaigns/missing/status/active", headers=admin_headers).status_code == 404


class TestPortalRoutes:
    def test_foreign_location_is_403(self, api_client, admin_headers, monkeypatch):
        monkeypatch.setattr(
            portal_routes.servicetitan_portal,
            "get_location_details",
            AsyncMock(side_effect=PortalAccessDenied("nope")),
        )

        response = api_client.get("/portal/customers/7/locations/99", headers=admin_headers)

        assert response.status_code == 403

    def test_servicetitan_404_maps_through(self, api_client, admin_headers, monkeypatch):
        monkeypatch.setattr(
            portal_routes.servicetitan_portal,
            "get_customer_portal_data",
            AsyncMock(side_effect=ServiceTitanAPIError(404, "Customer not found")),
        )

        assert api_client.get("/portal/customers/7", headers=admin_headers).status_code == 404


class TestServiceTitanRoutes:
    def test_job_range_must_be_ordered(self, api_client, admin_headers):
        response = api_client.get(
            "/servicetitan/jobs",
            params={"start": "2024-01-16T00:00:00", "end": "2024-01-15T00:00:00"},
            headers=admin_headers,
        )

        assert response.status_code == 400

    def test_empty_reschedule_rejected(self, api_client, admin_headers):
        response = api_client.post("/servicetitan/appointments/5/reschedule", json={}, headers=admin_headers)

        assert response.status_code == 400

    def test_upstream_error_is_502(self, api_client, admin_headers, monkeypatch):
        monkeypatch.setattr(
            servicetitan_routes.servicetitan_jobs,
            "cancel_job",
            AsyncMock(side_effect=ServiceTitanAPIError(500, "boom")),
        )

        response = api_client.post("/servicetitan/jobs/5/cancel", json={"reason_id": 1}, headers=admin_headers)

        assert response.status_code == 502

    def test_bad_id_list(self, api_client, admin_headers):
        response = api_client.get(
            "/servicetitan/appointments/assignments", params={"appointmentIds": "1,x"}, headers=admin_headers
        )

        assert response.status_code == 400


class TestPhotoRoutes:
    def test_upload_is_analyzed_and_stored(self, api_client, admin_headers, db, monkeypatch):
        monkeypatch.setattr(
            photo_routes,
            "analyze_production_photo",
            AsyncMock(
                return_value={
                    "isProductionQuality": True,
                    "qualityScore": 91,
                    "qualityReason": "Sharp",
                    "category": "drain-cleaning",
                    "description": "Camera inspection",
                    "tags": ["drain"],
                    "focalPointX": 50,
                    "focalPointY": 40,
                    "focalPointReason": "Center",
                }
            ),
        )
        upload = MagicMock(side_effect=lambda content, key, content_type: f"https://cdn.example.com/{key}")
        monkeypatch.setattr(photo_routes, "upload_photo", upload)
        buffer = io.BytesIO()
        Image.new("RGB", (32, 32), "white").save(buffer, format="PNG")

        response = api_client.post(
            "/photos/analyze",
            files={"file": ("drain cam.png", buffer.getvalue(), "image/png")},
            data={"job_id": "J9"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["photo"]["category"] == "drain-cleaning"
        assert body["photo"]["job_id"] == "J9"
        key = upload.call_args.args[1]
        assert key.startswith("photos/J9/") and key.endswith("_drain_cam.webp")
        assert db.query(Photo).count() == 1

    def test_non_image_rejected(self, api_client, admin_headers):
        response = api_client.post(
            "/photos/analyze", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=admin_headers
        )

        assert response.status_code == 400

    def test_composites_need_two_photos(self, api_client, admin_headers, db):
        db.add(Photo(photo_url="u1", job_id="J1"))
        db.commit()

        assert api_client.post("/photos/jobs/J1/composites", headers=admin_headers).status_code == 400


class TestGoogleDriveRoutes:
    def test_status_when_disconnected(self, api_client, admin_headers):
        assert api_client.get("/google-drive/status", headers=admin_headers).json()["connected"] is False

    def test_connect_builds_consent_url(self, api_client, admin_headers, monkeypatch):
        monkeypatch.setattr(drive_routes, "GOOGLE_CLIENT_ID", "client-id")
        monkeypatch.setattr(drive_routes, "GOOGLE_CLIENT_SECRET", "client-secret")

        url = api_client.get("/google-drive/connect", headers=admin_headers).json()["authorization_url"]

        assert "client_id=client-id" in url
        assert "drive.readonly" in url
        assert "access_type=offline" in url
