from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from homeservices.models import SystemSetting
from homeservices.models_marketing import (
    CustomCampaign,
    CustomCampaignEmail,
    CustomCampaignSendLog,
    CustomerSegment,
    EmailSendLog,
    MarketingCustomer,
    SegmentMembership,
    SuppressedEmail,
)
from homeservices.services import custom_campaign_scheduler
from homeservices.services.custom_campaign_scheduler import (
    email_sending_enabled,
    process_custom_campaigns,
    process_drip_sequences,
    process_one_time_blasts,
)


@pytest.fixture
def sent(monkeypatch):
    mock = AsyncMock(return_value={"id": "re_123"})
    monkeypatch.setattr(custom_campaign_scheduler, "send_email", mock)
    monkeypatch.setattr(custom_campaign_scheduler, "SEND_DELAY_SECONDS", 0)
    return mock


def segment_with(db, *customers):
    segment = CustomerSegment(name="Water heater owners")
    db.add(segment)
    db.flush()
    for customer_id, email in customers:
        db.add(MarketingCustomer(id=customer_id, name=f"Customer {customer_id}", email=email))
        db.flush()
        db.add(SegmentMembership(segment_id=segment.id, customer_id=customer_id))
    db.commit()
    return segment


def campaign(db, segment, campaign_type, emails, **fields):
    record = CustomCampaign(
        name="Spring", campaign_type=campaign_type, status="active", segment_id=segment.id, **fields
    )
    record.emails = [
        CustomCampaignEmail(
            sequence_number=number,
            subject=f"Email {number}",
            html_content=f"<html><body>Email {number}</body></html>",
            plain_text_content=f"Email {number}",
            days_after_start=days,
        )
        for number, days in emails
    ]
    db.add(record)
    db.commit()
    return record


class TestMasterSwitch:
    def test_enabled_by_default(self, db):
        assert email_sending_enabled(db) is True

    def test_disabled_setting(self, db):
        db.add(SystemSetting(key="email_enabled", value=" FALSE "))
        db.commit()

        assert email_sending_enabled(db) is False

    async def test_process_skips_when_disabled(self, db, sent):
        db.add(SystemSetting(key="email_enabled", value="false"))
        db.commit()

        result = await process_custom_campaigns(db)

        assert result["message"] == "Master email switch is disabled"
        sent.assert_not_awaited()


class TestOneTimeBlast:
    async def test_sends_once_to_each_member_and_completes(self, db, sent):
        segment = segment_with(db, (1, "a@example.com"), (2, "B@Example.com"), (3, None))
        blast = campaign(db, segment, "one_time", [(1, 0)])

        assert await process_one_time_blasts(db) == 2

        db.refresh(blast)
        assert blast.status == "completed"
        assert blast.completed_at is not None
        recipients = sorted(call.kwargs["to"] for call in sent.await_args_list)
        assert recipients == ["a@example.com", "b@example.com"]
        headers = sent.await_args.kwargs["headers"]
        assert headers["X-Campaign-ID"] == blast.id
        assert "List-Unsubscribe" in headers
        assert db.query(CustomCampaignSendLog).count() == 2
        assert db.query(EmailSendLog).filter(EmailSendLog.campaign_type == "custom_campaign").count() == 2

        # completed campaigns are not picked up again
        assert await process_one_time_blasts(db) == 0

    async def test_future_schedule_waits(self, db, sent):
        segment = segment_with(db, (1, "a@example.com"))
        campaign(db, segment, "one_time", [(1, 0)], scheduled_for=datetime.utcnow() + timedelta(days=1))

        assert await process_one_time_blasts(db) == 0
        sent.assert_not_awaited()

    async def test_suppressed_member_is_skipped(self, db, sent):
        segment = segment_with(db, (1, "a@example.com"), (2, "bounced@example.com"))
        db.add(SuppressedEmail(email="bounced@example.com", reason="hard_bounce"))
        db.commit()
        campaign(db, segment, "one_time", [(1, 0)])

        assert await process_one_time_blasts(db) == 1


class TestDripSequence:
    async def test_next_email_waits_for_its_delay(self, db, sent):
        segment = segment_with(db, (1, "a@example.com"))
        drip = campaign(db, segment, "drip", [(1, 0), (2, 3)])
        soon = datetime.utcnow() + timedelta(minutes=1)

        assert await process_drip_sequences(db, now=soon) == 1
        assert sent.await_args.kwargs["subject"] == "Email 1"

        assert await process_drip_sequences(db, now=soon) == 0

        assert await process_drip_sequences(db, now=soon + timedelta(days=4)) == 1
        assert sent.await_args.kwargs["subject"] == "Email 2"

        # sequence finished
        assert await process_drip_sequences(db, now=soon + timedelta(days=30)) == 0
        logs = db.query(CustomCampaignSendLog).filter(CustomCampaignSendLog.campaign_id == drip.id).all()
        assert len(logs) == 2

    async def test_opted_out_member_gets_nothing(self, db, sent):
        from homeservices.services.email_preferences import get_or_create_preferences, unsubscribe_all

        segment = segment_with(db, (1, "a@example.com"))
        prefs = get_or_create_preferences(db, "a@example.com")
        unsubscribe_all(db, prefs.unsubscribe_token)
        campaign(db, segment, "drip", [(1, 0)])

        assert await process_drip_sequences(db, now=datetime.utcnow() + timedelta(minutes=1)) == 0
        sent.assert_not_awaited()

    async def test_provider_error_does_not_log_send(self, db, sent):
        sent.side_effect = RuntimeError("resend down")
        segment = segment_with(db, (1, "a@example.com"))
        campaign(db, segment, "drip", [(1, 0)])

        result = await process_custom_campaigns(db, now=datetime.utcnow() + timedelta(minutes=1))

        assert result["success"] is True
        assert result["dripSent"] == 0
        assert db.query(CustomCampaignSendLog).count() == 0
