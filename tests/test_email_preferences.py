import pytest

from homeservices.config import SITE_URL
from homeservices.models_marketing import EmailPreference
from homeservices.services.email_preferences import (
    UnknownEmailCategory,
    add_unsubscribe_footer,
    add_unsubscribe_footer_text,
    can_send_email,
    get_or_create_preferences,
    unsubscribe_all,
    update_preferences,
)


class TestPreferences:
    def test_created_with_everything_enabled(self, db):
        prefs = get_or_create_preferences(db, "  Pat@Example.com ", customer_id=7)

        assert prefs.email == "pat@example.com"
        assert prefs.customer_id == 7
        assert prefs.marketing_emails is True
        assert prefs.transactional_only is False
        assert len(prefs.unsubscribe_token) >= 32

    def test_existing_row_is_reused(self, db):
        first = get_or_create_preferences(db, "pat@example.com")
        second = get_or_create_preferences(db, "PAT@example.com")

        assert first.id == second.id
        assert db.query(EmailPreference).count() == 1

    def test_update_only_touches_known_fields(self, db):
        prefs = get_or_create_preferences(db, "pat@example.com")

        updated = update_preferences(
            db, prefs.unsubscribe_token, review_requests=False, marketing_emails=None, email="x@y.z"
        )

        assert updated.review_requests is False
        assert updated.marketing_emails is True
        assert updated.email == "pat@example.com"

    def test_unknown_token(self, db):
        assert update_preferences(db, "missing", marketing_emails=False) is None
        assert unsubscribe_all(db, "missing") is None

    def test_unsubscribe_all(self, db):
        prefs = get_or_create_preferences(db, "pat@example.com")

        prefs = unsubscribe_all(db, prefs.unsubscribe_token)

        assert prefs.transactional_only is True
        assert not any(
            [prefs.marketing_emails, prefs.review_requests, prefs.referral_emails, prefs.service_reminders]
        )


class TestCanSendEmail:
    def test_allowed_includes_unsubscribe_link(self, db):
        check = can_send_email(db, "pat@example.com", "marketing")

        assert check["allowed"] is True
        assert check["unsubscribe_url"] == f"{SITE_URL}/email-preferences/{check['token']}"
        assert check["list_unsubscribe_header"] == f"<{check['unsubscribe_url']}>"

    def test_category_opt_out(self, db):
        prefs = get_or_create_preferences(db, "pat@example.com")
        update_preferences(db, prefs.unsubscribe_token, review_requests=False)

        assert can_send_email(db, "pat@example.com", "review") == {
            "allowed": False,
            "reason": "Recipient has opted out of review requests",
        }
        assert can_send_email(db, "pat@example.com", "marketing")["allowed"] is True

    def test_transactional_only_blocks_everything_else(self, db):
        prefs = get_or_create_preferences(db, "pat@example.com")
        unsubscribe_all(db, prefs.unsubscribe_token)

        assert can_send_email(db, "pat@example.com", "service_reminder")["allowed"] is False
        assert can_send_email(db, "pat@example.com", "transactional")["allowed"] is True

    def test_unknown_category(self, db):
        with pytest.raises(UnknownEmailCategory):
            can_send_email(db, "pat@example.com", "newsletter")


class TestFooters:
    def test_html_footer_goes_before_body_close(self):
        html = add_unsubscribe_footer("<html><body><p>Hi</p></body></html>", "https://x.test/p?a=1&b=2")

        assert html.endswith("</div>\n</body></html>")
        assert "https://x.test/p?a=1&amp;b=2" in html

    def test_html_footer_appended_without_body(self):
        html = add_unsubscribe_footer("<p>Hi</p>", "https://x.test/p")

        assert html.startswith("<p>Hi</p>")
        assert "Manage your email preferences" in html

    def test_text_footer(self):
        text = add_unsubscribe_footer_text("Hello", "https://x.test/p")

        assert text.startswith("Hello\n\n---\n")
        assert "Unsubscribe: https://x.test/p" in text
