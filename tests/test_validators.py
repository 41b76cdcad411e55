import pytest
from cryptography.fernet import InvalidToken

from homeservices.security_utils import (
    constant_time_compare,
    decrypt_token,
    encrypt_token,
    generate_preference_token,
    mask_sensitive_data,
)
from homeservices.shared.validators import (
    validate_email,
    validate_us_phone,
    validate_uuid,
    validate_zip_code,
)


class TestPhone:
    @pytest.mark.parametrize(
        "raw", ["512-555-0100", "(512) 555-0100", "+1 512 555 0100", "15125550100"]
    )
    def test_normalizes_to_e164(self, raw):
        assert validate_us_phone(raw) == "+15125550100"

    def test_rejects_short_numbers(self):
        with pytest.raises(ValueError):
            validate_us_phone("555-0100")

    def test_empty_passes_through(self):
        assert validate_us_phone(None) is None


class TestEmailAndZip:
    def test_email_lowercased(self):
        assert validate_email("  Pat@Example.COM ") == "pat@example.com"

    def test_invalid_email(self):
        with pytest.raises(ValueError):
            validate_email("pat@")

    def test_zip_plus_four_truncated(self):
        assert validate_zip_code("78701-1234") == "78701"

    @pytest.mark.parametrize("raw", ["7870", "abcde", "78701-12"])
    def test_invalid_zip(self, raw):
        with pytest.raises(ValueError):
            validate_zip_code(raw)

    def test_uuid(self):
        assert validate_uuid("6f1c8f4e-8f2b-4c6e-9d7a-1b2c3d4e5f60") is True
        assert validate_uuid("not-a-uuid") is False


class TestSecurityUtils:
    def test_token_encryption(self):
        encrypted = encrypt_token("ya29.secret")

        assert encrypted != "ya29.secret"
        assert decrypt_token(encrypted) == "ya29.secret"

    def test_tampered_token_rejected(self):
        with pytest.raises(InvalidToken):
            decrypt_token(encrypt_token("value")[:-4] + "AAAA")

    def test_preference_tokens_are_unique_hex(self):
        first, second = generate_preference_token(), generate_preference_token()

        assert first != second
        assert len(first) == 64
        int(first, 16)

    def test_compare_and_mask(self):
        assert constant_time_compare("abc", "abc") is True
        assert constant_time_compare("abc", "abd") is False
        assert mask_sensitive_data("secret-token") == "********oken"
        assert mask_sensitive_data("abc") == "***"
