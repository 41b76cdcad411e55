"""
Security helpers: token encryption at rest and constant-time comparisons
"""

import base64
import hashlib
import secrets

from cryptography.fernet import Fernet

from .config import SECRET_KEY


def get_token_cipher() -> Fernet:
    """Fernet cipher keyed from SECRET_KEY (any length) for OAuth tokens at rest"""
    key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(key)


def encrypt_token(value: str) -> str:
    return get_token_cipher().encrypt(value.encode()).decode()


def decrypt_token(value: str) -> str:
    return get_token_cipher().decrypt(value.encode()).decode()


def generate_preference_token() -> str:
    """64 hex chars, used in email preference links"""
    return secrets.token_hex(32)


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks

    Args:
        a: First string
        b: Second string

    Returns:
        True if strings are equal, False otherwise
    """
    return secrets.compare_digest(a.encode(), b.encode())


def mask_sensitive_data(data: str, visible_chars: int = 4) -> str:
    """Mask all but the last few characters for logging"""
    if len(data) <= visible_chars:
        return "*" * len(data)

    return "*" * (len(data) - visible_chars) + data[-visible_chars:]
