"""
Photo storage on Cloudflare R2.
Photos and composites are stored as public objects; reads also accept
plain http(s) URLs and local file paths for photos imported before R2.
"""

import logging
import re
from pathlib import Path
from typing import Optional

import boto3
import httpx
from botocore.client import Config
from botocore.exceptions import ClientError

from ..config import (
    R2_ACCESS_KEY_ID,
    R2_ACCOUNT_ID,
    R2_BUCKET_NAME,
    R2_PUBLIC_URL,
    R2_SECRET_ACCESS_KEY,
)

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 30.0
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def get_r2_client():
    """Get configured boto3 client for Cloudflare R2"""
    return boto3.client(
        "s3",
        endpoint_url=f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=Config(signature_version="s3v4"),
        region_name="auto",
    )


def sanitize_filename(filename: str, max_length: int = 100) -> str:
    stem = Path(filename or "photo").stem
    return _UNSAFE_CHARS.sub("_", stem)[:max_length] or "photo"


def public_url_for(key: str) -> str:
    if R2_PUBLIC_URL:
        return f"{R2_PUBLIC_URL}/{key}"
    return f"https://{R2_BUCKET_NAME}.{R2_ACCOUNT_ID}.r2.cloudflarestorage.com/{key}"


def upload_photo(content: bytes, key: str, content_type: str = "image/webp") -> str:
    """Upload bytes to R2 and return the public URL"""
    get_r2_client().put_object(
        Bucket=R2_BUCKET_NAME,
        Key=key,
        Body=content,
        ContentType=content_type,
    )
    logger.info(f"📸 Uploaded {key} ({len(content)} bytes)")
    return public_url_for(key)


def delete_photo_object(key: Optional[str]) -> bool:
    if not key:
        return False
    try:
        get_r2_client().delete_object(Bucket=R2_BUCKET_NAME, Key=key)
        return True
    except ClientError as e:
        logger.error(f"❌ Failed to delete {key} from R2: {e}")
        return False


async def download_photo(location: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    """Fetch photo bytes from an http(s) URL or a local path"""
    if location.startswith(("http://", "https://")):
        async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT, transport=transport) as client:
            response = await client.get(location, follow_redirects=True)
            response.raise_for_status()
            return response.content

    return Path(location.lstrip("/")).read_bytes()
