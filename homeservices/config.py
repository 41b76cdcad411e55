import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./homeservices.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Bearer token for admin dashboard API calls
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

# Public site used in unsubscribe links and captions
SITE_URL = os.getenv("SITE_URL", "https://www.plumbersthatcare.com").rstrip("/")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},{SITE_URL}").split(",")
    if origin.strip()
]

# ServiceTitan API Configuration
SERVICETITAN_CLIENT_ID = os.getenv("SERVICETITAN_CLIENT_ID")
SERVICETITAN_CLIENT_SECRET = os.getenv("SERVICETITAN_CLIENT_SECRET")
SERVICETITAN_TENANT_ID = os.getenv("SERVICETITAN_TENANT_ID")
SERVICETITAN_APP_KEY = os.getenv("SERVICETITAN_APP_KEY")
SERVICETITAN_AUTH_URL = os.getenv("SERVICETITAN_AUTH_URL", "https://auth.servicetitan.io").rstrip("/")
SERVICETITAN_API_URL = os.getenv("SERVICETITAN_API_URL", "https://api.servicetitan.io").rstrip("/")
# Defaults used by website bookings when no job type matches the requested service
SERVICETITAN_DEFAULT_BUSINESS_UNIT_ID = int(os.getenv("SERVICETITAN_DEFAULT_BUSINESS_UNIT_ID", "0") or 0)
SERVICETITAN_DEFAULT_JOB_TYPE_ID = int(os.getenv("SERVICETITAN_DEFAULT_JOB_TYPE_ID", "0") or 0)
SERVICETITAN_DEFAULT_CAMPAIGN_ID = int(os.getenv("SERVICETITAN_DEFAULT_CAMPAIGN_ID", "0") or 0)

# OpenAI Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_VISION_MODEL = os.getenv("OPENAI_VISION_MODEL", "gpt-4o")

# Google Drive OAuth Configuration
# Note: GOOGLE_DRIVE_REDIRECT_URI should point to FRONTEND (not backend API)
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_DRIVE_REDIRECT_URI = os.getenv(
    "GOOGLE_DRIVE_REDIRECT_URI", f"{FRONTEND_URL}/admin/google-drive/callback"
)
GOOGLE_DRIVE_FOLDER_ID = os.getenv("GOOGLE_DRIVE_FOLDER_ID")

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv(
    "EMAIL_FROM_ADDRESS", "Economy Plumbing Services <hello@plumbersthatcare.com>"
)
EMAIL_REPLY_TO_ADDRESS = os.getenv("EMAIL_REPLY_TO_ADDRESS", "hello@plumbersthatcare.com")
BUSINESS_PHONE = os.getenv("BUSINESS_PHONE", "(512) 396-7811")
BUSINESS_ADDRESS = os.getenv("BUSINESS_ADDRESS", "Austin, TX")

# Cloudflare R2 Configuration (photo storage)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY")
R2_BUCKET_NAME = os.getenv("R2_BUCKET_NAME", "homeservices-photos")
R2_PUBLIC_URL = os.getenv("R2_PUBLIC_URL", "").rstrip("/")

# Local wall-clock zone for arrival windows and daily job boundaries
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/Chicago")
