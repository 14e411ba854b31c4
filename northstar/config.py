import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./northstar.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for links in emails
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Comma separated browser origins allowed by CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

# Business settings
BUSINESS_NAME = os.getenv("BUSINESS_NAME", "North Star Accounting")
# IANA zone the business hours are expressed in (e.g. "America/Chicago")
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "UTC")
DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "30"))

# Invoicing
INVOICE_DUE_DAYS = int(os.getenv("INVOICE_DUE_DAYS", "15"))

# iCloud CalDAV
ICLOUD_CALDAV_URL = os.getenv("ICLOUD_CALDAV_URL", "https://caldav.icloud.com")
# Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
ICLOUD_ENCRYPTION_KEY = os.getenv("ICLOUD_ENCRYPTION_KEY")
EXTERNAL_CALENDAR_TIMEOUT = float(os.getenv("EXTERNAL_CALENDAR_TIMEOUT", "5"))
EXTERNAL_EVENTS_CACHE_TTL = int(os.getenv("EXTERNAL_EVENTS_CACHE_TTL", "120"))  # seconds

# Resend Email Configuration
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "North Star <billing@northstar.example>")
