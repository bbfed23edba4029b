import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./adas_ops.db")

# Job state persistence: "memory" (single process, lost on restart) or "database"
JOB_STATE_BACKEND = os.getenv("JOB_STATE_BACKEND", "database").lower()

# Google Apps Script webhook fronting the Schedule / Shops sheets
GAS_WEBHOOK_URL = os.getenv("GAS_WEBHOOK_URL")
GAS_TOKEN = os.getenv("GAS_TOKEN")
RECORD_STORE_TIMEOUT = float(os.getenv("RECORD_STORE_TIMEOUT", "15"))

# Outbound email - SMTP first, Resend as fallback
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USERNAME = os.getenv("SMTP_USERNAME")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "ADAS F1RST <ops@adasf1rst.com>")

# Shown in every shop-facing email
OPS_PHONE_LINE = os.getenv("ADAS_OPS_PHONE", "(786) 456-7890")

# Audit note timestamps are rendered in the business's local time
BUSINESS_TIMEZONE = os.getenv("BUSINESS_TIMEZONE", "America/New_York")

# Verification policy. When true, a scrub with no conclusive signal either way
# is sent to the tech instead of the shop.
STRICT_VERIFICATION = os.getenv("STRICT_VERIFICATION", "false").lower() == "true"

# Review emails list at most this many detected repair operations
MAX_LISTED_OPERATIONS = int(os.getenv("MAX_LISTED_OPERATIONS", "10"))

# Pending record-store writes are replayed by the worker at most this many times
MAX_WRITE_RETRIES = int(os.getenv("MAX_WRITE_RETRIES", "5"))

# Queue routing and auto-close work on the ARQ worker (needs Redis)
BACKGROUND_JOBS_ENABLED = os.getenv("BACKGROUND_JOBS_ENABLED", "false").lower() == "true"
