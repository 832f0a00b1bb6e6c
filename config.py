import os

SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY")

APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000").rstrip("/")

RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
INVITE_FROM_EMAIL = os.environ.get("INVITE_FROM_EMAIL", "Coach Log <onboarding@resend.dev>")

LOG_LEVEL = os.environ.get("COACHLOG_LOG_LEVEL", "INFO").upper()
