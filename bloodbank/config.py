"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Roles ────────────────────────────────────────────────────────────
ROLE_REGULAR_USER = "regular_user"
ROLE_MEDICAL_STAFF = "medical_staff"
ROLES = {ROLE_REGULAR_USER, ROLE_MEDICAL_STAFF}

# ── Collections ──────────────────────────────────────────────────────
USER_ROLES = "user_roles"
BLOOD_REQUESTS = "blood_requests"
LEDGER = "blockchain_ledger"
USER_PROFILES = "user_profiles"
DONATION_HISTORY = "donation_history"

# ── Ledger vocabulary ────────────────────────────────────────────────
BLOOD_TYPES = {"A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"}

STATUS_VERIFIED = "Verified"
LEDGER_STATUSES = (
    STATUS_VERIFIED,
    "In Storage",
    "In Transit",
    "Delivered",
    "Transfused",
    "Discarded",
)

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
TOKEN_EXPIRY_HOURS = int(os.getenv("TOKEN_EXPIRY_HOURS", "24"))

# Shared secret for the sign-up hook; the hook is disabled when unset.
NEW_USER_HOOK_SECRET = os.getenv("NEW_USER_HOOK_SECRET", "")


def donation_history_path(uid: str) -> str:
    """Collection path of a donor's private donation history."""
    return f"{USER_PROFILES}/{uid}/{DONATION_HISTORY}"


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
