"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

from clinic.models import Role, RoleConfig

load_dotenv()

# ── Storage ──────────────────────────────────────────────────────────
STORE_TIMEOUT_SECONDS = int(os.getenv("STORE_TIMEOUT_SECONDS", "10"))
PATIENT_PAGE_SIZE = 100

# ── Patients ─────────────────────────────────────────────────────────
TOKEN_PREFIX = "T"
TOKEN_WIDTH = 3
GENDERS = ("Male", "Female", "Other")

# ── Identity / API server ────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24
VERIFICATION_EXPIRY_HOURS = 24
MIN_PASSWORD_LENGTH = 6
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000")

# ── Mail ─────────────────────────────────────────────────────────────
RESEND_API_URL = "https://api.resend.com/emails"
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
MAIL_FROM = os.getenv("MAIL_FROM", "Clinic Management <onboarding@resend.dev>")
MAIL_TIMEOUT_SECONDS = 10

# ── Roles ────────────────────────────────────────────────────────────
ROLE_CONFIG = {
    Role.DOCTOR: RoleConfig(
        title="Doctor Portal",
        icon="stethoscope",
        description="Access patient records and manage prescriptions",
        redirect_to="/doctor-dashboard",
    ),
    Role.RECEPTIONIST: RoleConfig(
        title="Receptionist Portal",
        icon="user-cog",
        description="Manage patient registration and appointments",
        redirect_to="/receptionist-dashboard",
    ),
}

if set(ROLE_CONFIG) != set(Role):
    raise RuntimeError("ROLE_CONFIG must cover every Role exactly once.")

HOME_ROUTE = "/"


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
