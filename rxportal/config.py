"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Database ─────────────────────────────────────────────────────────
DATABASE_URL = os.getenv("DATABASE_URL", "")
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
DB_CONNECT_TIMEOUT_SECONDS = int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "5"))
READY_TIMEOUT_SECONDS = float(os.getenv("READY_TIMEOUT_SECONDS", "2"))

# ── API server ───────────────────────────────────────────────────────
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8080"))
WEB_ORIGIN = os.getenv("WEB_ORIGIN", "http://localhost:5173")

# ── Authentication ───────────────────────────────────────────────────
# "header" trusts X-Role / X-User-ID; "jwt" expects a signed bearer token.
AUTH_MODE = os.getenv("AUTH_MODE", "header").strip().lower()
TOKEN_EXPIRY_HOURS = 24
ROLES = ("admin", "physician", "patient")

# ── Request limits ───────────────────────────────────────────────────
DEFAULT_PRESCRIPTION_LIMIT = 50
MAX_PRESCRIPTION_LIMIT = 200
DEFAULT_TOP_DRUGS_LIMIT = 10
MAX_TOP_DRUGS_LIMIT = 100
MAX_DRUG_NAME_CHARS = 200
MAX_SIG_CHARS = 500

# ── CLI ──────────────────────────────────────────────────────────────
MAX_PREVIEW_ROWS = 20


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value


def parse_origins(value: str):
    """Split a comma-separated origin list; "*" stays a wildcard."""
    value = (value or "").strip()
    if value == "*":
        return "*"
    return [part.strip() for part in value.split(",") if part.strip()]
