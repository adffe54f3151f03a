from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ── Paths ──────────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT / "data")))
UPLOADS_DIR = DATA_DIR / "uploads"
ARCHIVES_DIR = DATA_DIR / "archives"
# Optional Excel requirement matrix; the built-in table is used when unset
CATALOG_PATH: str = os.getenv("CATALOG_PATH", "")

# ── WhatsApp Cloud API ─────────────────────────────────────────────────
WHATSAPP_ACCESS_TOKEN: str = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
WHATSAPP_PHONE_NUMBER_ID: str = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
WHATSAPP_VERIFY_TOKEN: str = os.getenv("WHATSAPP_VERIFY_TOKEN", "loan_bot_verify_token")
GRAPH_API_VERSION: str = os.getenv("GRAPH_API_VERSION", "v21.0")

# ── E-mail forwarding ──────────────────────────────────────────────────
EMAIL_HOST: str = os.getenv("EMAIL_HOST", "smtp.gmail.com")
EMAIL_PORT: int = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USER: str = os.getenv("EMAIL_USER", "")
EMAIL_PASS: str = os.getenv("EMAIL_PASS", "")
EMAIL_FROM: str = os.getenv("EMAIL_FROM", "") or EMAIL_USER
EMAIL_TO: str = os.getenv("EMAIL_TO", "team@example.com")

# ── Conversation lifecycle ─────────────────────────────────────────────
SESSION_TIMEOUT_MINUTES: float = float(os.getenv("SESSION_TIMEOUT_MINUTES", "30"))
SESSION_SWEEP_INTERVAL_SECONDS: float = float(
    os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "300")
)
ARCHIVE_GRACE_SECONDS: float = float(os.getenv("ARCHIVE_GRACE_SECONDS", "5"))
# When every document was skipped: still build and e-mail an empty package?
FORWARD_EMPTY_PACKAGES: bool = _flag("FORWARD_EMPTY_PACKAGES")
RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "30"))

# ── Logging ────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ── Ensure runtime dirs exist ──────────────────────────────────────────
UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
ARCHIVES_DIR.mkdir(parents=True, exist_ok=True)
