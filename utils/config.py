"""
utils/config.py
────────────────────────────────────────────
Zentrale Umgebungs-Konfiguration (.env + os.getenv).
Alle Werte werden einmal beim Import gelesen.
────────────────────────────────────────────
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# 🌍 .env aus dem Projektverzeichnis laden (muss vor allen getenv-Aufrufen passieren)
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# 🗄️ Datenbank
# ---------------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
MYSQL_USER = os.getenv("MYSQL_USER", "root")
MYSQL_PASS = os.getenv("MYSQL_PASS", "")
MYSQL_HOST = os.getenv("MYSQL_HOST", "localhost")
MYSQL_PORT = os.getenv("MYSQL_PORT", "3306")
MYSQL_DB = os.getenv("MYSQL_DB", "table_review")
DB_AUTO_CREATE = _env_flag("DB_AUTO_CREATE", True)

# ---------------------------------------------------------------------------
# 🌐 Öffentliche URL (landet im QR-Bild)
# ---------------------------------------------------------------------------
APP_DOMAIN = os.getenv("APP_DOMAIN", "http://127.0.0.1:8000").rstrip("/")

# ---------------------------------------------------------------------------
# ⭐ Google Places / Review-Erkennung
# ---------------------------------------------------------------------------
GOOGLE_PLACES_API_KEY = os.getenv("GOOGLE_PLACES_API_KEY", "").strip()
GOOGLE_PLACES_LANGUAGE = os.getenv("GOOGLE_PLACES_LANGUAGE", "de")
GOOGLE_PLACES_TIMEOUT_SECONDS = _env_int("GOOGLE_PLACES_TIMEOUT_SECONDS", 10)

REVIEW_WORKER_ENABLED = _env_flag("REVIEW_WORKER_ENABLED", True)
REVIEW_FIRST_CHECK_DELAY_SECONDS = _env_int("REVIEW_FIRST_CHECK_DELAY_SECONDS", 3 * 60)
REVIEW_CHECK_INTERVAL_SECONDS = _env_int("REVIEW_CHECK_INTERVAL_SECONDS", 2 * 60)
REVIEW_MAX_ATTEMPTS = _env_int("REVIEW_MAX_ATTEMPTS", 10)
REVIEW_MAX_ERROR_RETRIES = _env_int("REVIEW_MAX_ERROR_RETRIES", 3)
REVIEW_ERROR_RETRY_DELAY_SECONDS = _env_int("REVIEW_ERROR_RETRY_DELAY_SECONDS", 5 * 60)
REVIEW_SWEEP_INTERVAL_SECONDS = _env_int("REVIEW_SWEEP_INTERVAL_SECONDS", 30)
REVIEW_BASELINE_REFRESH_SECONDS = _env_int("REVIEW_BASELINE_REFRESH_SECONDS", 2 * 60)
REVIEW_NOTIFY_NO_REVIEW = _env_flag("REVIEW_NOTIFY_NO_REVIEW", False)

# ---------------------------------------------------------------------------
# 📱 Scan-Schutz (Cooldowns)
# ---------------------------------------------------------------------------
SCAN_DEDUP_SECONDS = _env_int("SCAN_DEDUP_SECONDS", 10)
SCAN_NOTIFY_COOLDOWN_SECONDS = _env_int("SCAN_NOTIFY_COOLDOWN_SECONDS", 5 * 60)
COOLDOWN_BACKEND = os.getenv("COOLDOWN_BACKEND", "memory").strip().lower()
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# ---------------------------------------------------------------------------
# 📧 SMTP
# ---------------------------------------------------------------------------
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_FROM = os.getenv("SMTP_FROM", SMTP_USER or "noreply@localhost")
NOTIFICATION_EMAIL = os.getenv("NOTIFICATION_EMAIL", "")

# ---------------------------------------------------------------------------
# 💼 Kontingente
# ---------------------------------------------------------------------------
FREE_TABLE_LIMIT = _env_int("FREE_TABLE_LIMIT", 5)
BULK_TABLE_MAX = 50

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
