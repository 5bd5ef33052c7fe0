# =============================================================================
# 🗄️ database.py
# -----------------------------------------------------------------------------
# SQLAlchemy-Datenbankkonfiguration für TableReview
# Unterstützt MySQL (Produktion) + SQLite (Tests) + .env + UTC-Awareness
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote_plus

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from utils import config


def _build_database_url() -> str:
    """DATABASE_URL gewinnt, sonst MySQL-URL aus den Einzelwerten."""
    if config.DATABASE_URL:
        return config.DATABASE_URL

    # 🔹 Passwort sicher escapen (bei Sonderzeichen wie @, #, !, %)
    encoded_pass = quote_plus(config.MYSQL_PASS)
    return (
        f"mysql+pymysql://{config.MYSQL_USER}:{encoded_pass}@{config.MYSQL_HOST}:"
        f"{config.MYSQL_PORT}/{config.MYSQL_DB}?charset=utf8mb4"
    )


SQLALCHEMY_DATABASE_URL = _build_database_url()

# 🔹 Engine erstellen
# pool_pre_ping = erkennt automatisch unterbrochene Verbindungen
# pool_recycle = hält MySQL-Verbindungen frisch
_engine_kwargs: dict = {"pool_pre_ping": True}
if SQLALCHEMY_DATABASE_URL.startswith("sqlite"):
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    _engine_kwargs["pool_recycle"] = 280

engine = create_engine(SQLALCHEMY_DATABASE_URL, **_engine_kwargs)

# 🔹 SessionFactory – erzeugt Session für jede Anfrage
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# 🔹 Basisklasse für alle SQLAlchemy-Modelle
Base = declarative_base()


# 🔹 Dependency für FastAPI
def get_db():
    """
    Erstellt eine neue Datenbank-Session pro Anfrage und schließt sie automatisch.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def utc_now() -> datetime:
    """Gibt aktuelle UTC-Zeit (timezone-aware) zurück."""
    return datetime.now(timezone.utc)


def as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """SQLite liefert naive Zeitstempel zurück – hier einheitlich nach UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
