# =============================================================================
# 🌍 seeds/plans_seed.py
# -----------------------------------------------------------------------------
# Standard-Tarifpläne für TableReview (idempotent, nach Name).
# =============================================================================

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.plan import Plan

logger = logging.getLogger(__name__)

DEFAULT_PLANS = [
    {
        "name": "Starter",
        "description": "Bis zu 5 Tische, Weiterleitung auf Google-Bewertungen.",
        "price": 19.0,
        "duration_months": 1,
        "max_tables": 5,
        "max_scans": 1000,
        "max_users": 1,
        "features": ["qr_redirect", "scan_stats"],
        "display_order": 1,
    },
    {
        "name": "Pro",
        "description": "Bis zu 25 Tische, Bewertungs-Erkennung per E-Mail.",
        "price": 49.0,
        "duration_months": 1,
        "max_tables": 25,
        "max_scans": 10000,
        "max_users": 3,
        "features": ["qr_redirect", "scan_stats", "review_alerts", "bulk_tables"],
        "display_order": 2,
    },
    {
        "name": "Business",
        "description": "Unbegrenzte Tische und Scans, Jahresabrechnung.",
        "price": 490.0,
        "duration_months": 12,
        "max_tables": -1,
        "max_scans": -1,
        "max_users": -1,
        "features": ["qr_redirect", "scan_stats", "review_alerts", "bulk_tables", "scan_alerts"],
        "display_order": 3,
    },
]


def seed_plans(db: Session) -> int:
    """Legt fehlende Standardpläne an. Gibt Anzahl neuer Pläne zurück."""
    created = 0
    try:
        for data in DEFAULT_PLANS:
            if db.query(Plan.id).filter(Plan.name == data["name"]).first() is None:
                db.add(Plan(**data))
                created += 1
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Seeding plans failed")
        raise
    logger.info("Plans seeded: %d new", created)
    return created


# -----------------------------------------------------------------------------
# 🏁 Direkter Startpunkt
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    from database import SessionLocal

    logging.basicConfig(level=logging.INFO)
    with SessionLocal() as session:
        seed_plans(session)
