from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from models.plan import Plan

router = APIRouter(tags=["Public"])


@router.get("/plans")
def list_plans(db: Session = Depends(get_db)):
    """Aktive Pläne für die Preisseite."""
    plans = (
        db.query(Plan)
        .filter(Plan.is_active.is_(True))
        .order_by(Plan.display_order.asc(), Plan.price.asc())
        .all()
    )
    return {
        "items": [
            {
                "id": p.id,
                "name": p.name,
                "description": p.description,
                "price": p.price,
                "duration_months": p.duration_months,
                "max_tables": p.max_tables,
                "max_scans": p.max_scans,
                "features": p.features or [],
            }
            for p in plans
        ]
    }


@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        database = "error"
    return {"status": "ok" if database == "ok" else "degraded", "database": database}
