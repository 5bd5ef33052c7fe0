from __future__ import annotations

from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from models.plan import Plan, is_unlimited
from models.scan import Scan
from models.subscription import OPEN_STATUSES, Subscription
from models.table import Table
from utils import config
from utils.errors import QuotaExceeded

# --------------------------------------------------------------------------- #
# 💾 Tisch-Kontingent je Plan
# --------------------------------------------------------------------------- #


def get_active_plan(db: Session, restaurant_id: int) -> Optional[Plan]:
    sub = (
        db.query(Subscription)
        .filter(Subscription.restaurant_id == restaurant_id, Subscription.status.in_(OPEN_STATUSES))
        .order_by(Subscription.id.desc())
        .first()
    )
    return sub.plan if sub else None


def table_limit(db: Session, restaurant_id: int) -> Optional[int]:
    """None = unbegrenzt. Ohne offenes Abo gilt FREE_TABLE_LIMIT."""
    plan = get_active_plan(db, restaurant_id)
    if plan is None:
        return config.FREE_TABLE_LIMIT
    if is_unlimited(plan.max_tables):
        return None
    return plan.max_tables


def count_active_tables(db: Session, restaurant_id: int) -> int:
    return (
        db.query(Table)
        .filter(Table.restaurant_id == restaurant_id, Table.is_active.is_(True))
        .count()
    )


def can_add_tables(db: Session, restaurant_id: int, requested: int = 1) -> Tuple[bool, int, Optional[int]]:
    """
    Gibt zurück:
      (darf_erstellen, aktuell_verwendet, limit)
    """
    used = count_active_tables(db, restaurant_id)
    limit = table_limit(db, restaurant_id)
    if limit is None:
        return (True, used, None)
    return (used + requested <= limit, used, limit)


def ensure_table_quota(db: Session, restaurant_id: int, requested: int = 1) -> None:
    allowed, used, limit = can_add_tables(db, restaurant_id, requested)
    if not allowed:
        raise QuotaExceeded(limit=limit, current=used, requested=requested)


def usage(db: Session, restaurant_id: int) -> Dict[str, Optional[int]]:
    plan = get_active_plan(db, restaurant_id)
    return {
        "tables_used": count_active_tables(db, restaurant_id),
        "tables_limit": table_limit(db, restaurant_id),
        "scans_total": db.query(Scan).filter(Scan.restaurant_id == restaurant_id).count(),
        "scans_limit": None if plan is None or is_unlimited(plan.max_scans) else plan.max_scans,
    }
