# =============================================================================
# 🪑 utils/tables.py
# -----------------------------------------------------------------------------
# Tische + QR-Codes anlegen, (de)aktivieren.
# Kontingent wird IMMER vor dem ersten Schreibzugriff geprüft.
# =============================================================================

from __future__ import annotations

import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.qrcode import QRCode, generate_code
from models.restaurant import Restaurant
from models.table import Table
from utils import config
from utils.codes import build_scan_url, build_short_code
from utils.errors import DuplicateEntity
from utils.quota import ensure_table_quota
from utils.redirects import select_redirect_url

logger = logging.getLogger(__name__)


def _table_exists(db: Session, restaurant_id: int, table_number: str) -> bool:
    return (
        db.query(Table.id)
        .filter(Table.restaurant_id == restaurant_id, Table.table_number == table_number)
        .first()
        is not None
    )


def _unique_code(db: Session) -> str:
    for _ in range(10):
        code = generate_code()
        if db.query(QRCode.id).filter(QRCode.code == code).first() is None:
            return code
    raise RuntimeError("Could not generate a unique QR code")


def _unique_short_code(db: Session, restaurant: Restaurant, table: Table) -> str:
    base = build_short_code(restaurant.slug, table.table_number)
    candidate, n = base, 2
    while db.query(QRCode.id).filter(QRCode.short_code == candidate).first() is not None:
        candidate = f"{base}-{n}"
        n += 1
    return candidate


def _new_qr_code(db: Session, restaurant: Restaurant, table: Table) -> QRCode:
    code = _unique_code(db)
    qr = QRCode(
        code=code,
        short_code=_unique_short_code(db, restaurant, table),
        table_id=table.id,
        restaurant_id=restaurant.id,
        is_active=True,
        tracking_url=build_scan_url(code),
        redirect_url=select_redirect_url(restaurant),
        scan_count=0,
    )
    db.add(qr)
    return qr


def ensure_qr_code(db: Session, table: Table) -> QRCode:
    """
    Idempotent: existiert für den Tisch schon ein Code, wird genau dieser
    zurückgegeben (ggf. reaktiviert). Gedruckte QR-Bilder bleiben gültig.
    """
    existing = db.query(QRCode).filter(QRCode.table_id == table.id).first()
    if existing is not None:
        if not existing.is_active:
            existing.is_active = True
            db.commit()
            logger.info("QR code %s reactivated for table %s", existing.code, table.id)
        return existing

    restaurant = db.get(Restaurant, table.restaurant_id)
    qr = _new_qr_code(db, restaurant, table)
    try:
        db.commit()
    except IntegrityError:
        # Parallel erzeugt → den vorhandenen nehmen
        db.rollback()
        existing = db.query(QRCode).filter(QRCode.table_id == table.id).first()
        if existing is None:
            raise
        return existing
    db.refresh(qr)
    logger.info("QR code %s created for restaurant %s table %s", qr.code, restaurant.id, table.table_number)
    return qr


def create_table(
    db: Session,
    restaurant: Restaurant,
    table_number: str,
    name: Optional[str] = None,
    location: Optional[str] = None,
    with_qr: bool = True,
) -> Table:
    number = table_number.strip()
    if _table_exists(db, restaurant.id, number):
        raise DuplicateEntity(f"Table number '{number}' already exists")
    ensure_table_quota(db, restaurant.id, 1)

    table = Table(
        restaurant_id=restaurant.id,
        table_number=number,
        name=name or f"Tisch {number}",
        location=location,
        is_active=True,
        scan_count=0,
    )
    db.add(table)
    db.flush()
    if with_qr:
        _new_qr_code(db, restaurant, table)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateEntity(f"Table number '{number}' already exists") from exc
    db.refresh(table)
    logger.info("Table %s created for restaurant %s", table.table_number, restaurant.id)
    return table


def _next_start_number(db: Session, restaurant_id: int, prefix: str) -> int:
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    numbers = [
        int(m.group(1))
        for (value,) in db.query(Table.table_number).filter(Table.restaurant_id == restaurant_id)
        if (m := pattern.match(value or ""))
    ]
    return max(numbers, default=0) + 1


def bulk_create_tables(
    db: Session,
    restaurant: Restaurant,
    count: int,
    prefix: str = "T",
    start_number: Optional[int] = None,
    location: Optional[str] = None,
) -> List[Table]:
    """
    Legt bis zu BULK_TABLE_MAX Tische an; bereits vorhandene Nummern werden
    übersprungen. Das Kontingent gilt für den ganzen Stapel (alles oder nichts).
    """
    if count < 1 or count > config.BULK_TABLE_MAX:
        raise ValueError(f"count must be between 1 and {config.BULK_TABLE_MAX}")

    start = start_number if start_number is not None else _next_start_number(db, restaurant.id, prefix)
    numbers = [f"{prefix}{start + i}" for i in range(count)]
    new_numbers = [n for n in numbers if not _table_exists(db, restaurant.id, n)]
    if not new_numbers:
        raise DuplicateEntity("All table numbers already exist")

    ensure_table_quota(db, restaurant.id, len(new_numbers))

    created: List[Table] = []
    for number in new_numbers:
        table = Table(
            restaurant_id=restaurant.id,
            table_number=number,
            name=f"Tisch {number}",
            location=location,
            is_active=True,
            scan_count=0,
        )
        db.add(table)
        db.flush()
        _new_qr_code(db, restaurant, table)
        created.append(table)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateEntity("Table numbers collided during bulk create") from exc

    for table in created:
        db.refresh(table)
    logger.info("%d tables bulk-created for restaurant %s", len(created), restaurant.id)
    return created


def set_table_active(db: Session, table: Table, active: bool) -> Table:
    if active and not table.is_active:
        ensure_table_quota(db, table.restaurant_id, 1)
    table.is_active = active
    db.commit()
    db.refresh(table)
    return table


def deactivate_restaurant(db: Session, restaurant: Restaurant) -> int:
    """Restaurant + alle Tische soft-deaktivieren. Gibt Anzahl betroffener Tische zurück."""
    restaurant.is_active = False
    affected = (
        db.query(Table)
        .filter(Table.restaurant_id == restaurant.id, Table.is_active.is_(True))
        .update({Table.is_active: False}, synchronize_session=False)
    )
    db.commit()
    logger.info("Restaurant %s deactivated (%d tables)", restaurant.id, affected)
    return affected


def activate_restaurant(db: Session, restaurant: Restaurant, reactivate_tables: bool = False) -> int:
    restaurant.is_active = True
    affected = 0
    if reactivate_tables:
        affected = (
            db.query(Table)
            .filter(Table.restaurant_id == restaurant.id, Table.is_active.is_(False))
            .update({Table.is_active: True}, synchronize_session=False)
        )
    db.commit()
    logger.info("Restaurant %s activated (%d tables reactivated)", restaurant.id, affected)
    return affected
