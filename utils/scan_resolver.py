# =============================================================================
# 🔎 utils/scan_resolver.py
# -----------------------------------------------------------------------------
# Code → QRCode → Tisch → Restaurant, Prüfungen in fester Reihenfolge,
# danach Wahl der Weiterleitung. Wirft nie – Ergebnis ist immer ein ScanOutcome.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import as_utc, utc_now
from models.qrcode import QRCode, normalize_code
from models.restaurant import Restaurant, SERVING_STATUSES
from models.table import Table
from utils.redirects import select_redirect_url

logger = logging.getLogger(__name__)


class ScanOutcome(str, Enum):
    OK = "ok"
    CODE_INVALID = "code_invalid"
    DATA_INCONSISTENT = "data_inconsistent"
    RESTAURANT_INACTIVE = "restaurant_inactive"
    SUBSCRIPTION_INACTIVE = "subscription_inactive"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]

    @property
    def message(self) -> str:
        return _MESSAGES[self]


_HTTP_STATUS = {
    ScanOutcome.OK: 302,
    ScanOutcome.CODE_INVALID: 404,
    ScanOutcome.DATA_INCONSISTENT: 500,
    ScanOutcome.RESTAURANT_INACTIVE: 403,
    ScanOutcome.SUBSCRIPTION_INACTIVE: 403,
}

# Für Gäste sichtbar – keine Interna
_MESSAGES = {
    ScanOutcome.OK: "",
    ScanOutcome.CODE_INVALID: "Dieser QR-Code ist ungültig oder nicht mehr aktiv.",
    ScanOutcome.DATA_INCONSISTENT: "Es ist ein Fehler aufgetreten. Bitte versuchen Sie es später erneut.",
    ScanOutcome.RESTAURANT_INACTIVE: "Dieses Restaurant ist derzeit nicht aktiv.",
    ScanOutcome.SUBSCRIPTION_INACTIVE: "Der Bewertungsservice dieses Restaurants ist derzeit pausiert.",
}


@dataclass
class ScanResolution:
    outcome: ScanOutcome
    qr_code: Optional[QRCode] = None
    table: Optional[Table] = None
    restaurant: Optional[Restaurant] = None
    redirect_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is ScanOutcome.OK


def subscription_is_serving(restaurant: Restaurant, now: Optional[datetime] = None) -> bool:
    if restaurant.subscription_status not in SERVING_STATUSES:
        return False
    expires_at = as_utc(restaurant.subscription_expires_at)
    if expires_at is not None and expires_at <= (now or utc_now()):
        return False
    return True


def resolve_code(db: Session, code: str, now: Optional[datetime] = None) -> ScanResolution:
    normalized = normalize_code(code)
    if not normalized:
        return ScanResolution(ScanOutcome.CODE_INVALID)
    try:
        qr = db.query(QRCode).filter(QRCode.code == normalized).first()
        return _resolve_qr(db, qr, now or utc_now())
    except SQLAlchemyError:
        logger.exception("Database error while resolving code %s", normalized)
        return ScanResolution(ScanOutcome.DATA_INCONSISTENT)


def resolve_short_code(db: Session, short_code: str, now: Optional[datetime] = None) -> ScanResolution:
    value = (short_code or "").strip()
    if not value:
        return ScanResolution(ScanOutcome.CODE_INVALID)
    try:
        qr = db.query(QRCode).filter(QRCode.short_code == value).first()
        return _resolve_qr(db, qr, now or utc_now())
    except SQLAlchemyError:
        logger.exception("Database error while resolving short code %s", value)
        return ScanResolution(ScanOutcome.DATA_INCONSISTENT)


def _resolve_qr(db: Session, qr: Optional[QRCode], now: datetime) -> ScanResolution:
    # 1️⃣ Unbekannter Code
    if qr is None:
        return ScanResolution(ScanOutcome.CODE_INVALID)

    # 2️⃣ Referenzen kaputt
    table = db.get(Table, qr.table_id) if qr.table_id is not None else None
    restaurant = db.get(Restaurant, qr.restaurant_id) if qr.restaurant_id is not None else None
    if table is None or restaurant is None or table.restaurant_id != restaurant.id:
        logger.error(
            "Data inconsistency for QR %s: table_id=%s restaurant_id=%s",
            qr.id, qr.table_id, qr.restaurant_id,
        )
        return ScanResolution(ScanOutcome.DATA_INCONSISTENT, qr_code=qr)

    # 3️⃣ Restaurant deaktiviert – gilt für alle Codes, unabhängig vom QR-Flag
    if not restaurant.is_active:
        return ScanResolution(ScanOutcome.RESTAURANT_INACTIVE, qr, table, restaurant)

    # QR-Code oder Tisch deaktiviert
    if not qr.is_active or not table.is_active:
        return ScanResolution(ScanOutcome.CODE_INVALID, qr, table, restaurant)

    # 4️⃣ Abo
    if not subscription_is_serving(restaurant, now):
        return ScanResolution(ScanOutcome.SUBSCRIPTION_INACTIVE, qr, table, restaurant)

    return ScanResolution(
        ScanOutcome.OK,
        qr_code=qr,
        table=table,
        restaurant=restaurant,
        redirect_url=select_redirect_url(restaurant),
    )
