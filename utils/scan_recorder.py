# =============================================================================
# 📝 utils/scan_recorder.py
# -----------------------------------------------------------------------------
# Speichert einen Scan und zählt QR-Code + Tisch hoch (SQL-seitig, eine Transaktion).
# Fehler werden geloggt und geschluckt – die Weiterleitung passiert trotzdem.
# =============================================================================

from __future__ import annotations

import hashlib
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import utc_now
from models.qrcode import QRCode
from models.scan import Scan
from models.table import Table
from utils import config
from utils.cooldown_store import CooldownStore
from utils.errors import PersistenceError
from utils.scan_resolver import ScanResolution

logger = logging.getLogger(__name__)


def device_bucket(user_agent: str) -> str:
    ua = (user_agent or "").lower()
    if "ipad" in ua or "tablet" in ua:
        return "tablet"
    if "iphone" in ua or "android" in ua or "mobile" in ua:
        return "mobile"
    return "desktop"


def dedup_key(qr_code_id: int, ip_address: Optional[str], user_agent: Optional[str]) -> str:
    ua_hash = hashlib.sha1((user_agent or "").encode("utf-8")).hexdigest()[:16]
    return f"scan:{qr_code_id}:{ip_address or '-'}:{ua_hash}"


def _persist(
    db: Session,
    resolution: ScanResolution,
    ip_address: Optional[str],
    user_agent: Optional[str],
    now: datetime,
) -> Scan:
    qr = resolution.qr_code
    table = resolution.table
    try:
        scan = Scan(
            qr_code_id=qr.id,
            table_id=table.id,
            restaurant_id=resolution.restaurant.id,
            ip_address=(ip_address or None),
            user_agent=(user_agent or "")[:255] or None,
            device_type=device_bucket(user_agent or ""),
            redirected_to=resolution.redirect_url,
            created_at=now,
        )
        db.add(scan)

        db.query(QRCode).filter(QRCode.id == qr.id).update(
            {
                QRCode.scan_count: func.coalesce(QRCode.scan_count, 0) + 1,
                QRCode.last_scan_at: now,
            },
            synchronize_session=False,
        )
        db.query(Table).filter(Table.id == table.id).update(
            {
                Table.scan_count: func.coalesce(Table.scan_count, 0) + 1,
                Table.last_scan_at: now,
            },
            synchronize_session=False,
        )
        db.commit()
        db.refresh(scan)
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Could not record scan for QR {qr.id}") from exc
    return scan


def record_scan(
    db: Session,
    resolution: ScanResolution,
    store: CooldownStore,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Scan]:
    """
    Gibt den neuen Scan zurück, oder None wenn
    - derselbe Client (IP + User-Agent) den Code innerhalb von SCAN_DEDUP_SECONDS
      schon gescannt hat, oder
    - das Speichern fehlgeschlagen ist.
    """
    if not resolution.ok:
        return None

    key = dedup_key(resolution.qr_code.id, ip_address, user_agent)
    if not store.hit(key, config.SCAN_DEDUP_SECONDS):
        logger.info("Duplicate scan suppressed for QR %s", resolution.qr_code.id)
        return None

    try:
        scan = _persist(db, resolution, ip_address, user_agent, now or utc_now())
    except PersistenceError:
        # Sperre lösen, damit ein erneuter Aufruf zählen kann
        store.delete(key)
        logger.exception("Scan recording failed, redirect continues")
        return None

    logger.info(
        "Scan recorded: scan=%s restaurant=%s table=%s device=%s",
        scan.id, scan.restaurant_id, scan.table_id, scan.device_type,
    )
    return scan
