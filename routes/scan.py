# =============================================================================
# 🔄 Scan-Resolver (öffentlich)
# -----------------------------------------------------------------------------
#       GET /scan/{code}        → Code aus dem QR-Bild
#       GET /qr/{code}          → Alias
#       GET /r/{short_code}     → "<slug>-T<nummer>"
#       GET /scan/{code}/stats  → öffentlicher Scan-Zähler
#
# 302 zur Google-Bewertungsseite oder Fehlerseite (404 / 403 / 500).
# Review-Check und Scan-Mail laufen als BackgroundTask NACH der Antwort.
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db
from models.qrcode import QRCode, normalize_code
from models.scan import Scan
from utils.cooldown_store import CooldownStore, get_cooldown_store
from utils.email_service import Notifier, dispatch_scan_notification
from utils.review_attribution import ReviewAttribution
from utils.scan_recorder import record_scan
from utils.scan_resolver import ScanOutcome, ScanResolution, resolve_code, resolve_short_code
from utils.services import get_notifier, get_review_attribution, get_session_factory

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scan"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))

ResponseType = Union[RedirectResponse, HTMLResponse, JSONResponse]


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _wants_json(request: Request) -> bool:
    return "application/json" in (request.headers.get("accept") or "").lower()


def _error_response(request: Request, outcome: ScanOutcome) -> ResponseType:
    if _wants_json(request):
        return JSONResponse(
            {"error": outcome.value, "message": outcome.message},
            status_code=outcome.http_status,
        )
    return templates.TemplateResponse(
        request,
        "scan_error.html",
        {"outcome": outcome.value, "message": outcome.message},
        status_code=outcome.http_status,
    )


def after_scan(
    session_factory: Callable[[], Session],
    scan_id: int,
    attribution: Optional[ReviewAttribution],
    notifier: Notifier,
    store: CooldownStore,
) -> None:
    """Läuft nach der Weiterleitung – Fehler hier erreichen den Gast nie."""
    db = session_factory()
    try:
        if attribution is not None:
            attribution.register_scan(db, scan_id)
        scan = db.get(Scan, scan_id)
        if scan is not None:
            dispatch_scan_notification(notifier, store, scan.restaurant, scan.table, scan)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Post-scan processing failed for scan %s", scan_id)
    finally:
        db.close()


def _handle(
    resolution: ScanResolution,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session,
    store: CooldownStore,
    session_factory: Callable[[], Session],
    attribution: Optional[ReviewAttribution],
    notifier: Notifier,
) -> ResponseType:
    if not resolution.ok:
        if resolution.outcome is ScanOutcome.DATA_INCONSISTENT:
            logger.error("Scan rejected: %s", resolution.outcome.value)
        else:
            logger.warning(
                "Scan rejected: %s (qr=%s)",
                resolution.outcome.value,
                resolution.qr_code.id if resolution.qr_code else None,
            )
        return _error_response(request, resolution.outcome)

    # IDs vor dem Commit im Recorder sichern
    restaurant_id = resolution.restaurant.id
    table_id = resolution.table.id
    redirect_url = resolution.redirect_url

    scan = record_scan(
        db,
        resolution,
        store,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
    )
    if scan is not None:
        background_tasks.add_task(after_scan, session_factory, scan.id, attribution, notifier, store)

    logger.info(
        "Scan resolved: restaurant=%s table=%s scan=%s → %s",
        restaurant_id, table_id, scan.id if scan else None, redirect_url,
    )
    return RedirectResponse(url=redirect_url, status_code=302)


@router.get("/scan/{code}", response_model=None)
def scan_code(
    code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    store: CooldownStore = Depends(get_cooldown_store),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    attribution: Optional[ReviewAttribution] = Depends(get_review_attribution),
    notifier: Notifier = Depends(get_notifier),
) -> ResponseType:
    resolution = resolve_code(db, code)
    return _handle(resolution, request, background_tasks, db, store, session_factory, attribution, notifier)


@router.get("/qr/{code}", response_model=None)
def scan_code_alias(
    code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    store: CooldownStore = Depends(get_cooldown_store),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    attribution: Optional[ReviewAttribution] = Depends(get_review_attribution),
    notifier: Notifier = Depends(get_notifier),
) -> ResponseType:
    resolution = resolve_code(db, code)
    return _handle(resolution, request, background_tasks, db, store, session_factory, attribution, notifier)


@router.get("/r/{short_code}", response_model=None)
def scan_short_code(
    short_code: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    store: CooldownStore = Depends(get_cooldown_store),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    attribution: Optional[ReviewAttribution] = Depends(get_review_attribution),
    notifier: Notifier = Depends(get_notifier),
) -> ResponseType:
    resolution = resolve_short_code(db, short_code)
    return _handle(resolution, request, background_tasks, db, store, session_factory, attribution, notifier)


@router.get("/scan/{code}/stats")
def scan_stats(code: str, db: Session = Depends(get_db)):
    qr = db.query(QRCode).filter(QRCode.code == normalize_code(code)).first()
    if qr is None or not qr.is_active:
        raise HTTPException(status_code=404, detail="QR code not found")
    return {
        "code": qr.code,
        "scan_count": qr.scan_count or 0,
        "last_scan_at": qr.last_scan_at.isoformat() if qr.last_scan_at else None,
    }
