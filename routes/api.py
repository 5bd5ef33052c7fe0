from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from database import get_db
from models.plan import Plan
from models.qrcode import QRCode
from models.restaurant import Restaurant
from models.review_notification import ReviewNotification
from models.table import Table
from models.user import User
from utils.api_keys import get_api_user
from utils.codes import build_scan_url, build_short_url, slugify
from utils.errors import (
    DuplicateEntity,
    InvalidStatusTransition,
    QuotaExceeded,
    SubscriptionConflict,
    TableReviewError,
)
from utils.quota import ensure_table_quota, usage
from utils.subscriptions import create_subscription, get_open_subscription
from utils.tables import (
    activate_restaurant,
    bulk_create_tables,
    create_table,
    deactivate_restaurant,
    ensure_qr_code,
    set_table_active,
)

router = APIRouter(prefix="/api/v1", tags=["Owner API"])


# --------------------------------------------------------------------------- #
# 📦 Schemas
# --------------------------------------------------------------------------- #

class RestaurantIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: Optional[str] = Field(default=None, max_length=120)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    google_review_url: Optional[str] = None
    google_business_url: Optional[str] = None
    google_place_id: Optional[str] = None
    notification_email: Optional[str] = None
    notify_on_scan: bool = False
    plan_id: Optional[int] = Field(default=None, description="Startet ein Trial-Abo auf diesem Plan")


class RestaurantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    google_review_url: Optional[str] = None
    google_business_url: Optional[str] = None
    google_place_id: Optional[str] = None
    notification_email: Optional[str] = None
    notify_on_scan: Optional[bool] = None

    @field_validator("name", "notify_on_scan", mode="before")
    @classmethod
    def not_null(cls, v):
        # Spalten sind NOT NULL, "weglassen" statt null senden
        if v is None:
            raise ValueError("must not be null")
        return v


class TableIn(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, max_length=120)
    location: Optional[str] = Field(default=None, max_length=50)
    with_qr: bool = True


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, max_length=120)
    location: Optional[str] = Field(default=None, max_length=50)
    is_active: Optional[bool] = None


class BulkTablesIn(BaseModel):
    count: int = Field(..., ge=1, le=50)
    prefix: str = Field(default="T", max_length=20)
    start_number: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = Field(default=None, max_length=50)


# --------------------------------------------------------------------------- #
# 🔧 Helfer
# --------------------------------------------------------------------------- #

def raise_http(exc: TableReviewError):
    """Fachliche Fehler → HTTPException"""
    if isinstance(exc, QuotaExceeded):
        raise HTTPException(
            status_code=402,
            detail={
                "message": str(exc),
                "limit": exc.limit,
                "current": exc.current,
                "requested": exc.requested,
            },
        )
    if isinstance(exc, (DuplicateEntity, SubscriptionConflict)):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, InvalidStatusTransition):
        raise HTTPException(status_code=400, detail=str(exc))
    raise HTTPException(status_code=400, detail=str(exc))


def unique_slug(db: Session, wanted: str) -> str:
    base = slugify(wanted)
    candidate, n = base, 2
    while db.query(Restaurant.id).filter(Restaurant.slug == candidate).first() is not None:
        candidate = f"{base}-{n}"
        n += 1
    return candidate


def serialize_restaurant(r: Restaurant) -> dict[str, Any]:
    return {
        "id": r.id,
        "owner_id": r.owner_id,
        "name": r.name,
        "slug": r.slug,
        "email": r.email,
        "phone": r.phone,
        "address": r.address,
        "city": r.city,
        "is_active": r.is_active,
        "subscription_status": r.subscription_status,
        "subscription_expires_at": r.subscription_expires_at.isoformat() if r.subscription_expires_at else None,
        "google_review_url": r.google_review_url,
        "google_business_url": r.google_business_url,
        "google_place_id": r.google_place_id,
        "notification_email": r.notification_email,
        "notify_on_scan": r.notify_on_scan,
        "last_review_count": r.last_review_count,
        "current_rating": r.current_rating,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def serialize_qr(qr: QRCode) -> dict[str, Any]:
    return {
        "id": qr.id,
        "code": qr.code,
        "short_code": qr.short_code,
        "table_id": qr.table_id,
        "restaurant_id": qr.restaurant_id,
        "is_active": qr.is_active,
        "scan_url": build_scan_url(qr.code),
        "short_url": build_short_url(qr.short_code) if qr.short_code else None,
        "redirect_url": qr.redirect_url,
        "scan_count": qr.scan_count or 0,
        "last_scan_at": qr.last_scan_at.isoformat() if qr.last_scan_at else None,
    }


def serialize_table(t: Table) -> dict[str, Any]:
    return {
        "id": t.id,
        "restaurant_id": t.restaurant_id,
        "table_number": t.table_number,
        "name": t.name,
        "location": t.location,
        "is_active": t.is_active,
        "scan_count": t.scan_count or 0,
        "last_scan_at": t.last_scan_at.isoformat() if t.last_scan_at else None,
        "qr_code": serialize_qr(t.qr_code) if t.qr_code else None,
    }


def get_owned_restaurant(db: Session, user: User, restaurant_id: int) -> Restaurant:
    restaurant = db.get(Restaurant, restaurant_id)
    if restaurant is None or (not user.is_admin and restaurant.owner_id != user.id):
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant


def _get_table(db: Session, restaurant: Restaurant, table_id: int) -> Table:
    table = db.get(Table, table_id)
    if table is None or table.restaurant_id != restaurant.id:
        raise HTTPException(status_code=404, detail="Table not found")
    return table


# --------------------------------------------------------------------------- #
# 👤 Konto
# --------------------------------------------------------------------------- #

@router.get("/me")
def me(user: User = Depends(get_api_user)):
    return {"id": user.id, "username": user.username, "email": user.email, "role": user.role}


# --------------------------------------------------------------------------- #
# 🍽️ Restaurants
# --------------------------------------------------------------------------- #

@router.get("/restaurants")
def list_restaurants(user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    rows = (
        db.query(Restaurant)
        .filter(Restaurant.owner_id == user.id)
        .order_by(Restaurant.id.asc())
        .all()
    )
    return {"items": [serialize_restaurant(r) for r in rows]}


@router.post("/restaurants", status_code=201)
def create_restaurant(
    payload: RestaurantIn,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    plan = None
    if payload.plan_id is not None:
        plan = db.get(Plan, payload.plan_id)
        if plan is None or not plan.is_active:
            raise HTTPException(status_code=404, detail="Plan not found")

    if payload.slug:
        slug = slugify(payload.slug)
        if db.query(Restaurant.id).filter(Restaurant.slug == slug).first() is not None:
            raise HTTPException(status_code=409, detail=f"Slug '{slug}' already taken")
    else:
        slug = unique_slug(db, payload.name)

    data = payload.model_dump(exclude={"plan_id", "slug"})
    restaurant = Restaurant(owner_id=user.id, slug=slug, **data)
    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)

    if plan is not None:
        create_subscription(db, restaurant, plan)
        db.refresh(restaurant)
    return serialize_restaurant(restaurant)


@router.get("/restaurants/{restaurant_id}")
def get_restaurant(restaurant_id: int, user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    return serialize_restaurant(get_owned_restaurant(db, user, restaurant_id))


@router.patch("/restaurants/{restaurant_id}")
def update_restaurant(
    restaurant_id: int,
    payload: RestaurantUpdate,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(restaurant, key, value)
    db.commit()
    db.refresh(restaurant)
    return serialize_restaurant(restaurant)


@router.post("/restaurants/{restaurant_id}/deactivate")
def deactivate(restaurant_id: int, user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    affected = deactivate_restaurant(db, restaurant)
    return {"ok": True, "tables_deactivated": affected}


@router.post("/restaurants/{restaurant_id}/activate")
def activate(
    restaurant_id: int,
    reactivate_tables: bool = Query(default=False),
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    affected = activate_restaurant(db, restaurant, reactivate_tables=reactivate_tables)
    return {"ok": True, "tables_reactivated": affected}


# --------------------------------------------------------------------------- #
# 🪑 Tische
# --------------------------------------------------------------------------- #

@router.get("/restaurants/{restaurant_id}/tables")
def list_tables(
    restaurant_id: int,
    include_inactive: bool = Query(default=False),
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    q = db.query(Table).filter(Table.restaurant_id == restaurant.id)
    if not include_inactive:
        q = q.filter(Table.is_active.is_(True))
    return {"items": [serialize_table(t) for t in q.order_by(Table.id.asc()).all()]}


@router.post("/restaurants/{restaurant_id}/tables", status_code=201)
def add_table(
    restaurant_id: int,
    payload: TableIn,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    try:
        table = create_table(
            db,
            restaurant,
            payload.table_number,
            name=payload.name,
            location=payload.location,
            with_qr=payload.with_qr,
        )
    except TableReviewError as exc:
        raise_http(exc)
    return serialize_table(table)


@router.post("/restaurants/{restaurant_id}/tables/bulk", status_code=201)
def add_tables_bulk(
    restaurant_id: int,
    payload: BulkTablesIn,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    try:
        tables = bulk_create_tables(
            db,
            restaurant,
            payload.count,
            prefix=payload.prefix,
            start_number=payload.start_number,
            location=payload.location,
        )
    except TableReviewError as exc:
        raise_http(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"created": len(tables), "items": [serialize_table(t) for t in tables]}


@router.patch("/restaurants/{restaurant_id}/tables/{table_id}")
def update_table(
    restaurant_id: int,
    table_id: int,
    payload: TableUpdate,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    table = _get_table(db, restaurant, table_id)
    changes = payload.model_dump(exclude_unset=True)

    # Quota vor jeder Änderung prüfen
    active = changes.pop("is_active", None)
    if active and not table.is_active:
        try:
            ensure_table_quota(db, restaurant.id, 1)
        except TableReviewError as exc:
            raise_http(exc)

    new_number = changes.pop("table_number", None)
    if new_number is not None and new_number.strip() != table.table_number:
        taken = (
            db.query(Table.id)
            .filter(Table.restaurant_id == restaurant.id, Table.table_number == new_number.strip())
            .first()
        )
        if taken is not None:
            raise HTTPException(status_code=409, detail=f"Table number '{new_number}' already exists")
        # Short-Code bleibt unverändert, gedruckte QR-Bilder gelten weiter
        table.table_number = new_number.strip()

    for key, value in changes.items():
        setattr(table, key, value)
    if active is not None:
        table.is_active = active
    db.commit()
    db.refresh(table)
    return serialize_table(table)


@router.delete("/restaurants/{restaurant_id}/tables/{table_id}")
def delete_table(
    restaurant_id: int,
    table_id: int,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    """Soft-Delete: Tisch wird nur deaktiviert, Scans bleiben erhalten."""
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    table = _get_table(db, restaurant, table_id)
    set_table_active(db, table, False)
    return {"ok": True, "id": table.id, "is_active": False}


# --------------------------------------------------------------------------- #
# 🔳 QR-Codes
# --------------------------------------------------------------------------- #

@router.post("/restaurants/{restaurant_id}/tables/{table_id}/qr")
def generate_qr(
    restaurant_id: int,
    table_id: int,
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    table = _get_table(db, restaurant, table_id)
    return serialize_qr(ensure_qr_code(db, table))


@router.get("/restaurants/{restaurant_id}/qr-codes")
def list_qr_codes(restaurant_id: int, user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    rows = (
        db.query(QRCode)
        .filter(QRCode.restaurant_id == restaurant.id)
        .order_by(QRCode.id.asc())
        .all()
    )
    return {"items": [serialize_qr(qr) for qr in rows]}


def _set_qr_active(db: Session, user: User, restaurant_id: int, qr_id: int, active: bool) -> dict[str, Any]:
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    qr = db.get(QRCode, qr_id)
    if qr is None or qr.restaurant_id != restaurant.id:
        raise HTTPException(status_code=404, detail="QR code not found")
    qr.is_active = active
    db.commit()
    db.refresh(qr)
    return serialize_qr(qr)


@router.post("/restaurants/{restaurant_id}/qr-codes/{qr_id}/activate")
def activate_qr(restaurant_id: int, qr_id: int, user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    return _set_qr_active(db, user, restaurant_id, qr_id, True)


@router.post("/restaurants/{restaurant_id}/qr-codes/{qr_id}/deactivate")
def deactivate_qr(restaurant_id: int, qr_id: int, user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    return _set_qr_active(db, user, restaurant_id, qr_id, False)


# --------------------------------------------------------------------------- #
# ⭐ Bewertungen & Abo
# --------------------------------------------------------------------------- #

@router.get("/restaurants/{restaurant_id}/review-notifications")
def list_review_notifications(
    restaurant_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(get_api_user),
    db: Session = Depends(get_db),
):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    rows: List[ReviewNotification] = (
        db.query(ReviewNotification)
        .filter(ReviewNotification.restaurant_id == restaurant.id)
        .order_by(ReviewNotification.created_at.desc(), ReviewNotification.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "items": [
            {
                "id": n.id,
                "table_id": n.table_id,
                "scan_id": n.scan_id,
                "review_author": n.review_author,
                "review_text": n.review_text,
                "review_rating": n.review_rating,
                "review_time": n.review_time.isoformat() if n.review_time else None,
                "total_reviews": n.total_reviews,
                "average_rating": n.average_rating,
                "notification_sent": n.notification_sent,
                "created_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ]
    }


@router.get("/restaurants/{restaurant_id}/subscription")
def current_subscription(restaurant_id: int, user: User = Depends(get_api_user), db: Session = Depends(get_db)):
    restaurant = get_owned_restaurant(db, user, restaurant_id)
    sub = get_open_subscription(db, restaurant.id)
    return {
        "status": restaurant.subscription_status,
        "expires_at": restaurant.subscription_expires_at.isoformat() if restaurant.subscription_expires_at else None,
        "subscription": None if sub is None else {
            "id": sub.id,
            "status": sub.status,
            "plan": sub.plan.name if sub.plan else None,
            "start_date": sub.start_date.isoformat() if sub.start_date else None,
            "end_date": sub.end_date.isoformat() if sub.end_date else None,
            "billing_cycle": sub.billing_cycle,
            "auto_renew": sub.auto_renew,
        },
        "usage": usage(db, restaurant.id),
    }
