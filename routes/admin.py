# =============================================================================
# 🛡️ routes/admin.py – Plattform-Administration (/api/v1/admin, Rolle "admin")
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from database import get_db
from models.plan import Plan
from models.restaurant import Restaurant, STATUS_TRIAL, SUBSCRIPTION_STATUSES
from models.subscription import Subscription
from models.user import ROLE_OWNER, USER_ROLES, User
from routes.api import raise_http, serialize_restaurant
from utils.api_keys import issue_api_key, require_admin
from utils.errors import TableReviewError
from utils.review_attribution import ReviewAttribution
from utils.services import get_review_attribution
from utils.subscriptions import activate_subscription, cancel_subscription, create_subscription
from utils.tables import activate_restaurant, deactivate_restaurant

router = APIRouter(prefix="/api/v1/admin", tags=["Admin API"], dependencies=[Depends(require_admin)])


class UserIn(BaseModel):
    username: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., min_length=3, max_length=200)
    role: str = Field(default=ROLE_OWNER)


class PlanIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    price: float = Field(default=0.0, ge=0)
    duration_months: int = Field(default=1, ge=1)
    max_tables: Optional[int] = None
    max_scans: Optional[int] = None
    max_users: Optional[int] = None
    features: List[str] = Field(default_factory=list)
    is_active: bool = True
    display_order: int = 0


class PlanUpdate(BaseModel):
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    duration_months: Optional[int] = Field(default=None, ge=1)
    max_tables: Optional[int] = None
    max_scans: Optional[int] = None
    max_users: Optional[int] = None
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None

    @field_validator("price", "duration_months", "features", mode="before")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v


class SubscriptionIn(BaseModel):
    plan_id: int
    status: str = Field(default=STATUS_TRIAL)
    billing_cycle: Optional[str] = None
    end_date: Optional[datetime] = None
    auto_renew: bool = True
    price: Optional[float] = Field(default=None, ge=0)


class CancelIn(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


def serialize_plan(p: Plan) -> dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "description": p.description,
        "price": p.price,
        "duration_months": p.duration_months,
        "max_tables": p.max_tables,
        "max_scans": p.max_scans,
        "max_users": p.max_users,
        "features": p.features or [],
        "is_active": p.is_active,
        "display_order": p.display_order,
    }


def serialize_subscription(s: Subscription) -> dict[str, Any]:
    return {
        "id": s.id,
        "restaurant_id": s.restaurant_id,
        "plan_id": s.plan_id,
        "status": s.status,
        "start_date": s.start_date.isoformat() if s.start_date else None,
        "end_date": s.end_date.isoformat() if s.end_date else None,
        "auto_renew": s.auto_renew,
        "price": s.price,
        "billing_cycle": s.billing_cycle,
        "cancelled_at": s.cancelled_at.isoformat() if s.cancelled_at else None,
        "cancellation_reason": s.cancellation_reason,
    }


# ---------------------------------------------------------------------------
# 👤 Benutzer
# ---------------------------------------------------------------------------

@router.get("/users")
def list_users(db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.id.asc()).all()
    return {
        "items": [
            {"id": u.id, "username": u.username, "email": u.email, "role": u.role, "is_active": u.is_active}
            for u in users
        ]
    }


@router.post("/users", status_code=201)
def create_user(payload: UserIn, db: Session = Depends(get_db)):
    if payload.role not in USER_ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role '{payload.role}'")
    email = payload.email.strip().lower()
    taken = (
        db.query(User.id)
        .filter((User.email == email) | (User.username == payload.username))
        .first()
    )
    if taken is not None:
        raise HTTPException(status_code=409, detail="Username or email already exists")

    user = User(username=payload.username, email=email, role=payload.role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    api_key = issue_api_key(db, user)
    # Klartext-Schlüssel nur in dieser Antwort
    return {"id": user.id, "username": user.username, "email": user.email, "role": user.role, "api_key": api_key}


# ---------------------------------------------------------------------------
# 📦 Pläne
# ---------------------------------------------------------------------------

@router.get("/plans")
def list_all_plans(db: Session = Depends(get_db)):
    plans = db.query(Plan).order_by(Plan.display_order.asc(), Plan.id.asc()).all()
    return {"items": [serialize_plan(p) for p in plans]}


@router.post("/plans", status_code=201)
def create_plan(payload: PlanIn, db: Session = Depends(get_db)):
    if db.query(Plan.id).filter(Plan.name == payload.name).first() is not None:
        raise HTTPException(status_code=409, detail=f"Plan '{payload.name}' already exists")
    plan = Plan(**payload.model_dump())
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return serialize_plan(plan)


@router.patch("/plans/{plan_id}")
def update_plan(plan_id: int, payload: PlanUpdate, db: Session = Depends(get_db)):
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(plan, key, value)
    db.commit()
    db.refresh(plan)
    return serialize_plan(plan)


@router.delete("/plans/{plan_id}")
def delete_plan(plan_id: int, db: Session = Depends(get_db)):
    """Pläne werden nur deaktiviert – bestehende Abos verweisen weiter darauf."""
    plan = db.get(Plan, plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    plan.is_active = False
    db.commit()
    return {"ok": True, "id": plan.id, "is_active": False}


# ---------------------------------------------------------------------------
# 🍽️ Restaurants
# ---------------------------------------------------------------------------

@router.get("/restaurants")
def list_all_restaurants(
    status: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
):
    q = db.query(Restaurant)
    if status:
        if status not in SUBSCRIPTION_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'")
        q = q.filter(Restaurant.subscription_status == status)
    return {"items": [serialize_restaurant(r) for r in q.order_by(Restaurant.id.asc()).all()]}


def _restaurant_or_404(db: Session, restaurant_id: int) -> Restaurant:
    restaurant = db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise HTTPException(status_code=404, detail="Restaurant not found")
    return restaurant


@router.post("/restaurants/{restaurant_id}/deactivate")
def admin_deactivate_restaurant(restaurant_id: int, db: Session = Depends(get_db)):
    affected = deactivate_restaurant(db, _restaurant_or_404(db, restaurant_id))
    return {"ok": True, "tables_deactivated": affected}


@router.post("/restaurants/{restaurant_id}/activate")
def admin_activate_restaurant(
    restaurant_id: int,
    reactivate_tables: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    affected = activate_restaurant(db, _restaurant_or_404(db, restaurant_id), reactivate_tables)
    return {"ok": True, "tables_reactivated": affected}


# ---------------------------------------------------------------------------
# 💳 Abos
# ---------------------------------------------------------------------------

@router.get("/subscriptions")
def list_subscriptions(
    restaurant_id: Optional[int] = Query(default=None),
    db: Session = Depends(get_db),
):
    q = db.query(Subscription)
    if restaurant_id is not None:
        q = q.filter(Subscription.restaurant_id == restaurant_id)
    return {"items": [serialize_subscription(s) for s in q.order_by(Subscription.id.desc()).all()]}


@router.post("/restaurants/{restaurant_id}/subscriptions", status_code=201)
def admin_create_subscription(restaurant_id: int, payload: SubscriptionIn, db: Session = Depends(get_db)):
    restaurant = _restaurant_or_404(db, restaurant_id)
    plan = db.get(Plan, payload.plan_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="Plan not found")
    try:
        sub = create_subscription(
            db,
            restaurant,
            plan,
            status=payload.status,
            end_date=payload.end_date,
            billing_cycle=payload.billing_cycle,
            auto_renew=payload.auto_renew,
            price=payload.price,
        )
    except TableReviewError as exc:
        raise_http(exc)
    return serialize_subscription(sub)


def _subscription_or_404(db: Session, subscription_id: int) -> Subscription:
    sub = db.get(Subscription, subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return sub


@router.post("/subscriptions/{subscription_id}/activate")
def admin_activate_subscription(subscription_id: int, db: Session = Depends(get_db)):
    try:
        sub = activate_subscription(db, _subscription_or_404(db, subscription_id))
    except TableReviewError as exc:
        raise_http(exc)
    return serialize_subscription(sub)


@router.post("/subscriptions/{subscription_id}/cancel")
def admin_cancel_subscription(subscription_id: int, payload: CancelIn, db: Session = Depends(get_db)):
    try:
        sub = cancel_subscription(db, _subscription_or_404(db, subscription_id), reason=payload.reason)
    except TableReviewError as exc:
        raise_http(exc)
    return serialize_subscription(sub)


# ---------------------------------------------------------------------------
# ⭐ Review-Erkennung manuell anstoßen
# ---------------------------------------------------------------------------

@router.post("/review-sweep")
def run_review_sweep(
    db: Session = Depends(get_db),
    attribution: Optional[ReviewAttribution] = Depends(get_review_attribution),
):
    if attribution is None:
        raise HTTPException(status_code=503, detail="Review detection is not configured")
    result = attribution.process_due_checks(db)
    return {
        "checked": result.checked,
        "matched": result.matched,
        "abandoned": result.abandoned,
        "errors": result.errors,
    }
