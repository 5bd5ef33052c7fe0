# =============================================================================
# 💳 utils/subscriptions.py
# -----------------------------------------------------------------------------
# Abo-Lebenszyklus und Status des Restaurants.
#
#   inactive  → trial | active
#   trial     → active | cancelled | expired
#   active    → cancelled | expired
#   cancelled / expired → nur über ein NEUES Abo wieder offen
# =============================================================================

from __future__ import annotations

import calendar
import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from database import as_utc, utc_now
from models.plan import Plan
from models.restaurant import (
    Restaurant,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_INACTIVE,
    STATUS_TRIAL,
)
from models.subscription import BILLING_MONTHLY, BILLING_YEARLY, OPEN_STATUSES, Subscription
from utils.errors import InvalidStatusTransition, SubscriptionConflict

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_INACTIVE: frozenset({STATUS_TRIAL, STATUS_ACTIVE}),
    STATUS_TRIAL: frozenset({STATUS_ACTIVE, STATUS_CANCELLED, STATUS_EXPIRED}),
    STATUS_ACTIVE: frozenset({STATUS_CANCELLED, STATUS_EXPIRED}),
    STATUS_CANCELLED: frozenset(),
    STATUS_EXPIRED: frozenset(),
}


def add_months(ts: datetime, months: int) -> datetime:
    month_index = ts.month - 1 + months
    year = ts.year + month_index // 12
    month = month_index % 12 + 1
    day = min(ts.day, calendar.monthrange(year, month)[1])
    return ts.replace(year=year, month=month, day=day)


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def transition_restaurant(restaurant: Restaurant, target: str) -> None:
    current = restaurant.subscription_status or STATUS_INACTIVE
    if current == target:
        return
    if not can_transition(current, target):
        raise InvalidStatusTransition(current, target)
    restaurant.subscription_status = target


def get_open_subscription(db: Session, restaurant_id: int) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.restaurant_id == restaurant_id, Subscription.status.in_(OPEN_STATUSES))
        .order_by(Subscription.id.desc())
        .first()
    )


def create_subscription(
    db: Session,
    restaurant: Restaurant,
    plan: Plan,
    *,
    status: str = STATUS_TRIAL,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    billing_cycle: Optional[str] = None,
    auto_renew: bool = True,
    price: Optional[float] = None,
) -> Subscription:
    """
    Neues Abo anlegen. Einziger Weg, ein gekündigtes/abgelaufenes Restaurant
    wieder zu öffnen.
    """
    if status not in OPEN_STATUSES:
        raise InvalidStatusTransition(restaurant.subscription_status, status)
    if get_open_subscription(db, restaurant.id) is not None:
        raise SubscriptionConflict(f"Restaurant {restaurant.id} already has an open subscription")

    start = start_date or utc_now()
    cycle = billing_cycle or (BILLING_YEARLY if (plan.duration_months or 1) >= 12 else BILLING_MONTHLY)
    months = 12 if cycle == BILLING_YEARLY else (plan.duration_months or 1)
    end = end_date or add_months(start, months)

    sub = Subscription(
        restaurant_id=restaurant.id,
        plan_id=plan.id,
        status=status,
        start_date=start,
        end_date=end,
        auto_renew=auto_renew,
        price=plan.price if price is None else price,
        billing_cycle=cycle,
    )
    db.add(sub)

    restaurant.subscription_status = status
    restaurant.subscription_expires_at = end
    db.commit()
    db.refresh(sub)
    logger.info(
        "Subscription %s created for restaurant %s (plan=%s, status=%s, until %s)",
        sub.id, restaurant.id, plan.name, status, end.isoformat(),
    )
    return sub


def activate_subscription(db: Session, sub: Subscription) -> Subscription:
    """trial → active"""
    if sub.status != STATUS_TRIAL:
        raise InvalidStatusTransition(sub.status, STATUS_ACTIVE)
    restaurant = db.get(Restaurant, sub.restaurant_id)
    transition_restaurant(restaurant, STATUS_ACTIVE)
    sub.status = STATUS_ACTIVE
    db.commit()
    db.refresh(sub)
    return sub


def cancel_subscription(
    db: Session,
    sub: Subscription,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    if sub.status not in OPEN_STATUSES:
        raise InvalidStatusTransition(sub.status, STATUS_CANCELLED)
    now = now or utc_now()

    restaurant = db.get(Restaurant, sub.restaurant_id)
    transition_restaurant(restaurant, STATUS_CANCELLED)
    sub.status = STATUS_CANCELLED
    sub.cancelled_at = now
    sub.cancellation_reason = reason
    sub.auto_renew = False
    db.commit()
    db.refresh(sub)
    logger.info("Subscription %s cancelled for restaurant %s", sub.id, sub.restaurant_id)
    return sub


def expire_due_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    """Offene Abos mit end_date in der Vergangenheit → expired."""
    now = now or utc_now()
    due = (
        db.query(Subscription)
        .filter(Subscription.status.in_(OPEN_STATUSES), Subscription.end_date <= now)
        .all()
    )
    for sub in due:
        sub.status = STATUS_EXPIRED
        restaurant = db.get(Restaurant, sub.restaurant_id)
        if restaurant is not None and can_transition(restaurant.subscription_status, STATUS_EXPIRED):
            restaurant.subscription_status = STATUS_EXPIRED
        logger.info(
            "Subscription %s for restaurant %s expired (end %s)",
            sub.id, sub.restaurant_id, as_utc(sub.end_date).isoformat(),
        )
    if due:
        db.commit()
    return len(due)
