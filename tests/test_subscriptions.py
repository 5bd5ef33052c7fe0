from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.restaurant import (
    Restaurant,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_INACTIVE,
    STATUS_TRIAL,
)
from models.subscription import BILLING_MONTHLY, BILLING_YEARLY, Subscription
from utils.errors import InvalidStatusTransition, SubscriptionConflict
from utils.scan_resolver import ScanOutcome, resolve_code
from utils.subscriptions import (
    activate_subscription,
    add_months,
    can_transition,
    cancel_subscription,
    create_subscription,
    expire_due_subscriptions,
    transition_restaurant,
)
from conftest import T0


def test_add_months_clamps_day():
    assert add_months(datetime(2026, 1, 31, tzinfo=timezone.utc), 1).date().isoformat() == "2026-02-28"
    assert add_months(datetime(2026, 11, 15, tzinfo=timezone.utc), 3).date().isoformat() == "2027-02-15"


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (STATUS_INACTIVE, STATUS_TRIAL, True),
        (STATUS_TRIAL, STATUS_ACTIVE, True),
        (STATUS_ACTIVE, STATUS_CANCELLED, True),
        (STATUS_ACTIVE, STATUS_EXPIRED, True),
        (STATUS_ACTIVE, STATUS_TRIAL, False),
        (STATUS_CANCELLED, STATUS_ACTIVE, False),
        (STATUS_EXPIRED, STATUS_TRIAL, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_transition_restaurant_rejects_reopen(factory):
    restaurant = factory.restaurant(subscription_status=STATUS_CANCELLED)
    with pytest.raises(InvalidStatusTransition):
        transition_restaurant(restaurant, STATUS_ACTIVE)


def test_create_subscription_opens_restaurant(db, factory):
    plan = factory.plan(duration_months=1)
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)

    sub = create_subscription(db, restaurant, plan, start_date=T0)

    assert sub.status == STATUS_TRIAL
    assert sub.billing_cycle == BILLING_MONTHLY
    assert sub.price == plan.price
    db.refresh(restaurant)
    assert restaurant.subscription_status == STATUS_TRIAL
    assert restaurant.subscription_expires_at.date().isoformat() == "2026-04-14"


def test_yearly_plan_bills_yearly(db, factory):
    plan = factory.plan(name="Business", max_tables=-1, duration_months=12)
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)

    sub = create_subscription(db, restaurant, plan, status=STATUS_ACTIVE, start_date=T0)

    assert sub.billing_cycle == BILLING_YEARLY
    assert sub.end_date.year == 2027


def test_second_open_subscription_conflicts(db, factory):
    plan = factory.plan()
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)
    create_subscription(db, restaurant, plan)

    with pytest.raises(SubscriptionConflict):
        create_subscription(db, restaurant, plan)


def test_closed_status_cannot_be_created(db, factory):
    plan = factory.plan()
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)
    with pytest.raises(InvalidStatusTransition):
        create_subscription(db, restaurant, plan, status=STATUS_CANCELLED)


def test_activate_and_cancel(db, factory):
    plan = factory.plan()
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)
    sub = create_subscription(db, restaurant, plan)

    sub = activate_subscription(db, sub)
    assert sub.status == STATUS_ACTIVE
    assert db.get(Restaurant, restaurant.id).subscription_status == STATUS_ACTIVE

    sub = cancel_subscription(db, sub, reason="Restaurant geschlossen", now=T0)
    assert sub.status == STATUS_CANCELLED
    assert sub.auto_renew is False
    assert sub.cancellation_reason == "Restaurant geschlossen"
    assert db.get(Restaurant, restaurant.id).subscription_status == STATUS_CANCELLED

    with pytest.raises(InvalidStatusTransition):
        cancel_subscription(db, sub)
    with pytest.raises(InvalidStatusTransition):
        activate_subscription(db, sub)


def test_new_subscription_reopens_cancelled_restaurant(db, factory):
    plan = factory.plan()
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)
    cancel_subscription(db, create_subscription(db, restaurant, plan))

    create_subscription(db, restaurant, plan, status=STATUS_ACTIVE)

    assert db.get(Restaurant, restaurant.id).subscription_status == STATUS_ACTIVE
    assert db.query(Subscription).filter(Subscription.restaurant_id == restaurant.id).count() == 2


def test_expiry_closes_subscription_and_blocks_scans(db, factory):
    plan = factory.plan()
    restaurant = factory.restaurant(subscription_status=STATUS_INACTIVE)
    _, qr = factory.table_with_qr(restaurant)
    create_subscription(db, restaurant, plan, start_date=T0, end_date=T0 + timedelta(days=14))

    assert expire_due_subscriptions(db, now=T0 + timedelta(days=13)) == 0
    assert resolve_code(db, qr.code, now=T0 + timedelta(days=13)).ok

    assert expire_due_subscriptions(db, now=T0 + timedelta(days=15)) == 1
    assert db.get(Restaurant, restaurant.id).subscription_status == STATUS_EXPIRED
    assert resolve_code(db, qr.code, now=T0 + timedelta(days=15)).outcome is ScanOutcome.SUBSCRIPTION_INACTIVE
