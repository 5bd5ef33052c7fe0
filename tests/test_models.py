from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from models.review_check import CHECK_PENDING, ReviewCheck
from conftest import T0


def _check(factory, status):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    scan = factory.scan(qr, T0)
    return ReviewCheck(
        scan_id=scan.id,
        restaurant_id=restaurant.id,
        status=status,
        max_attempts=10,
        next_check_at=T0 + timedelta(minutes=3),
    )


def test_review_check_accepts_known_status(db, factory):
    db.add(_check(factory, CHECK_PENDING))
    db.commit()
    assert db.query(ReviewCheck).one().status == CHECK_PENDING


def test_review_check_rejects_unknown_status(db, factory):
    db.add(_check(factory, "maybe"))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()
