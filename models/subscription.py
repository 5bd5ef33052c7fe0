# =============================================================================
# 💳 models/subscription.py
# -----------------------------------------------------------------------------
# Abonnement eines Restaurants auf einen Plan.
# Pro Restaurant höchstens ein Abo im Status trial/active.
# =============================================================================

from __future__ import annotations

from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base, utc_now
from models.restaurant import (
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_TRIAL,
)

if TYPE_CHECKING:
    from models.plan import Plan
    from models.restaurant import Restaurant


OPEN_STATUSES = (STATUS_TRIAL, STATUS_ACTIVE)
CLOSED_STATUSES = (STATUS_CANCELLED, STATUS_EXPIRED)

BILLING_MONTHLY = "monthly"
BILLING_YEARLY = "yearly"


class Subscription(Base):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"), index=True
    )
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), index=True)

    status: Mapped[str] = mapped_column(String(20), default=STATUS_TRIAL)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[float] = mapped_column(Float, default=0.0)
    billing_cycle: Mapped[str] = mapped_column(String(20), default=BILLING_MONTHLY)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    restaurant: Mapped["Restaurant"] = relationship("Restaurant", back_populates="subscriptions")
    plan: Mapped["Plan"] = relationship("Plan", back_populates="subscriptions")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Subscription(id={self.id}, restaurant_id={self.restaurant_id}, "
            f"plan_id={self.plan_id}, status='{self.status}')>"
        )
