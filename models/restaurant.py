# =============================================================================
# 🍽️ models/restaurant.py
# -----------------------------------------------------------------------------
# Restaurant = Mandant. Enthält Aktivierung, Abo-Status, Weiterleitungs-
# Konfiguration (Google) und den zuletzt bekannten Review-Stand.
# =============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

if TYPE_CHECKING:
    from models.user import User
    from models.table import Table
    from models.qrcode import QRCode
    from models.subscription import Subscription


# 🔹 Abo-Status des Restaurants
STATUS_TRIAL = "trial"
STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"
STATUS_INACTIVE = "inactive"

SUBSCRIPTION_STATUSES = (
    STATUS_TRIAL,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_INACTIVE,
)

# Nur diese Status dürfen Scans weiterleiten
SERVING_STATUSES = {STATUS_TRIAL, STATUS_ACTIVE}


class Restaurant(Base):
    __tablename__ = "restaurants"

    # ---------------------------------------------------------------------
    # 🧾 Identität
    # ---------------------------------------------------------------------
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    name: Mapped[str] = mapped_column(String(200))
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(120))

    # ---------------------------------------------------------------------
    # ✅ Aktivierung & Abo
    # ---------------------------------------------------------------------
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    subscription_status: Mapped[str] = mapped_column(String(20), default=STATUS_INACTIVE)
    subscription_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # ---------------------------------------------------------------------
    # 🔗 Weiterleitung (Priorität: review_url → business_url → place_id)
    # ---------------------------------------------------------------------
    google_review_url: Mapped[Optional[str]] = mapped_column(String(500))
    google_business_url: Mapped[Optional[str]] = mapped_column(String(500))
    google_place_id: Mapped[Optional[str]] = mapped_column(String(255))

    # ---------------------------------------------------------------------
    # 📧 Benachrichtigungen & Review-Stand
    # ---------------------------------------------------------------------
    notification_email: Mapped[Optional[str]] = mapped_column(String(200))
    notify_on_scan: Mapped[bool] = mapped_column(Boolean, default=False)
    last_review_count: Mapped[Optional[int]] = mapped_column(Integer)
    last_review_check_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    current_rating: Mapped[Optional[float]] = mapped_column(Float)

    # ---------------------------------------------------------------------
    # 🕒 Zeitstempel
    # ---------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ---------------------------------------------------------------------
    # 🔗 Beziehungen
    # ---------------------------------------------------------------------
    owner: Mapped[Optional["User"]] = relationship("User", back_populates="restaurants")
    tables: Mapped[List["Table"]] = relationship(
        "Table",
        back_populates="restaurant",
        cascade="all, delete-orphan",
    )
    qr_codes: Mapped[List["QRCode"]] = relationship(
        "QRCode",
        back_populates="restaurant",
        cascade="all, delete-orphan",
    )
    subscriptions: Mapped[List["Subscription"]] = relationship(
        "Subscription",
        back_populates="restaurant",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<Restaurant(id={self.id}, slug='{self.slug}', active={self.is_active}, "
            f"subscription='{self.subscription_status}')>"
        )
