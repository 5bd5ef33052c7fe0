# =============================================================================
# 📦 models/plan.py
# -----------------------------------------------------------------------------
# Datenmodell für Tarifpläne (Plans).
# Enthält Preis, Laufzeit, Limits (Tische / Scans / Benutzer) und Feature-Liste.
# =============================================================================

from typing import Optional

from sqlalchemy import Column, Integer, String, Float, Boolean, Text, JSON
from sqlalchemy.orm import relationship
from database import Base


def is_unlimited(limit: Optional[int]) -> bool:
    """None oder -1 bedeutet: kein Limit."""
    return limit is None or limit < 0


class Plan(Base):
    """
    Repräsentiert ein Tarifmodell (z. B. Starter, Pro, Business)
    für die Restaurants der Plattform.
    """
    __tablename__ = "plans"

    # 🔹 Primärschlüssel
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # 🔹 Planname (eindeutig)
    name = Column(String(50), unique=True, nullable=False)
    description = Column(Text, nullable=True)

    # 🔹 Monatlicher Preis in Euro und Laufzeit
    price = Column(Float, nullable=False, default=0.0)
    duration_months = Column(Integer, nullable=False, default=1)

    # 🔹 Limits (None / -1 = unbegrenzt)
    max_tables = Column(Integer, nullable=True)
    max_scans = Column(Integer, nullable=True)
    max_users = Column(Integer, nullable=True)

    # 🔹 Feature-Liste für die UI (z. B. ["review_alerts", "bulk_tables"])
    features = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)

    # -------------------------------------------------------------------------
    # 🔗 Beziehung zu Abonnements
    # -------------------------------------------------------------------------
    subscriptions = relationship("Subscription", back_populates="plan")

    def __repr__(self):
        return (
            f"<Plan(name='{self.name}', "
            f"tables={self.max_tables}, "
            f"price={self.price:.2f}€, "
            f"months={self.duration_months})>"
        )
