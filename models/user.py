# =============================================================================
# 👤 models/user.py
# Benutzer-Modell: Plattform-Admins und Restaurant-Besitzer
# =============================================================================

from __future__ import annotations
from typing import List, TYPE_CHECKING
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base

if TYPE_CHECKING:
    from models.api_key import APIKey
    from models.restaurant import Restaurant


ROLE_ADMIN = "admin"
ROLE_OWNER = "owner"
USER_ROLES = {ROLE_ADMIN, ROLE_OWNER}


class User(Base):
    __tablename__ = "users"

    # =========================================================================
    # 🧩 Basisinformationen
    # =========================================================================
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    role: Mapped[str] = mapped_column(String(20), default=ROLE_OWNER)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc)
    )

    # =========================================================================
    # 🔗 Beziehungen
    # =========================================================================
    restaurants: Mapped[List["Restaurant"]] = relationship(
        "Restaurant",
        back_populates="owner",
    )
    api_keys: Mapped[List["APIKey"]] = relationship(
        "APIKey",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
