# =============================================================================
# 📦 QRCode Model – ein QR-Code pro Tisch
# =============================================================================

from __future__ import annotations

import secrets
from datetime import datetime
from typing import Any, Optional, TYPE_CHECKING

from sqlalchemy import (
    String, Boolean, Integer, DateTime,
    ForeignKey, func, event
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from database import Base

if TYPE_CHECKING:
    from models.restaurant import Restaurant
    from models.table import Table


# Ohne 0/O/1/I – wird ggf. abgetippt
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 10


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: Optional[str]) -> str:
    """Codes werden beim Schreiben und Lesen in Großbuchstaben verglichen."""
    return str(code or "").strip().upper()


# =============================================================================
# 🧩 QRCode-Datenmodell
# =============================================================================
class QRCode(Base):
    """
    Öffentlicher Token eines Tisches.

    Der `code` ist nach der Ausgabe unveränderlich – bereits gedruckte
    QR-Bilder müssen gültig bleiben. Pro Tisch existiert höchstens ein Eintrag.
    """
    __tablename__ = "qr_codes"

    # ---------------------------------------------------------------------
    # 🧾 Basisattribute
    # ---------------------------------------------------------------------
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
        index=True,
        default=generate_code,
    )
    short_code: Mapped[Optional[str]] = mapped_column(String(160), unique=True, index=True)

    # ---------------------------------------------------------------------
    # 🔗 Beziehungen (restaurant_id redundant zum Tisch)
    # ---------------------------------------------------------------------
    table_id: Mapped[int] = mapped_column(
        ForeignKey("tables.id", ondelete="CASCADE"), unique=True, index=True
    )
    restaurant_id: Mapped[int] = mapped_column(
        ForeignKey("restaurants.id", ondelete="CASCADE"), index=True
    )
    table: Mapped["Table"] = relationship("Table", back_populates="qr_code")
    restaurant: Mapped["Restaurant"] = relationship("Restaurant", back_populates="qr_codes")

    # ---------------------------------------------------------------------
    # 🔗 Ziel & Status
    # ---------------------------------------------------------------------
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    redirect_url: Mapped[Optional[str]] = mapped_column(String(500))
    tracking_url: Mapped[Optional[str]] = mapped_column(String(500))

    scan_count: Mapped[int] = mapped_column(Integer, default=0)
    last_scan_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # ---------------------------------------------------------------------
    # 🕒 Zeitstempel
    # ---------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<QRCode(id={self.id}, code='{self.code}', table_id={self.table_id}, "
            f"active={self.is_active}, scans={self.scan_count})>"
        )


# =============================================================================
# ⚙️ Events: Code normalisieren / Unveränderlichkeit
# =============================================================================

from sqlalchemy.orm import Mapper
from sqlalchemy.engine import Connection
from sqlalchemy import inspect as sa_inspect


@event.listens_for(QRCode, "before_insert")  # type: ignore[misc]
def set_normalized_code(mapper: Mapper, connection: Connection, target: Any) -> None:
    """
    Garantiert, dass jeder QR-Code einen gültigen Code in Großbuchstaben erhält.
    """
    target.code = normalize_code(target.code) or generate_code()


@event.listens_for(QRCode, "before_update")  # type: ignore[misc]
def keep_code_immutable(mapper: Mapper, connection: Connection, target: Any) -> None:
    history = sa_inspect(target).attrs.code.history
    if history.deleted and history.deleted[0] != target.code:
        raise ValueError("QR code is immutable once issued")
