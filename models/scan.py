# =============================================================================
# 📊 models/scan.py
# -----------------------------------------------------------------------------
# Ein Datensatz pro logischem Scan (append-only).
# Nachträglich geändert werden nur die Review-Felder (processed, resulted_in_review …).
# =============================================================================

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship

from database import Base, utc_now


class Scan(Base):
    __tablename__ = "scans"
    __table_args__ = (
        Index("ix_scans_restaurant_created", "restaurant_id", "created_at"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
            "mysql_collate": "utf8mb4_unicode_ci",
        },
    )

    # ---------------------------------------------------------------------
    # 🔹 Primär- & Fremdschlüssel
    # ---------------------------------------------------------------------
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    qr_code_id = Column(Integer, ForeignKey("qr_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="CASCADE"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False)

    # ---------------------------------------------------------------------
    # 🔹 Scan-Informationen
    # ---------------------------------------------------------------------
    ip_address = Column(String(45), nullable=True)     # IPv6 passt in 45 Zeichen
    user_agent = Column(String(255), nullable=True)
    device_type = Column(String(20), nullable=True)    # "mobile", "tablet", "desktop"
    redirected_to = Column(String(500), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    # ---------------------------------------------------------------------
    # 🔹 Review-Zuordnung (nur von der Review-Erkennung geschrieben)
    # ---------------------------------------------------------------------
    processed = Column(Boolean, default=False, nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    resulted_in_review = Column(Boolean, nullable=True)
    check_attempts = Column(Integer, default=0, nullable=False)
    review_reaction_minutes = Column(Integer, nullable=True)

    # ---------------------------------------------------------------------
    # 🔹 Beziehungen
    # ---------------------------------------------------------------------
    qr_code = relationship("QRCode")
    table = relationship("Table")
    restaurant = relationship("Restaurant")

    def __repr__(self):
        return (
            f"<Scan(id={self.id}, qr_code_id={self.qr_code_id}, device='{self.device_type}', "
            f"created_at={self.created_at}, review={self.resulted_in_review})>"
        )
