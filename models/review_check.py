# =============================================================================
# ⏱️ models/review_check.py
# -----------------------------------------------------------------------------
# Persistierte Prüf-Aufgabe "hat dieser Scan zu einer Bewertung geführt?".
# Wird vom ReviewWorker periodisch abgearbeitet und überlebt Neustarts.
# =============================================================================

from sqlalchemy import CheckConstraint, Column, Integer, String, DateTime, ForeignKey, Index, Text
from sqlalchemy.orm import relationship

from database import Base, utc_now


CHECK_PENDING = "pending"
CHECK_MATCHED = "matched"
CHECK_ABANDONED = "abandoned"

CHECK_STATUSES = (CHECK_PENDING, CHECK_MATCHED, CHECK_ABANDONED)


class ReviewCheck(Base):
    __tablename__ = "review_checks"
    __table_args__ = (
        Index("ix_review_checks_due", "status", "next_check_at"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in CHECK_STATUSES) + ")",
            name="ck_review_checks_status",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    scan_id = Column(Integer, ForeignKey("scans.id", ondelete="CASCADE"), unique=True, nullable=False)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), default=CHECK_PENDING, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, nullable=False)

    next_check_at = Column(DateTime(timezone=True), nullable=False)
    last_check_at = Column(DateTime(timezone=True), nullable=True)
    last_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    scan = relationship("Scan")
    restaurant = relationship("Restaurant")

    def __repr__(self):
        return (
            f"<ReviewCheck(id={self.id}, scan_id={self.scan_id}, status='{self.status}', "
            f"attempts={self.attempts}/{self.max_attempts}, errors={self.error_count})>"
        )
