from sqlalchemy import Column, Integer, String, DateTime, Boolean, Float, ForeignKey, Text
from sqlalchemy.orm import relationship

from database import Base, utc_now


class ReviewNotification(Base):
    """Best-effort-Zuordnung einer neuen Google-Bewertung zu einem Scan (keine Kausalität)."""

    __tablename__ = "review_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id", ondelete="SET NULL"), nullable=True)
    scan_id = Column(Integer, ForeignKey("scans.id", ondelete="SET NULL"), nullable=True)

    review_author = Column(String(200), nullable=True)
    review_text = Column(Text, nullable=True)
    review_rating = Column(Integer, nullable=True)
    review_time = Column(DateTime(timezone=True), nullable=True)

    total_reviews = Column(Integer, nullable=True)
    average_rating = Column(Float, nullable=True)

    notification_sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    restaurant = relationship("Restaurant")
    table = relationship("Table")
    scan = relationship("Scan")

    def __repr__(self):
        return (
            f"<ReviewNotification(id={self.id}, restaurant_id={self.restaurant_id}, "
            f"scan_id={self.scan_id}, rating={self.review_rating})>"
        )
