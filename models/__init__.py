# =============================================================================
# 📦 models/__init__.py
# -----------------------------------------------------------------------------
# Alle Modelle registrieren (Base.metadata für create_all + Alembic)
# =============================================================================

from .user import User
from .api_key import APIKey
from .plan import Plan
from .restaurant import Restaurant
from .table import Table
from .qrcode import QRCode
from .scan import Scan
from .subscription import Subscription
from .review_check import ReviewCheck
from .review_notification import ReviewNotification

__all__ = [
    "User",
    "APIKey",
    "Plan",
    "Restaurant",
    "Table",
    "QRCode",
    "Scan",
    "Subscription",
    "ReviewCheck",
    "ReviewNotification",
]
