import os
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

# Vor allen App-Importen setzen – utils.config liest beim Import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_AUTO_CREATE"] = "0"
os.environ["REVIEW_WORKER_ENABLED"] = "0"
os.environ["GOOGLE_PLACES_API_KEY"] = ""
os.environ["COOLDOWN_BACKEND"] = "memory"
os.environ["SMTP_HOST"] = ""
os.environ["NOTIFICATION_EMAIL"] = ""

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from database import Base, get_db  # noqa: E402
from main import app  # noqa: E402
from models.plan import Plan  # noqa: E402
from models.qrcode import QRCode  # noqa: E402
from models.restaurant import Restaurant, STATUS_ACTIVE  # noqa: E402
from models.scan import Scan  # noqa: E402
from models.table import Table  # noqa: E402
from models.user import ROLE_ADMIN, ROLE_OWNER, User  # noqa: E402
from utils.api_keys import issue_api_key  # noqa: E402
from utils.cooldown_store import MemoryCooldownStore, get_cooldown_store  # noqa: E402
from utils.errors import ExternalApiError  # noqa: E402
from utils.google_places import PlaceReviews, Review  # noqa: E402
from utils.review_attribution import ReviewAttribution  # noqa: E402
from utils.services import get_notifier, get_review_attribution, get_session_factory  # noqa: E402
from utils.tables import ensure_qr_code  # noqa: E402

T0 = datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)


# -----------------------------------------------------------------------------
# 🧪 Fakes für externe Dienste
# -----------------------------------------------------------------------------
class FakeReviewsProvider:
    """
    Liefert nacheinander die vorgegebenen Gesamtzahlen.
    Ein Exception-Eintrag wird geworfen; der letzte Eintrag wiederholt sich.
    """

    def __init__(self, totals=None, rating: float = 4.5):
        self.totals = list(totals or [10])
        self.rating = rating
        self.calls: List[str] = []

    def fetch(self, place_id: str) -> PlaceReviews:
        self.calls.append(place_id)
        item = self.totals.pop(0) if len(self.totals) > 1 else self.totals[0]
        if isinstance(item, Exception):
            raise item
        newest = Review(author="Anna K.", rating=5, text="Super Service!", time=T0 + timedelta(minutes=5))
        return PlaceReviews(total=item, rating=self.rating, newest=newest)


class FakeNotifier:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.review_mails = []
        self.scan_mails = []
        self.no_review_mails = []

    def send_review_notification(self, restaurant, notification, table_number=None, scan_time=None) -> bool:
        self.review_mails.append((restaurant.id, notification.id, table_number, scan_time))
        return self.succeed

    def send_scan_notification(self, restaurant, table, scan) -> bool:
        self.scan_mails.append((restaurant.id, table.id, scan.id))
        return self.succeed

    def send_no_review_notification(self, restaurant, table_number, scan_time, attempts) -> bool:
        self.no_review_mails.append((restaurant.id, table_number, attempts))
        return self.succeed


def api_error(status: str = "OVER_QUERY_LIMIT") -> ExternalApiError:
    return ExternalApiError(f"Google API Error: {status}", status=status)


# -----------------------------------------------------------------------------
# 🗄️ Datenbank
# -----------------------------------------------------------------------------
@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield testing_session_local
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# -----------------------------------------------------------------------------
# 🏗️ Testdaten
# -----------------------------------------------------------------------------
class Factory:
    def __init__(self, db):
        self.db = db
        self._n = 0

    def _next(self) -> int:
        self._n += 1
        return self._n

    def user(self, role: str = ROLE_OWNER) -> User:
        n = self._next()
        user = User(username=f"user{n}", email=f"user{n}@example.com", role=role, is_active=True)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def api_key(self, user: User) -> str:
        return issue_api_key(self.db, user, name="tests")

    def plan(self, name: str = "Pro", max_tables: Optional[int] = 25, duration_months: int = 1) -> Plan:
        plan = Plan(
            name=name,
            price=49.0,
            duration_months=duration_months,
            max_tables=max_tables,
            max_scans=-1,
            features=["review_alerts"],
            is_active=True,
        )
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def restaurant(self, owner: Optional[User] = None, **overrides) -> Restaurant:
        n = self._next()
        data = dict(
            owner_id=owner.id if owner else None,
            name=f"Trattoria {n}",
            slug=f"trattoria-{n}",
            city="Berlin",
            is_active=True,
            subscription_status=STATUS_ACTIVE,
            subscription_expires_at=None,
            google_review_url=f"https://g.page/r/trattoria-{n}/review",
            google_place_id=f"place-{n}",
            notification_email=f"owner{n}@example.com",
            notify_on_scan=False,
            last_review_count=10,
        )
        data.update(overrides)
        restaurant = Restaurant(**data)
        self.db.add(restaurant)
        self.db.commit()
        self.db.refresh(restaurant)
        return restaurant

    def table(self, restaurant: Restaurant, number: str = "1", **overrides) -> Table:
        data = dict(
            restaurant_id=restaurant.id,
            table_number=number,
            name=f"Tisch {number}",
            is_active=True,
            scan_count=0,
        )
        data.update(overrides)
        table = Table(**data)
        self.db.add(table)
        self.db.commit()
        self.db.refresh(table)
        return table

    def table_with_qr(self, restaurant: Restaurant, number: str = "1"):
        table = self.table(restaurant, number)
        qr = ensure_qr_code(self.db, table)
        return table, qr

    def scan(self, qr: QRCode, created_at: datetime) -> Scan:
        scan = Scan(
            qr_code_id=qr.id,
            table_id=qr.table_id,
            restaurant_id=qr.restaurant_id,
            ip_address="203.0.113.7",
            user_agent="Mozilla/5.0 (iPhone)",
            device_type="mobile",
            redirected_to="https://g.page/r/example/review",
            created_at=created_at,
        )
        self.db.add(scan)
        self.db.commit()
        self.db.refresh(scan)
        return scan


@pytest.fixture
def factory(db):
    return Factory(db)


# -----------------------------------------------------------------------------
# 🔌 Kollaborateure
# -----------------------------------------------------------------------------
@pytest.fixture
def store():
    return MemoryCooldownStore()


@pytest.fixture
def provider():
    return FakeReviewsProvider([10])


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def attribution(provider, notifier):
    return ReviewAttribution(
        provider,
        notifier,
        first_delay_seconds=180,
        interval_seconds=120,
        max_attempts=10,
        max_error_retries=3,
        error_retry_delay_seconds=300,
        notify_no_review=False,
    )


def _install_overrides(session_factory, store, attribution, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_cooldown_store] = lambda: store
    app.dependency_overrides[get_review_attribution] = lambda: attribution
    app.dependency_overrides[get_notifier] = lambda: notifier


@pytest.fixture
def client(session_factory, store, attribution, notifier):
    _install_overrides(session_factory, store, attribution, notifier)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(session_factory, store, attribution, notifier):
    """Asynchroner Client über ASGITransport."""
    _install_overrides(session_factory, store, attribution, notifier)
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def owner(factory):
    user = factory.user()
    return user, {"X-API-Key": factory.api_key(user)}


@pytest.fixture
def admin(factory):
    user = factory.user(role=ROLE_ADMIN)
    return user, {"X-API-Key": factory.api_key(user)}
