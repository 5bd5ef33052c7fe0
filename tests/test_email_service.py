from __future__ import annotations

from types import SimpleNamespace

import pytest

from utils import config
from utils import email_service
from utils.cooldown_store import MemoryCooldownStore
from utils.email_service import EmailNotifier, dispatch_scan_notification, recipient_for
from conftest import T0, FakeNotifier


def _restaurant(**kwargs):
    data = dict(id=1, name="Bistro <Nord>", email="info@bistro.de", notification_email=None, notify_on_scan=True)
    data.update(kwargs)
    return SimpleNamespace(**data)


def test_recipient_precedence(monkeypatch):
    monkeypatch.setattr(config, "NOTIFICATION_EMAIL", "fallback@example.com")
    assert recipient_for(_restaurant(notification_email="alerts@bistro.de")) == "alerts@bistro.de"
    assert recipient_for(_restaurant()) == "info@bistro.de"
    assert recipient_for(_restaurant(email="")) == "fallback@example.com"


def test_recipient_none_without_any_address(monkeypatch):
    monkeypatch.setattr(config, "NOTIFICATION_EMAIL", "")
    assert recipient_for(_restaurant(email=None)) is None


def test_send_without_smtp_host_returns_false():
    notifier = EmailNotifier(host="", port=587)
    assert notifier._send("x@example.com", "Betreff", "<p>hi</p>") is False


def test_send_without_recipient_returns_false():
    assert EmailNotifier(host="smtp.example.com")._send(None, "Betreff", "<p>hi</p>") is False


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.sent = []
        self.tls = False
        self.logged_in = None
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo_or_helo_if_needed(self):
        pass

    def starttls(self, context=None):
        self.tls = True

    def login(self, user, password):
        self.logged_in = user

    def send_message(self, msg):
        self.sent.append(msg)
        return {}


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_review_mail_is_sent_with_starttls_and_escaped(fake_smtp):
    notifier = EmailNotifier(host="smtp.example.com", port=587, user="bot", password="pw", sender="bot@example.com")
    notification = SimpleNamespace(
        review_rating=5,
        review_author="<script>alert(1)</script>",
        review_text="Tolles Essen & netter Service",
        average_rating=4.7,
        total_reviews=120,
    )

    assert notifier.send_review_notification(_restaurant(), notification, table_number="4", scan_time=T0) is True

    smtp = fake_smtp.instances[0]
    assert smtp.tls is True
    assert smtp.logged_in == "bot"
    msg = smtp.sent[0]
    assert msg["To"] == "info@bistro.de"
    assert "5-Sterne" in msg["Subject"]
    html_part = msg.get_body(preferencelist=("html",)).get_content()
    assert "&lt;script&gt;" in html_part
    assert "<script>" not in html_part
    assert "Bistro &lt;Nord&gt;" in html_part
    assert "Tisch 4" in html_part


def test_smtp_failure_returns_false(monkeypatch):
    class BrokenSMTP(FakeSMTP):
        def send_message(self, msg):
            raise OSError("connection reset")

    monkeypatch.setattr(email_service.smtplib, "SMTP", BrokenSMTP)
    notifier = EmailNotifier(host="smtp.example.com", port=587)
    table = SimpleNamespace(name=None, table_number="2", scan_count=3)
    scan = SimpleNamespace(created_at=T0, device_type="mobile")
    assert notifier.send_scan_notification(_restaurant(), table, scan) is False


def test_scan_mail_throttled_per_table():
    notifier = FakeNotifier()
    store = MemoryCooldownStore()
    restaurant = _restaurant()
    table = SimpleNamespace(id=7)
    other = SimpleNamespace(id=8)

    assert dispatch_scan_notification(notifier, store, restaurant, table, SimpleNamespace(id=1)) is True
    assert dispatch_scan_notification(notifier, store, restaurant, table, SimpleNamespace(id=2)) is False
    assert dispatch_scan_notification(notifier, store, restaurant, other, SimpleNamespace(id=3)) is True
    assert [m[2] for m in notifier.scan_mails] == [1, 3]


def test_scan_mail_disabled():
    notifier = FakeNotifier()
    restaurant = _restaurant(notify_on_scan=False)
    assert dispatch_scan_notification(notifier, MemoryCooldownStore(), restaurant, SimpleNamespace(id=1), None) is False
    assert notifier.scan_mails == []
