from __future__ import annotations

from datetime import timedelta

from sqlalchemy.exc import OperationalError

from models.qrcode import QRCode
from models.scan import Scan
from models.table import Table
from utils.cooldown_store import MemoryCooldownStore
from utils.scan_recorder import dedup_key, device_bucket, record_scan
from utils.scan_resolver import resolve_code
from conftest import T0

IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def test_device_bucket():
    assert device_bucket(IPHONE) == "mobile"
    assert device_bucket("Mozilla/5.0 (Linux; Android 14) Mobile") == "mobile"
    assert device_bucket("Mozilla/5.0 (iPad; CPU OS 17_0)") == "tablet"
    assert device_bucket("Mozilla/5.0 (Windows NT 10.0; Win64; x64)") == "desktop"
    assert device_bucket("") == "desktop"


def test_dedup_key_hashes_user_agent():
    key = dedup_key(5, "10.0.0.1", IPHONE)
    assert key.startswith("scan:5:10.0.0.1:")
    assert IPHONE not in key


def test_record_scan_increments_counts_by_exactly_one(db, factory, store):
    restaurant = factory.restaurant()
    table, qr = factory.table_with_qr(restaurant)

    scan = record_scan(db, resolve_code(db, qr.code), store, "203.0.113.7", IPHONE, now=T0)

    assert scan is not None
    assert scan.device_type == "mobile"
    assert scan.redirected_to == restaurant.google_review_url
    assert scan.processed is False
    assert db.get(QRCode, qr.id).scan_count == 1
    assert db.get(Table, table.id).scan_count == 1
    assert db.query(Scan).count() == 1


def test_duplicate_scan_within_window_is_suppressed(db, factory):
    clock = FakeClock()
    store = MemoryCooldownStore(clock=clock)
    restaurant = factory.restaurant()
    table, qr = factory.table_with_qr(restaurant)

    first = record_scan(db, resolve_code(db, qr.code), store, "203.0.113.7", IPHONE, now=T0)
    clock.now += 5
    second = record_scan(db, resolve_code(db, qr.code), store, "203.0.113.7", IPHONE, now=T0 + timedelta(seconds=5))

    assert first is not None
    assert second is None
    assert db.get(QRCode, qr.id).scan_count == 1

    clock.now += 10
    third = record_scan(db, resolve_code(db, qr.code), store, "203.0.113.7", IPHONE, now=T0 + timedelta(seconds=15))
    assert third is not None
    assert db.get(Table, table.id).scan_count == 2


def test_different_clients_are_counted_separately(db, factory, store):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)

    record_scan(db, resolve_code(db, qr.code), store, "203.0.113.7", IPHONE, now=T0)
    record_scan(db, resolve_code(db, qr.code), store, "203.0.113.8", IPHONE, now=T0)

    assert db.get(QRCode, qr.id).scan_count == 2


def test_rejected_resolution_is_not_recorded(db, store):
    assert record_scan(db, resolve_code(db, "NOPE"), store, "203.0.113.7", IPHONE) is None
    assert db.query(Scan).count() == 0


def test_write_failure_returns_none_and_releases_dedup_key(db, factory, store, monkeypatch):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    resolution = resolve_code(db, qr.code)

    def broken_commit():
        raise OperationalError("INSERT INTO scans", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", broken_commit)
    assert record_scan(db, resolution, store, "203.0.113.7", IPHONE, now=T0) is None
    assert store.get(dedup_key(qr.id, "203.0.113.7", IPHONE)) is None


def test_reload_failure_after_commit_does_not_escape(db, factory, store, monkeypatch):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    resolution = resolve_code(db, qr.code)

    def broken_refresh(instance, *args, **kwargs):
        raise OperationalError("SELECT scans", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "refresh", broken_refresh)
    assert record_scan(db, resolution, store, "203.0.113.7", IPHONE, now=T0) is None
