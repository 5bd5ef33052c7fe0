from __future__ import annotations

from models.qrcode import QRCode
from models.review_check import ReviewCheck
from models.scan import Scan

JSON = {"Accept": "application/json"}
IPHONE = {"User-Agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"}


def test_scan_redirects_to_review_page(client, db, factory):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)

    response = client.get(f"/scan/{qr.code}", headers=IPHONE, follow_redirects=False)

    assert response.status_code == 302
    assert response.headers["location"] == restaurant.google_review_url
    scan = db.query(Scan).one()
    assert scan.device_type == "mobile"
    assert scan.ip_address == "testclient"


def test_alias_routes_redirect(client, factory):
    restaurant = factory.restaurant(slug="zum-anker")
    _, qr = factory.table_with_qr(restaurant, "3")

    r1 = client.get(f"/qr/{qr.code}", follow_redirects=False)
    r2 = client.get("/r/zum-anker-T3", headers={"User-Agent": "other"}, follow_redirects=False)

    assert r1.status_code == 302
    assert r2.status_code == 302
    assert r2.headers["location"] == restaurant.google_review_url


def test_lowercase_code_is_accepted(client, factory):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    assert client.get(f"/scan/{qr.code.lower()}", follow_redirects=False).status_code == 302


def test_unknown_code_json(client):
    response = client.get("/scan/UNKNOWN123", headers=JSON, follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["error"] == "code_invalid"


def test_unknown_code_html(client):
    response = client.get("/scan/UNKNOWN123", follow_redirects=False)
    assert response.status_code == 404
    assert "text/html" in response.headers["content-type"]
    assert "QR-Code nicht gefunden" in response.text


def test_inactive_restaurant_403(client, db, factory):
    restaurant = factory.restaurant(is_active=False)
    _, qr = factory.table_with_qr(restaurant)

    response = client.get(f"/scan/{qr.code}", headers=JSON, follow_redirects=False)

    assert response.status_code == 403
    assert response.json()["error"] == "restaurant_inactive"
    assert db.query(Scan).count() == 0


def test_paused_subscription_html(client, factory):
    restaurant = factory.restaurant(subscription_status="expired")
    _, qr = factory.table_with_qr(restaurant)

    response = client.get(f"/scan/{qr.code}", follow_redirects=False)

    assert response.status_code == 403
    assert "Derzeit nicht verfügbar" in response.text


def test_inconsistent_data_500(client, db, factory):
    restaurant = factory.restaurant()
    other = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    qr.restaurant_id = other.id
    db.commit()

    response = client.get(f"/scan/{qr.code}", headers=JSON, follow_redirects=False)
    assert response.status_code == 500
    assert response.json()["error"] == "data_inconsistent"


def test_scan_registers_review_check_in_background(client, db, factory):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)

    client.get(f"/scan/{qr.code}", headers=IPHONE, follow_redirects=False)

    check = db.query(ReviewCheck).one()
    assert check.restaurant_id == restaurant.id
    assert check.status == "pending"


def test_duplicate_scan_counts_once(client, db, factory):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)

    for _ in range(3):
        assert client.get(f"/scan/{qr.code}", headers=IPHONE, follow_redirects=False).status_code == 302

    db.expire_all()
    assert db.get(QRCode, qr.id).scan_count == 1
    assert db.query(ReviewCheck).count() == 1


def test_scan_mail_sent_once_per_cooldown(client, factory, notifier):
    restaurant = factory.restaurant(notify_on_scan=True)
    table, qr = factory.table_with_qr(restaurant)

    client.get(f"/scan/{qr.code}", headers={"User-Agent": "a"}, follow_redirects=False)
    client.get(f"/scan/{qr.code}", headers={"User-Agent": "b"}, follow_redirects=False)

    assert len(notifier.scan_mails) == 1
    assert notifier.scan_mails[0][1] == table.id


def test_no_scan_mail_when_disabled(client, factory, notifier):
    restaurant = factory.restaurant(notify_on_scan=False)
    _, qr = factory.table_with_qr(restaurant)
    client.get(f"/scan/{qr.code}", follow_redirects=False)
    assert notifier.scan_mails == []


def test_redirect_without_review_detection(client, db, factory):
    from main import app
    from utils.services import get_review_attribution

    app.dependency_overrides[get_review_attribution] = lambda: None
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)

    response = client.get(f"/scan/{qr.code}", follow_redirects=False)

    assert response.status_code == 302
    assert db.query(Scan).count() == 1
    assert db.query(ReviewCheck).count() == 0


def test_stats(client, factory):
    restaurant = factory.restaurant()
    _, qr = factory.table_with_qr(restaurant)
    client.get(f"/scan/{qr.code}", follow_redirects=False)

    body = client.get(f"/scan/{qr.code}/stats").json()

    assert body["code"] == qr.code
    assert body["scan_count"] == 1
    assert body["last_scan_at"] is not None
    assert client.get("/scan/NOPE/stats").status_code == 404
