from __future__ import annotations

from types import SimpleNamespace

import pytest

from utils.codes import build_scan_url, build_short_code, slugify
from utils.redirects import normalize_url, place_review_url, search_url, select_redirect_url


def _restaurant(**kwargs):
    data = dict(
        name="Café Müller",
        city="München",
        address=None,
        google_review_url=None,
        google_business_url=None,
        google_place_id=None,
    )
    data.update(kwargs)
    return SimpleNamespace(**data)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://g.page/r/abc/review", "https://g.page/r/abc/review"),
        ("g.page/cafe-mueller/review", "https://g.page/cafe-mueller/review"),
        ("//maps.app.goo.gl/xyz", "https://maps.app.goo.gl/xyz"),
        ("http://example.com/bewertung", "http://example.com/bewertung"),
        ("  https://example.com  ", "https://example.com"),
    ],
)
def test_normalize_url_adds_scheme(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "javascript:alert(1)", "mailto:chef@example.com", "ftp://host/x"])
def test_normalize_url_rejects_empty_and_foreign_schemes(raw):
    assert normalize_url(raw) is None


def test_review_url_wins():
    r = _restaurant(
        google_review_url="g.page/cafe-mueller/review",
        google_business_url="https://business.google.com/cafe",
        google_place_id="ChIJ123",
    )
    assert select_redirect_url(r) == "https://g.page/cafe-mueller/review"


def test_business_url_when_review_url_unusable():
    r = _restaurant(google_review_url="javascript:void(0)", google_business_url="business.google.com/cafe")
    assert select_redirect_url(r) == "https://business.google.com/cafe"


def test_place_id_deep_link():
    r = _restaurant(google_place_id=" ChIJ123 ")
    assert select_redirect_url(r) == place_review_url("ChIJ123")
    assert select_redirect_url(r).endswith("placeid=ChIJ123")


def test_search_fallback_always_returns_url():
    url = select_redirect_url(_restaurant())
    assert url.startswith("https://www.google.com/search?q=")
    assert "Caf%C3%A9+M%C3%BCller+M%C3%BCnchen+reviews" in url


def test_search_url_uses_address_without_city():
    assert search_url("Sushi Bar", None, "Hauptstr. 1") == (
        "https://www.google.com/search?q=Sushi+Bar+Hauptstr.+1+reviews"
    )


def test_slugify_transliterates_umlauts():
    assert slugify("Café Müller & Söhne") == "cafe-mueller-soehne"
    assert slugify("   ") == "restaurant"


def test_short_code_format():
    assert build_short_code("cafe-mueller", "12") == "cafe-mueller-T12"
    assert build_short_code("cafe-mueller", "T5") == "cafe-mueller-T5"
    assert build_short_code("cafe-mueller", "Terrasse 2") == "cafe-mueller-TTerrasse2"


def test_scan_url_points_to_scan_route():
    assert build_scan_url("ABCDEF2345").endswith("/scan/ABCDEF2345")
