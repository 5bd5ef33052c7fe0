"""
utils/redirects.py
────────────────────────────────────────────
Ziel-URL für einen Scan bestimmen. Reihenfolge (erste nicht-leere gewinnt):

1. google_review_url
2. google_business_url
3. Place-ID Deep-Link
4. Google-Suche nach Name (+ Stadt/Adresse) – liefert immer etwas
────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote_plus, urlparse

PLACE_REVIEW_URL = "https://search.google.com/local/writereview?placeid={place_id}"
SEARCH_URL = "https://www.google.com/search?q={query}"

_ALLOWED_SCHEMES = {"http", "https"}


def normalize_url(raw: Optional[str]) -> Optional[str]:
    """
    Ergänzt fehlendes Schema (→ https://). Gibt None zurück für leere Werte
    oder Schemata außer http/https (javascript:, data: …).
    """
    url = (raw or "").strip()
    if not url:
        return None

    if url.startswith("//"):
        url = f"https:{url}"
    elif "://" not in url:
        # "mailto:x", "javascript:alert(1)" haben kein "://", aber ein Schema
        head = url.split("/", 1)[0]
        if ":" in head and not head.split(":", 1)[1].isdigit():
            return None
        url = f"https://{url}"

    parsed = urlparse(url)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not parsed.netloc:
        return None
    return url


def place_review_url(place_id: str) -> str:
    return PLACE_REVIEW_URL.format(place_id=quote_plus(place_id.strip()))


def search_url(name: Optional[str], city: Optional[str] = None, address: Optional[str] = None) -> str:
    parts = [(name or "").strip() or "restaurant"]
    location = (city or "").strip() or (address or "").strip()
    if location:
        parts.append(location)
    parts.append("reviews")
    return SEARCH_URL.format(query=quote_plus(" ".join(parts)))


def select_redirect_url(restaurant) -> str:
    for candidate in (restaurant.google_review_url, restaurant.google_business_url):
        url = normalize_url(candidate)
        if url:
            return url

    place_id = (restaurant.google_place_id or "").strip()
    if place_id:
        return place_review_url(place_id)

    return search_url(restaurant.name, restaurant.city, restaurant.address)
