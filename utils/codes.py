from __future__ import annotations

import re
import unicodedata

from utils import config

_UMLAUTS = str.maketrans({"ä": "ae", "ö": "oe", "ü": "ue", "ß": "ss", "Ä": "ae", "Ö": "oe", "Ü": "ue"})


def slugify(value: str, max_length: int = 100) -> str:
    """'Café Müller' → 'cafe-mueller'"""
    text = (value or "").translate(_UMLAUTS)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-zA-Z0-9]+", "-", text).strip("-").lower()
    return text[:max_length].strip("-") or "restaurant"


def build_short_code(restaurant_slug: str, table_number: str) -> str:
    number = re.sub(r"[^a-zA-Z0-9]+", "", str(table_number))
    # "T5" → "slug-T5", nicht "slug-TT5"
    number = re.sub(r"^[Tt](?=\d)", "", number) or "0"
    return f"{restaurant_slug}-T{number}"


def build_scan_url(code: str) -> str:
    """URL, die im gedruckten QR-Bild steckt."""
    return f"{config.APP_DOMAIN}/scan/{code}"


def build_short_url(short_code: str) -> str:
    return f"{config.APP_DOMAIN}/r/{short_code}"
