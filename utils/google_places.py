"""
utils/google_places.py
────────────────────────────────────────────
Google Places Details (reviews, rating, user_ratings_total).
Liefert Gesamtzahl der Bewertungen, Durchschnitt und die neueste Bewertung.
────────────────────────────────────────────
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import httpx

from utils import config
from utils.errors import ExternalApiError

logger = logging.getLogger(__name__)

PLACES_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"


@dataclass
class Review:
    author: str
    rating: int
    text: str
    time: Optional[datetime]


@dataclass
class PlaceReviews:
    total: int
    rating: Optional[float]
    newest: Optional[Review]


class ReviewsProvider(Protocol):
    def fetch(self, place_id: str) -> PlaceReviews: ...


def _parse_review(raw: Dict[str, Any]) -> Review:
    ts = raw.get("time")
    return Review(
        author=raw.get("author_name") or "Anonym",
        rating=int(raw.get("rating") or 0),
        text=raw.get("text") or "",
        time=datetime.fromtimestamp(int(ts), tz=timezone.utc) if ts else None,
    )


class GooglePlacesClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else config.GOOGLE_PLACES_API_KEY
        self.language = language or config.GOOGLE_PLACES_LANGUAGE
        self._client = httpx.Client(
            timeout=timeout or config.GOOGLE_PLACES_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def fetch(self, place_id: str) -> PlaceReviews:
        if not self.api_key:
            raise ExternalApiError("GOOGLE_PLACES_API_KEY is not configured")

        params = {
            "place_id": place_id,
            "fields": "reviews,rating,user_ratings_total",
            "reviews_sort": "newest",
            "language": self.language,
            "key": self.api_key,
        }
        try:
            resp = self._client.get(PLACES_DETAILS_URL, params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            raise ExternalApiError(f"Places request failed: {exc}") from exc
        except ValueError as exc:
            raise ExternalApiError("Places response is not valid JSON") from exc

        status = payload.get("status")
        if status != "OK":
            raise ExternalApiError(f"Google API Error: {status}", status=status)

        result = payload.get("result") or {}
        reviews = [_parse_review(r) for r in (result.get("reviews") or [])]
        newest = None
        if reviews:
            epoch = datetime.min.replace(tzinfo=timezone.utc)
            newest = max(reviews, key=lambda r: r.time or epoch)

        rating = result.get("rating")
        return PlaceReviews(
            total=int(result.get("user_ratings_total") or 0),
            rating=float(rating) if rating is not None else None,
            newest=newest,
        )
