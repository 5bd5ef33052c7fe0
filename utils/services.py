"""
Feste Kollaborateure der Anwendung (FastAPI-Dependencies).
Tests ersetzen sie über app.dependency_overrides.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy.orm import Session

from database import SessionLocal
from utils import config
from utils.email_service import EmailNotifier, Notifier
from utils.google_places import GooglePlacesClient
from utils.review_attribution import ReviewAttribution


@lru_cache(maxsize=1)
def _notifier() -> EmailNotifier:
    return EmailNotifier()


@lru_cache(maxsize=1)
def _attribution() -> ReviewAttribution:
    return ReviewAttribution(GooglePlacesClient(), _notifier())


def get_notifier() -> Notifier:
    return _notifier()


def get_review_attribution() -> Optional[ReviewAttribution]:
    """Ohne GOOGLE_PLACES_API_KEY keine Review-Erkennung (Scans leiten trotzdem weiter)."""
    if not config.GOOGLE_PLACES_API_KEY:
        return None
    return _attribution()


def get_session_factory() -> Callable[[], Session]:
    """Für Hintergrund-Tasks, die nach der Antwort eine eigene Session brauchen."""
    return SessionLocal
