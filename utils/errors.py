"""
utils/errors.py
────────────────────────────────────────────
Fachliche Ausnahmen. Router übersetzen sie in HTTPException,
der Scan-Pfad fängt sie selbst ab.
────────────────────────────────────────────
"""

from __future__ import annotations


class TableReviewError(Exception):
    """Basisklasse aller fachlichen Fehler."""


class ExternalApiError(TableReviewError):
    """Reviews-API nicht erreichbar oder mit Fehlerstatus."""

    def __init__(self, message: str, *, status: str | None = None):
        super().__init__(message)
        self.status = status


class PersistenceError(TableReviewError):
    """Schreibfehler beim Speichern eines Scans."""


class QuotaExceeded(TableReviewError):
    def __init__(self, limit: int, current: int, requested: int = 1):
        super().__init__(
            f"Table limit reached ({current}/{limit}, requested {requested})"
        )
        self.limit = limit
        self.current = current
        self.requested = requested


class SubscriptionConflict(TableReviewError):
    """Restaurant hat bereits ein offenes Abo (trial/active)."""


class InvalidStatusTransition(TableReviewError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change subscription status from '{current}' to '{target}'")
        self.current = current
        self.target = target


class DuplicateEntity(TableReviewError):
    """Eindeutigkeitsverletzung (Slug, Tischnummer, E-Mail …)."""
