# =============================================================================
# ⭐ utils/review_attribution.py
# -----------------------------------------------------------------------------
# "Hat dieser Scan zu einer Google-Bewertung geführt?"
#
# Pro Scan eine ReviewCheck-Zeile (pending → matched | abandoned).
# process_due_checks() wird periodisch vom ReviewWorker aufgerufen:
#   - ein API-Aufruf pro Restaurant und Durchlauf
#   - Anzahl gestiegen → neueste Bewertung wird dem JÜNGSTEN offenen Scan
#     des Restaurants zugeordnet (Schätzung, kein Kausalnachweis)
#   - sonst attempts += 1, nach max_attempts aufgeben
#   - API-Fehler zählen getrennt (error_count), nach max_error_retries aufgeben
#
# refresh_baselines() hält den Stand von Restaurants ohne offene Checks aktuell,
# damit Bewertungen aus ruhigen Phasen nicht dem nächsten Scan zugeschlagen werden.
#
# Überlappende Scans desselben Restaurants sind nicht eindeutig zuordenbar:
# gebunden wird immer nur an den jüngsten offenen Scan, ältere laufen weiter.
# Parallele Läufe schreiben last_review_count per Compare-and-Set; wer verliert,
# wertet seinen Poll als "keine Änderung". Mehr Ordnung wird nicht garantiert.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from itertools import groupby
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import as_utc, utc_now
from models.restaurant import Restaurant
from models.review_check import CHECK_ABANDONED, CHECK_MATCHED, CHECK_PENDING, ReviewCheck
from models.review_notification import ReviewNotification
from models.scan import Scan
from models.table import Table
from utils import config
from utils.email_service import Notifier
from utils.errors import ExternalApiError
from utils.google_places import PlaceReviews, ReviewsProvider
from utils.scan_resolver import subscription_is_serving

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    checked: int = 0
    matched: int = 0
    abandoned: int = 0
    errors: int = 0
    restaurants: int = 0
    baselines: int = 0
    notifications: List[int] = field(default_factory=list)


class ReviewAttribution:
    def __init__(
        self,
        provider: ReviewsProvider,
        notifier: Notifier,
        *,
        first_delay_seconds: Optional[int] = None,
        interval_seconds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        max_error_retries: Optional[int] = None,
        error_retry_delay_seconds: Optional[int] = None,
        notify_no_review: Optional[bool] = None,
        baseline_refresh_seconds: Optional[int] = None,
    ):
        self.provider = provider
        self.notifier = notifier
        self.first_delay = timedelta(seconds=_pick(first_delay_seconds, config.REVIEW_FIRST_CHECK_DELAY_SECONDS))
        self.interval = timedelta(seconds=_pick(interval_seconds, config.REVIEW_CHECK_INTERVAL_SECONDS))
        self.max_attempts = _pick(max_attempts, config.REVIEW_MAX_ATTEMPTS)
        self.max_error_retries = _pick(max_error_retries, config.REVIEW_MAX_ERROR_RETRIES)
        self.error_retry_delay = timedelta(
            seconds=_pick(error_retry_delay_seconds, config.REVIEW_ERROR_RETRY_DELAY_SECONDS)
        )
        self.notify_no_review = _pick(notify_no_review, config.REVIEW_NOTIFY_NO_REVIEW)
        self.baseline_refresh = timedelta(
            seconds=_pick(baseline_refresh_seconds, config.REVIEW_BASELINE_REFRESH_SECONDS)
        )

    # ---------------------------------------------------------------------
    # 📝 Registrierung (nach der Weiterleitung)
    # ---------------------------------------------------------------------
    def register_scan(self, db: Session, scan_id: int, now: Optional[datetime] = None) -> Optional[ReviewCheck]:
        now = now or utc_now()
        scan = db.get(Scan, scan_id)
        if scan is None:
            logger.warning("Scan %s vanished before review check registration", scan_id)
            return None

        existing = db.query(ReviewCheck).filter(ReviewCheck.scan_id == scan.id).first()
        if existing is not None:
            return existing

        restaurant = db.get(Restaurant, scan.restaurant_id)
        if restaurant is None or not (restaurant.google_place_id or "").strip():
            logger.debug("Restaurant %s has no place id, review check skipped", scan.restaurant_id)
            return None

        # Ohne offene Checks ist der gespeicherte Stand evtl. veraltet
        if restaurant.last_review_count is None or not self._has_pending(db, restaurant.id):
            self._fetch_baseline(db, restaurant, now)

        check = ReviewCheck(
            scan_id=scan.id,
            restaurant_id=restaurant.id,
            status=CHECK_PENDING,
            attempts=0,
            error_count=0,
            max_attempts=self.max_attempts,
            next_check_at=now + self.first_delay,
            created_at=now,
        )
        db.add(check)
        db.commit()
        logger.info(
            "Review check registered: scan=%s restaurant=%s first check at %s",
            scan.id, restaurant.id, check.next_check_at.isoformat(),
        )
        return check

    def _fetch_baseline(self, db: Session, restaurant: Restaurant, now: datetime) -> None:
        try:
            result = self.provider.fetch(restaurant.google_place_id)
        except ExternalApiError as exc:
            logger.warning("Baseline review count for restaurant %s unavailable: %s", restaurant.id, exc)
            return
        restaurant.last_review_count = result.total
        restaurant.current_rating = result.rating
        restaurant.last_review_check_at = now
        db.commit()
        logger.info("Baseline review count for restaurant %s: %s", restaurant.id, result.total)

    def _has_pending(self, db: Session, restaurant_id: int) -> bool:
        return (
            db.query(ReviewCheck.id)
            .filter(ReviewCheck.restaurant_id == restaurant_id, ReviewCheck.status == CHECK_PENDING)
            .first()
            is not None
        )

    # ---------------------------------------------------------------------
    # 🔁 Periodischer Durchlauf
    # ---------------------------------------------------------------------
    def process_due_checks(self, db: Session, now: Optional[datetime] = None) -> SweepResult:
        now = now or utc_now()
        result = SweepResult()

        due = (
            db.query(ReviewCheck)
            .filter(ReviewCheck.status == CHECK_PENDING, ReviewCheck.next_check_at <= now)
            .order_by(ReviewCheck.restaurant_id, ReviewCheck.id)
            .all()
        )
        for restaurant_id, group in groupby(due, key=lambda c: c.restaurant_id):
            checks = list(group)
            result.restaurants += 1
            result.checked += len(checks)
            try:
                self._process_restaurant(db, restaurant_id, checks, now, result)
            except SQLAlchemyError:
                db.rollback()
                result.errors += 1
                logger.exception("Review sweep failed for restaurant %s", restaurant_id)

        if due:
            logger.info(
                "Review sweep: %d checks / %d restaurants, %d matched, %d abandoned, %d errors",
                result.checked, result.restaurants, result.matched, result.abandoned, result.errors,
            )
        return result

    def _process_restaurant(
        self,
        db: Session,
        restaurant_id: int,
        checks: List[ReviewCheck],
        now: datetime,
        result: SweepResult,
    ) -> None:
        restaurant = db.get(Restaurant, restaurant_id)
        if (
            restaurant is None
            or not restaurant.is_active
            or not subscription_is_serving(restaurant, now)
            or not (restaurant.google_place_id or "").strip()
        ):
            for check in checks:
                self._abandon(db, check, now, reason="restaurant not servable")
                result.abandoned += 1
            db.commit()
            logger.info("Review checks for restaurant %s abandoned: restaurant not servable", restaurant_id)
            return

        try:
            reviews = self.provider.fetch(restaurant.google_place_id)
        except ExternalApiError as exc:
            logger.warning("Places API failed for restaurant %s: %s", restaurant_id, exc)
            result.errors += 1
            for check in checks:
                check.error_count += 1
                check.last_error = str(exc)[:1000]
                check.last_check_at = now
                if check.error_count >= self.max_error_retries:
                    self._abandon(db, check, now, reason="api errors")
                    result.abandoned += 1
                else:
                    check.next_check_at = now + self.error_retry_delay
            db.commit()
            return

        matched = self._apply_count(db, restaurant, reviews, now)
        pending_misses = [c for c in checks if matched is None or c.id != matched[0].id]

        no_review: List[ReviewCheck] = []
        for check in pending_misses:
            check.attempts += 1
            check.last_check_at = now
            check.last_error = None
            scan = db.get(Scan, check.scan_id)
            if scan is not None:
                scan.check_attempts = check.attempts
            if check.attempts >= check.max_attempts:
                self._abandon(db, check, now, reason="max attempts")
                result.abandoned += 1
                no_review.append(check)
            else:
                check.next_check_at = now + self.interval
        db.commit()

        if matched is not None:
            _, notification = matched
            result.matched += 1
            result.notifications.append(notification.id)
            self._notify_review(db, restaurant, notification)

        if self.notify_no_review:
            for check in no_review:
                self._notify_no_review(db, restaurant, check)

    # ---------------------------------------------------------------------
    # 🛟 Backup: Stand ruhiger Restaurants nachführen
    # ---------------------------------------------------------------------
    def refresh_baselines(self, db: Session, now: Optional[datetime] = None) -> int:
        """
        Liest den Review-Stand aller bedienten Restaurants ohne offenen Check neu ein,
        sobald er älter als baseline_refresh ist. Zuwächse hier gehören keinem Scan.
        """
        now = now or utc_now()
        cutoff = now - self.baseline_refresh
        busy = db.query(ReviewCheck.restaurant_id).filter(ReviewCheck.status == CHECK_PENDING)
        candidates = (
            db.query(Restaurant)
            .filter(
                Restaurant.is_active.is_(True),
                Restaurant.google_place_id.isnot(None),
                Restaurant.google_place_id != "",
                ~Restaurant.id.in_(busy),
                or_(Restaurant.last_review_check_at.is_(None), Restaurant.last_review_check_at <= cutoff),
            )
            .order_by(Restaurant.id)
            .all()
        )

        refreshed = 0
        for restaurant in candidates:
            if not subscription_is_serving(restaurant, now):
                continue
            try:
                reviews = self.provider.fetch(restaurant.google_place_id)
            except ExternalApiError as exc:
                logger.warning("Baseline refresh for restaurant %s failed: %s", restaurant.id, exc)
                continue
            try:
                if self._compare_and_set(
                    db, restaurant.id, restaurant.last_review_count, reviews.total, reviews.rating, now
                ):
                    refreshed += 1
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception("Baseline refresh for restaurant %s could not be saved", restaurant.id)

        if refreshed:
            logger.info("Review baselines refreshed for %d restaurants", refreshed)
        return refreshed

    # ---------------------------------------------------------------------
    # 🔢 Review-Stand auswerten (Compare-and-Set auf last_review_count)
    # ---------------------------------------------------------------------
    def _apply_count(
        self,
        db: Session,
        restaurant: Restaurant,
        reviews: PlaceReviews,
        now: datetime,
    ) -> Optional[Tuple[ReviewCheck, ReviewNotification]]:
        baseline = restaurant.last_review_count
        current = reviews.total

        if baseline is not None and current > baseline:
            if not self._compare_and_set(db, restaurant.id, baseline, current, reviews.rating, now):
                logger.info("Review count for restaurant %s changed concurrently, poll ignored", restaurant.id)
                return None
            target = self._latest_pending_check(db, restaurant.id, now)
            if target is None:
                return None
            return target, self._match(db, restaurant, target, reviews, now)

        if baseline is None or current < baseline:
            # Erste Messung oder gelöschte Bewertungen → neue Basis
            self._compare_and_set(db, restaurant.id, baseline, current, reviews.rating, now)
        else:
            restaurant.current_rating = reviews.rating
            restaurant.last_review_check_at = now
        return None

    def _compare_and_set(
        self,
        db: Session,
        restaurant_id: int,
        expected: Optional[int],
        new_count: int,
        rating: Optional[float],
        now: datetime,
    ) -> bool:
        query = db.query(Restaurant).filter(Restaurant.id == restaurant_id)
        if expected is None:
            query = query.filter(Restaurant.last_review_count.is_(None))
        else:
            query = query.filter(Restaurant.last_review_count == expected)
        updated = query.update(
            {
                Restaurant.last_review_count: new_count,
                Restaurant.current_rating: rating,
                Restaurant.last_review_check_at: now,
            },
            synchronize_session="fetch",
        )
        return updated == 1

    def _latest_pending_check(self, db: Session, restaurant_id: int, now: datetime) -> Optional[ReviewCheck]:
        return (
            db.query(ReviewCheck)
            .join(Scan, Scan.id == ReviewCheck.scan_id)
            .filter(
                ReviewCheck.restaurant_id == restaurant_id,
                ReviewCheck.status == CHECK_PENDING,
                Scan.created_at <= now,
            )
            .order_by(Scan.created_at.desc(), Scan.id.desc())
            .first()
        )

    def _match(
        self,
        db: Session,
        restaurant: Restaurant,
        check: ReviewCheck,
        reviews: PlaceReviews,
        now: datetime,
    ) -> ReviewNotification:
        scan = db.get(Scan, check.scan_id)
        newest = reviews.newest

        check.status = CHECK_MATCHED
        check.attempts += 1
        check.last_check_at = now
        check.last_error = None

        reaction_minutes = None
        if scan is not None:
            created = as_utc(scan.created_at)
            reaction_minutes = max(0, round((now - created).total_seconds() / 60)) if created else None
            scan.processed = True
            scan.processed_at = now
            scan.resulted_in_review = True
            scan.check_attempts = check.attempts
            scan.review_reaction_minutes = reaction_minutes

        notification = ReviewNotification(
            restaurant_id=restaurant.id,
            table_id=scan.table_id if scan is not None else None,
            scan_id=check.scan_id,
            review_author=newest.author if newest else "Anonym",
            review_text=newest.text if newest else None,
            review_rating=newest.rating if newest else None,
            review_time=(newest.time if newest and newest.time else now),
            total_reviews=reviews.total,
            average_rating=reviews.rating,
            notification_sent=False,
        )
        db.add(notification)
        db.flush()
        logger.info(
            "Review detected for restaurant %s, attributed to scan %s (%s min after scan)",
            restaurant.id, check.scan_id, reaction_minutes,
        )
        return notification

    def _abandon(self, db: Session, check: ReviewCheck, now: datetime, reason: str) -> None:
        check.status = CHECK_ABANDONED
        check.last_check_at = now
        scan = db.get(Scan, check.scan_id)
        if scan is not None:
            scan.processed = True
            scan.processed_at = now
            scan.resulted_in_review = False
            scan.check_attempts = check.attempts
        logger.info("Review check %s for scan %s abandoned (%s)", check.id, check.scan_id, reason)

    # ---------------------------------------------------------------------
    # 📧 Benachrichtigungen (nach dem Commit)
    # ---------------------------------------------------------------------
    def _notify_review(self, db: Session, restaurant: Restaurant, notification: ReviewNotification) -> None:
        scan = db.get(Scan, notification.scan_id) if notification.scan_id else None
        table = db.get(Table, notification.table_id) if notification.table_id else None
        sent = self.notifier.send_review_notification(
            restaurant,
            notification,
            table_number=table.table_number if table else None,
            scan_time=as_utc(scan.created_at) if scan else None,
        )
        if sent:
            notification.notification_sent = True
            db.commit()

    def _notify_no_review(self, db: Session, restaurant: Restaurant, check: ReviewCheck) -> None:
        scan = db.get(Scan, check.scan_id)
        table = db.get(Table, scan.table_id) if scan else None
        self.notifier.send_no_review_notification(
            restaurant,
            table.table_number if table else None,
            as_utc(scan.created_at) if scan else None,
            check.attempts,
        )


def _pick(value, default):
    return default if value is None else value
