"""
Hintergrund-Worker für die Review-Erkennung.

Läuft als asyncio-Task im FastAPI-Lifespan. Jeder Durchlauf:
- arbeitet fällige ReviewChecks ab (ReviewAttribution.process_due_checks)
- führt den Review-Stand ruhiger Restaurants nach (refresh_baselines)
- setzt abgelaufene Abos auf "expired"
- räumt den Cooldown-Store auf

Die DB-Arbeit ist synchron und läuft per asyncio.to_thread im Threadpool.
Zustand liegt komplett in der Datenbank, ein Neustart verliert nichts.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from utils import config
from utils.cooldown_store import CooldownStore
from utils.review_attribution import ReviewAttribution, SweepResult
from utils.subscriptions import expire_due_subscriptions

logger = logging.getLogger(__name__)


class ReviewWorker:
    def __init__(
        self,
        attribution: ReviewAttribution,
        session_factory: Callable[[], Session],
        store: Optional[CooldownStore] = None,
        interval_seconds: Optional[float] = None,
    ):
        self.attribution = attribution
        self.session_factory = session_factory
        self.store = store
        self.interval = interval_seconds or config.REVIEW_SWEEP_INTERVAL_SECONDS
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Review worker already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Review worker started (every %ss)", self.interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Review worker stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception:
                logger.exception("Review worker iteration failed")
            await asyncio.sleep(self.interval)

    def run_once(self) -> SweepResult:
        db = self.session_factory()
        try:
            expired = expire_due_subscriptions(db)
            if expired:
                logger.info("%d subscriptions expired", expired)
            result = self.attribution.process_due_checks(db)
            result.baselines = self.attribution.refresh_baselines(db)
        finally:
            db.close()
        if self.store is not None:
            self.store.sweep()
        return result
