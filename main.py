# =============================================================================
# 🚀 TableReview – Hauptapplikation (main.py)
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from database import Base, SessionLocal, engine
from utils import config

# -------------------------------------------------------------------------
# 1️⃣ Logging (einmal, zentral)
# -------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

import models  # noqa: E402,F401  – registriert alle Tabellen an Base.metadata
from utils.cooldown_store import get_cooldown_store  # noqa: E402
from utils.review_worker import ReviewWorker  # noqa: E402
from utils.services import get_review_attribution  # noqa: E402


# -------------------------------------------------------------------------
# 2️⃣ Lifespan: Tabellen + Review-Worker
# -------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.DB_AUTO_CREATE:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created/verified")

    worker = None
    attribution = get_review_attribution()
    if not config.REVIEW_WORKER_ENABLED:
        logger.info("Review worker disabled (REVIEW_WORKER_ENABLED=0)")
    elif attribution is None:
        logger.warning("GOOGLE_PLACES_API_KEY missing – review detection disabled, scans still redirect")
    else:
        worker = ReviewWorker(attribution, SessionLocal, store=get_cooldown_store())
        await worker.start()
    app.state.review_worker = worker

    yield

    if worker is not None:
        await worker.stop()


# -------------------------------------------------------------------------
# 3️⃣ FastAPI App
# -------------------------------------------------------------------------
app = FastAPI(title="TableReview", version="1.0", lifespan=lifespan)

# -------------------------------------------------------------------------
# 4️⃣ Routen
# -------------------------------------------------------------------------
from routes import scan  # noqa: E402
from routes import api  # noqa: E402
from routes import admin  # noqa: E402
from routes import plans  # noqa: E402

app.include_router(scan.router)
app.include_router(api.router)
app.include_router(admin.router)
app.include_router(plans.router)
