# =============================================================================
# 🧩 init_db.py
# -----------------------------------------------------------------------------
# Initialisiert die Datenbank für TableReview:
#   - Erstellt alle Tabellen
#   - Fügt Standard-Tarifpläne ein
#   - Legt einen Admin an und gibt dessen API-Key EINMAL aus
# =============================================================================

from __future__ import annotations

import argparse
import logging

from database import Base, SessionLocal, engine
import models  # noqa: F401
from models.user import ROLE_ADMIN, User
from seeds.plans_seed import seed_plans
from utils.api_keys import issue_api_key

logger = logging.getLogger("init_db")


def main(admin_email: str, admin_username: str) -> None:
    logger.info("Erstelle Tabellen ...")
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        seed_plans(db)

        admin = db.query(User).filter(User.email == admin_email).first()
        if admin is not None:
            logger.info("Admin %s existiert bereits", admin_email)
            return

        admin = User(username=admin_username, email=admin_email, role=ROLE_ADMIN, is_active=True)
        db.add(admin)
        db.commit()
        db.refresh(admin)
        api_key = issue_api_key(db, admin, name="bootstrap")
        # Klartext nur hier – gespeichert wird ausschließlich der Hash
        print(f"Admin {admin_email} angelegt. X-API-Key: {api_key}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    parser = argparse.ArgumentParser(description="TableReview-Datenbank initialisieren")
    parser.add_argument("--admin-email", default="admin@tablereview.local")
    parser.add_argument("--admin-username", default="admin")
    args = parser.parse_args()
    main(args.admin_email, args.admin_username)
