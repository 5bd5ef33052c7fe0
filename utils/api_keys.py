from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from models.api_key import APIKey
from models.user import User


def generate_api_key() -> str:
    return f"trv_live_{secrets.token_urlsafe(32)}"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def key_prefix(api_key: str) -> str:
    return api_key[:12]


def key_last4(api_key: str) -> str:
    return api_key[-4:]


def issue_api_key(db: Session, user: User, name: str = "Default") -> str:
    """Legt einen neuen Schlüssel an und gibt den Klartext zurück (nur dieses eine Mal)."""
    raw = generate_api_key()
    db.add(
        APIKey(
            user_id=user.id,
            name=name,
            key_prefix=key_prefix(raw),
            key_hash=hash_api_key(raw),
            last4=key_last4(raw),
        )
    )
    db.commit()
    return raw


def get_api_user(
    db: Session = Depends(get_db),
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> User:
    if not x_api_key:
        raise HTTPException(status_code=401, detail="Missing X-API-Key header")

    api_key_row = (
        db.query(APIKey)
        .filter(APIKey.key_hash == hash_api_key(x_api_key), APIKey.revoked_at.is_(None))
        .first()
    )
    if not api_key_row:
        raise HTTPException(status_code=401, detail="Invalid API key")

    user = db.query(User).filter(User.id == api_key_row.user_id).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid API key")

    api_key_row.last_used_at = datetime.now(timezone.utc)
    db.commit()
    return user


def require_admin(user: User = Depends(get_api_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user
