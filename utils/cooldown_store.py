"""
utils/cooldown_store.py
────────────────────────────────────────────
Zeitfenster-Sperren (Scan-Dedup, Mail-Drossel pro Tisch).

MemoryCooldownStore  → ein Prozess / Tests
RedisCooldownStore   → mehrere Instanzen (SET key NX PX)
────────────────────────────────────────────
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional, Protocol

from utils import config

logger = logging.getLogger(__name__)


class CooldownStore(Protocol):
    def get(self, key: str) -> Optional[float]: ...

    def set(self, key: str, window_seconds: float) -> None: ...

    def delete(self, key: str) -> None: ...

    def sweep(self) -> int: ...

    def hit(self, key: str, window_seconds: float) -> bool: ...


class MemoryCooldownStore:
    """
    Thread-sicheres Dict `key → Ablaufzeit (epoch)`.

    `hit()` liefert True, wenn der Schlüssel frei war und jetzt gesperrt ist,
    False wenn noch ein Fenster läuft. `sweep()` räumt abgelaufene Einträge
    linear auf.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._entries: Dict[str, float] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[float]:
        with self._lock:
            expires_at = self._entries.get(key)
            if expires_at is None:
                return None
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return expires_at

    def set(self, key: str, window_seconds: float) -> None:
        with self._lock:
            self._entries[key] = self._clock() + window_seconds

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, expires_at in self._entries.items() if expires_at <= now]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug("Cooldown sweep removed %d entries", len(expired))
        return len(expired)

    def hit(self, key: str, window_seconds: float) -> bool:
        now = self._clock()
        with self._lock:
            expires_at = self._entries.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._entries[key] = now + window_seconds
            return True

    def __len__(self) -> int:
        return len(self._entries)


class RedisCooldownStore:
    """Redis-Variante; Ablauf übernimmt Redis selbst (PX), `sweep()` ist ein No-op."""

    def __init__(self, client, prefix: str = "cooldown:"):
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "cooldown:") -> "RedisCooldownStore":
        import redis

        client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        return cls(client, prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[float]:
        ttl_ms = self._client.pttl(self._key(key))
        if ttl_ms is None or ttl_ms < 0:
            return None
        return time.time() + ttl_ms / 1000.0

    def set(self, key: str, window_seconds: float) -> None:
        self._client.set(self._key(key), "1", px=max(1, int(window_seconds * 1000)))

    def delete(self, key: str) -> None:
        self._client.delete(self._key(key))

    def sweep(self) -> int:
        return 0

    def hit(self, key: str, window_seconds: float) -> bool:
        try:
            acquired = self._client.set(
                self._key(key), "1", nx=True, px=max(1, int(window_seconds * 1000))
            )
        except Exception as exc:
            # Redis weg → lieber doppelt zählen als Scans verlieren
            logger.warning("Cooldown store unavailable, allowing key %s: %s", key, exc)
            return True
        return bool(acquired)


_store: Optional[CooldownStore] = None
_store_lock = threading.Lock()


def get_cooldown_store() -> CooldownStore:
    """Prozessweiter Store gemäß COOLDOWN_BACKEND (FastAPI-Dependency)."""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                if config.COOLDOWN_BACKEND == "redis":
                    logger.info("Using Redis cooldown store")
                    _store = RedisCooldownStore.from_url(config.REDIS_URL)
                else:
                    _store = MemoryCooldownStore()
    return _store
