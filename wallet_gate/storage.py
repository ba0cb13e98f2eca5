"""In-memory storage backend for tests and local development.

This module provides a minimal storage layer that mirrors the interface of
``wallet_gate.database.RedisStore`` but keeps everything in Python
dictionaries.  The test-suite and ``FLASK_ENV=development`` without Redis rely
on it; nothing stored here survives a restart.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

BUCKETS = ("salts", "users", "guilds", "replies")


class MemoryStore:
    """Dictionary-backed key-value store with per-entry expiry."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.buckets: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.init_storage()

    def init_storage(self) -> None:
        """Reset every bucket to empty.

        Re-initialising recreates the bucket dictionaries but leaves
        ``self.buckets`` itself in place so references held by fixtures remain
        valid.
        """
        with self._lock:
            self.buckets.clear()
            self.buckets.update({name: {} for name in BUCKETS})

    def ping(self) -> bool:
        return True

    # ------------------------------------------------------------------ helpers

    def _store_value(self, bucket_name: str, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at: Optional[datetime] = None
        if ttl:
            expires_at = datetime.utcnow() + timedelta(seconds=ttl)

        self.buckets[bucket_name][key] = {
            "value": value,
            "expires_at": expires_at,
        }

    def _get_value(self, bucket_name: str, key: str) -> Optional[Any]:
        bucket = self.buckets[bucket_name]
        entry = bucket.get(key)
        if not entry:
            return None

        expires_at = entry.get("expires_at")
        if isinstance(expires_at, datetime) and expires_at < datetime.utcnow():
            bucket.pop(key, None)
            return None

        return entry.get("value")

    def _delete_value(self, bucket_name: str, key: str) -> None:
        self.buckets[bucket_name].pop(key, None)

    def _hash(self, bucket_name: str, key: str) -> Dict[str, str]:
        with self._lock:
            value = self._get_value(bucket_name, key)
            if value is None:
                value = {}
                self._store_value(bucket_name, key, value)
            return value

    # --------------------------------------------------------------- challenges

    def set_challenge(self, subject_id: str, salt: str, ttl: int) -> None:
        with self._lock:
            self._store_value("salts", subject_id, salt, ttl)

    def get_challenge(self, subject_id: str) -> Optional[str]:
        with self._lock:
            return self._get_value("salts", subject_id)

    def consume_challenge(self, subject_id: str, salt: str) -> bool:
        """Delete the challenge only if it still holds ``salt``."""
        with self._lock:
            if self._get_value("salts", subject_id) != salt:
                return False
            self._delete_value("salts", subject_id)
            return True

    # --------------------------------------------------------------- role rules

    def put_role_rule(self, guild_id: str, role_id: str, encoded: str) -> None:
        with self._lock:
            self._hash("guilds", guild_id)[role_id] = encoded

    def get_role_rules(self, guild_id: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._get_value("guilds", guild_id) or {})

    # ----------------------------------------------------------------- bindings

    def add_binding(self, subject_id: str, address: str, signature: str) -> None:
        with self._lock:
            self._hash("users", subject_id)[address] = signature

    def get_bindings(self, subject_id: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._get_value("users", subject_id) or {})

    # ------------------------------------------------------------- reply routes

    def put_reply_route(self, token: str, encoded: str, ttl: int) -> None:
        with self._lock:
            self._store_value("replies", token, encoded, ttl)

    def get_reply_route(self, token: str) -> Optional[str]:
        with self._lock:
            return self._get_value("replies", token)

    def delete_reply_route(self, token: str) -> None:
        with self._lock:
            self._delete_value("replies", token)

    def close(self) -> None:
        pass
