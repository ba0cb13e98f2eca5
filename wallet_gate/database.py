"""
Key-value store connection management for wallet-gate.

Redis holds short-lived challenge salts, reply routes, and the durable
address and role-rule hashes.  Key layout:

    salt:{subject_id}    string, TTL'd
    user:{subject_id}    hash address -> signature
    guild:{guild_id}     hash role_id -> JSON rule
    reply:{token}        string JSON, TTL'd
"""

import functools
import logging
from typing import Any, Dict, Mapping, Optional, Union

import redis

from wallet_gate.errors import UpstreamUnavailable
from wallet_gate.storage import MemoryStore

logger = logging.getLogger(__name__)

Store = Union["RedisStore", MemoryStore]


def _translate_errors(func):
    """Surface Redis failures as ``UpstreamUnavailable``."""

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except redis.RedisError as e:
            logger.error(f"Redis {func.__name__} failed: {e}")
            raise UpstreamUnavailable() from e

    return wrapper


def salt_key(subject_id: str) -> str:
    return f"salt:{subject_id}"


def user_key(subject_id: str) -> str:
    return f"user:{subject_id}"


def guild_key(guild_id: str) -> str:
    return f"guild:{guild_id}"


def reply_key(token: str) -> str:
    return f"reply:{token}"


class RedisStore:
    """Redis implementation of the wallet-gate store interface."""

    def __init__(self, client: redis.Redis):
        self.client = client

    @_translate_errors
    def ping(self) -> bool:
        return bool(self.client.ping())

    @_translate_errors
    def set_challenge(self, subject_id: str, salt: str, ttl: int) -> None:
        self.client.set(salt_key(subject_id), salt, ex=ttl)

    @_translate_errors
    def get_challenge(self, subject_id: str) -> Optional[str]:
        return self.client.get(salt_key(subject_id))

    @_translate_errors
    def consume_challenge(self, subject_id: str, salt: str) -> bool:
        """
        Atomically delete the challenge if it still holds ``salt``.

        Two concurrent verifications of the same salt race on the WATCHed key;
        only the first transaction commits.

        Returns:
            True if this call removed the challenge
        """
        key = salt_key(subject_id)
        with self.client.pipeline() as pipe:
            try:
                pipe.watch(key)
                if pipe.get(key) != salt:
                    pipe.unwatch()
                    return False
                pipe.multi()
                pipe.delete(key)
                deleted = pipe.execute()
            except redis.WatchError:
                return False
        return bool(deleted and deleted[0])

    @_translate_errors
    def put_role_rule(self, guild_id: str, role_id: str, encoded: str) -> None:
        self.client.hset(guild_key(guild_id), role_id, encoded)

    @_translate_errors
    def get_role_rules(self, guild_id: str) -> Dict[str, str]:
        return self.client.hgetall(guild_key(guild_id)) or {}

    @_translate_errors
    def add_binding(self, subject_id: str, address: str, signature: str) -> None:
        self.client.hset(user_key(subject_id), address, signature)

    @_translate_errors
    def get_bindings(self, subject_id: str) -> Dict[str, str]:
        return self.client.hgetall(user_key(subject_id)) or {}

    @_translate_errors
    def put_reply_route(self, token: str, encoded: str, ttl: int) -> None:
        self.client.set(reply_key(token), encoded, ex=ttl)

    @_translate_errors
    def get_reply_route(self, token: str) -> Optional[str]:
        return self.client.get(reply_key(token))

    @_translate_errors
    def delete_reply_route(self, token: str) -> None:
        self.client.delete(reply_key(token))

    def close(self) -> None:
        self.client.close()
        logger.info("Redis connection closed")


def create_redis_client(cfg: Mapping[str, Any]) -> Optional[redis.Redis]:
    """
    Build a Redis client from configuration.

    Returns:
        Redis client, or None when neither REDIS_URL nor REDIS_HOST is set
    """
    options = {
        "decode_responses": True,  # Return strings instead of bytes
        "socket_connect_timeout": 5,
        "socket_timeout": 5,
        "health_check_interval": 30,
    }

    if cfg.get("REDIS_URL"):
        return redis.Redis.from_url(cfg["REDIS_URL"], **options)

    if cfg.get("REDIS_HOST"):
        return redis.Redis(
            host=cfg["REDIS_HOST"],
            port=cfg.get("REDIS_PORT", 6379),
            password=cfg.get("REDIS_PASSWORD"),
            db=cfg.get("REDIS_DB", 0),
            **options,
        )

    return None


def init_store(cfg: Mapping[str, Any]) -> Store:
    """
    Initialize the key-value store for sessions and role data.

    Production requires Redis; development falls back to memory with a warning.
    """
    client = create_redis_client(cfg)
    if client is None:
        if cfg.get("FLASK_ENV") == "production":
            raise RuntimeError("Redis is required in production (set REDIS_URL)")
        logger.warning("REDIS_URL not set - using in-memory store, state will not survive a restart")
        return MemoryStore()

    store = RedisStore(client)
    try:
        store.ping()
        logger.info("Redis initialized")
    except UpstreamUnavailable:
        # Keep the client: redis-py reconnects on the next command.
        logger.warning("Redis not reachable at startup; requests will fail until it recovers")
    return store


def check_store_health(store: Store) -> dict:
    """
    Check key-value store health.

    Returns:
        Dictionary with health status
    """
    backend = "redis" if isinstance(store, RedisStore) else "memory"
    try:
        store.ping()
        return {"status": "healthy", "backend": backend, "connected": True}
    except UpstreamUnavailable as e:
        return {"status": "unhealthy", "backend": backend, "connected": False, "error": str(e)}
