"""Configuration management for wallet-gate.

Centralises environment variable loading and validation logic while keeping the
public API intentionally simple.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Mapping, Optional, TypedDict

_TRUTHY_VALUES = {"1", "true", "yes", "on"}

# Berachain bArtio, the chain the original community gated on.
DEFAULT_CHAIN_ID = 80084


class AppConfig(TypedDict):
    """Typed representation of the application's configuration."""

    FLASK_SECRET_KEY: Optional[str]
    FLASK_ENV: str
    FLASK_DEBUG: bool
    ADMIN_TOKEN: Optional[str]
    ADMIN_USER_IDS: List[str]
    DISCORD_TOKEN: Optional[str]
    DISCORD_API_BASE: str
    DISCORD_TIMEOUT: int
    DEFAULT_GUILD_ID: Optional[str]
    VERIFY_PAGE_URL: str
    CHALLENGE_TTL: int
    REPLY_ROUTE_TTL: int
    CHAIN_RPC_URLS: Dict[int, str]
    DEFAULT_CHAIN_ID: int
    RPC_TIMEOUT: int
    ENTITLEMENT_WORKERS: int
    CORS_ORIGINS: str
    RATE_LIMIT_ENABLED: bool
    RATE_LIMIT_DEFAULT: str
    FORCE_HTTPS: bool
    LOG_LEVEL: str
    REDIS_HOST: Optional[str]
    REDIS_PORT: int
    REDIS_PASSWORD: Optional[str]
    REDIS_DB: int
    REDIS_URL: Optional[str]
    APP_NAME: str
    APP_VERSION: str
    APP_HOST: str
    APP_PORT: int


def _get_env_bool(name: str, default: bool) -> bool:
    """Return an environment variable as a boolean."""

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in _TRUTHY_VALUES


def _get_env_int(name: str, default: int) -> int:
    """Return an environment variable as an integer, raising on invalid input."""

    raw_value = os.getenv(name)
    if raw_value is None or raw_value == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer (got {raw_value!r})") from exc


def _get_env_list(name: str) -> List[str]:
    return [part.strip() for part in os.getenv(name, "").split(",") if part.strip()]


def parse_chain_rpc_urls(raw: str) -> Dict[int, str]:
    """Parse ``"80084=https://rpc.a,1=https://rpc.b"`` into a chain id map.

    Raises:
        ValueError: if an entry is not ``<int>=<url>``.
    """
    chains: Dict[int, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        chain_id, sep, url = entry.partition("=")
        if not sep or not url.strip():
            raise ValueError(f"CHAIN_RPC_URLS entry must look like '<chain_id>=<url>' (got {entry!r})")
        try:
            chains[int(chain_id.strip())] = url.strip()
        except ValueError as exc:
            raise ValueError(f"CHAIN_RPC_URLS chain id must be an integer (got {chain_id!r})") from exc
    return chains


def get_config() -> AppConfig:
    """Load application configuration from environment variables."""

    return {
        # Flask Configuration
        "FLASK_SECRET_KEY": os.getenv("FLASK_SECRET_KEY"),
        "FLASK_ENV": os.getenv("FLASK_ENV", "development"),
        "FLASK_DEBUG": _get_env_bool("FLASK_DEBUG", False),
        # Admin access (HTTP bearer token and Discord user ids)
        "ADMIN_TOKEN": os.getenv("ADMIN_TOKEN") or os.getenv("TOKEN"),
        "ADMIN_USER_IDS": _get_env_list("ADMIN_USER_IDS"),
        # Discord
        "DISCORD_TOKEN": os.getenv("DISCORD_TOKEN"),
        "DISCORD_API_BASE": os.getenv("DISCORD_API_BASE", "https://discord.com/api/v10"),
        "DISCORD_TIMEOUT": _get_env_int("DISCORD_TIMEOUT", 10),
        "DEFAULT_GUILD_ID": os.getenv("DEFAULT_GUILD_ID") or None,
        "VERIFY_PAGE_URL": os.getenv("VERIFY_PAGE_URL", "http://localhost:5173/verify"),
        # Verification flow
        "CHALLENGE_TTL": _get_env_int("CHALLENGE_TTL", 300),
        "REPLY_ROUTE_TTL": _get_env_int("REPLY_ROUTE_TTL", 900),
        # Chains
        "CHAIN_RPC_URLS": parse_chain_rpc_urls(os.getenv("CHAIN_RPC_URLS", "")),
        "DEFAULT_CHAIN_ID": _get_env_int("DEFAULT_CHAIN_ID", DEFAULT_CHAIN_ID),
        "RPC_TIMEOUT": _get_env_int("RPC_TIMEOUT", 10),
        "ENTITLEMENT_WORKERS": _get_env_int("ENTITLEMENT_WORKERS", 8),
        # CORS Configuration
        "CORS_ORIGINS": os.getenv("CORS_ORIGINS", "*"),
        # Rate Limiting
        "RATE_LIMIT_ENABLED": _get_env_bool("RATE_LIMIT_ENABLED", True),
        "RATE_LIMIT_DEFAULT": os.getenv("RATE_LIMIT_DEFAULT", "100/hour"),
        "FORCE_HTTPS": _get_env_bool(
            "FORCE_HTTPS",
            os.getenv("FLASK_ENV", "development").lower() == "production",
        ),
        # Logging
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        # Redis Configuration (REQUIRED for production)
        "REDIS_HOST": os.getenv("REDIS_HOST"),
        "REDIS_PORT": _get_env_int("REDIS_PORT", 6379),
        "REDIS_PASSWORD": os.getenv("REDIS_PASSWORD"),
        "REDIS_DB": _get_env_int("REDIS_DB", 0),
        "REDIS_URL": os.getenv("REDIS_URL") or os.getenv("KV_URL"),
        # Application Settings
        "APP_NAME": os.getenv("APP_NAME", "wallet-gate"),
        "APP_VERSION": os.getenv("APP_VERSION", "0.1.0"),
        "APP_HOST": os.getenv("APP_HOST", "0.0.0.0"),
        "APP_PORT": _get_env_int("APP_PORT", 3000),
    }


def validate_config(config: Mapping[str, Any]) -> bool:
    """Validate critical configuration values.

    Args:
        config: Configuration mapping to validate.

    Returns:
        True if configuration is valid, raises ValueError otherwise.
    """

    if config.get("CHALLENGE_TTL", 1) <= 0:
        raise ValueError("CHALLENGE_TTL must be a positive number of seconds")

    if config.get("FLASK_ENV") == "production":
        if not config.get("ADMIN_TOKEN"):
            raise ValueError("ADMIN_TOKEN must be set for production!")

        if not config.get("FLASK_SECRET_KEY"):
            raise ValueError("FLASK_SECRET_KEY must be set for production!")

        if not config.get("DISCORD_TOKEN"):
            raise ValueError("DISCORD_TOKEN must be set for production!")

        # Challenges and reply routes must survive a restart.
        if not config.get("REDIS_URL") and not config.get("REDIS_HOST"):
            raise ValueError("REDIS_URL or REDIS_HOST must be set for production!")

        if config.get("CORS_ORIGINS", "*") == "*":
            import warnings

            warnings.warn("CORS_ORIGINS is '*' - any web origin may call /verify!", stacklevel=2)

    return True
