"""Security helpers for configuring Flask in production."""
from __future__ import annotations

import hmac
import logging
from functools import wraps
from typing import Any, List, Mapping

from flask import Flask, current_app, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from werkzeug.middleware.proxy_fix import ProxyFix

from wallet_gate.audit_logger import get_audit_logger
from wallet_gate.errors import AuthError

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in {"1", "true", "yes", "on"}


def _build_redis_uri(cfg: Mapping[str, Any]) -> str:
    if cfg.get("REDIS_URL"):
        return str(cfg["REDIS_URL"])

    host = cfg.get("REDIS_HOST", "127.0.0.1")
    port = cfg.get("REDIS_PORT", 6379)
    db = cfg.get("REDIS_DB", 0)
    password = cfg.get("REDIS_PASSWORD")
    if password:
        return f"redis://:{password}@{host}:{port}/{db}"
    return f"redis://{host}:{port}/{db}"


def allowed_origins(cfg: Mapping[str, Any]) -> List[str]:
    return [origin.strip() for origin in str(cfg.get("CORS_ORIGINS", "*")).split(",") if origin.strip()]


def configure_logging(cfg: Mapping[str, Any]) -> None:
    log_level = str(cfg.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, log_level, logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(isinstance(handler, logging.StreamHandler) for handler in root_logger.handlers):
        handler = logging.StreamHandler()
        fmt = (
            "{\"level\":\"%(levelname)s\",\"msg\":\"%(message)s\",\"name\":\"%(name)s\",\"path\":\"%(pathname)s\","
            "\"lineno\":%(lineno)d}"
        )
        handler.setFormatter(logging.Formatter(fmt))
        root_logger.addHandler(handler)


def init_security(app: Flask, cfg: Mapping[str, Any]) -> Limiter:
    """Initialise standard security middleware, CORS and rate limiting."""

    # Respect reverse proxy headers for TLS detection and client IP extraction.
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)  # type: ignore[assignment]

    default_force_https = str(cfg.get("FLASK_ENV", "development")).strip().lower() == "production"
    force_https = _as_bool(cfg.get("FORCE_HTTPS"), default_force_https)
    if not force_https and default_force_https:
        logger.warning(
            "FORCE_HTTPS disabled while FLASK_ENV=production - ensure this is intentional before deploying."
        )

    Talisman(
        app,
        force_https=force_https,
        force_file_save=False,
        content_security_policy={"default-src": "'none'", "frame-ancestors": "'none'"},
        session_cookie_secure=force_https,
        frame_options="DENY",
        referrer_policy="no-referrer",
    )

    app.config["RATELIMIT_ENABLED"] = _as_bool(cfg.get("RATE_LIMIT_ENABLED"), True)
    app.config["RATELIMIT_DEFAULT"] = cfg.get("RATE_LIMIT_DEFAULT") or "100/hour"
    app.config["RATELIMIT_STRATEGY"] = "fixed-window"
    app.config["RATELIMIT_STORAGE_URI"] = (
        _build_redis_uri(cfg) if cfg.get("REDIS_URL") or cfg.get("REDIS_HOST") else "memory://"
    )
    limiter.init_app(app)

    origins = allowed_origins(cfg)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if not origin:
            return response
        if "*" in origins:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers.add("Vary", "Origin")
        else:
            return response
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
        return response

    configure_logging(cfg)
    return limiter


def require_admin_token(f):
    """Reject requests whose bearer token does not match ADMIN_TOKEN."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        audit_logger = get_audit_logger()
        expected = current_app.config["APP_CONFIG"].get("ADMIN_TOKEN")
        header = request.headers.get("Authorization", "")
        if not header:
            audit_logger.log_auth_failure("http", "missing_header", request.remote_addr)
            raise AuthError("Missing authorization header.")

        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() != "bearer" or not token:
            audit_logger.log_auth_failure("http", "missing_token", request.remote_addr)
            raise AuthError("Missing token.")

        if not expected or not hmac.compare_digest(token.encode(), str(expected).encode()):
            audit_logger.log_auth_failure("http", "invalid_token", request.remote_addr)
            raise AuthError("Invalid token.")
        return f(*args, **kwargs)

    return decorated_function
