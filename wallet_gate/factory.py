"""
Application Factory for wallet-gate

Implements the Flask application factory pattern with:
- Blueprint registration
- Security configuration (TLS, headers, rate limits, CORS)
- Store, chain and chat-platform wiring
- Uniform error handling
"""

import logging
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from wallet_gate.audit_logger import get_audit_logger, init_audit_logger
from wallet_gate.config import AppConfig, get_config, validate_config
from wallet_gate.errors import GateError
from wallet_gate.security import init_security
from wallet_gate.verification import build_services

logger = logging.getLogger(__name__)


def create_app(config_override: Optional[AppConfig] = None, store=None, chains=None, platform=None) -> Flask:
    """
    Create and configure the Flask application using the factory pattern.

    Args:
        config_override: Optional configuration override for testing
        store: Key-value store to use instead of one built from config
        chains: Chain registry to use instead of one built from config
        platform: Chat platform client to use instead of the Discord REST API

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    cfg = get_config()
    if config_override:
        cfg.update(config_override)
    validate_config(cfg)
    app.config["APP_CONFIG"] = cfg

    # Set Flask secret key (required for sessions)
    app.secret_key = cfg["FLASK_SECRET_KEY"]

    # Initialize security middleware (Talisman, rate limiting, CORS)
    init_security(app, cfg)
    init_audit_logger()

    app.extensions["wallet_gate"] = build_services(cfg, store=store, chains=chains, platform=platform)

    register_blueprints(app)
    register_error_handlers(app)

    logger.info("Application factory completed successfully")
    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""

    # Challenge and verification endpoints used by the signing page
    from wallet_gate.blueprints.gate import gate_bp
    app.register_blueprint(gate_bp)

    # Admin role-rule management (bearer token)
    from wallet_gate.blueprints.roles import roles_bp
    app.register_blueprint(roles_bp)

    # Health and metrics
    from wallet_gate.blueprints.admin import admin_bp
    app.register_blueprint(admin_bp)


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers.

    Every failure is rendered as ``{"success": false, "message": ...}``.
    """

    @app.errorhandler(GateError)
    def gate_error(e: GateError):
        if e.status_code >= 500:
            logger.error(f"{type(e).__name__}: {e.message}", exc_info=e.__cause__ is not None)
            get_audit_logger().log_error(type(e).__name__, repr(e.__cause__ or e), {"path": request.path})
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"success": False, "message": e.description or e.name}), e.code

    @app.errorhandler(Exception)
    def internal_error(e):
        logger.error(f"Internal server error: {e}", exc_info=True)
        get_audit_logger().log_error(type(e).__name__, str(e), {"path": request.path})
        return jsonify({"success": False, "message": "Internal Server Error"}), 500
