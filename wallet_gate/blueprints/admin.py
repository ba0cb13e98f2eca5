"""
Admin Blueprint - Health Checks and Metrics

Provides monitoring and operational endpoints for infrastructure health.
"""

import logging
import time
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify
from prometheus_client import generate_latest

from wallet_gate import metrics
from wallet_gate.blueprints import get_services
from wallet_gate.database import check_store_health

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/health")
def health():
    """
    Comprehensive health check endpoint.

    Returns:
        JSON health status with component information
    """
    cfg = current_app.config["APP_CONFIG"]
    services = get_services()
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": time.time(),
        "service": cfg.get("APP_NAME"),
        "version": cfg.get("APP_VERSION"),
        "components": {},
    }

    store_health = check_store_health(services.store)
    health_status["components"]["store"] = store_health
    if store_health["status"] != "healthy":
        health_status["status"] = "degraded"

    # Chain RPCs are per-rule and optional; report but do not degrade.
    health_status["components"]["chains"] = {
        str(chain_id): "connected" if services.chains.is_connected(chain_id) else "unreachable"
        for chain_id in services.chains.chain_ids
    }

    return jsonify(health_status), 200 if health_status["status"] == "healthy" else 503


@admin_bp.route("/health/live")
def liveness():
    """
    Liveness probe - checks if app is running.

    Returns:
        200 if process is alive
    """
    return jsonify({"status": "alive"}), 200


@admin_bp.route("/health/ready")
def readiness():
    """
    Readiness probe - the store must answer before traffic is accepted.

    Returns:
        200 if ready, 503 if not ready
    """
    store_health = check_store_health(get_services().store)
    if store_health["status"] == "healthy":
        return jsonify({"status": "ready"}), 200
    logger.warning(f"Readiness check failed: {store_health.get('error')}")
    return jsonify({"status": "not_ready", "error": store_health.get("error")}), 503


@admin_bp.route("/metrics/prometheus")
def metrics_prometheus():
    """
    Prometheus metrics endpoint.

    Returns:
        Prometheus text format metrics
    """
    return Response(generate_latest(metrics.registry), mimetype="text/plain; version=0.0.4")
