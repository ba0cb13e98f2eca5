"""
Roles Blueprint - Admin management of token-gated role rules.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from wallet_gate.audit_logger import get_audit_logger
from wallet_gate.blueprints import get_services, optional_str, request_payload, require_str
from wallet_gate.errors import ValidationError
from wallet_gate.models import RoleRule
from wallet_gate.security import require_admin_token

logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()

roles_bp = Blueprint("roles", __name__)


def _parse_int(value, field: str) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer.") from None


@roles_bp.route("/roles", methods=["POST"])
@require_admin_token
def add_role():
    """
    Create or replace a role rule.

    Expected JSON body:
        - guildId, roleId: Where the role lives
        - tokenAddress: Token contract to check
        - chainId: Chain of the contract (defaults to DEFAULT_CHAIN_ID)
        - minimumBalance: Raw token units required (inclusive)
    """
    payload = request_payload()
    guild_id = require_str(payload, "guildId", "Missing guild id.")
    role_id = require_str(payload, "roleId", "Missing role.")
    token_address = require_str(payload, "tokenAddress", "Missing address.")
    minimum = _parse_int(require_str(payload, "minimumBalance", "Missing minimum balance."), "minimumBalance")
    chain_raw = optional_str(payload, "chainId")
    chain_id = (
        _parse_int(chain_raw, "chainId") if chain_raw is not None
        else current_app.config["APP_CONFIG"]["DEFAULT_CHAIN_ID"]
    )

    rule = get_services().evaluator.save_rule(
        RoleRule(
            guild_id=guild_id,
            role_id=role_id,
            token_address=token_address,
            chain_id=chain_id,
            minimum_balance=minimum,
        )
    )
    audit_logger.log_admin_action("http", "add_role", ip=request.remote_addr, **rule.to_dict())
    return jsonify({"success": True, "rule": rule.to_dict()})


@roles_bp.route("/roles/<guild_id>", methods=["GET"])
@require_admin_token
def list_roles(guild_id: str):
    """List role rules of a guild, optionally filtered by ``?tokenAddress=``."""
    evaluator = get_services().evaluator
    token_address = request.args.get("tokenAddress")
    rules = evaluator.rules_for_token(guild_id, token_address) if token_address else evaluator.rules(guild_id)
    return jsonify({"success": True, "rules": [rule.to_dict() for rule in rules]})
