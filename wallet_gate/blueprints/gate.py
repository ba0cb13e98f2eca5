"""
Gate Blueprint - Challenge issuance and signature verification

Called by the signing page the Add Wallet button links to.
"""

import logging

from flask import Blueprint, jsonify

from wallet_gate.blueprints import get_services, optional_str, request_payload, require_str
from wallet_gate.security import limiter

logger = logging.getLogger(__name__)

gate_bp = Blueprint("gate", __name__)

CHALLENGE_RATE_LIMIT = "20 per minute"
VERIFY_RATE_LIMIT = "10 per minute"


@gate_bp.route("/challenge", methods=["POST"])
@limiter.limit(CHALLENGE_RATE_LIMIT)
def issue_challenge():
    """
    Issue a signing challenge for a user.

    Expected JSON body:
        - subjectId: Chat-platform user id
        - guildId: Guild to evaluate on verification (optional)

    Returns:
        JSON with the salt, the exact message to sign and a reply token
    """
    payload = request_payload()
    subject_id = require_str(payload, "subjectId", "Missing subject id.")
    guild_id = optional_str(payload, "guildId")

    challenge = get_services().flow.issue(subject_id, guild_id=guild_id)
    return jsonify({
        "success": True,
        "salt": challenge.salt,
        "message": challenge.message,
        "replyToken": challenge.reply_token,
        "expiresIn": challenge.ttl,
    })


@gate_bp.route("/verify", methods=["POST"])
@limiter.limit(VERIFY_RATE_LIMIT)
def verify():
    """
    Verify a signed challenge and grant qualifying roles.

    Expected JSON body (query parameters are accepted too):
        - address: Wallet address that signed
        - signature: Hex signature over the challenge message
        - subjectId: Chat-platform user id
        - replyToken: Token returned with the challenge (optional)
        - guildId: Guild override when no reply token is given (optional)

    Returns:
        JSON with the checksummed address and number of roles granted
    """
    payload = request_payload()
    address = require_str(payload, "address", "Missing address or signature.")
    signature = require_str(payload, "signature", "Missing address or signature.")
    subject_id = require_str(payload, "subjectId", "Missing subject id.")

    outcome = get_services().flow.verify(
        subject_id,
        address,
        signature,
        reply_token=optional_str(payload, "replyToken"),
        guild_id=optional_str(payload, "guildId"),
    )
    return jsonify({
        "success": True,
        "address": outcome.address,
        "grantedRoleCount": outcome.granted_role_count,
    })
