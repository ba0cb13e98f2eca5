"""
Challenge issuance.

A challenge is a one-time salt the user must sign. Issuing a new one for the
same subject overwrites (and so invalidates) the previous salt.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from wallet_gate import metrics
from wallet_gate.audit_logger import get_audit_logger
from wallet_gate.models import IssuedChallenge, ReplyRoute
from wallet_gate.utils import generate_salt, message_for_salt, secure_random_token

logger = logging.getLogger(__name__)


class ChallengeIssuer:
    def __init__(self, store, ttl: int = 300, reply_ttl: int = 900):
        self.store = store
        self.ttl = ttl
        self.reply_ttl = reply_ttl
        self.audit = get_audit_logger()

    def issue(self, subject_id: str, route: Optional[ReplyRoute] = None) -> IssuedChallenge:
        """
        Mint and persist a salt for ``subject_id``.

        Args:
            subject_id: Chat-platform user id
            route: Reply routing details; a fresh ``token`` is generated and
                the route is bound to ``subject_id``

        Returns:
            The issued challenge with the signing prompt

        Raises:
            UpstreamUnavailable: If the store write fails
        """
        salt = generate_salt()
        self.store.set_challenge(subject_id, salt, self.ttl)

        reply_token = None
        if route is not None:
            reply_token = secure_random_token()
            stored = ReplyRoute(
                token=reply_token,
                subject_id=subject_id,
                guild_id=route.guild_id,
                channel_id=route.channel_id,
                application_id=route.application_id,
                interaction_token=route.interaction_token,
            )
            self.store.put_reply_route(reply_token, stored.to_json(), self.reply_ttl)

        metrics.challenges_issued.inc()
        self.audit.log_challenge_issued(subject_id, reply_route=reply_token is not None)
        logger.debug(f"Challenge issued for subject {subject_id}")

        return IssuedChallenge(
            subject_id=subject_id,
            salt=salt,
            message=message_for_salt(salt),
            issued_at=datetime.now(timezone.utc),
            ttl=self.ttl,
            reply_token=reply_token,
        )
