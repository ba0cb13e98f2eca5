"""
Verification flow.

    NoChallenge --issue--> ChallengeIssued --verify ok--> Verified (-> NoChallenge)
                           ChallengeIssued --verify failed--> ChallengeIssued
                           ChallengeIssued --TTL--> NoChallenge

The web call that completes the flow arrives out-of-band; the reply route
stored at issue time tells it which guild to evaluate and which Discord
interaction to answer.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from wallet_gate.audit_logger import get_audit_logger
from wallet_gate.challenges import ChallengeIssuer
from wallet_gate.entitlements import EntitlementEvaluator
from wallet_gate.errors import GateError, ValidationError
from wallet_gate.models import IssuedChallenge, ReplyRoute, VerificationOutcome
from wallet_gate.roles import RoleSynchronizer
from wallet_gate.signatures import SignatureVerifier

logger = logging.getLogger(__name__)

FAILURE_NOTICE = "Verification failed. Please try again later with a new Add Wallet link."


@dataclass
class GateServices:
    """Everything a request or command handler needs, built once per process."""

    store: object
    chains: object
    platform: object
    issuer: ChallengeIssuer
    verifier: SignatureVerifier
    evaluator: EntitlementEvaluator
    synchronizer: RoleSynchronizer
    flow: "VerificationService"


class VerificationService:
    def __init__(self, store, issuer: ChallengeIssuer, verifier: SignatureVerifier,
                 evaluator: EntitlementEvaluator, synchronizer: RoleSynchronizer,
                 platform=None, default_guild_id: Optional[str] = None):
        self.store = store
        self.issuer = issuer
        self.verifier = verifier
        self.evaluator = evaluator
        self.synchronizer = synchronizer
        self.platform = platform
        self.default_guild_id = default_guild_id
        self.audit = get_audit_logger()

    def issue(self, subject_id: str, guild_id: Optional[str] = None,
              route: Optional[ReplyRoute] = None) -> IssuedChallenge:
        """Issue a challenge; always persists a reply route carrying the guild."""
        if not subject_id:
            raise ValidationError("Missing subject id.")
        if route is None:
            route = ReplyRoute(token="", guild_id=guild_id)
        elif guild_id and not route.guild_id:
            route = ReplyRoute(
                token="",
                guild_id=guild_id,
                channel_id=route.channel_id,
                application_id=route.application_id,
                interaction_token=route.interaction_token,
            )
        return self.issuer.issue(subject_id, route=route)

    def _resolve_route(self, reply_token: Optional[str], subject_id: str) -> Optional[ReplyRoute]:
        if not reply_token:
            return None
        raw = self.store.get_reply_route(reply_token)
        if raw is None:
            logger.info("Reply route expired or unknown; verification will not answer in chat")
            return None
        try:
            route = ReplyRoute.from_json(reply_token, raw)
        except ValueError as e:
            logger.error(f"Discarding malformed reply route: {e}")
            return None
        if route.subject_id != subject_id:
            logger.warning(f"Ignoring reply route issued for another subject (caller {subject_id})")
            return None
        return route

    def _reply(self, route: Optional[ReplyRoute], content: str) -> None:
        if route is None or not route.can_reply or self.platform is None:
            return
        try:
            self.platform.send_followup(route.application_id, route.interaction_token, content)
        except GateError as e:
            logger.warning(f"Could not answer interaction in channel {route.channel_id}: {e}")

    def _drop_route(self, route: Optional[ReplyRoute]) -> None:
        if route is None:
            return
        try:
            self.store.delete_reply_route(route.token)
        except GateError as e:
            logger.warning(f"Could not drop reply route: {e}")

    def verify(self, subject_id: str, address: str, signature: str,
               reply_token: Optional[str] = None, guild_id: Optional[str] = None) -> VerificationOutcome:
        """
        Complete a challenge and grant the roles the address earns.

        Raises:
            ValidationError, ChallengeNotFound, InvalidSignature,
            UpstreamUnavailable
        """
        if not address or not signature:
            raise ValidationError("Missing address or signature.")
        if not subject_id:
            raise ValidationError("Missing subject id.")

        route = self._resolve_route(reply_token, subject_id)
        guild_id = (route.guild_id if route else None) or guild_id or self.default_guild_id
        if not guild_id:
            raise ValidationError("Missing guild id.")

        binding = self.verifier.verify(address, signature, subject_id)

        try:
            entitlement = self.evaluator.evaluate(guild_id, binding.address)
            granted = self.synchronizer.sync(guild_id, subject_id, entitlement.role_ids)
        except Exception:
            # The challenge is spent; the user starts over from Add Wallet.
            self._reply(route, FAILURE_NOTICE)
            self._drop_route(route)
            raise

        # Recorded only once the roles are in place.
        self.store.add_binding(binding.subject_id, binding.address, binding.signature)
        self.audit.log_event(
            "verification.completed",
            subject=subject_id,
            guild=guild_id,
            address=binding.address,
            granted=granted,
        )

        self._reply(route, _result_message(binding.address, granted))
        self._drop_route(route)

        return VerificationOutcome(
            address=binding.address,
            guild_id=guild_id,
            role_ids=entitlement.role_ids,
            granted_role_count=granted,
        )

    def refresh(self, subject_id: str, guild_id: str) -> VerificationOutcome:
        """Re-check every bound address and grant newly earned roles."""
        addresses = self.wallets(subject_id)
        if not addresses:
            return VerificationOutcome(address=None, guild_id=guild_id, role_ids=frozenset(), granted_role_count=0)

        role_ids = set()
        for entitlement in self.evaluator.evaluate_many(guild_id, addresses).values():
            role_ids |= entitlement.role_ids
        granted = self.synchronizer.sync(guild_id, subject_id, role_ids)
        return VerificationOutcome(
            address=None,
            guild_id=guild_id,
            role_ids=frozenset(role_ids),
            granted_role_count=granted,
        )

    def wallets(self, subject_id: str) -> List[str]:
        bindings: Dict[str, str] = self.store.get_bindings(subject_id)
        return sorted(bindings)


def _result_message(address: str, granted: int) -> str:
    if granted:
        return f"Verified {address}. Granted {granted} new role(s)."
    return f"Verified {address}. No new roles to grant."


def build_services(cfg, store=None, chains=None, platform=None) -> GateServices:
    """
    Wire the core services from configuration.

    Collaborators may be injected (tests, the bot process); anything omitted
    is built from ``cfg``.
    """
    from wallet_gate.chains import ChainRegistry
    from wallet_gate.database import init_store
    from wallet_gate.discord_api import DiscordAPI

    if store is None:
        store = init_store(cfg)
    if chains is None:
        chains = ChainRegistry.from_urls(cfg.get("CHAIN_RPC_URLS", {}), timeout=cfg.get("RPC_TIMEOUT", 10))
    if platform is None:
        platform = DiscordAPI(
            cfg.get("DISCORD_TOKEN"),
            api_base=cfg.get("DISCORD_API_BASE", "https://discord.com/api/v10"),
            timeout=cfg.get("DISCORD_TIMEOUT", 10),
        )

    issuer = ChallengeIssuer(store, ttl=cfg.get("CHALLENGE_TTL", 300), reply_ttl=cfg.get("REPLY_ROUTE_TTL", 900))
    verifier = SignatureVerifier(store)
    evaluator = EntitlementEvaluator(store, chains, max_workers=cfg.get("ENTITLEMENT_WORKERS", 8))
    synchronizer = RoleSynchronizer(platform)
    flow = VerificationService(
        store,
        issuer,
        verifier,
        evaluator,
        synchronizer,
        platform=platform,
        default_guild_id=cfg.get("DEFAULT_GUILD_ID"),
    )
    return GateServices(
        store=store,
        chains=chains,
        platform=platform,
        issuer=issuer,
        verifier=verifier,
        evaluator=evaluator,
        synchronizer=synchronizer,
        flow=flow,
    )
