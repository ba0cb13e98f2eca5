"""
Chat command handlers.

Platform-neutral logic behind the slash commands and buttons. Handlers return
a ``Reply`` or raise a ``GateError``; ``wallet_gate.bot`` turns either into a
Discord response.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urlencode

from wallet_gate.audit_logger import get_audit_logger
from wallet_gate.errors import GateError, NotAuthorized, ValidationError
from wallet_gate.models import ReplyRoute, RoleRule
from wallet_gate.verification import GateServices

logger = logging.getLogger(__name__)

START_PROMPT = (
    "**Wallet verification**\n"
    "Add Wallet: link a wallet by signing a message.\n"
    "Verify: re-check your linked wallets and claim any roles you qualify for.\n"
    "List Wallets: show the wallets linked to your account."
)


@dataclass(frozen=True)
class Reply:
    content: str
    url: Optional[str] = None
    url_label: str = "Open"


class CommandHandlers:
    def __init__(self, services: GateServices, admin_user_ids: Iterable[str], verify_page_url: str,
                 default_chain_id: int):
        self.services = services
        self.admin_user_ids = {str(user_id) for user_id in admin_user_ids}
        self.verify_page_url = verify_page_url
        self.default_chain_id = default_chain_id
        self.audit = get_audit_logger()

    def _require_admin(self, actor_id: str, command: str) -> None:
        if str(actor_id) not in self.admin_user_ids:
            self.audit.log_auth_failure(str(actor_id), reason=f"non_admin_{command}")
            raise NotAuthorized()

    @staticmethod
    def _require_guild(guild_id: Optional[str]) -> str:
        if not guild_id:
            raise ValidationError("This command can only be used in a server.")
        return str(guild_id)

    def start(self) -> Reply:
        return Reply(START_PROMPT)

    def add_role(self, actor_id: str, guild_id: Optional[str], token_address: str, count: int,
                 role_id: str, chain_id: Optional[int] = None) -> Reply:
        """Admin: gate ``role_id`` on holding at least ``count`` of ``token_address``."""
        self._require_admin(actor_id, "add_role")
        guild_id = self._require_guild(guild_id)
        chain_id = int(chain_id or self.default_chain_id)

        rule = self.services.evaluator.save_rule(
            RoleRule(
                guild_id=guild_id,
                role_id=str(role_id),
                token_address=token_address,
                chain_id=chain_id,
                minimum_balance=int(count),
            )
        )
        self.audit.log_admin_action(str(actor_id), "add_role", **rule.to_dict())

        try:
            token = self.services.chains.token_name(chain_id, rule.token_address)
        except GateError:
            token = rule.token_address
        return Reply(f"Role <@&{rule.role_id}> now requires {rule.minimum_balance} {token} on chain {chain_id}.")

    def list_roles(self, actor_id: str, guild_id: Optional[str], token_address: Optional[str] = None) -> Reply:
        self._require_admin(actor_id, "list_roles")
        guild_id = self._require_guild(guild_id)
        evaluator = self.services.evaluator
        rules = evaluator.rules_for_token(guild_id, token_address) if token_address else evaluator.rules(guild_id)
        if not rules:
            return Reply("No token-gated roles configured.")
        lines = [
            f"<@&{rule.role_id}>: {rule.minimum_balance} of {rule.token_address} (chain {rule.chain_id})"
            for rule in rules
        ]
        return Reply("\n".join(lines))

    def add_wallet(self, subject_id: str, guild_id: Optional[str], channel_id: Optional[str] = None,
                   application_id: Optional[str] = None, interaction_token: Optional[str] = None) -> Reply:
        """Issue a challenge and hand the user a link to the signing page."""
        guild_id = self._require_guild(guild_id)
        route = ReplyRoute(
            token="",
            guild_id=guild_id,
            channel_id=channel_id,
            application_id=application_id,
            interaction_token=interaction_token,
        )
        challenge = self.services.flow.issue(str(subject_id), route=route)
        query = urlencode({"subjectId": challenge.subject_id, "replyToken": challenge.reply_token})
        minutes = max(1, challenge.ttl // 60)
        return Reply(
            f"Open the link and sign the message with your wallet. The link expires in {minutes} minute(s).",
            url=f"{self.verify_page_url}?{query}",
            url_label="Sign message",
        )

    def verify(self, subject_id: str, guild_id: Optional[str]) -> Reply:
        guild_id = self._require_guild(guild_id)
        flow = self.services.flow
        if not flow.wallets(str(subject_id)):
            return Reply("No wallets linked yet. Use **Add Wallet** first.")
        outcome = flow.refresh(str(subject_id), guild_id)
        if outcome.granted_role_count:
            return Reply(f"Granted {outcome.granted_role_count} new role(s).")
        if outcome.role_ids:
            return Reply("You already have every role your wallets qualify for.")
        return Reply("Your linked wallets do not qualify for any roles yet.")

    def list_wallets(self, subject_id: str) -> Reply:
        wallets = self.services.flow.wallets(str(subject_id))
        if not wallets:
            return Reply("No wallets linked yet. Use **Add Wallet** first.")
        return Reply("Linked wallets:\n" + "\n".join(f"- `{address}`" for address in wallets))
