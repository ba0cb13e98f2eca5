"""
Entitlement evaluation: which guild roles an address's token holdings unlock.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Tuple

from wallet_gate import metrics
from wallet_gate.errors import GateError, ValidationError
from wallet_gate.models import Entitlement, RoleRule
from wallet_gate.utils import normalize_address

logger = logging.getLogger(__name__)


class EntitlementEvaluator:
    """
    Checks every role rule of a guild against an address.

    Balance reads run concurrently and independently; a failing rule is
    logged and reported in ``Entitlement.failed`` without affecting the rest.
    """

    def __init__(self, store, chains, max_workers: int = 8):
        self.store = store
        self.chains = chains
        self.max_workers = max(1, max_workers)

    def rules(self, guild_id: str) -> List[RoleRule]:
        rules = []
        for role_id, raw in self.store.get_role_rules(guild_id).items():
            try:
                rules.append(RoleRule.from_json(guild_id, raw))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"Skipping malformed rule {guild_id}/{role_id}: {e}")
        return sorted(rules, key=lambda rule: rule.role_id)

    def save_rule(self, rule: RoleRule) -> RoleRule:
        """Create or replace the rule for ``(guild_id, role_id)``."""
        if rule.minimum_balance < 0:
            raise ValidationError("Minimum balance must not be negative.")
        rule = RoleRule(
            guild_id=rule.guild_id,
            role_id=rule.role_id,
            token_address=normalize_address(rule.token_address),
            chain_id=rule.chain_id,
            minimum_balance=rule.minimum_balance,
        )
        self.store.put_role_rule(rule.guild_id, rule.role_id, rule.to_json())
        return rule

    def rules_for_token(self, guild_id: str, token_address: str) -> List[RoleRule]:
        """Rules of ``guild_id`` gated on the queried token contract."""
        token_address = normalize_address(token_address)
        return [rule for rule in self.rules(guild_id) if rule.token_address == token_address]

    def _check(self, rule: RoleRule, address: str) -> Tuple[RoleRule, Optional[int], Optional[str]]:
        try:
            balance = self.chains.balance_of(rule.chain_id, rule.token_address, address)
        except GateError as e:
            metrics.rule_failures.labels(chain_id=str(rule.chain_id)).inc()
            logger.warning(f"Rule {rule.guild_id}/{rule.role_id} skipped for {address}: {e.message}")
            return rule, None, e.message
        except Exception as e:
            metrics.rule_failures.labels(chain_id=str(rule.chain_id)).inc()
            logger.error(f"Rule {rule.guild_id}/{rule.role_id} failed for {address}: {e}", exc_info=True)
            return rule, None, str(e)
        return rule, balance, None

    def evaluate(self, guild_id: str, address: str) -> Entitlement:
        """
        Determine which of the guild's roles ``address`` qualifies for.

        A rule qualifies when ``balance >= minimum_balance``.
        """
        address = normalize_address(address)
        rules = self.rules(guild_id)
        entitlement = Entitlement(address=address)
        if not rules:
            return entitlement

        workers = min(self.max_workers, len(rules))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="entitlement") as pool:
            results = list(pool.map(lambda rule: self._check(rule, address), rules))

        qualified = set()
        for rule, balance, error in results:
            if error is not None:
                entitlement.failed[rule.role_id] = error
                continue
            entitlement.balances[rule.role_id] = balance
            if balance >= rule.minimum_balance:
                qualified.add(rule.role_id)

        entitlement.role_ids = frozenset(qualified)
        logger.info(
            f"Entitlement for {address} in guild {guild_id}: "
            f"qualified={sorted(qualified)} failed={sorted(entitlement.failed)}"
        )
        return entitlement

    def evaluate_many(self, guild_id: str, addresses: Iterable[str]) -> Dict[str, Entitlement]:
        """Evaluate several addresses; the union of ``role_ids`` is what the member earns."""
        return {address: self.evaluate(guild_id, address) for address in addresses}
