"""Prometheus metrics shared by the web app and the bot."""

from prometheus_client import CollectorRegistry, Counter

registry = CollectorRegistry()

challenges_issued = Counter(
    "wallet_gate_challenges_issued_total",
    "Challenges issued",
    registry=registry,
)
verifications = Counter(
    "wallet_gate_verifications_total",
    "Verification attempts by outcome",
    ["outcome"],
    registry=registry,
)
roles_granted = Counter(
    "wallet_gate_roles_granted_total",
    "Guild roles granted",
    registry=registry,
)
rule_failures = Counter(
    "wallet_gate_rule_failures_total",
    "Role rule balance checks that failed",
    ["chain_id"],
    registry=registry,
)
