"""
Data models for wallet-gate.

The key-value store holds plain strings; these dataclasses are the typed view
of the records and own their JSON encoding.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional


@dataclass(frozen=True)
class RoleRule:
    """Admin-configured token-holding threshold that unlocks a guild role."""

    guild_id: str
    role_id: str
    token_address: str
    chain_id: int
    minimum_balance: int

    def to_json(self) -> str:
        return json.dumps(
            {
                "role_id": self.role_id,
                "token_address": self.token_address,
                "chain_id": self.chain_id,
                "minimum_balance": str(self.minimum_balance),
            }
        )

    @classmethod
    def from_json(cls, guild_id: str, raw: str) -> "RoleRule":
        data = json.loads(raw)
        return cls(
            guild_id=guild_id,
            role_id=str(data["role_id"]),
            token_address=data["token_address"],
            chain_id=int(data["chain_id"]),
            minimum_balance=int(data["minimum_balance"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guildId": self.guild_id,
            "roleId": self.role_id,
            "tokenAddress": self.token_address,
            "chainId": self.chain_id,
            "minimumBalance": str(self.minimum_balance),
        }


@dataclass(frozen=True)
class AddressBinding:
    """Proof that ``subject_id`` controls ``address``."""

    subject_id: str
    address: str
    signature: str


@dataclass(frozen=True)
class ReplyRoute:
    """Where to answer once the out-of-band verification call arrives.

    Persisted next to the challenge so a restarted process can still reply to
    the Discord interaction that started the flow. Only the subject it was
    issued for may use it.
    """

    token: str
    subject_id: Optional[str] = None
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    application_id: Optional[str] = None
    interaction_token: Optional[str] = None

    @property
    def can_reply(self) -> bool:
        return bool(self.application_id and self.interaction_token)

    def to_json(self) -> str:
        data = asdict(self)
        data.pop("token")
        return json.dumps(data)

    @classmethod
    def from_json(cls, token: str, raw: str) -> "ReplyRoute":
        data = json.loads(raw)
        return cls(
            token=token,
            subject_id=data.get("subject_id"),
            guild_id=data.get("guild_id"),
            channel_id=data.get("channel_id"),
            application_id=data.get("application_id"),
            interaction_token=data.get("interaction_token"),
        )


@dataclass(frozen=True)
class IssuedChallenge:
    subject_id: str
    salt: str
    message: str
    issued_at: datetime
    ttl: int
    reply_token: Optional[str] = None


@dataclass
class Entitlement:
    """Roles an address qualifies for in one guild."""

    address: str
    role_ids: FrozenSet[str] = frozenset()
    balances: Dict[str, int] = field(default_factory=dict)
    failed: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VerificationOutcome:
    address: Optional[str]
    guild_id: str
    role_ids: FrozenSet[str]
    granted_role_count: int
