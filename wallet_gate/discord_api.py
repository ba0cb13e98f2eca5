"""
Discord REST client used outside the gateway connection.

The web process grants roles and answers pending interactions through the
HTTP API, so it does not need a live bot session.
"""

import logging
import time
from typing import Any, Optional, Set

import requests

from wallet_gate.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"
EPHEMERAL = 1 << 6
MAX_RATE_LIMIT_WAIT = 5.0


def _retry_after(resp) -> float:
    """Seconds to wait on a 429; 1.0 when the body is not the usual JSON."""
    try:
        return float(resp.json().get("retry_after", 1.0))
    except (ValueError, TypeError, AttributeError):
        return 1.0


class DiscordAPI:
    def __init__(self, token: Optional[str], api_base: str = API_BASE, timeout: int = 10,
                 session: Optional[requests.Session] = None):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "User-Agent": "DiscordBot (wallet-gate, 0.1.0)",
        })
        if token:
            self.session.headers["Authorization"] = f"Bot {token}"

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api_base}{path}"
        waited = False
        while True:
            try:
                resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.RequestException as e:
                logger.error(f"Discord {method.upper()} {path} failed: {e}")
                raise UpstreamUnavailable() from e

            if resp.status_code == 429 and not waited:
                retry_after = _retry_after(resp)
                if retry_after <= MAX_RATE_LIMIT_WAIT:
                    logger.warning(f"Discord rate limit on {path}; waiting {retry_after:.2f}s")
                    time.sleep(retry_after)
                    waited = True
                    continue
            if resp.status_code in (200, 201):
                return resp.json()
            if resp.status_code == 204:
                return {}
            # Never log the body: it may echo interaction tokens.
            logger.error(f"Discord HTTP {resp.status_code} on {method.upper()} {path}")
            raise UpstreamUnavailable()

    def get_member_role_ids(self, guild_id: str, member_id: str) -> Set[str]:
        member = self._request("get", f"/guilds/{guild_id}/members/{member_id}")
        return {str(role_id) for role_id in member.get("roles", [])}

    def add_member_role(self, guild_id: str, member_id: str, role_id: str) -> None:
        self._request(
            "put",
            f"/guilds/{guild_id}/members/{member_id}/roles/{role_id}",
            headers={"X-Audit-Log-Reason": "Wallet verification"},
        )

    def send_followup(self, application_id: str, interaction_token: str, content: str,
                      ephemeral: bool = True) -> None:
        """Post a follow-up message to an interaction (valid for 15 minutes)."""
        payload = {"content": content}
        if ephemeral:
            payload["flags"] = EPHEMERAL
        self._request("post", f"/webhooks/{application_id}/{interaction_token}", json=payload)
