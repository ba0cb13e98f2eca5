"""
Role synchronization: apply an entitlement to a member's guild roles.

Only grants; never revokes.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Tuple

from wallet_gate import metrics
from wallet_gate.audit_logger import get_audit_logger

logger = logging.getLogger(__name__)


class RoleSynchronizer:
    """
    Grants qualifying roles a member does not hold yet.

    ``platform`` must provide ``get_member_role_ids(guild_id, member_id)`` and
    ``add_member_role(guild_id, member_id, role_id)``.
    """

    def __init__(self, platform):
        self.platform = platform
        self.audit = get_audit_logger()
        # (guild_id, member_id) -> [lock, holders]; dropped when holders reaches 0.
        self._locks: Dict[Tuple[str, str], list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _member_lock(self, guild_id: str, member_id: str) -> Iterator[None]:
        key = (guild_id, member_id)
        with self._locks_guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def sync(self, guild_id: str, member_id: str, role_ids: Iterable[str]) -> int:
        """
        Grant every role in ``role_ids`` the member is missing.

        Returns:
            Number of roles newly granted

        Raises:
            UpstreamUnavailable: If the chat platform call fails
        """
        wanted = {str(role_id) for role_id in role_ids}
        if not wanted:
            return 0

        with self._member_lock(guild_id, member_id):
            held = set(self.platform.get_member_role_ids(guild_id, member_id))
            missing = sorted(wanted - held)
            for role_id in missing:
                self.platform.add_member_role(guild_id, member_id, role_id)

        if missing:
            metrics.roles_granted.inc(len(missing))
            self.audit.log_roles_granted(guild_id, member_id, missing)
            logger.info(f"Granted {len(missing)} role(s) to {member_id} in guild {guild_id}")
        return len(missing)
