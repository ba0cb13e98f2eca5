"""
Audit logging for wallet-gate.

Security-relevant events go to the dedicated ``audit`` logger so they can be
routed separately from application logs.
"""

import json
import logging
from datetime import datetime
from typing import Any, Iterable, Optional

_logger = logging.getLogger("audit")
_audit_logger = None  # Will be initialized by init_audit_logger


def init_audit_logger():
    """Initialize the audit logger."""
    global _audit_logger

    _logger.setLevel(logging.INFO)

    # Add console handler if not already present
    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - AUDIT - %(levelname)s - %(message)s"))
        _logger.addHandler(handler)

    _audit_logger = AuditLogger()


def get_audit_logger():
    """Get the audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        init_audit_logger()
    return _audit_logger


class AuditLogger:
    """
    Audit logging interface for verification and role events.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or _logger

    def log_event(self, event: str, **details: Any) -> None:
        """Generic structured audit event."""

        payload = {"event": event, **details, "timestamp": datetime.utcnow().isoformat()}
        self.logger.info(json.dumps(payload, default=str))

    def log_challenge_issued(self, subject_id: str, reply_route: bool):
        self.logger.info(f"CHALLENGE_ISSUED | subject={subject_id} | reply_route={reply_route}")

    def log_signature_verification(self, subject_id: str, address: str, success: bool, reason: Optional[str] = None):
        """Log wallet signature verification."""
        status = "SUCCESS" if success else "FAILURE"
        msg = f"SIG_VERIFY | subject={subject_id} | address={address} | status={status}"
        if reason:
            msg += f" | reason={reason}"
        self.logger.info(msg)

    def log_roles_granted(self, guild_id: str, subject_id: str, role_ids: Iterable[str]):
        roles = ",".join(sorted(role_ids))
        self.logger.info(f"ROLES_GRANTED | guild={guild_id} | subject={subject_id} | roles={roles}")

    def log_admin_action(self, actor: str, action: str, **details: Any):
        self.logger.info(f"ADMIN_ACTION | actor={actor} | action={action} | details={details}")

    def log_auth_failure(self, actor: str, reason: str, ip_address: Optional[str] = None):
        self.logger.warning(f"AUTH_FAILURE | actor={actor} | reason={reason} | ip={ip_address}")

    def log_error(self, error_type: str, error_msg: str, context: Optional[dict] = None):
        """Log application error."""
        msg = f"ERROR | type={error_type} | msg={error_msg}"
        if context:
            msg += f" | context={context}"
        self.logger.error(msg)
