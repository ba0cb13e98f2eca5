"""
Unit tests for audit logging.
"""

import json
import logging
from unittest.mock import patch

import pytest

from wallet_gate.audit_logger import AuditLogger, get_audit_logger, init_audit_logger


class TestAuditLogger:
    """Test audit logger functionality."""

    @pytest.fixture
    def audit_logger(self):
        """Create an AuditLogger instance for testing."""
        return AuditLogger()

    def test_log_event_is_json(self, audit_logger):
        with patch.object(audit_logger.logger, "info") as mock_info:
            audit_logger.log_event("gate.verify", subject="42", granted=2)

            payload = json.loads(mock_info.call_args[0][0])
            assert payload["event"] == "gate.verify"
            assert payload["subject"] == "42"
            assert payload["granted"] == 2
            assert "timestamp" in payload

    def test_log_challenge_issued(self, audit_logger):
        with patch.object(audit_logger.logger, "info") as mock_info:
            audit_logger.log_challenge_issued("42", reply_route=True)

            call_args = mock_info.call_args[0][0]
            assert "CHALLENGE_ISSUED" in call_args
            assert "subject=42" in call_args
            assert "reply_route=True" in call_args

    def test_log_signature_verification_success(self, audit_logger):
        with patch.object(audit_logger.logger, "info") as mock_info:
            audit_logger.log_signature_verification("42", "0xAbc", True)

            call_args = mock_info.call_args[0][0]
            assert "SIG_VERIFY" in call_args
            assert "status=SUCCESS" in call_args
            assert "reason" not in call_args

    def test_log_signature_verification_failure_reason(self, audit_logger):
        with patch.object(audit_logger.logger, "info") as mock_info:
            audit_logger.log_signature_verification("42", "0xAbc", False, reason="invalid_signature")

            call_args = mock_info.call_args[0][0]
            assert "status=FAILURE" in call_args
            assert "reason=invalid_signature" in call_args

    def test_log_roles_granted_sorted(self, audit_logger):
        with patch.object(audit_logger.logger, "info") as mock_info:
            audit_logger.log_roles_granted("7", "42", ["b", "a"])

            assert "roles=a,b" in mock_info.call_args[0][0]

    def test_log_auth_failure_is_warning(self, audit_logger):
        with patch.object(audit_logger.logger, "warning") as mock_warning:
            audit_logger.log_auth_failure("http", "invalid_token", "10.0.0.1")

            call_args = mock_warning.call_args[0][0]
            assert "AUTH_FAILURE" in call_args
            assert "ip=10.0.0.1" in call_args

    def test_log_error_with_context(self, audit_logger):
        with patch.object(audit_logger.logger, "error") as mock_error:
            audit_logger.log_error("UpstreamUnavailable", "rpc down", {"chain": 80084})

            call_args = mock_error.call_args[0][0]
            assert "type=UpstreamUnavailable" in call_args
            assert "context={'chain': 80084}" in call_args


class TestAuditLoggerInitialization:
    def test_init_adds_single_handler(self):
        init_audit_logger()
        init_audit_logger()

        audit = logging.getLogger("audit")
        assert len(audit.handlers) == 1
        assert audit.level == logging.INFO

    def test_get_audit_logger_returns_instance(self):
        assert isinstance(get_audit_logger(), AuditLogger)
