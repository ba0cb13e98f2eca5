"""
Error taxonomy for wallet-gate.

Every HTTP endpoint and chat command handler raises these exceptions; the Flask
error handler and the bot render them the same way. ``message`` is always safe
to show to an end user.
"""

from typing import Any, Dict


class GateError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 400
    default_message = "Request failed."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message}


class ValidationError(GateError):
    """Missing or malformed request fields."""

    status_code = 400
    default_message = "Invalid request."


class AuthError(GateError):
    """Missing or wrong admin bearer token."""

    status_code = 401
    default_message = "Unauthorized."


class NotAuthorized(GateError):
    """A non-admin invoked an admin command."""

    status_code = 403
    default_message = "You are not allowed to use this command."


class ChallengeNotFound(GateError):
    """No live salt for the subject: never issued, expired or already used."""

    status_code = 400
    default_message = "No salt found."


class InvalidSignature(GateError):
    status_code = 400
    default_message = "Invalid signature."


class UpstreamUnavailable(GateError):
    """The store, a chain RPC or the chat platform failed or timed out."""

    status_code = 500
    default_message = "Internal Server Error"
