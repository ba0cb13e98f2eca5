"""
Utility functions for wallet-gate

Shared helpers for address handling and challenge generation.
"""

import secrets
import uuid

from web3 import Web3

from wallet_gate.errors import ValidationError

SIGNING_PROMPT = "Please sign this message to verify your address: {salt}"


def normalize_address(address: str) -> str:
    """
    Convert an EVM address to its EIP-55 checksum form.

    Args:
        address: Hex address in any letter case

    Returns:
        Checksummed address

    Raises:
        ValidationError: If the value is not a 20-byte hex address
    """
    candidate = (address or "").strip()
    if not candidate or not Web3.is_address(candidate):
        raise ValidationError("Invalid address.")
    return Web3.to_checksum_address(candidate)


def generate_salt() -> str:
    """Generate a one-time challenge salt."""
    return str(uuid.uuid4())


def message_for_salt(salt: str) -> str:
    """Return the exact text a wallet must sign for ``salt``."""
    return SIGNING_PROMPT.format(salt=salt)


def secure_random_token(nbytes: int = 24) -> str:
    """
    Generate a URL-safe random token.

    Args:
        nbytes: Number of random bytes

    Returns:
        URL-safe token string
    """
    return secrets.token_urlsafe(nbytes)
