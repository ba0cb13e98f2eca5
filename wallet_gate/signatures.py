"""
Wallet signature verification.

Signatures are EIP-191 ``personal_sign`` signatures over the challenge prompt.
"""

import logging

from eth_account import Account
from eth_account.messages import encode_defunct

from wallet_gate import metrics
from wallet_gate.audit_logger import get_audit_logger
from wallet_gate.errors import ChallengeNotFound, InvalidSignature, ValidationError
from wallet_gate.models import AddressBinding
from wallet_gate.utils import message_for_salt, normalize_address

logger = logging.getLogger(__name__)


def recover_signer(message: str, signature: str) -> str:
    """
    Recover the checksummed address that signed ``message``.

    Raises:
        InvalidSignature: If the signature is malformed
    """
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        raise InvalidSignature() from e


class SignatureVerifier:
    def __init__(self, store):
        self.store = store
        self.audit = get_audit_logger()

    def verify(self, address: str, signature: str, subject_id: str) -> AddressBinding:
        """
        Check ``signature`` against the subject's live challenge and consume it.

        A failed check leaves the challenge in place so the user can retry
        until it expires.

        Returns:
            A binding draft for the checksummed address

        Raises:
            ValidationError: Missing or malformed address/signature
            ChallengeNotFound: No live challenge, or a concurrent call used it
            InvalidSignature: Signature did not recover to ``address``
        """
        if not signature or not subject_id:
            raise ValidationError("Missing address or signature.")
        address = normalize_address(address)

        salt = self.store.get_challenge(subject_id)
        if not salt:
            metrics.verifications.labels(outcome="no_challenge").inc()
            self.audit.log_signature_verification(subject_id, address, False, reason="no_challenge")
            raise ChallengeNotFound()

        try:
            signer = recover_signer(message_for_salt(salt), signature)
            if signer != address:
                raise InvalidSignature()
        except InvalidSignature:
            metrics.verifications.labels(outcome="invalid_signature").inc()
            self.audit.log_signature_verification(subject_id, address, False, reason="invalid_signature")
            raise

        if not self.store.consume_challenge(subject_id, salt):
            metrics.verifications.labels(outcome="raced").inc()
            self.audit.log_signature_verification(subject_id, address, False, reason="challenge_consumed")
            raise ChallengeNotFound()

        metrics.verifications.labels(outcome="success").inc()
        self.audit.log_signature_verification(subject_id, address, True)
        return AddressBinding(subject_id=subject_id, address=address, signature=signature)
