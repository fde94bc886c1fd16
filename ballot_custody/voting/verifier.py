# ballot_custody/voting/verifier.py

import logging
from dataclasses import dataclass
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa
from ballot_custody.encryption.ballot_signer import SigningError, ballot_message
from ballot_custody.encryption.key_custodian import load_public_key
from ballot_custody.encryption.signature_codec import (
    CodecError,
    ComponentSignature,
    OpaqueSignature,
    component_from_hex,
    parse_text,
    same_signature,
)

logger = logging.getLogger(__name__)

VALID_MESSAGE = "Vote verified successfully"


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    reason: str

    def __bool__(self):
        return self.valid

    def to_dict(self) -> dict:
        return {'valid': self.valid, 'message': self.reason}


def parse_signature(signature=None, r=None, s=None):
    """Build a signature variant from request input.

    Accepts an existing variant, hex/base64 signature text, or hex r and s.
    Raises CodecError on anything malformed.
    """
    if isinstance(signature, (OpaqueSignature, ComponentSignature)):
        return signature
    if signature:
        return OpaqueSignature(parse_text(signature))
    if r is not None and s is not None:
        return ComponentSignature(component_from_hex(r), component_from_hex(s))
    raise CodecError("No signature supplied")


class SignatureVerifier:
    """Answers "is this the signature recorded for this voter's choice?".

    Every failure except an unreachable store becomes a VerificationResult
    with valid=False; StoreError propagates to the caller.
    """

    def __init__(self, store=None):
        self.store = store

    def check(self, public_key_pem: str, candidate_id: str, signature) -> VerificationResult:
        try:
            public_key = load_public_key(public_key_pem)
        except (ValueError, TypeError, UnsupportedAlgorithm):
            return VerificationResult(False, "Malformed public key")
        if not isinstance(public_key, dsa.DSAPublicKey):
            return VerificationResult(False, "Public key is not a DSA key")

        try:
            message = ballot_message(candidate_id)
            if not isinstance(signature, (OpaqueSignature, ComponentSignature)):
                signature = parse_signature(signature)
            der = signature.to_der()
        except (SigningError, CodecError) as e:
            return VerificationResult(False, f"Malformed signature: {e}")

        try:
            public_key.verify(der, message, hashes.SHA256())
        except InvalidSignature:
            return VerificationResult(False, "Signature does not match candidate and public key")
        except ValueError as e:
            return VerificationResult(False, f"Malformed signature: {e}")
        return VerificationResult(True, VALID_MESSAGE)

    def verify(self, public_key_pem: str, candidate_id: str, signature) -> bool:
        return self.check(public_key_pem, candidate_id, signature).valid

    def verify_recorded(self, voter, candidate_id: str, signature) -> VerificationResult:
        try:
            signature = parse_signature(signature)
        except CodecError as e:
            return VerificationResult(False, f"Malformed signature: {e}")

        crypto = self.check(voter.public_key, candidate_id, signature)

        stored = self.store.find_vote_by_voter(voter.id)
        if stored is None:
            recorded, why = False, "No vote recorded for this voter"
        elif stored.signature is None:
            recorded, why = False, "Recorded signature is corrupt"
        elif stored.candidate != candidate_id:
            recorded, why = False, "Recorded vote is for a different candidate"
        elif not same_signature(stored.signature, signature):
            recorded, why = False, "Signature differs from the recorded vote"
        else:
            recorded, why = True, VALID_MESSAGE

        if not crypto.valid:
            logger.info(f"Vote verification failed for voter {voter.id}: {crypto.reason}")
            return crypto
        if not recorded:
            logger.info(f"Vote verification failed for voter {voter.id}: {why}")
            return VerificationResult(False, why)
        return VerificationResult(True, VALID_MESSAGE)
