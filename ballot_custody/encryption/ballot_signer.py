# ballot_custody/encryption/ballot_signer.py

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa
from ballot_custody.encryption.signature_codec import SIGNATURE_FORMATS, from_der

# DSA over SHA-256 of the raw candidate identifier. The voter's identity is
# never part of the message; it is bound by which public key verifies.


class SigningError(Exception):
    """Raised when a ballot cannot be signed with the given key."""
    pass


def ballot_message(candidate_id: str) -> bytes:
    if not isinstance(candidate_id, str):
        raise SigningError("Candidate identifier must be a string")
    return candidate_id.encode('utf-8')


class BallotSigner:
    def __init__(self, signature_format: str = 'opaque'):
        if signature_format not in SIGNATURE_FORMATS:
            raise ValueError(f"Unknown signature format: {signature_format}")
        self.signature_format = signature_format

    def sign(self, private_key, candidate_id: str):
        if not isinstance(private_key, dsa.DSAPrivateKey):
            raise SigningError("Private key must be a DSA private key")
        message = ballot_message(candidate_id)
        try:
            der = private_key.sign(message, hashes.SHA256())
        except (TypeError, ValueError) as e:
            raise SigningError(f"Signing failed: {e}")
        return from_der(der, self.signature_format)
