# ballot_custody/encryption/key_custodian.py

import logging
import threading
from dataclasses import dataclass
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa
from cryptography.exceptions import UnsupportedAlgorithm
from ballot_custody.encryption.envelope_cipher import EnvelopeCipher, MalformedEnvelopeError

logger = logging.getLogger(__name__)

DEFAULT_KEY_SIZE = 2048


class KeyGenerationError(Exception):
    """Raised when the DSA primitive rejects the requested parameters."""
    pass


@dataclass(frozen=True)
class IssuedKeys:
    public_key_pem: str
    private_key_envelope: str


class KeyCustodian:
    """Issues voter keypairs and keeps their private halves encrypted.

    The custodian is the only component holding the master key. Domain
    parameters (p, q, g) are generated once per key size and shared by all
    voters, as FIPS 186 allows; each voter gets its own x / y pair.
    """

    def __init__(self, master_key: bytes, key_size: int = DEFAULT_KEY_SIZE):
        self._cipher = EnvelopeCipher(master_key)
        self.key_size = key_size
        self._parameters = {}
        self._parameters_lock = threading.Lock()

    def __repr__(self):
        return f'<KeyCustodian dsa-{self.key_size}>'

    def _domain_parameters(self, key_size: int):
        with self._parameters_lock:
            params = self._parameters.get(key_size)
            if params is None:
                logger.info(f"Generating DSA-{key_size} domain parameters")
                params = dsa.generate_parameters(key_size=key_size)
                self._parameters[key_size] = params
            return params

    def generate_keypair(self, key_size: int = None) -> tuple:
        key_size = key_size or self.key_size
        try:
            private_key = self._domain_parameters(key_size).generate_private_key()
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise KeyGenerationError(f"DSA key generation failed for {key_size} bits: {e}")
        return private_key.public_key(), private_key

    def export_public(self, public_key) -> str:
        pem = public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        return pem.decode()

    def export_private(self, private_key) -> str:
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption())
        return pem.decode()

    def custody(self, private_key_pem: str) -> str:
        return self._cipher.encrypt(private_key_pem.encode()).dumps()

    def reveal(self, envelope):
        """Decrypt an envelope back into a usable private key handle.

        Envelope errors propagate unchanged. A plaintext that decrypts but is
        not a PEM private key raises MalformedEnvelopeError.
        """
        pem = self._cipher.decrypt(envelope)
        try:
            return serialization.load_pem_private_key(pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise MalformedEnvelopeError(f"Envelope does not hold a private key: {e}")

    def issue(self, key_size: int = None) -> IssuedKeys:
        public_key, private_key = self.generate_keypair(key_size)
        return IssuedKeys(
            public_key_pem=self.export_public(public_key),
            private_key_envelope=self.custody(self.export_private(private_key)),
        )

    def sign_with(self, envelope, candidate_id: str, signer):
        return signer.sign(self.reveal(envelope), candidate_id)


def load_public_key(pem: str):
    """Parse a PEM (SPKI) public key; raises ValueError on malformed text."""
    if isinstance(pem, str):
        pem = pem.encode()
    return serialization.load_pem_public_key(pem)
